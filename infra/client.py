"""
Query API Client
----------------
Client for a running cmdscope query server.

Mirrors the service bus endpoints and returns the parsed response
models. HTTP and transport failures come back as a ClientResponse
with a status, never as an exception.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum, auto
from typing import Any, Dict, List, Optional
import logging

import httpx

from discovery.query import CommandQuery

from .service_bus import HealthResponse, ModuleResponse, QueryResponse


class ClientStatus(Enum):
    """Status of a query API call."""
    SUCCESS = auto()
    REJECTED = auto()        # 400: fatal query error
    INVALID = auto()         # 422: query failed validation
    UNAVAILABLE = auto()     # 503: server has no registry
    SERVER_ERROR = auto()
    TIMEOUT = auto()
    NETWORK_ERROR = auto()


@dataclass
class ClientResponse:
    """Response from a query API call."""
    status: ClientStatus
    data: Optional[Any] = None
    error: Optional[str] = None
    status_code: int = 0
    response_time_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.status == ClientStatus.SUCCESS


STATUS_BY_CODE = {
    400: ClientStatus.REJECTED,
    422: ClientStatus.INVALID,
    503: ClientStatus.UNAVAILABLE,
}


class QueryClient:
    """
    Synchronous client for the query API.

    An existing httpx.Client (or a FastAPI TestClient) may be passed in;
    otherwise one is created for base_url.
    """

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8765",
        timeout_seconds: float = 30.0,
        http_client: Optional[httpx.Client] = None
    ):
        self.base_url = base_url.rstrip("/")
        self._client = http_client or httpx.Client(base_url=self.base_url, timeout=timeout_seconds)
        self._owns_client = http_client is None
        self._logger = logging.getLogger("cmdscope.infra.client")

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "QueryClient":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def health(self) -> ClientResponse:
        return self._request("GET", "/health", model=HealthResponse)

    def query(self, query: CommandQuery) -> ClientResponse:
        """POST /commands. data is a QueryResponse on success."""
        body = query.model_dump(mode="json", exclude_defaults=True)
        return self._request("POST", "/commands", json=body, model=QueryResponse)

    def modules(self) -> ClientResponse:
        response = self._request("GET", "/modules")
        if response.success:
            response.data = [ModuleResponse(**m) for m in response.data]
        return response

    def complete_noun(self, word: str, module: Optional[List[str]] = None) -> ClientResponse:
        params: Dict[str, Any] = {"word": word}
        if module:
            params["module"] = module
        return self._request("GET", "/complete/noun", params=params)

    def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict] = None,
        json: Optional[Dict] = None,
        model: Optional[type] = None
    ) -> ClientResponse:
        """Make an HTTP request with error handling."""
        start_time = datetime.now()

        try:
            response = self._client.request(method, endpoint, params=params, json=json)
        except httpx.TimeoutException:
            return ClientResponse(status=ClientStatus.TIMEOUT, error="Request timed out")
        except httpx.TransportError as e:
            self._logger.warning(f"Request to {endpoint} failed: {e}")
            return ClientResponse(status=ClientStatus.NETWORK_ERROR, error=f"Network error: {e}")

        response_time = (datetime.now() - start_time).total_seconds() * 1000

        if response.status_code == 200:
            payload = response.json() if response.content else None
            data = model(**payload) if model is not None and payload is not None else payload
            return ClientResponse(
                status=ClientStatus.SUCCESS,
                data=data,
                status_code=response.status_code,
                response_time_ms=response_time,
            )

        status = STATUS_BY_CODE.get(response.status_code, ClientStatus.SERVER_ERROR)
        try:
            detail = response.json().get("detail")
        except ValueError:
            detail = response.text
        return ClientResponse(
            status=status,
            data=detail,
            error=f"HTTP {response.status_code}: {detail}",
            status_code=response.status_code,
            response_time_ms=response_time,
        )
