"""
FastAPI Service Bus
-------------------
Query API over a command registry.

Endpoints:
- GET  /health           liveness and registry size
- POST /commands         run a CommandQuery
- GET  /modules          loaded modules
- GET  /complete/noun    noun completion

Fatal query errors map to HTTP 400. Queries are serialized, since a
query may import modules into the shared registry.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional
import logging
import threading

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from commands.model import CommandOrigin
from commands.registry import CommandRegistry
from core.errors import DiscoveryError, QueryTerminatedError
from core.orchestrator import complete_noun, get_command
from discovery.finalizer import CommandSummary
from discovery.query import CommandQuery

from .config import ConfigManager


VERSION = "0.1.0"


# Request/Response Models

class ErrorInfo(BaseModel):
    """A diagnostic reported by a query run."""
    error_id: str
    category: str
    message: str
    target: Optional[str] = None

    @classmethod
    def from_error(cls, error: DiscoveryError) -> "ErrorInfo":
        target = error.target
        if target is not None and not isinstance(target, str):
            target = getattr(target, "name", str(target))
        return cls(
            error_id=error.error_id,
            category=error.category.name,
            message=error.message,
            target=target,
        )


class QueryResponse(BaseModel):
    """Response from a command query."""
    results: List[CommandSummary] = Field(default_factory=list)
    syntax: List[str] = Field(default_factory=list)
    errors: List[ErrorInfo] = Field(default_factory=list)
    timestamp: str = Field(default_factory=lambda: datetime.now().isoformat())


class ModuleResponse(BaseModel):
    name: str
    version: str
    path: str
    functions: int = 0
    aliases: int = 0


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str = VERSION
    commands_loaded: int = 0
    modules_loaded: int = 0
    timestamp: str = Field(default_factory=lambda: datetime.now().isoformat())


# Service Bus

class ServiceBus:
    """
    Query service over one CommandRegistry.

    Provides REST API for:
    - Command queries
    - Loaded module listing
    - Noun completion
    """

    def __init__(
        self,
        registry: Optional[CommandRegistry] = None,
        origin: CommandOrigin = CommandOrigin.RUNSPACE
    ):
        self._registry = registry
        self._origin = origin
        self._lock = threading.Lock()
        self._logger = logging.getLogger("cmdscope.infra.service_bus")
        self._app: Optional[FastAPI] = None

    def _require_registry(self) -> CommandRegistry:
        if self._registry is None:
            raise HTTPException(status_code=503, detail="Registry not loaded")
        return self._registry

    def create_app(self) -> FastAPI:
        """Create and configure the FastAPI application."""

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            self._logger.info("Service bus starting...")
            yield
            self._logger.info("Service bus shutting down...")

        app = FastAPI(
            title="cmdscope Query API",
            description="Command resolution over a command registry",
            version=VERSION,
            lifespan=lifespan
        )

        # CORS for local development
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["http://localhost:*", "http://127.0.0.1:*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        self._register_routes(app)

        self._app = app
        return app

    def run_query(self, query: CommandQuery) -> QueryResponse:
        """Run a query and package the result. Raises HTTPException(400) on fatal errors."""
        registry = self._require_registry()

        with self._lock:
            try:
                result = get_command(registry.as_context(self._origin), query)
            except QueryTerminatedError as e:
                self._logger.warning(f"Query rejected: {e.error_id}")
                raise HTTPException(
                    status_code=400,
                    detail={"error_id": e.error_id, "message": str(e)},
                )

        visible = [c for c in result.commands if registry.is_visible(self._origin, c)]
        return QueryResponse(
            results=[CommandSummary.from_command(c) for c in visible],
            syntax=list(result.output) if query.syntax else [],
            errors=[ErrorInfo.from_error(e) for e in result.errors],
        )

    def _register_routes(self, app: FastAPI) -> None:
        """Register all API routes."""

        @app.get("/health", response_model=HealthResponse, tags=["System"])
        def health_check():
            """Health check endpoint."""
            if self._registry is None:
                return HealthResponse(status="degraded")
            return HealthResponse(
                status="healthy",
                commands_loaded=len(self._registry),
                modules_loaded=len(self._registry.modules),
            )

        @app.post("/commands", response_model=QueryResponse, tags=["Commands"])
        def query_commands(query: CommandQuery):
            """Resolve commands matching the query."""
            return self.run_query(query)

        @app.get("/modules", response_model=List[ModuleResponse], tags=["Modules"])
        def list_modules():
            """List loaded modules in registration order."""
            registry = self._require_registry()
            modules = []
            for module in registry.modules:
                state = module.session_state
                modules.append(ModuleResponse(
                    name=module.name,
                    version=module.version,
                    path=module.path,
                    functions=len(state.functions) if state else 0,
                    aliases=len(state.aliases) if state else 0,
                ))
            return modules

        @app.get("/complete/noun", response_model=List[str], tags=["Commands"])
        def complete(word: str = "", module: Optional[List[str]] = Query(None)):
            """Complete a noun from the commands in the registry."""
            registry = self._require_registry()
            with self._lock:
                return complete_noun(registry.as_context(self._origin), word, module)


def create_app(
    registry: Optional[CommandRegistry] = None,
    config: Optional[ConfigManager] = None
) -> FastAPI:
    """
    Create the FastAPI application.

    Without a registry, the one named by registry.path in the
    configuration is loaded.
    """
    config = config or ConfigManager()
    if registry is None:
        registry = CommandRegistry.from_yaml(config.registry_path)

    bus = ServiceBus(registry, config.origin)
    return bus.create_app()
