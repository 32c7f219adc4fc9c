# Infrastructure module - Logging and configuration
# The service bus, server and client depend on the engine; import them by path.

from .logging import (
    get_logger, configure_logging, QueryContext,
    log_query_end, get_query_id, generate_query_id
)
from .config import ConfigManager, get_config

__all__ = [
    # Logging
    "get_logger",
    "configure_logging",
    "QueryContext",
    "log_query_end",
    "get_query_id",
    "generate_query_id",
    # Config
    "ConfigManager",
    "get_config",
]
