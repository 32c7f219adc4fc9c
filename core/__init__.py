# Core module - Errors and per-name resolution state
# The orchestrator lives in core.orchestrator; it pulls in the discovery
# engine, which itself depends on core.errors

from .state_machine import ResolutionStateMachine, ResolutionState, StateTransition
from .errors import (
    ErrorHandler, DiscoveryError, ErrorCategory, DiscoveryException,
    QueryTerminatedError, CommandNotFoundError,
)

__all__ = [
    "ResolutionStateMachine", "ResolutionState", "StateTransition",
    "ErrorHandler", "DiscoveryError", "ErrorCategory", "DiscoveryException",
    "QueryTerminatedError", "CommandNotFoundError",
]
