"""
Error Handling Module
---------------------
Typed errors with classification for command discovery.

Three kinds of failure reach this module:
- Exceptions raised by collaborators (searcher, module loader, metadata)
- Recoverable diagnostics collected during a query run
- Fatal errors that terminate the whole query
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Any, Dict, List, Optional
import logging
import traceback


class ErrorCategory(Enum):
    """Categories of errors for handling decisions."""
    OBJECT_NOT_FOUND = auto()   # Command or parameter not found
    SYNTAX_ERROR = auto()       # Malformed pattern or path
    READ_ERROR = auto()         # Source could not be read
    METADATA_ERROR = auto()     # Parameter metadata could not be built
    INVALID_DATA = auto()       # Unsupported or corrupt file format
    INVALID_ARGUMENT = auto()   # Bad query argument
    INVALID_OPERATION = auto()  # Conflicting query criteria


# Collaborator exceptions

class DiscoveryException(Exception):
    """Base class for exceptions raised while discovering commands."""

    error_id: str = "DiscoveryException"


class PatternSyntaxError(DiscoveryException, ValueError):
    """A wildcard pattern could not be compiled."""
    error_id = "WildcardPatternException"


class PathTooLongError(DiscoveryException):
    """A command path exceeded the platform limit."""
    error_id = "PathTooLong"


class FileLoadError(DiscoveryException):
    """A command source file could not be loaded."""
    error_id = "FileLoad"


class MetadataError(DiscoveryException):
    """Parameter metadata could not be built or merged."""
    error_id = "Metadata"


class UnreadableFormatError(DiscoveryException):
    """A command source has an unsupported format."""
    error_id = "BadFormat"


class CommandNotFoundError(DiscoveryException):
    """A command could not be located or loaded."""
    error_id = "CommandNotFoundException"

    def __init__(self, command_name: str, message: Optional[str] = None):
        self.command_name = command_name
        super().__init__(
            message or
            f"The term '{command_name}' is not recognized as the name of a "
            f"cmdlet, function, script file, or operable program."
        )


class ScriptSecurityError(DiscoveryException):
    """Execution policy prevented a script from being inspected."""
    error_id = "UnauthorizedAccess"


class ScriptRuntimeError(DiscoveryException):
    """A script failed to parse or run while being inspected."""
    error_id = "RuntimeException"


class ParameterBindingError(DiscoveryException):
    """Parameter binding failed; error_id tells where it happened."""

    def __init__(self, message: str, error_id: str = "ParameterBindingException"):
        super().__init__(message)
        self.error_id = error_id


@dataclass
class DiscoveryError:
    """
    Structured error with metadata.

    Used for every diagnostic a query run reports back to its caller.
    """
    category: ErrorCategory
    error_id: str
    message: str
    target: Optional[Any] = None
    details: Optional[Dict[str, Any]] = None
    timestamp: datetime = field(default_factory=datetime.now)
    stack_trace: Optional[str] = None
    recoverable: bool = True

    @classmethod
    def from_exception(
        cls,
        exception: BaseException,
        category: ErrorCategory,
        error_id: str,
        target: Optional[Any] = None,
        details: Optional[Dict] = None
    ) -> "DiscoveryError":
        """Create error from an exception."""
        return cls(
            category=category,
            error_id=error_id,
            message=str(exception),
            target=target,
            details=details,
            stack_trace="".join(traceback.format_exception(
                type(exception), exception, exception.__traceback__
            )),
        )

    def __repr__(self) -> str:
        return f"DiscoveryError({self.error_id}: {self.message})"


class QueryTerminatedError(DiscoveryException):
    """Raised when a query cannot continue at all."""

    def __init__(self, error: DiscoveryError):
        super().__init__(error.message)
        self.error = error
        self.error_id = error.error_id


class ErrorHandler:
    """
    Collects the diagnostics of one query run and logs them.
    """

    LEVELS: Dict[ErrorCategory, int] = {
        ErrorCategory.OBJECT_NOT_FOUND: logging.WARNING,
        ErrorCategory.SYNTAX_ERROR: logging.WARNING,
        ErrorCategory.READ_ERROR: logging.WARNING,
        ErrorCategory.METADATA_ERROR: logging.WARNING,
        ErrorCategory.INVALID_DATA: logging.WARNING,
        ErrorCategory.INVALID_ARGUMENT: logging.ERROR,
        ErrorCategory.INVALID_OPERATION: logging.ERROR,
    }

    def __init__(self):
        self._logger = logging.getLogger("cmdscope.errors")
        self._errors: List[DiscoveryError] = []

    @property
    def errors(self) -> List[DiscoveryError]:
        return list(self._errors)

    def handle(self, error: DiscoveryError) -> DiscoveryError:
        """Record and log a recoverable error."""
        self._log_error(error)
        self._errors.append(error)
        return error

    def terminate(self, error: DiscoveryError) -> None:
        """Log a fatal error and abort the query."""
        error.recoverable = False
        self._log_error(error)
        self._errors.append(error)
        raise QueryTerminatedError(error)

    def _log_error(self, error: DiscoveryError) -> None:
        level = self.LEVELS.get(error.category, logging.ERROR)
        if not error.recoverable:
            level = max(level, logging.ERROR)

        self._logger.log(
            level,
            f"{error.error_id}: {error.message}",
            extra={"error_id": error.error_id, "target": str(error.target)}
        )

        if error.stack_trace and level >= logging.ERROR:
            self._logger.debug(f"Stack trace:\n{error.stack_trace}")

    def get_error_stats(self) -> Dict[str, int]:
        """Count recorded errors by error id."""
        stats: Dict[str, int] = {}
        for error in self._errors:
            stats[error.error_id] = stats.get(error.error_id, 0) + 1
        return stats

    def __len__(self) -> int:
        return len(self._errors)


# Convenience functions

def create_command_not_found_error(command_name: str) -> DiscoveryError:
    """Create a per-name not-found diagnostic."""
    return DiscoveryError.from_exception(
        CommandNotFoundError(command_name),
        ErrorCategory.OBJECT_NOT_FOUND,
        "CommandNotFoundException",
        target=command_name,
    )


def create_parameter_not_found_error(parameter_name: str) -> DiscoveryError:
    """Create a diagnostic for a requested parameter nothing exposes."""
    return DiscoveryError(
        category=ErrorCategory.OBJECT_NOT_FOUND,
        error_id="CommandParameterNotFound",
        message=(
            f"No command has a parameter named '{parameter_name}'."
        ),
        target=parameter_name,
    )


def create_conflicting_arguments_error(first: str, second: str, error_id: str) -> DiscoveryError:
    """Create a fatal error for two criteria that cannot be combined."""
    return DiscoveryError(
        category=ErrorCategory.INVALID_OPERATION,
        error_id=error_id,
        message=f"The {first} and {second} parameters cannot be specified together.",
        recoverable=False,
    )


def create_single_target_error(command: Any) -> DiscoveryError:
    """Create a fatal error for an argument list against a non-bindable command."""
    return DiscoveryError(
        category=ErrorCategory.INVALID_ARGUMENT,
        error_id="CommandArgsOnlyForSingleCmdlet",
        message=(
            "The ArgumentList parameter can be used only with a single "
            "cmdlet, function or script."
        ),
        target=command,
        recoverable=False,
    )
