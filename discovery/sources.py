"""
Source Adapters
---------------
Candidate streams the orchestrator pulls from.

- PrimarySource: the ordered searcher, one name at a time. Recoverable
  errors end the stream for that name and become diagnostics.
- SecondarySource: imported functions and aliases found in the tables
  of loaded modules, most recently registered module first.
- AvailableModuleSource: commands of modules on disk, imported or not.
"""

from typing import Dict, Iterator, Optional, Tuple, Type
import logging

from commands.model import CommandInfo, CommandOrigin, CommandType, ModuleInfo
from commands.wildcard import WildcardPattern, matches_any
from core.errors import (
    CommandNotFoundError, DiscoveryError, ErrorCategory, ErrorHandler,
    FileLoadError, MetadataError, PathTooLongError, PatternSyntaxError,
    UnreadableFormatError,
)

from .interfaces import (
    CommandMaterializer, CommandSearcher, ModuleCatalog, ModuleTable, SearchOptions,
)
from .patterns import PatternSet


# Exceptions a searcher may raise while advancing, with their diagnostics
RECOVERABLE_SEARCH_ERRORS: Dict[Type[Exception], Tuple[str, ErrorCategory]] = {
    PatternSyntaxError: ("GetCommandInvalidArgument", ErrorCategory.SYNTAX_ERROR),
    PathTooLongError: ("GetCommandInvalidArgument", ErrorCategory.SYNTAX_ERROR),
    FileLoadError: ("GetCommandFileLoadError", ErrorCategory.READ_ERROR),
    MetadataError: ("GetCommandMetadataError", ErrorCategory.METADATA_ERROR),
    UnreadableFormatError: ("GetCommandBadFileFormat", ErrorCategory.INVALID_DATA),
}


class PrimarySource:
    """
    Pull-based wrapper over CommandSearcher.search for one name.

    advance() returns the next candidate or None at the end of the
    stream. emit_errors is off for the second pass after materializing,
    since the first pass already reported the same problems.
    """

    def __init__(
        self,
        searcher: CommandSearcher,
        command_name: str,
        options: SearchOptions,
        command_type: CommandType,
        origin: CommandOrigin,
        errors: ErrorHandler,
        emit_errors: bool = True
    ):
        self.command_name = command_name
        self.errors = errors
        self.emit_errors = emit_errors
        self.failed = False
        self._searcher = searcher
        self._options = options
        self._command_type = command_type
        self._origin = origin
        self._iterator: Optional[Iterator[CommandInfo]] = None
        self._exhausted = False
        self._logger = logging.getLogger("cmdscope.discovery.sources")

    def advance(self) -> Optional[CommandInfo]:
        if self._exhausted:
            return None

        try:
            if self._iterator is None:
                self._iterator = iter(self._searcher.search(
                    self.command_name, self._options, self._command_type, self._origin
                ))
            return next(self._iterator)
        except StopIteration:
            self._exhausted = True
            return None
        except tuple(RECOVERABLE_SEARCH_ERRORS) as e:
            self._exhausted = True
            self.failed = True
            self._report(e)
            return None

    def __iter__(self) -> Iterator[CommandInfo]:
        while True:
            candidate = self.advance()
            if candidate is None:
                return
            yield candidate

    def _report(self, exception: Exception) -> None:
        error_id, category = next(
            value for kind, value in RECOVERABLE_SEARCH_ERRORS.items()
            if isinstance(exception, kind)
        )
        if self.emit_errors:
            self.errors.handle(DiscoveryError.from_exception(
                exception, category, error_id, target=self.command_name
            ))
        else:
            self._logger.debug(f"Suppressed {error_id} for {self.command_name}: {exception}")


def materialize(
    materializer: CommandMaterializer,
    command_name: str,
    origin: CommandOrigin
) -> bool:
    """Ask the materializer to load whatever provides command_name."""
    logger = logging.getLogger("cmdscope.discovery.sources")
    try:
        materializer.lookup_command(command_name, origin)
        return True
    except CommandNotFoundError:
        # Lookup does not understand wildcards; the first pass covers those
        logger.debug(f"Nothing to materialize for {command_name}")
        return False


class SecondarySource:
    """
    Imported functions and aliases from loaded module tables.

    Entries re-exported from a nested module are skipped: only entries
    whose module path is the scanned module's path are yielded.
    """

    TABLE_FUNCTION_TYPES = (
        CommandType.FUNCTION | CommandType.FILTER |
        CommandType.WORKFLOW | CommandType.CONFIGURATION
    )

    def __init__(
        self,
        module_table: ModuleTable,
        command_name: str,
        command_type: CommandType,
        patterns: PatternSet,
        qualifier: Optional[str] = None
    ):
        self._module_table = module_table
        self._qualifier = qualifier.casefold() if qualifier else None
        self._matcher = WildcardPattern.get(command_name)
        self._command_type = command_type
        self._patterns = patterns

    def _is_module_match(self, module: ModuleInfo) -> bool:
        if self._qualifier is not None and module.name.casefold() != self._qualifier:
            return False
        if self._patterns.module_specifications:
            return any(spec.matches(module) for spec in self._patterns.module_specifications)
        return matches_any(module.name, self._patterns.module_patterns)

    def __iter__(self) -> Iterator[CommandInfo]:
        modules = list(self._module_table.loaded_modules())

        for module in reversed(modules):
            if not self._is_module_match(module) or module.session_state is None:
                continue

            module_path = (module.path or "").casefold()

            if self._command_type & self.TABLE_FUNCTION_TYPES:
                for key, function in list(module.session_state.functions.items()):
                    if not (self._matcher.is_match(key) and function.is_imported):
                        continue
                    if function.module is not None and (function.module.path or "").casefold() == module_path:
                        yield function

            if self._command_type & CommandType.ALIAS:
                for key, alias in list(module.session_state.aliases.items()):
                    if not (self._matcher.is_match(key) and alias.is_imported):
                        continue
                    if alias.module is not None and (alias.module.path or "").casefold() == module_path:
                        yield alias


class AvailableModuleSource:
    """
    Commands from the module catalog matching a plain name or pattern.

    With a module qualifier only commands of that module are yielded.
    """

    def __init__(
        self,
        catalog: ModuleCatalog,
        plain_name: str,
        origin: CommandOrigin,
        module_version_required: bool = False,
        qualifier: Optional[str] = None
    ):
        self._catalog = catalog
        self._plain_name = plain_name
        self._origin = origin
        self._module_version_required = module_version_required
        self._qualifier = qualifier.casefold() if qualifier else None

    def __iter__(self) -> Iterator[CommandInfo]:
        for command in self._catalog.get_matching_commands(
            self._plain_name,
            self._origin,
            rediscover_imported_modules=True,
            module_version_required=self._module_version_required,
        ):
            if self._qualifier is not None and (command.module_name or "").casefold() != self._qualifier:
                continue
            yield command
