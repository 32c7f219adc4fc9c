"""
Collaborator Contracts
----------------------
The engine reads the command registry only through these interfaces.
commands.registry.CommandRegistry implements all of them; tests may
substitute any one.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import IntFlag
from typing import Iterable, Iterator, Sequence

from commands.model import CommandInfo, CommandOrigin, CommandType, ModuleInfo, Visibility


class SearchOptions(IntFlag):
    NONE = 0
    SEARCH_ALL_SCOPES = 1
    RESOLVE_ALIAS_PATTERNS = 2
    RESOLVE_FUNCTION_PATTERNS = 4
    COMMAND_NAME_IS_PATTERN = 8


class CommandSearcher(ABC):
    """Ordered enumerator of commands for an exact name or a pattern."""

    @abstractmethod
    def search(
        self,
        command_name: str,
        options: SearchOptions,
        command_type: CommandType,
        origin: CommandOrigin
    ) -> Iterator[CommandInfo]:
        """
        Yield matching commands nearest scope first.

        Advancing may raise PatternSyntaxError, PathTooLongError,
        FileLoadError, MetadataError or UnreadableFormatError.
        """


class ModuleTable(ABC):
    """Registered modules in registration order."""

    @abstractmethod
    def loaded_modules(self) -> Sequence[ModuleInfo]:
        ...


class ModuleCatalog(ABC):
    """Modules available on disk, imported or not."""

    @abstractmethod
    def get_matching_commands(
        self,
        pattern: str,
        origin: CommandOrigin,
        rediscover_imported_modules: bool = True,
        module_version_required: bool = False
    ) -> Iterable[CommandInfo]:
        ...


class CommandMaterializer(ABC):
    """Loads whatever module provides a command (auto-loading)."""

    @abstractmethod
    def lookup_command(self, command_name: str, origin: CommandOrigin) -> CommandInfo:
        """Raises CommandNotFoundError when nothing provides the name."""


class VisibilityPolicy(ABC):

    @abstractmethod
    def is_visible(self, origin: CommandOrigin, command: CommandInfo) -> bool:
        ...


class PublicOnlyVisibility(VisibilityPolicy):
    """Runspace callers see public commands; internal callers see all."""

    def is_visible(self, origin: CommandOrigin, command: CommandInfo) -> bool:
        if origin == CommandOrigin.INTERNAL:
            return True
        return command.visibility == Visibility.PUBLIC


@dataclass
class DiscoveryContext:
    """Everything one query run needs from the outside world."""
    searcher: CommandSearcher
    module_table: ModuleTable
    catalog: ModuleCatalog
    materializer: CommandMaterializer
    visibility: VisibilityPolicy
    origin: CommandOrigin = CommandOrigin.RUNSPACE
