"""
cmdscope Test Configuration
---------------------------
Shared fixtures and configuration for all tests.
"""

import sys
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from commands.model import CommandInfo, CommandOrigin, CommandType, ModuleInfo
from commands.registry import CommandRegistry
from core.errors import CommandNotFoundError
from discovery.interfaces import (
    CommandMaterializer, CommandSearcher, DiscoveryContext, ModuleCatalog,
    ModuleTable, PublicOnlyVisibility, SearchOptions,
)


FIXTURES = Path(__file__).parent / "fixtures"


# =============================================================================
# Registry Fixtures
# =============================================================================

@pytest.fixture(scope="session")
def project_root():
    """Return the project root path."""
    return PROJECT_ROOT


@pytest.fixture(scope="session")
def registry_path() -> Path:
    return FIXTURES / "registry.yaml"


@pytest.fixture(scope="function")
def registry(registry_path) -> CommandRegistry:
    """A fresh registry per test; queries may import modules into it."""
    return CommandRegistry.from_yaml(str(registry_path))


@pytest.fixture(scope="function")
def context(registry) -> DiscoveryContext:
    return registry.as_context(CommandOrigin.RUNSPACE)


# =============================================================================
# Stub Collaborators
# =============================================================================

class StubSearcher(CommandSearcher):
    """
    Yields a fixed candidate list, then optionally raises.

    calls records every (name, options) pair it was asked for.
    """

    def __init__(self, commands: Sequence[CommandInfo] = (), error: Optional[Exception] = None):
        self.commands = list(commands)
        self.error = error
        self.calls: List[tuple] = []

    def search(self, command_name, options, command_type, origin) -> Iterator[CommandInfo]:
        self.calls.append((command_name, options))
        yield from self.commands
        if self.error is not None:
            raise self.error


class StubModuleTable(ModuleTable):

    def __init__(self, modules: Sequence[ModuleInfo] = ()):
        self.modules = list(modules)

    def loaded_modules(self):
        return list(self.modules)


class StubCatalog(ModuleCatalog):

    def __init__(self, commands: Sequence[CommandInfo] = ()):
        self.commands = list(commands)
        self.patterns: List[str] = []

    def get_matching_commands(self, pattern, origin, rediscover_imported_modules=True,
                              module_version_required=False):
        self.patterns.append(pattern)
        return list(self.commands)


class StubMaterializer(CommandMaterializer):

    def __init__(self):
        self.requested: List[str] = []

    def lookup_command(self, command_name, origin):
        self.requested.append(command_name)
        raise CommandNotFoundError(command_name)


@pytest.fixture
def stub_context():
    """Factory for a DiscoveryContext over stub collaborators."""
    def _make(
        commands: Sequence[CommandInfo] = (),
        error: Optional[Exception] = None,
        catalog: Sequence[CommandInfo] = (),
        modules: Sequence[ModuleInfo] = (),
        origin: CommandOrigin = CommandOrigin.RUNSPACE
    ) -> DiscoveryContext:
        return DiscoveryContext(
            searcher=StubSearcher(commands, error),
            module_table=StubModuleTable(modules),
            catalog=StubCatalog(catalog),
            materializer=StubMaterializer(),
            visibility=PublicOnlyVisibility(),
            origin=origin,
        )
    return _make
