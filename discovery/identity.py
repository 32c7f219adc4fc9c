"""
Identity Tracker
----------------
Two notions of "same command":

- Within the primary source: commands sharing a derived key (path for
  file-backed commands, qualified name for cmdlets, source text for
  script blocks) are one entity. First occurrence wins.
- Across sources: a candidate duplicates an accumulated result when the
  type matches, the name matches (directly or after stripping the
  result's import prefix), both have a module, and the modules are the
  same instance (both imported) or share a path (otherwise).
"""

from typing import Optional

from commands.model import (
    ApplicationInfo, CmdletInfo, CommandInfo, ExternalScriptInfo, ScriptInfo,
)

from .query import MatchState


def within_source_key(command: CommandInfo) -> Optional[str]:
    """Derived identity key, or None for commands that have none."""
    if isinstance(command, (ApplicationInfo, ExternalScriptInfo)):
        return command.path or None
    if isinstance(command, CmdletInfo):
        return command.full_name
    if isinstance(command, ScriptInfo):
        return command.script_block
    return None


def _same_module(result: CommandInfo, candidate: CommandInfo) -> bool:
    if result.module is None or candidate.module is None:
        return False
    if result.is_imported and candidate.is_imported:
        return result.module is candidate.module
    return (result.module.path or "").casefold() == (candidate.module.path or "").casefold()


class IdentityTracker:
    """Duplicate detection over one run's MatchState."""

    def __init__(self, state: MatchState):
        self.state = state

    def check_and_register(self, command: CommandInfo) -> bool:
        """
        True if an earlier candidate had the same derived key.

        The first occurrence is registered even when it goes on to fail
        the other criteria.
        """
        key = within_source_key(command)
        if key is None:
            return False

        key = key.casefold()
        if key in self.state.written_keys:
            return True

        self.state.written_keys[key] = command
        return False

    def is_in_result(self, command: CommandInfo) -> bool:
        """Cross-source duplicate check against the accumulated results."""
        if command.module is None:
            return False

        bucket = self.state.result_index.get(
            (int(command.command_type), command.name.casefold()), []
        )
        return any(_same_module(result, command) for result in bucket)

    def accept(self, command: CommandInfo) -> None:
        self.state.add(command)
