"""
Resolution Orchestrator
-----------------------
Central coordinator of a command query.

One run resolves the name criteria one at a time against the primary
searcher, falls back to materializing modules and scanning the module
catalog when that finds nothing (or the name is a pattern), and scans
loaded module tables when all scopes are requested. Every candidate
passes the same chain:

    visibility → within-source identity → type / verb-noun / module
    → dynamic parameters → cross-source identity → parameters → cap

Non-negotiable rule: the registry is only reached through the
DiscoveryContext collaborators.
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, List, Optional
import logging

from commands.model import (
    CommandInfo, CommandType, FUNCTION_LIKE_TYPES, parse_command_name, split_cmdlet_name,
)
from commands.wildcard import contains_wildcard_characters
from discovery.dynamic_params import DynamicParameterResolver
from discovery.finalizer import ResultFinalizer
from discovery.identity import IdentityTracker
from discovery.interfaces import DiscoveryContext, SearchOptions
from discovery.matching import MatchEvaluator
from discovery.patterns import PatternSet
from discovery.query import CommandQuery, MatchState
from discovery.sources import AvailableModuleSource, PrimarySource, SecondarySource, materialize
from infra.logging import QueryContext, log_query_end

from .errors import (
    DiscoveryError, ErrorHandler, QueryTerminatedError,
    create_command_not_found_error, create_conflicting_arguments_error,
)
from .state_machine import ResolutionStateMachine, StateTransition


@dataclass
class OrchestratorConfig:
    """Configuration for the orchestrator."""
    report_failed_lookups: bool = True


@dataclass
class GetCommandResult:
    """Outcome of one query run."""
    commands: List[CommandInfo]
    output: List[Any]
    errors: List[DiscoveryError] = field(default_factory=list)
    states: List[ResolutionStateMachine] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def __repr__(self) -> str:
        status = "✓" if self.success else "✗"
        return f"GetCommandResult({status} results={len(self.output)}, errors={len(self.errors)})"


class FallbackAction(Enum):
    """What to do after the first primary pass for a name."""
    NONE = auto()
    MATERIALIZE = auto()        # load the providing module, search again, then the catalog
    AVAILABLE_MODULES = auto()  # go straight to the module catalog


def choose_fallback(
    is_pattern: bool,
    found: bool,
    list_imported: bool,
    module_known: bool
) -> FallbackAction:
    """
    Fallback policy after the first primary pass.

    | name      | found | list_imported | action            |
    |-----------|-------|---------------|-------------------|
    | literal   | yes   | any           | NONE              |
    | any       | any   | yes           | NONE              |
    | literal   | no    | no            | MATERIALIZE       |
    | pattern*  | any   | no            | MATERIALIZE       |
    | pattern   | any   | no            | AVAILABLE_MODULES |

    pattern* is a pattern whose module is known (qualified name or a
    single literal module criterion).
    """
    if not is_pattern and found:
        return FallbackAction.NONE
    if list_imported:
        return FallbackAction.NONE
    if not is_pattern or module_known:
        return FallbackAction.MATERIALIZE
    return FallbackAction.AVAILABLE_MODULES


class ResolutionOrchestrator:
    """
    Runs one CommandQuery against a DiscoveryContext.

    Responsibilities:
    - Per-name resolution and fallback
    - Enforcing the result cap across names
    - Per-name not-found diagnostics
    - Handing the accumulated results to the finalizer

    An instance is good for a single run.
    """

    def __init__(
        self,
        context: DiscoveryContext,
        query: CommandQuery,
        config: Optional[OrchestratorConfig] = None
    ):
        self.context = context
        self.query = query
        self.config = config or OrchestratorConfig()
        self.errors = ErrorHandler()
        self.state = MatchState(cap=query.total_count)
        self.patterns = PatternSet(query)
        self.evaluator = MatchEvaluator(query, self.patterns, self.state)
        self.identity = IdentityTracker(self.state)
        self.resolver = DynamicParameterResolver(query.argument_list, self.errors)
        self.finalizer = ResultFinalizer(
            query, self.state, self.errors, context.visibility, context.origin
        )
        self.resolutions: List[ResolutionStateMachine] = []
        self._command_type = query.effective_command_type
        self._logger = logging.getLogger("cmdscope.orchestrator")

    def run(self) -> GetCommandResult:
        """
        Resolve every name and produce the shaped output.

        Raises:
            QueryTerminatedError: conflicting criteria, or an argument
                list paired with a command that cannot take it
        """
        with QueryContext() as query_id:
            try:
                self._validate()

                names = self.query.effective_names
                self._logger.info(
                    f"Query started: names={names}, type={self._command_type.label}, "
                    f"cap={self.query.total_count}"
                )

                options = self._search_options()
                for name in names:
                    self._resolve_name(name, options)

                commands = self.finalizer.finalize()
                output = self.finalizer.shape(commands)
            except QueryTerminatedError as e:
                log_query_end(query_id, success=False, error=e.error_id)
                raise

            if not output and self.query.name and self.config.report_failed_lookups:
                if not self.query.name[0].startswith(".\\"):
                    self._logger.warning(f"command lookup failed: {', '.join(self.query.name)}")

            log_query_end(
                query_id,
                success=True,
                result_count=len(output),
                error_count=len(self.errors),
            )

            return GetCommandResult(
                commands=commands,
                output=output,
                errors=self.errors.errors,
                states=list(self.resolutions),
            )

    def _validate(self) -> None:
        if self.query.syntax and self.query.show_command_info:
            self.errors.terminate(create_conflicting_arguments_error(
                "Syntax", "ShowCommandInfo",
                "GetCommandCannotSpecifySyntaxAndShowCommandInfoTogether",
            ))
        if self.query.is_module_specified and self.query.is_fully_qualified_module_specified:
            self.errors.terminate(create_conflicting_arguments_error(
                "Module", "FullyQualifiedModule",
                "ModuleAndFullyQualifiedModuleCannotBeSpecifiedTogether",
            ))

    def _search_options(self) -> SearchOptions:
        options = SearchOptions.NONE
        if self.query.all:
            options |= SearchOptions.SEARCH_ALL_SCOPES
        if self._command_type & CommandType.ALIAS:
            options |= SearchOptions.RESOLVE_ALIAS_PATTERNS
        if self._command_type & FUNCTION_LIKE_TYPES:
            options |= SearchOptions.RESOLVE_FUNCTION_PATTERNS
        return options

    def _single_literal_module(self) -> Optional[str]:
        modules = self.query.module or []
        if len(modules) == 1 and not contains_wildcard_characters(modules[0]):
            return modules[0]
        return None

    # Per-name resolution

    def _resolve_name(self, name: str, options: SearchOptions) -> ResolutionStateMachine:
        qualifier, plain_name = parse_command_name(name)
        module_name = qualifier or self._single_literal_module()

        is_pattern = contains_wildcard_characters(plain_name)
        if is_pattern:
            options |= SearchOptions.COMMAND_NAME_IS_PATTERN

        machine = ResolutionStateMachine(name, is_pattern=is_pattern)
        machine.add_listener(self._log_resolution)
        self.resolutions.append(machine)

        self._find_command_for_name(name, qualifier, options, machine, emit_errors=True)

        action = FallbackAction.NONE
        if not (machine.failed or self._is_capped(machine)):
            action = choose_fallback(
                is_pattern, machine.found, self.query.list_imported, module_name is not None
            )

        if action == FallbackAction.MATERIALIZE:
            target = name
            if qualifier is None and module_name is not None:
                target = f"{module_name}\\{name}"
            materialize(self.context.materializer, target, self.context.origin)

            self._find_command_for_name(name, qualifier, options, machine, emit_errors=False)
            if is_pattern or not machine.found:
                self._scan_available_modules(plain_name, qualifier, machine)

        elif action == FallbackAction.AVAILABLE_MODULES:
            self._scan_available_modules(plain_name, qualifier, machine)

        machine.conclude()
        machine.remove_listener(self._log_resolution)
        if machine.should_report_not_found:
            self.errors.handle(create_command_not_found_error(name))

        return machine

    def _log_resolution(self, transition: StateTransition) -> None:
        self._logger.debug(
            f"Resolved '{transition.name}': {transition.to_state.name} "
            f"({transition.reason}, results so far: {self.state.count})"
        )

    def _is_capped(self, machine: ResolutionStateMachine) -> bool:
        """Stop pulling candidates once the cap is reached."""
        if self.state.cap_reached():
            machine.mark_capped()
            return True
        return False

    def _find_command_for_name(
        self,
        name: str,
        qualifier: Optional[str],
        options: SearchOptions,
        machine: ResolutionStateMachine,
        emit_errors: bool
    ) -> None:
        """One primary pass, plus the module-table scan when all scopes are requested."""
        if self._is_capped(machine):
            return

        source = PrimarySource(
            self.context.searcher, name, options, self._command_type,
            self.context.origin, self.errors, emit_errors,
        )

        for candidate in source:
            command = self._is_command_match(candidate, machine)
            if command is None:
                continue

            added = self._try_accumulate(command)
            if added is None:
                break
            if added and self._is_capped(machine):
                break
            if added and self.query.argument_list is not None:
                # Arguments bind to the first match only
                break

            if not (machine.is_pattern or self.query.widens_scope):
                break

        if source.failed and emit_errors:
            machine.mark_failed()
            return

        if self.query.all:
            _, plain_name = parse_command_name(name)
            self._scan_module_tables(plain_name, qualifier, machine)

    def _scan_module_tables(
        self,
        plain_name: str,
        qualifier: Optional[str],
        machine: ResolutionStateMachine
    ) -> None:
        if self._is_capped(machine):
            return

        source = SecondarySource(
            self.context.module_table, plain_name, self._command_type, self.patterns, qualifier
        )
        self._accumulate_from(source, machine)

    def _scan_available_modules(
        self,
        plain_name: str,
        qualifier: Optional[str],
        machine: ResolutionStateMachine
    ) -> None:
        """Catalog scan, restricted to the qualifier's module when the name has one."""
        if self._is_capped(machine):
            return

        source = AvailableModuleSource(
            self.context.catalog,
            plain_name,
            self.context.origin,
            module_version_required=self.query.is_fully_qualified_module_specified,
            qualifier=qualifier,
        )
        self._accumulate_from(source, machine)

    def _accumulate_from(self, source, machine: ResolutionStateMachine) -> None:
        for candidate in source:
            command = self._is_command_match(candidate, machine)
            if command is None:
                continue
            added = self._try_accumulate(command)
            if added is None or (added and self._is_capped(machine)):
                break

    # Candidate chain

    def _is_command_match(
        self,
        candidate: CommandInfo,
        machine: ResolutionStateMachine
    ) -> Optional[CommandInfo]:
        """
        Return the command to consider for the result, or None.

        Invisible commands are dropped before any bookkeeping. A
        within-source duplicate is flagged on the name's state machine
        so that it does not count as a miss.
        """
        if not self.context.visibility.is_visible(self.context.origin, candidate):
            self._logger.debug(f"Skipped invisible {candidate.name}")
            return None

        if self.identity.check_and_register(candidate):
            machine.mark_duplicate()
            return None

        if not self.evaluator.is_criteria_match(candidate):
            return None

        command = self.resolver.resolve(candidate)
        if command is not None:
            machine.mark_found()
        return command

    def _try_accumulate(self, command: CommandInfo) -> Optional[bool]:
        """
        Add a matched command to the results.

        Returns True when added, False when it is already present or
        fails the parameter criteria, and None when the cap is reached.
        """
        if self.identity.is_in_result(command):
            self._logger.debug(f"{command.name} already in results")
            return False

        if not self.evaluator.is_parameter_match(command):
            return False

        if self.state.cap_reached():
            return None

        self.identity.accept(command)
        self._logger.debug(f"Accumulated {command.command_type.label} {command.name}")
        return True


def get_command(
    context: DiscoveryContext,
    query: Optional[CommandQuery] = None,
    config: Optional[OrchestratorConfig] = None,
    **criteria: Any
) -> GetCommandResult:
    """
    Resolve a query against a discovery context.

    Criteria may be passed as a CommandQuery or as keyword arguments:

        get_command(context, name=["Get-*"], command_type="Function")
    """
    if query is None:
        query = CommandQuery(**criteria)
    elif criteria:
        query = CommandQuery(**{**query.model_dump(), **criteria})

    return ResolutionOrchestrator(context, query, config).run()


def complete_noun(
    context: DiscoveryContext,
    word: str,
    module: Optional[List[str]] = None
) -> List[str]:
    """Nouns of the commands whose noun starts with word, sorted and distinct."""
    query = CommandQuery(noun=[f"{word}*"], module=module)
    result = ResolutionOrchestrator(
        context, query, OrchestratorConfig(report_failed_lookups=False)
    ).run()

    nouns = set()
    for command in result.commands:
        parts = split_cmdlet_name(command.name)
        if parts is not None:
            nouns.add(parts[1])
    return sorted(nouns)


__all__ = [
    "OrchestratorConfig",
    "GetCommandResult",
    "FallbackAction",
    "choose_fallback",
    "ResolutionOrchestrator",
    "get_command",
    "complete_noun",
]
