"""
Result Finalizer
----------------
Post-pass over the accumulated results of one run:

1. Default-visibility trim of hyphen-less aliases and applications
2. Diagnostics for requested parameter names that nothing exposes
3. Final ordering
4. Output shaping (objects, syntax strings or summary descriptors)
"""

from typing import Any, List, Optional
import logging

from pydantic import BaseModel, Field

from commands.model import (
    CommandInfo, CommandOrigin, CommandType, ParameterSetInfo,
)
from commands.wildcard import contains_wildcard_characters
from core.errors import ErrorHandler, create_parameter_not_found_error

from .interfaces import VisibilityPolicy
from .query import CommandQuery, MatchState


# Summary descriptors

class ParameterTypeSummary(BaseModel):
    full_name: str
    is_enum: bool = False
    is_array: bool = False
    enum_values: List[str] = Field(default_factory=list)
    element_type: Optional["ParameterTypeSummary"] = None


class ParameterSummary(BaseModel):
    name: str
    is_mandatory: bool = False
    value_from_pipeline: bool = False
    position: Optional[int] = None
    parameter_type: ParameterTypeSummary
    has_parameter_set: bool = False
    valid_param_set_values: List[str] = Field(default_factory=list)


class ParameterSetSummary(BaseModel):
    name: str
    is_default: bool = False
    parameters: List[ParameterSummary] = Field(default_factory=list)


class ModuleSummary(BaseModel):
    name: str


class CommandSummary(BaseModel):
    """Flattened descriptor of one command."""
    name: str
    module_name: str = ""
    module: ModuleSummary
    command_type: str
    definition: str = ""
    parameter_sets: List[ParameterSetSummary] = Field(default_factory=list)

    @classmethod
    def from_command(cls, command: CommandInfo) -> "CommandSummary":
        outcome = command.try_parameter_sets()
        parameter_sets = outcome.value if outcome.available else []

        return cls(
            name=command.name,
            module_name=command.module_name,
            module=ModuleSummary(name=command.module_name),
            command_type=CommandType(command.command_type).label,
            definition=command.definition,
            parameter_sets=[_summarize_parameter_set(s) for s in parameter_sets],
        )


def _summarize_type(type_name: str, enum_values: List[str]) -> ParameterTypeSummary:
    is_array = type_name.endswith("[]")
    return ParameterTypeSummary(
        full_name=type_name,
        is_enum=bool(enum_values),
        is_array=is_array,
        enum_values=list(enum_values),
        element_type=_summarize_type(type_name[:-2], enum_values) if is_array else None,
    )


def _summarize_parameter_set(parameter_set: ParameterSetInfo) -> ParameterSetSummary:
    return ParameterSetSummary(
        name=parameter_set.name,
        is_default=parameter_set.is_default,
        parameters=[
            ParameterSummary(
                name=p.name,
                is_mandatory=p.is_mandatory,
                value_from_pipeline=p.value_from_pipeline,
                position=p.position,
                parameter_type=_summarize_type(p.type_name, p.enum_values),
                has_parameter_set=bool(p.valid_values),
                valid_param_set_values=list(p.valid_values),
            )
            for p in parameter_set.parameters
        ],
    )


# Finalizer

PITHY_TYPES = CommandType.ALIAS | CommandType.APPLICATION


class ResultFinalizer:
    """Turns a run's MatchState into the caller's output."""

    def __init__(
        self,
        query: CommandQuery,
        state: MatchState,
        errors: ErrorHandler,
        visibility: VisibilityPolicy,
        origin: CommandOrigin = CommandOrigin.RUNSPACE
    ):
        self.query = query
        self.state = state
        self.errors = errors
        self.visibility = visibility
        self.origin = origin
        self._logger = logging.getLogger("cmdscope.discovery.finalizer")

    def finalize(self) -> List[CommandInfo]:
        """Trimmed, diagnosed and ordered command list."""
        results = self.trim_default_visibility(self.state.results)
        self.diagnose_parameter_names()
        return self.order(results)

    def trim_default_visibility(self, results: List[CommandInfo]) -> List[CommandInfo]:
        """
        Drop hyphen-less aliases and applications from a plain listing.

        Applies only when there are no names, no all flag and no cap. A
        type the caller asked for by mask is kept.
        """
        query = self.query
        if query.name is not None or query.all or query.total_count != -1:
            return list(results)

        requested = CommandType(query.command_type) if query.is_command_type_specified else CommandType(0)

        kept = []
        for command in results:
            command_type = command.command_type
            if command_type & PITHY_TYPES and "-" not in command.name:
                if not (requested & command_type):
                    self._logger.debug(f"Trimmed {command.name} from default listing")
                    continue
            kept.append(command)
        return kept

    def diagnose_parameter_names(self) -> None:
        matched = self.state.matched_parameter_names
        if matched is None or not self.query.parameter_name:
            return

        for name in self.query.parameter_name:
            if contains_wildcard_characters(name):
                continue
            if name.casefold() not in matched:
                self.errors.handle(create_parameter_not_found_error(name))

    def order(self, results: List[CommandInfo]) -> List[CommandInfo]:
        """Sort by (type, name) unless the names were all literal."""
        if self.query.name is not None and not self.query.name_contains_wildcard:
            return list(results)
        return sorted(results, key=lambda c: (int(c.command_type), c.name.casefold()))

    def shape(self, results: List[CommandInfo]) -> List[Any]:
        """Objects, syntax strings or summary descriptors, visible ones only."""
        visible = [c for c in results if self.visibility.is_visible(self.origin, c)]

        if self.query.syntax:
            output = []
            for command in visible:
                outcome = command.try_syntax()
                if outcome.available and outcome.value:
                    output.append(outcome.value)
                elif outcome.error is not None:
                    self._logger.debug(f"No syntax for {command.name}: {outcome.error}")
            return output

        if self.query.show_command_info:
            return [CommandSummary.from_command(c) for c in visible]

        return visible
