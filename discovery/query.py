"""
Query and Match State
---------------------
CommandQuery holds the criteria of one lookup. MatchState holds what a
single run has accumulated so far. Neither outlives the run.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from commands.model import (
    CMDLET_SET_TYPES, CommandInfo, CommandType, ModuleSpecification, TypeName,
    remove_prefix_from_command_name,
)
from commands.wildcard import contains_wildcard_characters


class CommandQuery(BaseModel):
    """
    Criteria for a command lookup.

    None means "not given" for the criteria where that differs from an
    empty list (names, modules, command type, parameter filters).
    """
    model_config = ConfigDict(frozen=True)

    name: Optional[List[str]] = Field(None, description="Command names or patterns")
    verb: List[str] = Field(default_factory=list)
    noun: List[str] = Field(default_factory=list)
    module: Optional[List[str]] = Field(None, description="Module name patterns")
    fully_qualified_module: Optional[List[ModuleSpecification]] = None
    command_type: Optional[int] = Field(None, description="CommandType bit mask")
    total_count: int = Field(-1, description="Negative for unbounded")
    syntax: bool = False
    show_command_info: bool = False
    all: bool = False
    list_imported: bool = False
    parameter_name: Optional[List[str]] = None
    parameter_type: Optional[List[TypeName]] = None
    argument_list: Optional[List[Any]] = None

    @field_validator("name", "parameter_name", mode="before")
    @classmethod
    def _not_null_or_empty(cls, value):
        if value is None:
            return None
        if isinstance(value, str):
            value = [value]
        if not value or any(not v for v in value):
            raise ValueError("value must not be null or empty")
        return list(value)

    @field_validator("verb", "noun", mode="before")
    @classmethod
    def _string_list(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return list(value)

    @field_validator("module", mode="before")
    @classmethod
    def _module_list(cls, value):
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("fully_qualified_module", mode="before")
    @classmethod
    def _module_specs(cls, value):
        if value is None:
            return None
        if isinstance(value, (str, dict, ModuleSpecification)):
            value = [value]
        specs = []
        for item in value:
            if isinstance(item, str):
                item = ModuleSpecification(name=item)
            elif isinstance(item, dict):
                item = ModuleSpecification(**item)
            specs.append(item)
        return specs

    @field_validator("command_type", mode="before")
    @classmethod
    def _command_type(cls, value):
        if value is None:
            return None
        return int(CommandType.parse(value))

    @field_validator("parameter_type", mode="before")
    @classmethod
    def _type_names(cls, value):
        if value is None:
            return None
        if isinstance(value, (str, TypeName)):
            value = [value]
        if not value:
            raise ValueError("value must not be null or empty")
        names = []
        for item in value:
            if isinstance(item, dict):
                item = item.get("name", "")
            if isinstance(item, str):
                if not item:
                    raise ValueError("value must not be null or empty")
                item = TypeName(item)
            names.append(item)
        return names

    @field_validator("total_count", mode="before")
    @classmethod
    def _total_count(cls, value):
        return -1 if value is None else value

    # Derived views

    @property
    def is_command_type_specified(self) -> bool:
        return self.command_type is not None

    @property
    def is_module_specified(self) -> bool:
        return self.module is not None

    @property
    def is_fully_qualified_module_specified(self) -> bool:
        return self.fully_qualified_module is not None

    @property
    def uses_verb_noun_form(self) -> bool:
        """No names and no type: resolve '*' over cmdlet-like types."""
        return self.name is None and self.command_type is None

    @property
    def effective_command_type(self) -> CommandType:
        if self.uses_verb_noun_form:
            return CMDLET_SET_TYPES
        if self.command_type is None:
            return CommandType.ALL
        return CommandType(self.command_type)

    @property
    def effective_names(self) -> List[str]:
        return list(self.name) if self.name else ["*"]

    @property
    def name_contains_wildcard(self) -> bool:
        return any(contains_wildcard_characters(n) for n in self.name or [])

    @property
    def has_cap(self) -> bool:
        return self.total_count >= 0

    @property
    def widens_scope(self) -> bool:
        """Criteria that keep a literal lookup going after the first match."""
        return (
            self.all
            or self.has_cap
            or self.is_command_type_specified
            or self.is_module_specified
            or self.is_fully_qualified_module_specified
        )


@dataclass
class MatchState:
    """
    Per-run accumulator.

    results keeps discovery order. written_keys backs the within-source
    identity check; result_index backs the cross-source check and maps
    (command type, casefolded name) to the accumulated commands.
    """
    cap: int = -1
    results: List[CommandInfo] = field(default_factory=list)
    written_keys: Dict[str, CommandInfo] = field(default_factory=dict)
    result_index: Dict[Tuple[int, str], List[CommandInfo]] = field(default_factory=dict)
    count: int = 0
    matched_parameter_names: Optional[Set[str]] = None

    def cap_reached(self) -> bool:
        return self.cap >= 0 and self.count >= self.cap

    def add(self, command: CommandInfo) -> None:
        self.results.append(command)
        self.count += 1

        keys = {command.name.casefold()}
        keys.add(remove_prefix_from_command_name(command.name, command.prefix).casefold())
        for key in keys:
            self.result_index.setdefault((int(command.command_type), key), []).append(command)

    def record_parameter_name(self, name: str) -> None:
        if self.matched_parameter_names is None:
            self.matched_parameter_names = set()
        self.matched_parameter_names.add(name.casefold())
