"""
Command Model
-------------
The command records the discovery engine reasons about.

A command is one of a closed set of variants (alias, function, cmdlet,
application, ...). Every variant shares the identity fields (name, type,
module, import flag, prefix); payloads differ per variant.

Metadata (parameters, parameter sets, syntax, dynamic-parameter support)
is lazy and may fail. The try_* accessors return an Outcome instead of
raising, so callers can treat "unavailable" as "does not match".
"""

from dataclasses import dataclass, field, replace
from enum import Enum, IntFlag, auto
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, Tuple, TypeVar
import re

from core.errors import MetadataError


T = TypeVar("T")

ALL_PARAMETER_SETS = "__AllParameterSets"
SWITCH_TYPE_NAMES = {"switch", "switchparameter", "system.management.automation.switchparameter"}
UNIVERSAL_TYPE_NAMES = {"object", "system.object", "psobject", "system.management.automation.psobject"}


class CommandType(IntFlag):
    """Command kinds. Values are the sort order of results."""
    ALIAS = 1
    FUNCTION = 2
    FILTER = 4
    CMDLET = 8
    EXTERNAL_SCRIPT = 16
    APPLICATION = 32
    SCRIPT = 64
    WORKFLOW = 128
    CONFIGURATION = 256
    ALL = 511

    @classmethod
    def parse(cls, value: Any) -> "CommandType":
        """Parse an int, a name, a comma separated list of names or a list."""
        if isinstance(value, cls):
            return value
        if isinstance(value, int):
            return cls(value)
        if isinstance(value, str):
            value = [part for part in re.split(r"[,|\s]+", value) if part]
        result = cls(0)
        for part in value:
            if isinstance(part, int):
                result |= cls(part)
                continue
            key = str(part).replace("-", "_").upper()
            if key == "EXTERNALSCRIPT":
                key = "EXTERNAL_SCRIPT"
            try:
                result |= cls[key]
            except KeyError:
                raise ValueError(f"Unknown command type: {part}") from None
        return result

    @property
    def label(self) -> str:
        names = {
            CommandType.ALIAS: "Alias",
            CommandType.FUNCTION: "Function",
            CommandType.FILTER: "Filter",
            CommandType.CMDLET: "Cmdlet",
            CommandType.EXTERNAL_SCRIPT: "ExternalScript",
            CommandType.APPLICATION: "Application",
            CommandType.SCRIPT: "Script",
            CommandType.WORKFLOW: "Workflow",
            CommandType.CONFIGURATION: "Configuration",
        }
        return names.get(self, str(int(self)))


# Function-table types (looked up through function patterns)
FUNCTION_LIKE_TYPES = (
    CommandType.FUNCTION | CommandType.FILTER |
    CommandType.WORKFLOW | CommandType.CONFIGURATION
)

# Types whose verb/noun is checked when verb or noun criteria are given
NAMED_PAIR_TYPES = FUNCTION_LIKE_TYPES | CommandType.ALIAS

# Types an argument list can be bound to
SCRIPT_COMMAND_TYPES = FUNCTION_LIKE_TYPES | CommandType.EXTERNAL_SCRIPT | CommandType.SCRIPT

# Type mask of the verb/noun query form
CMDLET_SET_TYPES = CommandType.CMDLET | FUNCTION_LIKE_TYPES | CommandType.ALIAS


class Visibility(Enum):
    PUBLIC = auto()
    PRIVATE = auto()


class CommandOrigin(Enum):
    """Where a query comes from. Internal callers see private commands."""
    RUNSPACE = auto()
    INTERNAL = auto()


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result-or-unavailable wrapper for lazy metadata."""
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def available(self) -> bool:
        return self.error is None and self.value is not None


# Name helpers

def split_cmdlet_name(name: str) -> Optional[Tuple[str, str]]:
    """Split 'Verb-Noun' on the first hyphen. None if there is no hyphen."""
    index = name.find("-")
    if index < 0:
        return None
    return name[:index], name[index + 1:]


def parse_command_name(command_name: str) -> Tuple[Optional[str], str]:
    """
    Split 'Module\\Command' into (module, command).

    Names that look like paths (drive letters, relative or rooted paths)
    are returned unchanged with no module.
    """
    if (
        "\\" not in command_name
        or ":" in command_name
        or command_name.startswith((".", "\\", "/", "~"))
    ):
        return None, command_name

    index = command_name.rfind("\\")
    module_name = command_name[:index]
    plain = command_name[index + 1:]
    if not module_name or not plain:
        return None, command_name
    return module_name, plain


def remove_prefix_from_command_name(name: str, prefix: Optional[str]) -> str:
    """Strip an import prefix from the noun of 'Verb-PrefixNoun'."""
    if not prefix:
        return name
    parts = split_cmdlet_name(name)
    if parts is None:
        return name
    verb, noun = parts
    if noun.casefold().startswith(prefix.casefold()):
        return f"{verb}-{noun[len(prefix):]}"
    return name


def parse_version(value: Optional[str]) -> Tuple[int, ...]:
    if value is None:
        return ()
    parts = []
    for piece in str(value).split("."):
        digits = re.match(r"\d+", piece)
        parts.append(int(digits.group()) if digits else 0)
    while len(parts) < 4:
        parts.append(0)
    return tuple(parts)


# Parameters

@dataclass
class ParameterSetMembership:
    """How a parameter takes part in one parameter set."""
    mandatory: bool = False
    position: Optional[int] = None
    value_from_pipeline: bool = False


@dataclass(frozen=True)
class TypeName:
    """A requested parameter type ('System.String', 'CimInstance#Win32_Process')."""
    name: str

    @property
    def is_universal(self) -> bool:
        return self.name.casefold() in UNIVERSAL_TYPE_NAMES

    def __str__(self) -> str:
        return self.name


@dataclass
class ParameterMetadata:
    """Static or dynamic metadata of one command parameter."""
    name: str
    type_name: str = "System.Object"
    aliases: List[str] = field(default_factory=list)
    parameter_sets: Dict[str, ParameterSetMembership] = field(default_factory=dict)
    valid_values: List[str] = field(default_factory=list)
    ps_type_name: Optional[str] = None
    enum_values: List[str] = field(default_factory=list)
    is_dynamic: bool = False

    @property
    def is_array(self) -> bool:
        return self.type_name.endswith("[]")

    @property
    def element_type_name(self) -> Optional[str]:
        return self.type_name[:-2] if self.is_array else None

    @property
    def is_switch(self) -> bool:
        return self.type_name.casefold() in SWITCH_TYPE_NAMES

    @property
    def accepts_objects(self) -> bool:
        return self.type_name.casefold() in UNIVERSAL_TYPE_NAMES

    def is_matching_type(self, type_name: TypeName) -> bool:
        """
        Check whether this parameter satisfies a requested type.

        A universal request matches only parameters that take any object;
        such parameters match nothing else. Otherwise the request must
        equal the declared type, the array element type or the PS type
        name, or be a trailing part of one after a '.' or '#'.
        """
        if type_name.is_universal:
            return self.accepts_objects
        if self.accepts_objects:
            return False

        candidates = [self.type_name, self.element_type_name, self.ps_type_name]
        return any(c is not None and _is_type_name_match(c, type_name.name) for c in candidates)


def _is_type_name_match(declared: str, requested: str) -> bool:
    declared = declared.casefold()
    requested = requested.casefold()
    return (
        declared == requested
        or declared.endswith("." + requested)
        or declared.endswith("#" + requested)
    )


@dataclass
class CommandParameterInfo:
    """A parameter as it appears inside one parameter set."""
    name: str
    type_name: str
    is_mandatory: bool
    position: Optional[int]
    value_from_pipeline: bool
    aliases: List[str]
    valid_values: List[str]
    enum_values: List[str]
    is_switch: bool = False


@dataclass
class ParameterSetInfo:
    name: str
    is_default: bool
    parameters: List[CommandParameterInfo]


# Modules

@dataclass(eq=False)
class ModuleSessionState:
    """Function and alias tables owned by a loaded module."""
    functions: Dict[str, "CommandInfo"] = field(default_factory=dict)
    aliases: Dict[str, "AliasInfo"] = field(default_factory=dict)


@dataclass(eq=False)
class ModuleInfo:
    """A module. Identity is object identity; path identifies it on disk."""
    name: str
    path: str = ""
    version: str = "0.0"
    guid: Optional[str] = None
    session_state: Optional[ModuleSessionState] = None
    description: str = ""

    def __repr__(self) -> str:
        return f"ModuleInfo(name={self.name}, version={self.version})"


@dataclass(frozen=True)
class ModuleSpecification:
    """Fully qualified module constraint: name or path plus version/guid bounds."""
    name: str
    guid: Optional[str] = None
    version: Optional[str] = None
    required_version: Optional[str] = None
    maximum_version: Optional[str] = None

    def matches(self, module: Optional[ModuleInfo]) -> bool:
        if module is None:
            return False

        name = self.name.casefold()
        if name != module.name.casefold() and name != (module.path or "").casefold():
            return False

        if self.guid and (module.guid or "").casefold() != self.guid.casefold():
            return False

        module_version = parse_version(module.version)
        if self.required_version:
            return module_version == parse_version(self.required_version)
        if self.version and module_version < parse_version(self.version):
            return False
        if self.maximum_version and module_version > parse_version(self.maximum_version):
            return False
        return True


# Commands

DynamicParameterProvider = Callable[[Optional[Sequence[Any]]], List[ParameterMetadata]]


@dataclass(eq=False)
class CommandInfo:
    """
    Base command record.

    parameter_metadata is None when the metadata is not known (for
    example a command of a module that has not been imported).
    metadata_error, when set, is raised on every metadata access.
    """
    command_type = CommandType.ALL

    name: str
    module: Optional[ModuleInfo] = None
    source: str = ""
    is_imported: bool = False
    prefix: str = ""
    visibility: Visibility = Visibility.PUBLIC
    parameter_metadata: Optional[List[ParameterMetadata]] = None
    default_parameter_set: Optional[str] = None
    dynamic_parameter_provider: Optional[DynamicParameterProvider] = None
    metadata_error: Optional[Exception] = None
    dynamic_probe_error: Optional[Exception] = None
    description: str = ""

    @property
    def module_name(self) -> str:
        if self.module is not None:
            return self.module.name
        return self.source

    @property
    def definition(self) -> str:
        return ""

    @property
    def is_argument_bindable(self) -> bool:
        return bool(self.command_type & (CommandType.CMDLET | SCRIPT_COMMAND_TYPES))

    # Lazy metadata

    @property
    def parameters(self) -> Dict[str, ParameterMetadata]:
        if self.metadata_error is not None:
            raise self.metadata_error
        if self.parameter_metadata is None:
            raise MetadataError(f"Parameter metadata for '{self.name}' is not available.")
        return {p.name: p for p in self.parameter_metadata}

    @property
    def implements_dynamic_parameters(self) -> bool:
        if self.dynamic_probe_error is not None:
            raise self.dynamic_probe_error
        return self.dynamic_parameter_provider is not None

    @property
    def parameter_sets(self) -> List[ParameterSetInfo]:
        return _build_parameter_sets(list(self.parameters.values()), self.default_parameter_set)

    @property
    def syntax(self) -> str:
        return _build_syntax(self.name, self.parameter_sets)

    def try_parameters(self) -> Outcome[Dict[str, ParameterMetadata]]:
        try:
            return Outcome(value=self.parameters)
        except Exception as e:
            return Outcome(error=e)

    def try_parameter_sets(self) -> Outcome[List[ParameterSetInfo]]:
        try:
            return Outcome(value=self.parameter_sets)
        except Exception as e:
            return Outcome(error=e)

    def try_syntax(self) -> Outcome[str]:
        try:
            return Outcome(value=self.syntax)
        except Exception as e:
            return Outcome(error=e)

    def create_get_command_copy(self, arguments: Optional[Sequence[Any]] = None) -> "CommandInfo":
        """
        Copy this command with dynamic parameters merged into the static ones.

        The provider receives the caller's arguments. A dynamic parameter
        reusing a static name raises MetadataError.
        """
        static = list(self.parameters.values())
        dynamic = self.dynamic_parameter_provider(arguments) if self.dynamic_parameter_provider else []

        known = {p.name.casefold() for p in static}
        for parameter in dynamic:
            if parameter.name.casefold() in known:
                raise MetadataError(
                    f"A parameter with the name '{parameter.name}' was defined "
                    f"multiple times for the command '{self.name}'."
                )
            known.add(parameter.name.casefold())

        merged = static + [replace(p, is_dynamic=True) for p in dynamic]
        return replace(self, parameter_metadata=merged, dynamic_parameter_provider=None)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name}, module={self.module_name or '-'})"


@dataclass(eq=False)
class FunctionInfo(CommandInfo):
    command_type = CommandType.FUNCTION

    script_block: str = ""

    @property
    def definition(self) -> str:
        return self.script_block


@dataclass(eq=False)
class FilterInfo(FunctionInfo):
    command_type = CommandType.FILTER


@dataclass(eq=False)
class WorkflowInfo(FunctionInfo):
    command_type = CommandType.WORKFLOW


@dataclass(eq=False)
class ConfigurationInfo(FunctionInfo):
    command_type = CommandType.CONFIGURATION


@dataclass(eq=False)
class CmdletInfo(CommandInfo):
    command_type = CommandType.CMDLET

    verb: str = ""
    noun: str = ""
    implementing_type: str = ""

    def __post_init__(self):
        if not self.verb and not self.noun:
            parts = split_cmdlet_name(self.name)
            if parts is not None:
                self.verb, self.noun = parts

    @property
    def full_name(self) -> str:
        if self.module_name:
            return f"{self.module_name}\\{self.name}"
        return self.name

    @property
    def definition(self) -> str:
        return self.syntax if self.parameter_metadata is not None else self.name


@dataclass(eq=False)
class AliasInfo(CommandInfo):
    """
    Alias to another command. The target is looked up through resolver
    on each access, since the registry may change between queries.
    """
    command_type = CommandType.ALIAS

    target_name: str = ""
    target: Optional[CommandInfo] = None
    resolver: Optional[Callable[[str], Optional[CommandInfo]]] = None

    @property
    def definition(self) -> str:
        return self.target_name

    @property
    def resolved_command(self) -> Optional[CommandInfo]:
        if self.target is not None:
            return self.target
        if self.resolver is not None:
            return self.resolver(self.target_name)
        return None

    @property
    def parameters(self) -> Dict[str, ParameterMetadata]:
        if self.metadata_error is not None:
            raise self.metadata_error
        resolved = self.resolved_command
        if resolved is None:
            raise MetadataError(
                f"The alias '{self.name}' refers to '{self.target_name}', which does not exist."
            )
        return resolved.parameters

    @property
    def parameter_sets(self) -> List[ParameterSetInfo]:
        resolved = self.resolved_command
        if resolved is None:
            raise MetadataError(f"The alias '{self.name}' cannot be resolved.")
        return resolved.parameter_sets

    @property
    def implements_dynamic_parameters(self) -> bool:
        return False

    @property
    def syntax(self) -> str:
        return f"{self.name} -> {self.target_name}"


@dataclass(eq=False)
class ApplicationInfo(CommandInfo):
    command_type = CommandType.APPLICATION

    path: str = ""

    def __post_init__(self):
        if self.parameter_metadata is None:
            self.parameter_metadata = []

    @property
    def definition(self) -> str:
        return self.path

    @property
    def syntax(self) -> str:
        return self.path


@dataclass(eq=False)
class ExternalScriptInfo(CommandInfo):
    command_type = CommandType.EXTERNAL_SCRIPT

    path: str = ""
    script_contents: str = ""

    @property
    def definition(self) -> str:
        return self.path


@dataclass(eq=False)
class ScriptInfo(CommandInfo):
    command_type = CommandType.SCRIPT

    script_block: str = ""

    @property
    def definition(self) -> str:
        return self.script_block


COMMAND_CLASSES: Dict[CommandType, type] = {
    CommandType.ALIAS: AliasInfo,
    CommandType.FUNCTION: FunctionInfo,
    CommandType.FILTER: FilterInfo,
    CommandType.CMDLET: CmdletInfo,
    CommandType.EXTERNAL_SCRIPT: ExternalScriptInfo,
    CommandType.APPLICATION: ApplicationInfo,
    CommandType.SCRIPT: ScriptInfo,
    CommandType.WORKFLOW: WorkflowInfo,
    CommandType.CONFIGURATION: ConfigurationInfo,
}


# Parameter set and syntax builders

def _build_parameter_sets(
    parameters: List[ParameterMetadata],
    default_set: Optional[str]
) -> List[ParameterSetInfo]:
    named_sets: List[str] = []
    for parameter in parameters:
        for set_name in parameter.parameter_sets:
            if set_name != ALL_PARAMETER_SETS and set_name not in named_sets:
                named_sets.append(set_name)

    if not named_sets:
        named_sets = [ALL_PARAMETER_SETS]

    sets = []
    for set_name in named_sets:
        members = []
        for parameter in parameters:
            membership = (
                parameter.parameter_sets.get(set_name)
                or parameter.parameter_sets.get(ALL_PARAMETER_SETS)
            )
            if membership is None:
                if parameter.parameter_sets:
                    continue
                membership = ParameterSetMembership()
            members.append(CommandParameterInfo(
                name=parameter.name,
                type_name=parameter.type_name,
                is_mandatory=membership.mandatory,
                position=membership.position,
                value_from_pipeline=membership.value_from_pipeline,
                aliases=list(parameter.aliases),
                valid_values=list(parameter.valid_values),
                enum_values=list(parameter.enum_values),
                is_switch=parameter.is_switch,
            ))
        is_default = (
            set_name == default_set
            or (len(named_sets) == 1)
        )
        sets.append(ParameterSetInfo(name=set_name, is_default=is_default, parameters=members))
    return sets


def _short_type(type_name: str) -> str:
    return type_name.rsplit(".", 1)[-1].lower()


def _build_syntax(name: str, parameter_sets: List[ParameterSetInfo]) -> str:
    lines = []
    for parameter_set in parameter_sets:
        parts = [name]
        positional = sorted(
            (p for p in parameter_set.parameters if p.position is not None),
            key=lambda p: p.position
        )
        named = [p for p in parameter_set.parameters if p.position is None]
        for p in positional + named:
            if p.is_switch:
                token = f"-{p.name}"
            elif p.position is not None:
                token = f"[-{p.name}] <{_short_type(p.type_name)}>"
            else:
                token = f"-{p.name} <{_short_type(p.type_name)}>"
            parts.append(token if p.is_mandatory else f"[{token}]")
        lines.append(" ".join(parts))
    return "\n".join(lines)
