"""
Command Registry
----------------
In-memory command registry that the discovery engine queries.

Implements every collaborator the engine needs: the ordered searcher,
the loaded-module table, the available-module catalog, the module
auto-loader and the visibility policy. Definitions load from YAML.

The registry holds:
- A scope stack of function and alias tables (global first)
- A cmdlet table
- External scripts, applications and script blocks (file-backed)
- Loaded modules in registration order, each with its own tables
- Available module manifests, imported or not
"""

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Set
import logging
import yaml

from core.errors import (
    CommandNotFoundError, FileLoadError, MetadataError, ParameterBindingError,
    PathTooLongError, ScriptRuntimeError, ScriptSecurityError, UnreadableFormatError,
)
from discovery.interfaces import (
    CommandMaterializer, CommandSearcher, DiscoveryContext, ModuleCatalog,
    ModuleTable, PublicOnlyVisibility, SearchOptions,
)

from .model import (
    ALL_PARAMETER_SETS, AliasInfo, ApplicationInfo, CmdletInfo, COMMAND_CLASSES,
    CommandInfo, CommandOrigin, CommandType, ExternalScriptInfo, FUNCTION_LIKE_TYPES,
    ModuleInfo, ModuleSessionState, ParameterMetadata, ParameterSetMembership,
    ScriptInfo, Visibility, parse_command_name, parse_version, split_cmdlet_name,
)
from .wildcard import WildcardPattern, contains_wildcard_characters


# Searcher errors a file-backed entry can be configured to raise when reached
LOAD_ERRORS: Dict[str, type] = {
    "file_load": FileLoadError,
    "metadata": MetadataError,
    "bad_format": UnreadableFormatError,
    "path_too_long": PathTooLongError,
}


@dataclass
class Scope:
    """Function and alias tables of one scope. Keys are casefolded names."""
    name: str
    functions: Dict[str, CommandInfo] = field(default_factory=dict)
    aliases: Dict[str, AliasInfo] = field(default_factory=dict)


@dataclass
class FileEntry:
    """A file-backed command and the error reaching it raises, if any."""
    command: CommandInfo
    load_error: Optional[Exception] = None


@dataclass
class ModuleManifest:
    """
    A module available on disk.

    commands are templates; importing the module binds copies of them to
    a fresh ModuleInfo. Commands listed in private_names are not
    exported.
    """
    name: str
    path: str = ""
    version: str = "0.0"
    guid: Optional[str] = None
    description: str = ""
    prefix: str = ""
    commands: List[CommandInfo] = field(default_factory=list)
    private_names: Set[str] = field(default_factory=set)

    def is_exported(self, command: CommandInfo) -> bool:
        return command.name.casefold() not in self.private_names

    def exported_commands(self) -> List[CommandInfo]:
        return [c for c in self.commands if self.is_exported(c)]

    def new_module_info(self, session_state: Optional[ModuleSessionState] = None) -> ModuleInfo:
        return ModuleInfo(
            name=self.name,
            path=self.path,
            version=self.version,
            guid=self.guid,
            session_state=session_state,
            description=self.description,
        )

    def __repr__(self) -> str:
        return f"ModuleManifest(name={self.name}, version={self.version})"


def add_prefix(command: CommandInfo, prefix: str) -> CommandInfo:
    """Copy of command named 'Verb-PrefixNoun'. Hyphen-less names are kept."""
    if not prefix:
        return command
    parts = split_cmdlet_name(command.name)
    if parts is None:
        return replace(command, prefix=prefix)

    verb, noun = parts
    name = f"{verb}-{prefix}{noun}"
    if isinstance(command, CmdletInfo):
        return replace(command, name=name, verb=verb, noun=f"{prefix}{noun}", prefix=prefix)
    return replace(command, name=name, prefix=prefix)


class CommandRegistry(
    CommandSearcher, ModuleTable, ModuleCatalog, CommandMaterializer, PublicOnlyVisibility
):
    """
    Registry of commands, scopes and modules.

    Responsibilities:
    - Load definitions from YAML
    - Yield commands in precedence order for a name or pattern
    - Import available modules on demand

    Forbidden:
    - Any command execution
    """

    def __init__(self, registry_path: Optional[str] = None):
        self._scopes: List[Scope] = [Scope("global")]
        self._cmdlets: List[CmdletInfo] = []
        self._external_scripts: List[FileEntry] = []
        self._applications: List[FileEntry] = []
        self._scripts: List[ScriptInfo] = []
        self._loaded: List[ModuleInfo] = []
        self._available: List[ModuleManifest] = []
        self._logger = logging.getLogger("cmdscope.registry")

        if registry_path:
            self.load(registry_path)

    @classmethod
    def from_yaml(cls, registry_path: str) -> "CommandRegistry":
        return cls(registry_path)

    # Loading

    def load(self, registry_path: str) -> None:
        """Load definitions from a YAML file."""
        path = Path(registry_path)

        if not path.exists():
            raise FileNotFoundError(f"Command registry not found: {registry_path}")

        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        self.load_data(data)
        self._logger.info(f"Registry loaded from {path}: {len(self)} commands")

    def load_data(self, data: Dict[str, Any]) -> None:
        """Load definitions from an already parsed mapping."""
        for module_data in data.get("modules", []):
            manifest = self._build_manifest(module_data)
            self.add_available_module(manifest)
            if module_data.get("import", False):
                self.import_module(manifest.name, version=manifest.version)

        for function_data in data.get("functions", []):
            self.add_function(self._build_command(function_data, "Function"))

        for cmdlet_data in data.get("cmdlets", []):
            self.add_cmdlet(self._build_command(cmdlet_data, "Cmdlet"))

        for alias_data in data.get("aliases", []):
            self.add_alias(self._build_command(alias_data, "Alias"))

        for script_data in data.get("external_scripts", []):
            self.add_external_script(
                self._build_command(script_data, "ExternalScript"),
                load_error=self._build_load_error(script_data),
            )

        for application_data in data.get("applications", []):
            self.add_application(
                self._build_command(application_data, "Application"),
                load_error=self._build_load_error(application_data),
            )

        for script_data in data.get("scripts", []):
            self._scripts.append(self._build_command(script_data, "Script"))

        for scope_data in data.get("scopes", []):
            scope = self.push_scope(scope_data["name"])
            for function_data in scope_data.get("functions", []):
                self.add_function(self._build_command(function_data, "Function"), scope)
            for alias_data in scope_data.get("aliases", []):
                self.add_alias(self._build_command(alias_data, "Alias"), scope)

    def _build_manifest(self, data: Dict[str, Any]) -> ModuleManifest:
        manifest = ModuleManifest(
            name=data["name"],
            path=data.get("path", ""),
            version=str(data.get("version", "0.0")),
            guid=data.get("guid"),
            description=data.get("description", ""),
            prefix=data.get("prefix", ""),
        )

        for kind, key in (("Function", "functions"), ("Cmdlet", "cmdlets"), ("Alias", "aliases")):
            for command_data in data.get(key, []):
                command = self._build_command(command_data, kind)
                manifest.commands.append(command)
                if not command_data.get("export", True):
                    manifest.private_names.add(command.name.casefold())

        return manifest

    def _build_command(self, data: Dict[str, Any], default_type: str) -> CommandInfo:
        command_type = CommandType.parse(data.get("type", default_type))
        command_class = COMMAND_CLASSES[command_type]

        kwargs: Dict[str, Any] = {
            "name": data["name"],
            "source": data.get("source", ""),
            "visibility": Visibility[data.get("visibility", "public").upper()],
            "description": data.get("description", ""),
            "default_parameter_set": data.get("default_parameter_set"),
        }

        if "parameters" in data or command_type != CommandType.ALIAS:
            kwargs["parameter_metadata"] = [
                self._build_parameter(p) for p in data.get("parameters", [])
            ]

        if "metadata_error" in data:
            kwargs["metadata_error"] = MetadataError(data["metadata_error"])

        if "dynamic_parameters" in data or "dynamic_error" in data:
            dynamic = [self._build_parameter(p) for p in data.get("dynamic_parameters", [])]
            provider, probe_error = self._build_dynamic(dynamic, data.get("dynamic_error"))
            kwargs["dynamic_parameter_provider"] = provider
            kwargs["dynamic_probe_error"] = probe_error

        definition = data.get("definition", "")
        if command_type & (FUNCTION_LIKE_TYPES | CommandType.SCRIPT):
            kwargs["script_block"] = definition
        elif command_type == CommandType.ALIAS:
            kwargs["target_name"] = data.get("target", definition)
            kwargs["resolver"] = self.resolve_literal
        elif command_type == CommandType.CMDLET:
            kwargs["implementing_type"] = data.get("implementing_type", "")
        elif command_type == CommandType.EXTERNAL_SCRIPT:
            kwargs["path"] = data.get("path", data["name"])
            kwargs["script_contents"] = definition
        elif command_type == CommandType.APPLICATION:
            kwargs["path"] = data.get("path", data["name"])

        return command_class(**kwargs)

    @staticmethod
    def _build_parameter(data: Dict[str, Any]) -> ParameterMetadata:
        membership = ParameterSetMembership(
            mandatory=data.get("mandatory", False),
            position=data.get("position"),
            value_from_pipeline=data.get("value_from_pipeline", False),
        )
        set_names = data.get("parameter_sets") or [ALL_PARAMETER_SETS]

        return ParameterMetadata(
            name=data["name"],
            type_name=data.get("type", "System.Object"),
            aliases=list(data.get("aliases", [])),
            parameter_sets={set_name: membership for set_name in set_names},
            valid_values=list(data.get("valid_values", [])),
            ps_type_name=data.get("ps_type_name"),
            enum_values=list(data.get("enum_values", [])),
        )

    @staticmethod
    def _build_dynamic(dynamic: List[ParameterMetadata], error_kind: Optional[str]):
        """Provider and probe error for the dynamic_parameters / dynamic_error keys."""
        if error_kind == "security":
            return None, ScriptSecurityError("Running scripts is disabled on this system.")
        if error_kind == "runtime":
            return None, ScriptRuntimeError("The script could not be parsed.")

        def provider(arguments: Optional[Sequence[Any]]) -> List[ParameterMetadata]:
            if error_kind == "dynamic_binding":
                raise ParameterBindingError(
                    "Cannot retrieve the dynamic parameters for the cmdlet.",
                    "GetDynamicParametersException",
                )
            if error_kind == "binding":
                raise ParameterBindingError("A positional parameter cannot be found.")
            return [replace(p) for p in dynamic]

        return provider, None

    @staticmethod
    def _build_load_error(data: Dict[str, Any]) -> Optional[Exception]:
        kind = data.get("load_error")
        if kind is None:
            return None
        if kind not in LOAD_ERRORS:
            raise ValueError(f"Unknown load_error kind: {kind}")
        return LOAD_ERRORS[kind](f"Cannot load '{data['name']}'.")

    # Programmatic registration

    @property
    def current_scope(self) -> Scope:
        return self._scopes[-1]

    @property
    def scopes(self) -> List[Scope]:
        return list(self._scopes)

    def push_scope(self, name: str) -> Scope:
        scope = Scope(name)
        self._scopes.append(scope)
        return scope

    def pop_scope(self) -> Scope:
        if len(self._scopes) == 1:
            raise ValueError("Cannot remove the global scope")
        return self._scopes.pop()

    def add_function(self, command: CommandInfo, scope: Optional[Scope] = None) -> CommandInfo:
        (scope or self.current_scope).functions[command.name.casefold()] = command
        return command

    def add_alias(self, alias: AliasInfo, scope: Optional[Scope] = None) -> AliasInfo:
        if alias.resolver is None and alias.target is None:
            alias.resolver = self.resolve_literal
        (scope or self.current_scope).aliases[alias.name.casefold()] = alias
        return alias

    def add_cmdlet(self, cmdlet: CmdletInfo) -> CmdletInfo:
        self._cmdlets.append(cmdlet)
        return cmdlet

    def add_external_script(self, script: ExternalScriptInfo, load_error: Optional[Exception] = None) -> None:
        self._external_scripts.append(FileEntry(script, load_error))

    def add_application(self, application: ApplicationInfo, load_error: Optional[Exception] = None) -> None:
        self._applications.append(FileEntry(application, load_error))

    def add_script(self, script: ScriptInfo) -> None:
        self._scripts.append(script)

    def add_available_module(self, manifest: ModuleManifest) -> ModuleManifest:
        self._available.append(manifest)
        return manifest

    # Modules

    def find_manifest(self, name: str, version: Optional[str] = None) -> Optional[ModuleManifest]:
        """Highest version of a module, or the given version."""
        candidates = [
            m for m in self._available
            if m.name.casefold() == name.casefold() or (m.path and m.path.casefold() == name.casefold())
        ]
        if version is not None:
            candidates = [m for m in candidates if parse_version(m.version) == parse_version(version)]
        if not candidates:
            return None
        return max(candidates, key=lambda m: parse_version(m.version))

    def get_loaded_module(self, name: str) -> Optional[ModuleInfo]:
        for module in self._loaded:
            if module.name.casefold() == name.casefold():
                return module
        return None

    def import_module(
        self,
        name: str,
        prefix: Optional[str] = None,
        version: Optional[str] = None
    ) -> ModuleInfo:
        """
        Import an available module into the global scope.

        The module's own tables keep every command under its original
        name. Exported commands are marked imported and registered
        globally, renamed when a prefix applies.

        Raises:
            CommandNotFoundError: If no such module is available
        """
        loaded = self.get_loaded_module(name)
        if loaded is not None:
            return loaded

        manifest = self.find_manifest(name, version)
        if manifest is None:
            raise CommandNotFoundError(name, f"The module '{name}' could not be loaded.")

        prefix = manifest.prefix if prefix is None else prefix
        module = manifest.new_module_info(ModuleSessionState())
        global_scope = self._scopes[0]

        for template in manifest.commands:
            exported = manifest.is_exported(template)
            command = replace(template, module=module, is_imported=exported)
            key = command.name.casefold()

            if isinstance(command, AliasInfo):
                module.session_state.aliases[key] = command
            elif isinstance(command, CmdletInfo):
                pass
            else:
                module.session_state.functions[key] = command

            if not exported:
                continue

            public = add_prefix(command, prefix)
            if isinstance(public, AliasInfo):
                global_scope.aliases[public.name.casefold()] = public
            elif isinstance(public, CmdletInfo):
                self._cmdlets.append(public)
            else:
                global_scope.functions[public.name.casefold()] = public

        self._loaded.append(module)
        self._logger.info(
            f"Imported module {module.name} {module.version}"
            + (f" with prefix '{prefix}'" if prefix else "")
        )
        return module

    @property
    def modules(self) -> List[ModuleInfo]:
        return list(self._loaded)

    @property
    def available_modules(self) -> List[ModuleManifest]:
        return list(self._available)

    # ModuleTable

    def loaded_modules(self) -> Sequence[ModuleInfo]:
        return list(self._loaded)

    # CommandSearcher

    def search(
        self,
        command_name: str,
        options: SearchOptions,
        command_type: CommandType,
        origin: CommandOrigin
    ) -> Iterator[CommandInfo]:
        """
        Yield commands for a name or pattern in precedence order.

        Alias, then function-like, then cmdlet, then external script,
        then application, then script block. Scoped tables are walked
        nearest scope first; unless all scopes are requested only the
        nearest definition of each name is yielded.
        """
        qualifier, plain_name = parse_command_name(command_name)
        is_pattern = bool(options & SearchOptions.COMMAND_NAME_IS_PATTERN) or \
            contains_wildcard_characters(plain_name)
        matcher = WildcardPattern.get(plain_name)

        def name_matches(name: str) -> bool:
            return matcher.is_match(name) if is_pattern else name.casefold() == plain_name.casefold()

        def module_matches(command: CommandInfo) -> bool:
            return qualifier is None or command.module_name.casefold() == qualifier.casefold()

        all_scopes = bool(options & SearchOptions.SEARCH_ALL_SCOPES)

        if command_type & CommandType.ALIAS:
            if not is_pattern or options & SearchOptions.RESOLVE_ALIAS_PATTERNS:
                yield from self._search_scopes(
                    lambda scope: scope.aliases, name_matches, module_matches, all_scopes
                )

        if command_type & FUNCTION_LIKE_TYPES:
            if not is_pattern or options & SearchOptions.RESOLVE_FUNCTION_PATTERNS:
                for function in self._search_scopes(
                    lambda scope: scope.functions, name_matches, module_matches, all_scopes
                ):
                    if function.command_type & command_type:
                        yield function

        if command_type & CommandType.CMDLET:
            for cmdlet in list(self._cmdlets):
                if name_matches(cmdlet.name) and module_matches(cmdlet):
                    yield cmdlet

        if qualifier is not None:
            return

        if command_type & CommandType.EXTERNAL_SCRIPT:
            yield from self._search_files(self._external_scripts, name_matches)

        if command_type & CommandType.APPLICATION:
            yield from self._search_files(self._applications, name_matches)

        if command_type & CommandType.SCRIPT:
            for script in list(self._scripts):
                if name_matches(script.name):
                    yield script

    def _search_scopes(
        self,
        table: Callable[[Scope], Dict[str, CommandInfo]],
        name_matches: Callable[[str], bool],
        module_matches: Callable[[CommandInfo], bool],
        all_scopes: bool
    ) -> Iterator[CommandInfo]:
        seen: Set[str] = set()
        for scope in reversed(self._scopes):
            for key, command in list(table(scope).items()):
                if not name_matches(command.name):
                    continue
                if key in seen and not all_scopes:
                    continue
                seen.add(key)
                if module_matches(command):
                    yield command

    @staticmethod
    def _search_files(
        entries: List[FileEntry],
        name_matches: Callable[[str], bool]
    ) -> Iterator[CommandInfo]:
        for entry in list(entries):
            command = entry.command
            stem = Path(command.name).stem
            if not (name_matches(command.name) or name_matches(stem)):
                continue
            if entry.load_error is not None:
                raise entry.load_error
            yield command

    def resolve_literal(self, name: str) -> Optional[CommandInfo]:
        """First command visible under an exact name, following aliases."""
        _, plain_name = parse_command_name(name)
        for _ in range(16):
            try:
                command = next(iter(self.search(name, SearchOptions.NONE, CommandType.ALL, CommandOrigin.INTERNAL)), None)
            except (FileLoadError, MetadataError, UnreadableFormatError, PathTooLongError) as e:
                self._logger.debug(f"Cannot resolve {name}: {e}")
                return None
            if not isinstance(command, AliasInfo):
                return command
            name = command.target_name
        self._logger.warning(f"Alias chain for {plain_name} is too deep")
        return None

    # CommandMaterializer

    def lookup_command(self, command_name: str, origin: CommandOrigin) -> CommandInfo:
        """
        Find a command, importing the available module that provides it.

        A module-qualified name imports that module first. Wildcards are
        not resolved.

        Raises:
            CommandNotFoundError: If nothing provides the name
        """
        qualifier, plain_name = parse_command_name(command_name)

        if qualifier is not None and self.find_manifest(qualifier) is not None:
            self.import_module(qualifier)

        if contains_wildcard_characters(plain_name):
            raise CommandNotFoundError(command_name)

        existing = self.resolve_literal(command_name)
        if existing is not None:
            return existing

        for manifest in self._available:
            if qualifier is not None and manifest.name.casefold() != qualifier.casefold():
                continue
            if self.get_loaded_module(manifest.name) is not None:
                continue
            exported = [c.name.casefold() for c in manifest.exported_commands()]
            if plain_name.casefold() in exported:
                self.import_module(manifest.name)
                command = self.resolve_literal(command_name)
                if command is not None:
                    return command

        raise CommandNotFoundError(command_name)

    # ModuleCatalog

    def get_matching_commands(
        self,
        pattern: str,
        origin: CommandOrigin,
        rediscover_imported_modules: bool = True,
        module_version_required: bool = False
    ) -> Iterable[CommandInfo]:
        """
        Exported commands of available modules, as unimported copies.

        Copies carry a fresh ModuleInfo with the manifest's path and no
        parameter metadata. Only the highest version of each module is
        listed unless module_version_required is set.
        """
        matcher = WildcardPattern.get(pattern)

        manifests = self._available
        if not module_version_required:
            manifests = [m for m in manifests if self.find_manifest(m.name) is m]

        for manifest in list(manifests):
            if not rediscover_imported_modules and self.get_loaded_module(manifest.name) is not None:
                continue

            module = manifest.new_module_info()
            for template in manifest.exported_commands():
                if not matcher.is_match(template.name):
                    continue
                if not self.is_visible(origin, template):
                    continue
                yield replace(
                    template,
                    module=module,
                    is_imported=False,
                    prefix="",
                    parameter_metadata=None,
                    dynamic_parameter_provider=None,
                    dynamic_probe_error=None,
                )

    # Discovery context

    def as_context(self, origin: CommandOrigin = CommandOrigin.RUNSPACE) -> DiscoveryContext:
        return DiscoveryContext(
            searcher=self,
            module_table=self,
            catalog=self,
            materializer=self,
            visibility=self,
            origin=origin,
        )

    def __len__(self) -> int:
        scoped = sum(len(s.functions) + len(s.aliases) for s in self._scopes)
        return (
            scoped + len(self._cmdlets) + len(self._external_scripts)
            + len(self._applications) + len(self._scripts)
        )

    def __repr__(self) -> str:
        return f"CommandRegistry(commands={len(self)}, modules={len(self._loaded)})"
