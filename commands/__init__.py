# Commands module - Command model and wildcard matching
# The reference registry lives in commands.registry (it depends on
# discovery.interfaces, which depends on this package)

from .model import (
    CommandType, CommandOrigin, Visibility, CommandInfo, AliasInfo, FunctionInfo,
    FilterInfo, WorkflowInfo, ConfigurationInfo, CmdletInfo, ApplicationInfo,
    ExternalScriptInfo, ScriptInfo, ParameterMetadata, ParameterSetInfo,
    ModuleInfo, ModuleSessionState, ModuleSpecification, TypeName,
)
from .wildcard import WildcardPattern, contains_wildcard_characters

__all__ = [
    "CommandType", "CommandOrigin", "Visibility",
    "CommandInfo", "AliasInfo", "FunctionInfo", "FilterInfo", "WorkflowInfo",
    "ConfigurationInfo", "CmdletInfo", "ApplicationInfo", "ExternalScriptInfo",
    "ScriptInfo", "ParameterMetadata", "ParameterSetInfo",
    "ModuleInfo", "ModuleSessionState", "ModuleSpecification", "TypeName",
    "WildcardPattern", "contains_wildcard_characters",
]
