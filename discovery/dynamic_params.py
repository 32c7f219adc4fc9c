"""
Dynamic Parameter Resolver
--------------------------
Produces the view of a matched command that the caller gets back.

- With an argument list, aliases are replaced by their target and
  anything that cannot take arguments aborts the query.
- Commands that add parameters at bind time are copied with static and
  dynamic metadata merged. The original record is never modified.
"""

from typing import Any, List, Optional
import logging

from commands.model import AliasInfo, CommandInfo
from core.errors import (
    DiscoveryError, ErrorCategory, ErrorHandler, MetadataError,
    ParameterBindingError, ScriptRuntimeError, ScriptSecurityError,
    create_single_target_error,
)


DYNAMIC_PARAMETERS_ERROR_PREFIX = "GetDynamicParametersException"


class DynamicParameterResolver:

    def __init__(self, argument_list: Optional[List[Any]], errors: ErrorHandler):
        self.argument_list = argument_list
        self.errors = errors
        self._logger = logging.getLogger("cmdscope.discovery.dynamic_params")

    def resolve(self, command: CommandInfo) -> Optional[CommandInfo]:
        """
        Return the command to accumulate, or None if the match fails.

        Raises QueryTerminatedError when an argument list is paired with a
        command that cannot bind it.
        """
        if self.argument_list is not None:
            if isinstance(command, AliasInfo):
                resolved = command.resolved_command
                if resolved is None:
                    self._logger.debug(f"Alias {command.name} does not resolve")
                    return None
                command = resolved
            elif not command.is_argument_bindable:
                self.errors.terminate(create_single_target_error(command))

        if not self._implements_dynamic_parameters(command):
            return command

        try:
            copy = command.create_get_command_copy(self.argument_list)
            if self.argument_list is not None:
                # Building the sets surfaces binding errors now, not on first use
                copy.parameter_sets
            return copy
        except MetadataError as e:
            self.errors.handle(DiscoveryError.from_exception(
                e, ErrorCategory.METADATA_ERROR, "GetCommandMetadataError", target=command
            ))
        except ParameterBindingError as e:
            if not e.error_id.startswith(DYNAMIC_PARAMETERS_ERROR_PREFIX):
                raise
            self._logger.debug(
                f"Dynamic parameters of {command.name} unavailable, using static metadata: {e}"
            )
        return command

    def _implements_dynamic_parameters(self, command: CommandInfo) -> bool:
        try:
            return command.implements_dynamic_parameters
        except (ScriptSecurityError, ScriptRuntimeError) as e:
            # Raised again if the command is actually run
            self._logger.debug(f"Skipping dynamic parameter probe for {command.name}: {e}")
            return False
