"""
Dynamic Parameter Resolver Tests
--------------------------------
Tests for the command view returned for each match.

Tests cover:
- Alias replacement with an argument list
- Argument lists against commands that cannot take them
- Dynamic parameter merging and its failure modes
"""

import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from commands.model import (
    AliasInfo, ApplicationInfo, CmdletInfo, FunctionInfo, ParameterMetadata,
)
from core.errors import (
    ErrorHandler, MetadataError, ParameterBindingError, QueryTerminatedError,
    ScriptSecurityError,
)
from discovery.dynamic_params import DynamicParameterResolver


def dynamic_cmdlet(provider=None, probe_error=None):
    return CmdletInfo(
        name="Get-Item",
        parameter_metadata=[ParameterMetadata(name="Path", type_name="System.String[]")],
        dynamic_parameter_provider=provider,
        dynamic_probe_error=probe_error,
    )


class TestArgumentList:
    """Tests for argument list handling."""

    def test_alias_replaced_by_target(self):
        target = CmdletInfo(name="Get-ChildItem", parameter_metadata=[])
        alias = AliasInfo(name="gci", target_name="Get-ChildItem", resolver=lambda name: target)

        resolver = DynamicParameterResolver([], ErrorHandler())

        assert resolver.resolve(alias) is target

    def test_unresolved_alias_does_not_match(self):
        alias = AliasInfo(name="nothing", target_name="Get-Nothing")

        assert DynamicParameterResolver([], ErrorHandler()).resolve(alias) is None

    def test_alias_kept_without_argument_list(self):
        alias = AliasInfo(name="gci", target_name="Get-ChildItem")

        assert DynamicParameterResolver(None, ErrorHandler()).resolve(alias) is alias

    def test_application_terminates_query(self):
        errors = ErrorHandler()
        resolver = DynamicParameterResolver(["x"], errors)

        with pytest.raises(QueryTerminatedError) as exc_info:
            resolver.resolve(ApplicationInfo(name="ping.exe", path="/usr/bin/ping.exe"))

        assert exc_info.value.error_id == "CommandArgsOnlyForSingleCmdlet"
        assert len(errors) == 1

    def test_function_accepts_arguments(self):
        function = FunctionInfo(name="Get-Greeting", parameter_metadata=[])

        assert DynamicParameterResolver(["x"], ErrorHandler()).resolve(function) is function


class TestDynamicParameters:
    """Tests for dynamic parameter merging."""

    def test_copy_with_dynamic_parameters(self):
        received = []

        def provider(arguments):
            received.append(arguments)
            return [ParameterMetadata(name="Stream", type_name="System.String[]")]

        command = dynamic_cmdlet(provider)
        result = DynamicParameterResolver(["C:\\file"], ErrorHandler()).resolve(command)

        assert result is not command
        assert "Stream" in result.parameters
        assert received == [["C:\\file"]]

    def test_no_dynamic_support_returns_original(self):
        command = dynamic_cmdlet()

        assert DynamicParameterResolver(None, ErrorHandler()).resolve(command) is command

    def test_security_error_skips_probe(self):
        command = dynamic_cmdlet(probe_error=ScriptSecurityError("blocked"))
        errors = ErrorHandler()

        assert DynamicParameterResolver(None, errors).resolve(command) is command
        assert len(errors) == 0

    def test_metadata_error_recorded_and_original_kept(self):
        def provider(arguments):
            raise MetadataError("duplicate parameter")

        command = dynamic_cmdlet(provider)
        errors = ErrorHandler()

        assert DynamicParameterResolver(None, errors).resolve(command) is command
        assert errors.errors[0].error_id == "GetCommandMetadataError"

    def test_dynamic_binding_error_falls_back_to_static(self):
        def provider(arguments):
            raise ParameterBindingError("cannot retrieve", "GetDynamicParametersException")

        command = dynamic_cmdlet(provider)
        errors = ErrorHandler()

        assert DynamicParameterResolver(["x"], errors).resolve(command) is command
        assert len(errors) == 0

    def test_other_binding_errors_propagate(self):
        def provider(arguments):
            raise ParameterBindingError("positional parameter not found")

        with pytest.raises(ParameterBindingError):
            DynamicParameterResolver(["x"], ErrorHandler()).resolve(dynamic_cmdlet(provider))
