"""
Query and Pattern Tests
-----------------------
Tests for CommandQuery validation, derived views and PatternSet.

Tests cover:
- Input normalization and rejection of empty values
- Verb/noun form and effective command type
- Scope-widening criteria
- Lazy pattern compilation
- Parameter type filtering
"""

import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from pydantic import ValidationError

from commands.model import CMDLET_SET_TYPES, CommandType, ModuleSpecification, TypeName
from discovery.patterns import PatternSet
from discovery.query import CommandQuery, MatchState
from commands.model import FunctionInfo


class TestCommandQueryValidation:
    """Tests for CommandQuery input handling."""

    def test_single_string_becomes_list(self):
        query = CommandQuery(name="Get-Item", verb="Get", module="Storage")

        assert query.name == ["Get-Item"]
        assert query.verb == ["Get"]
        assert query.module == ["Storage"]

    def test_empty_name_rejected(self):
        with pytest.raises(ValidationError):
            CommandQuery(name=[])

    def test_empty_name_element_rejected(self):
        with pytest.raises(ValidationError):
            CommandQuery(name=["Get-Item", ""])

    def test_empty_parameter_type_rejected(self):
        with pytest.raises(ValidationError):
            CommandQuery(parameter_type=[""])

    def test_command_type_from_names(self):
        query = CommandQuery(command_type="Alias,Function")

        assert query.command_type == int(CommandType.ALIAS | CommandType.FUNCTION)

    def test_module_specs_from_strings_and_dicts(self):
        query = CommandQuery(fully_qualified_module=["Storage", {"name": "NetTools", "version": "1.0"}])

        assert query.fully_qualified_module == [
            ModuleSpecification(name="Storage"),
            ModuleSpecification(name="NetTools", version="1.0"),
        ]

    def test_parameter_types_from_strings(self):
        query = CommandQuery(parameter_type=["System.String"])

        assert query.parameter_type == [TypeName("System.String")]

    def test_null_total_count_is_unbounded(self):
        assert CommandQuery(total_count=None).total_count == -1

    def test_query_is_frozen(self):
        query = CommandQuery()

        with pytest.raises(ValidationError):
            query.all = True


class TestCommandQueryViews:
    """Tests for derived query properties."""

    def test_verb_noun_form(self):
        query = CommandQuery(verb=["Get"])

        assert query.uses_verb_noun_form
        assert query.effective_command_type == CMDLET_SET_TYPES
        assert query.effective_names == ["*"]

    def test_names_without_type_search_everything(self):
        query = CommandQuery(name=["Get-Item"])

        assert not query.uses_verb_noun_form
        assert query.effective_command_type == CommandType.ALL

    def test_name_wildcard_detection(self):
        assert CommandQuery(name=["Get-Item", "Set-*"]).name_contains_wildcard
        assert not CommandQuery(name=["Get-Item"]).name_contains_wildcard

    @pytest.mark.parametrize("criteria", [
        {"all": True},
        {"total_count": 5},
        {"command_type": "Cmdlet"},
        {"module": ["Storage"]},
        {"fully_qualified_module": ["Storage"]},
    ])
    def test_widening_criteria(self, criteria):
        assert CommandQuery(name=["Get-Item"], **criteria).widens_scope

    def test_plain_name_does_not_widen(self):
        assert not CommandQuery(name=["Get-Item"]).widens_scope


class TestMatchState:
    """Tests for the per-run accumulator."""

    def test_cap(self):
        state = MatchState(cap=1)
        assert not state.cap_reached()

        state.add(FunctionInfo(name="Get-Disk"))
        assert state.cap_reached()

    def test_unbounded(self):
        state = MatchState(cap=-1)
        for i in range(10):
            state.add(FunctionInfo(name=f"Get-Thing{i}"))

        assert not state.cap_reached()

    def test_zero_cap_is_reached_immediately(self):
        assert MatchState(cap=0).cap_reached()

    def test_index_includes_unprefixed_name(self):
        state = MatchState()
        state.add(FunctionInfo(name="Get-ContosoDisk", prefix="Contoso"))

        assert (int(CommandType.FUNCTION), "get-contosodisk") in state.result_index
        assert (int(CommandType.FUNCTION), "get-disk") in state.result_index


class TestPatternSet:
    """Tests for lazily compiled criteria."""

    def test_patterns_from_query(self):
        patterns = PatternSet(CommandQuery(verb=["Get"], noun=["Disk*"], module=["Stor*"]))

        assert patterns.verb_patterns[0].is_match("get")
        assert patterns.noun_patterns[0].is_match("DiskImage")
        assert patterns.has_module_criteria

    def test_compiled_once_until_reassigned(self):
        patterns = PatternSet()
        patterns.verbs = ["Get"]

        first = patterns.verb_patterns
        assert patterns.verb_patterns is first

        patterns.verbs = ["Set"]
        assert patterns.verb_patterns is not first
        assert patterns.verb_patterns[0].is_match("Set")

    def test_empty_criteria(self):
        patterns = PatternSet(CommandQuery())

        assert patterns.module_patterns == []
        assert not patterns.has_module_criteria
        assert not patterns.has_parameter_criteria

    def test_specialized_type_drops_general(self):
        kept = PatternSet.filter_parameter_types([
            TypeName("CimInstance"), TypeName("CimInstance#Win32_Process")
        ])

        assert kept == [TypeName("CimInstance#Win32_Process")]

    def test_universal_type_kept_only_first(self):
        assert PatternSet.filter_parameter_types([
            TypeName("System.String"), TypeName("System.Object")
        ]) == [TypeName("System.String")]
        assert PatternSet.filter_parameter_types([
            TypeName("System.Object"), TypeName("System.String")
        ]) == [TypeName("System.Object"), TypeName("System.String")]
