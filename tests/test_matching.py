"""
Match Evaluator Tests
---------------------
Tests for criteria and parameter matching.

Tests cover:
- Type mask
- Verb/noun checks for cmdlets and named pairs
- Module patterns and fully qualified modules
- Parameter name, alias and type matching
"""

from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from commands.model import (
    AliasInfo, ApplicationInfo, CmdletInfo, FunctionInfo, ModuleInfo, ParameterMetadata,
)
from discovery.matching import MatchEvaluator
from discovery.patterns import PatternSet
from discovery.query import CommandQuery, MatchState


STORAGE = ModuleInfo(name="Storage", path="/modules/Storage.psd1", version="2.0")


def evaluator_for(**criteria):
    query = CommandQuery(**criteria)
    state = MatchState(cap=query.total_count)
    return MatchEvaluator(query, PatternSet(query), state), state


def get_disk():
    return FunctionInfo(
        name="Get-Disk",
        module=STORAGE,
        parameter_metadata=[
            ParameterMetadata(name="Number", type_name="System.UInt32", aliases=["DiskNumber"]),
            ParameterMetadata(name="FriendlyName", type_name="System.String"),
        ],
    )


class TestCriteriaMatch:
    """Tests for is_criteria_match."""

    def test_type_mask(self):
        evaluator, _ = evaluator_for(name=["*"], command_type="Cmdlet")

        assert not evaluator.is_criteria_match(get_disk())
        assert evaluator.is_criteria_match(CmdletInfo(name="Get-Item"))

    def test_cmdlet_always_checked_against_verb_noun(self):
        evaluator, _ = evaluator_for(verb=["Set"])

        assert not evaluator.is_criteria_match(CmdletInfo(name="Get-Item"))
        assert evaluator.is_criteria_match(CmdletInfo(name="Set-Item"))

    def test_function_checked_only_with_verb_noun_criteria(self):
        evaluator, _ = evaluator_for(name=["*"])
        assert evaluator.is_criteria_match(FunctionInfo(name="prompt"))

        evaluator, _ = evaluator_for(noun=["Disk"])
        assert evaluator.is_criteria_match(get_disk())
        assert not evaluator.is_criteria_match(FunctionInfo(name="prompt"))

    def test_alias_without_hyphen_fails_verb_noun(self):
        evaluator, _ = evaluator_for(verb=["Get"])

        assert not evaluator.is_criteria_match(AliasInfo(name="gci", target_name="Get-ChildItem"))

    def test_module_pattern(self):
        evaluator, _ = evaluator_for(name=["*"], module=["Stor*"])

        assert evaluator.is_criteria_match(get_disk())
        assert not evaluator.is_criteria_match(FunctionInfo(name="Get-Other"))

    def test_cmdlet_without_module_fails_module_criteria(self):
        evaluator, _ = evaluator_for(name=["*"], module=["Storage"])

        assert not evaluator.is_criteria_match(CmdletInfo(name="Get-Item"))

    def test_application_skips_verb_noun(self):
        evaluator, _ = evaluator_for(name=["*"], verb=["Get"])

        assert evaluator.is_criteria_match(ApplicationInfo(name="ping.exe", path="/usr/bin/ping.exe"))

    def test_fully_qualified_module(self):
        evaluator, _ = evaluator_for(name=["*"], fully_qualified_module=[{"name": "Storage", "version": "3.0"}])
        assert not evaluator.is_criteria_match(get_disk())

        evaluator, _ = evaluator_for(name=["*"], fully_qualified_module=[{"name": "Storage", "version": "1.0"}])
        assert evaluator.is_criteria_match(get_disk())


class TestParameterMatch:
    """Tests for is_parameter_match."""

    def test_no_parameter_criteria_matches(self):
        evaluator, state = evaluator_for(name=["*"])

        assert evaluator.is_parameter_match(get_disk())
        assert state.matched_parameter_names is None

    def test_name_pattern(self):
        evaluator, state = evaluator_for(name=["*"], parameter_name=["Friendly*"])

        assert evaluator.is_parameter_match(get_disk())
        assert state.matched_parameter_names == {"friendlyname"}

    def test_alias_match_records_both_names(self):
        evaluator, state = evaluator_for(name=["*"], parameter_name=["DiskNumber"])

        assert evaluator.is_parameter_match(get_disk())
        assert state.matched_parameter_names == {"disknumber", "number"}

    def test_type_constraint(self):
        evaluator, _ = evaluator_for(name=["*"], parameter_name=["Number"], parameter_type=["System.String"])

        assert not evaluator.is_parameter_match(get_disk())

    def test_type_only(self):
        evaluator, _ = evaluator_for(name=["*"], parameter_type=["UInt32"])

        assert evaluator.is_parameter_match(get_disk())

    def test_type_must_match_whole_name(self):
        """Int32 is not satisfied by a UInt32 parameter."""
        evaluator, _ = evaluator_for(name=["*"], parameter_type=["Int32"])

        assert not evaluator.is_parameter_match(get_disk())

    def test_unavailable_metadata_never_matches(self):
        evaluator, state = evaluator_for(name=["*"], parameter_name=["Number"])

        assert not evaluator.is_parameter_match(FunctionInfo(name="Get-Disk"))
        assert state.matched_parameter_names == set()
