"""
Resolution State Machine Tests
------------------------------
Tests for per-name resolution state.

Tests cover:
- Terminal state selection
- Not-found reporting rules
- Transition validation and history
- Listeners
"""

import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.state_machine import ResolutionState, ResolutionStateMachine, VALID_TRANSITIONS


class TestConclude:
    """Tests for conclude()."""

    def test_found(self):
        machine = ResolutionStateMachine("Get-Disk")
        machine.mark_found()

        assert machine.conclude() == ResolutionState.FOUND
        assert not machine.should_report_not_found

    def test_found_wins_over_failure(self):
        machine = ResolutionStateMachine("Get-Disk")
        machine.mark_failed()
        machine.mark_found()

        assert machine.conclude() == ResolutionState.FOUND

    def test_failure(self):
        machine = ResolutionStateMachine("Get-Disk")
        machine.mark_failed()

        assert machine.conclude() == ResolutionState.ERROR
        assert not machine.should_report_not_found

    def test_literal_not_found_is_reported(self):
        machine = ResolutionStateMachine("Get-Nothing")

        assert machine.conclude() == ResolutionState.NOT_FOUND
        assert machine.should_report_not_found

    def test_pattern_not_found_is_silent(self):
        machine = ResolutionStateMachine("Get-Nothing*", is_pattern=True)

        assert machine.conclude() == ResolutionState.NOT_FOUND
        assert not machine.should_report_not_found

    def test_duplicate_suppresses_report(self):
        machine = ResolutionStateMachine("ping")
        machine.mark_duplicate()

        assert machine.conclude() == ResolutionState.NOT_FOUND
        assert not machine.should_report_not_found

    def test_cap_suppresses_report(self):
        """A name cut short by the result cap was never searched to the end."""
        machine = ResolutionStateMachine("Get-Disk")
        machine.mark_capped()

        assert machine.conclude() == ResolutionState.NOT_FOUND
        assert machine.history[-1].reason == "result cap reached"
        assert not machine.should_report_not_found

    def test_conclude_is_idempotent(self):
        machine = ResolutionStateMachine("Get-Disk")
        machine.mark_found()
        machine.conclude()

        assert machine.conclude() == ResolutionState.FOUND
        assert len(machine.history) == 1


class TestTransitions:
    """Tests for transition validation."""

    def test_terminal_states_have_no_exits(self):
        for state in (ResolutionState.FOUND, ResolutionState.NOT_FOUND, ResolutionState.ERROR):
            assert VALID_TRANSITIONS[state] == set()

    def test_invalid_transition_raises(self):
        machine = ResolutionStateMachine("Get-Disk")
        machine.transition(ResolutionState.FOUND, "test")

        with pytest.raises(ValueError):
            machine.transition(ResolutionState.NOT_FOUND, "again")

    def test_history_records_reason(self):
        machine = ResolutionStateMachine("Get-Nothing")
        machine.conclude()

        transition = machine.history[0]
        assert transition.from_state == ResolutionState.SEARCHING
        assert transition.to_state == ResolutionState.NOT_FOUND
        assert transition.reason == "sources exhausted"
        assert transition.name == "Get-Nothing"


class TestListeners:
    """Tests for transition listeners."""

    def test_listener_notified(self):
        seen = []
        machine = ResolutionStateMachine("Get-Disk")
        machine.add_listener(seen.append)
        machine.mark_found()
        machine.conclude()

        assert [t.to_state for t in seen] == [ResolutionState.FOUND]

    def test_removed_listener_not_notified(self):
        seen = []
        machine = ResolutionStateMachine("Get-Disk")
        machine.add_listener(seen.append)
        machine.remove_listener(seen.append)
        machine.conclude()

        assert seen == []

    def test_failing_listener_does_not_break_transition(self):
        def broken(transition):
            raise RuntimeError("listener failure")

        machine = ResolutionStateMachine("Get-Disk")
        machine.add_listener(broken)

        assert machine.conclude() == ResolutionState.NOT_FOUND
