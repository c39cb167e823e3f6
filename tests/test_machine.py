"""Tests for phasekeeper.workflow.machine module."""

import logging

import pytest

from phasekeeper.workflow.machine import (
    ActionFailedError,
    GuardRejectedError,
    Machine,
    NoTransitionError,
    Transition,
    TransitionError,
)


class Flag:
    def __init__(self, value=False):
        self.value = value

    def __call__(self):
        return self.value


class TestMachineBasics:
    """Construction and introspection."""

    def test_initial_state(self):
        """Machine starts at the given state."""
        m = Machine("A", [Transition("A", "B", "go")])
        assert m.state == "A"
        assert m.states == ["A", "B"]

    def test_initial_state_without_transitions(self):
        """A lone initial state is still a state."""
        m = Machine("Only", [])
        assert m.state == "Only"
        assert m.events() == []

    def test_duplicate_source_event_rejected(self):
        """One transition per (state, event)."""
        with pytest.raises(ValueError, match="duplicate transition"):
            Machine("A", [Transition("A", "B", "go"), Transition("A", "C", "go")])

    def test_events_from_current_state(self):
        """events() lists declared events from here."""
        m = Machine("A", [Transition("A", "B", "go"), Transition("A", "C", "skip"), Transition("B", "C", "go")])
        assert sorted(m.events()) == ["go", "skip"]

    def test_no_auto_transitions(self):
        """Only declared events exist."""
        m = Machine("A", [Transition("A", "B", "go")])
        assert not m.can_fire("to_B")
        with pytest.raises(NoTransitionError):
            m.fire("to_B")


class TestGuards:
    """Guard enforcement."""

    def test_can_fire_without_guard(self):
        """Unguarded transitions can always fire."""
        m = Machine("A", [Transition("A", "B", "go")])
        assert m.can_fire("go")

    def test_can_fire_unknown_event(self):
        """Unknown events cannot fire."""
        m = Machine("A", [Transition("A", "B", "go")])
        assert not m.can_fire("nope")

    def test_guard_false_blocks(self):
        """A false guard rejects the event and leaves state unchanged."""
        m = Machine("A", [Transition("A", "B", "go", guard=Flag(False), guard_description="plan approved")])
        assert not m.can_fire("go")
        with pytest.raises(GuardRejectedError, match="guard") as exc:
            m.fire("go")
        assert "plan approved" in str(exc.value)
        assert m.state == "A"

    def test_guard_true_fires(self):
        """A true guard lets the event through to its target."""
        m = Machine("A", [Transition("A", "B", "go", guard=Flag(True))])
        assert m.can_fire("go")
        m.fire("go")
        assert m.state == "B"

    def test_guard_reevaluated_each_time(self):
        """Guards read live data."""
        flag = Flag(False)
        m = Machine("A", [Transition("A", "B", "go", guard=flag)])
        assert not m.can_fire("go")
        flag.value = True
        assert m.can_fire("go")

    def test_no_transition_error(self):
        """Firing an undeclared event names state and event."""
        m = Machine("A", [Transition("A", "B", "go")])
        with pytest.raises(NoTransitionError, match="no transition for event back from state A"):
            m.fire("back")

    def test_errors_share_base(self):
        """Every transition failure is a TransitionError."""
        for cls in (NoTransitionError, GuardRejectedError, ActionFailedError):
            assert issubclass(cls, TransitionError)


class TestActions:
    """Entry/exit action ordering and failures."""

    def test_order(self):
        """on_exit runs before the state change, on_entry after."""
        calls = []
        m = None

        def on_exit():
            calls.append(("exit", m.state))

        def on_entry():
            calls.append(("entry", m.state))

        m = Machine("A", [Transition("A", "B", "go", on_exit=on_exit, on_entry=on_entry)])
        m.fire("go")
        assert calls == [("exit", "A"), ("entry", "B")]

    def test_exit_failure_keeps_state(self):
        """A failing on_exit leaves the machine where it was."""
        def boom():
            raise RuntimeError("exit broke")

        m = Machine("A", [Transition("A", "B", "go", on_exit=boom)])
        with pytest.raises(ActionFailedError) as exc:
            m.fire("go")
        assert exc.value.stage == "on_exit"
        assert exc.value.state_changed is False
        assert isinstance(exc.value.__cause__, RuntimeError)
        assert m.state == "A"

    def test_entry_failure_after_state_change(self, caplog):
        """A failing on_entry is reported with the state already advanced."""
        def boom():
            raise RuntimeError("entry broke")

        m = Machine("A", [Transition("A", "B", "go", on_entry=boom)], name="demo")
        with caplog.at_level(logging.WARNING):
            with pytest.raises(ActionFailedError) as exc:
                m.fire("go")
        assert exc.value.stage == "on_entry"
        assert exc.value.state_changed is True
        assert m.state == "B"
        assert "[FSM] demo" in caplog.text


class TestLogging:
    """Transition logging."""

    def test_logs_transition(self, caplog):
        """Successful fires are logged at INFO."""
        m = Machine("A", [Transition("A", "B", "go")], name="demo")
        with caplog.at_level(logging.INFO, logger="phasekeeper.workflow.machine"):
            m.fire("go")
        assert "[FSM] demo: A -> B (go)" in caplog.text


class TestPrompt:
    """Per-state prompts."""

    def test_no_prompt(self):
        """Without a generator prompts are empty."""
        assert Machine("A", []).prompt() == ""

    def test_prompt_for_state(self):
        """Generator receives the state."""
        m = Machine("A", [Transition("A", "B", "go")], prompt=lambda s: f"in {s}")
        assert m.prompt() == "in A"
        assert m.prompt("B") == "in B"
