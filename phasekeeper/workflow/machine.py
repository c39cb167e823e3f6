"""Project state machine on top of the transitions library.

The transition table is declared as plain Transition records; this module
turns them into a transitions.Machine and adds what the library does not
give us directly:
- can_fire() that actually evaluates the guard
- typed errors for missing transitions, rejected guards and failed actions
- one transition per (state, event) pair, checked at build time

Callback order follows transitions itself: guard, then on_exit (before),
then the state change, then on_entry (after). A failing on_exit leaves the
state untouched. A failing on_entry happens after the state has already
changed; that is reported, not rolled back.

Usage:
    machine = Machine("PlanningActive", [
        Transition("PlanningActive", "ImplementationPlanning", "complete_planning",
                   guard=lambda: plan_approved(), guard_description="plan approved"),
    ])
    if machine.can_fire("complete_planning"):
        machine.fire("complete_planning")
"""

import logging
from dataclasses import dataclass
from typing import Callable

from transitions import Machine as _TransitionsMachine

logger = logging.getLogger(__name__)

Guard = Callable[[], bool]
Action = Callable[[], None]


class TransitionError(Exception):
    """Base class for every failure to move the machine."""


class NoTransitionError(TransitionError):
    """No transition is declared for this event from the current state."""

    def __init__(self, state: str, event: str):
        self.state = state
        self.event = event
        super().__init__(f"no transition for event {event} from state {state}")


class GuardRejectedError(TransitionError):
    """The transition exists but its guard returned False."""

    def __init__(self, state: str, event: str, description: str = ""):
        self.state = state
        self.event = event
        self.description = description
        detail = f": {description}" if description else ""
        super().__init__(f"cannot fire {event} from state {state}: guard not satisfied{detail}")


class ActionFailedError(TransitionError):
    """An on_exit or on_entry action raised.

    state_changed tells the caller whether the machine had already moved
    to the target state when the action failed.
    """

    def __init__(self, event: str, stage: str, state_changed: bool, cause: Exception):
        self.event = event
        self.stage = stage
        self.state_changed = state_changed
        super().__init__(f"{stage} action failed for event {event}: {cause}")


@dataclass
class Transition:
    """One edge of the graph. Guards and actions are already bound to their data."""
    source: str
    dest: str
    event: str
    guard: Guard | None = None
    guard_description: str = ""
    on_entry: Action | None = None
    on_exit: Action | None = None
    description: str = ""


class _Model:
    """Bare model object; transitions attaches state and trigger() here."""


class Machine:
    """A transition graph with a current state."""

    def __init__(
        self,
        initial: str,
        transitions: list[Transition],
        name: str = "",
        prompt: Callable[[str], str] | None = None,
    ):
        self.name = name or "project"
        self._prompt = prompt
        self._table: dict[tuple[str, str], Transition] = {}

        for t in transitions:
            key = (t.source, t.event)
            if key in self._table:
                raise ValueError(f"duplicate transition for event {t.event} from state {t.source}")
            self._table[key] = t

        states = [initial]
        for t in transitions:
            for s in (t.source, t.dest):
                if s not in states:
                    states.append(s)
        self._states = states

        self._model = _Model()
        self._machine = _TransitionsMachine(
            model=self._model,
            states=states,
            initial=initial,
            auto_transitions=False,  # Only declared events
            ignore_invalid_triggers=False,
        )
        for t in transitions:
            self._machine.add_transition(
                trigger=t.event,
                source=t.source,
                dest=t.dest,
                conditions=[t.guard] if t.guard else [],
                before=[self._wrap(t, t.on_exit, "on_exit", False)] if t.on_exit else [],
                after=[self._wrap(t, t.on_entry, "on_entry", True)] if t.on_entry else [],
            )

    @staticmethod
    def _wrap(t: Transition, action: Action, stage: str, state_changed: bool) -> Action:
        def run():
            try:
                action()
            except Exception as e:
                raise ActionFailedError(t.event, stage, state_changed, e) from e
        return run

    @property
    def state(self) -> str:
        return self._model.state

    @property
    def states(self) -> list[str]:
        return list(self._states)

    def has_state(self, state: str) -> bool:
        return state in self._states

    def transition_for(self, event: str, state: str | None = None) -> Transition | None:
        """Declared transition for event from state (default: current state)."""
        return self._table.get((state or self.state, event))

    def transitions_from(self, state: str | None = None) -> list[Transition]:
        source = state or self.state
        return [t for (s, _), t in self._table.items() if s == source]

    def events(self) -> list[str]:
        """Events declared from the current state, permitted or not."""
        return [t.event for t in self.transitions_from()]

    def can_fire(self, event: str) -> bool:
        """True iff a transition exists from here and its guard (if any) passes."""
        t = self.transition_for(event)
        if t is None:
            return False
        if t.guard is None:
            return True
        return bool(t.guard())

    def fire(self, event: str) -> None:
        """
        Fire an event: guard, on_exit, state change, on_entry.

        Raises:
            NoTransitionError: nothing declared for (state, event)
            GuardRejectedError: guard returned False; state unchanged
            ActionFailedError: an action raised; see state_changed
        """
        source = self.state
        t = self.transition_for(event)
        if t is None:
            raise NoTransitionError(source, event)
        if t.guard is not None and not t.guard():
            raise GuardRejectedError(source, event, t.guard_description)

        try:
            fired = self._model.trigger(event)
        except ActionFailedError as e:
            if e.state_changed:
                logger.warning(
                    f"[FSM] {self.name}: {source} -> {self.state} ({event}) "
                    f"entered with failed on_entry action: {e.__cause__}"
                )
            raise

        if not fired:
            # Guard flipped between our check and the library's
            raise GuardRejectedError(source, event, t.guard_description)

        logger.info(f"[FSM] {self.name}: {source} -> {self.state} ({event})")

    def prompt(self, state: str | None = None) -> str:
        """Prompt text for a state (default: current), or "" when none is configured."""
        if self._prompt is None:
            return ""
        return self._prompt(state or self.state)
