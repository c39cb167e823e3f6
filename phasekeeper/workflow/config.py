"""
Project-type configuration.

A ProjectTypeConfig is everything the engine needs to know about one kind
of project: its phases, its transition graph, how to pick the next event
in each state, and how to initialize a new record. Configs are immutable
once built; use ProjectTypeConfigBuilder to declare one.

Guards, actions, determiners, initializers and prompt generators are all
plain functions of the runtime Project. build_machine() binds them to one
project instance.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from phasekeeper.lib.validate import validate_artifact_types, validate_metadata, ValidationError
from phasekeeper.state import phase as phase_ops
from phasekeeper.workflow.machine import Machine, Transition, TransitionError

if TYPE_CHECKING:
    from phasekeeper.state.project import Project

logger = logging.getLogger(__name__)

GuardFunc = Callable[["Project"], bool]
ActionFunc = Callable[["Project"], None]
EventDeterminer = Callable[["Project"], str]
PromptGenerator = Callable[["Project"], str]
Initializer = Callable[["Project", dict], None]


class NoDeterminerError(TransitionError):
    """Advance was asked for in a state with no event determiner."""

    def __init__(self, state: str):
        self.state = state
        super().__init__(f"no event determiner for state: {state}")


class EventDeterminationError(TransitionError):
    """The determiner for a state could not pick an event."""


@dataclass(frozen=True)
class PhaseConfig:
    """Per-phase rules: boundaries in the graph, artifact allow-lists, metadata schema.

    Empty inputs/outputs allow every artifact type. metadata_schema is a
    JSON Schema dict; None means the phase carries no metadata.
    """
    name: str
    start_state: str = ""
    end_state: str = ""
    inputs: tuple[str, ...] = ()
    outputs: tuple[str, ...] = ()
    supports_tasks: bool = False
    metadata_schema: dict | None = None


@dataclass(frozen=True)
class TransitionConfig:
    """A transition template; guards and actions take the Project."""
    source: str
    dest: str
    event: str
    guard: GuardFunc | None = None
    guard_description: str = ""
    on_entry: ActionFunc | None = None
    on_exit: ActionFunc | None = None
    description: str = ""
    failed_phase: str = ""  # Phase to mark failed (not completed) when leaving its end state


@dataclass(frozen=True)
class ProjectTypeConfig:
    name: str
    initial_state: str
    phases: dict[str, PhaseConfig] = field(default_factory=dict)
    transitions: tuple[TransitionConfig, ...] = ()
    on_advance: dict[str, EventDeterminer] = field(default_factory=dict)
    prompts: dict[str, PromptGenerator] = field(default_factory=dict)
    orchestrator_prompt_generator: PromptGenerator | None = None
    initializer: Initializer | None = None
    branches: dict[str, Any] = field(default_factory=dict)

    # --- lookup ---

    def phase_config(self, name: str) -> PhaseConfig | None:
        return self.phases.get(name)

    def reachable_states(self) -> set[str]:
        """States reachable from the initial state by following transitions."""
        edges: dict[str, list[str]] = {}
        for t in self.transitions:
            edges.setdefault(t.source, []).append(t.dest)

        seen = {self.initial_state}
        queue = deque([self.initial_state])
        while queue:
            for dest in edges.get(queue.popleft(), ()):
                if dest not in seen:
                    seen.add(dest)
                    queue.append(dest)
        return seen

    def get_transition(self, source: str, dest: str, event: str) -> TransitionConfig | None:
        for t in self.transitions:
            if t.source == source and t.dest == dest and t.event == event:
                return t
        return None

    def phase_for_state(self, state: str) -> str:
        """Phase whose start or end state this is, or ""."""
        for name, pc in self.phases.items():
            if state in (pc.start_state, pc.end_state):
                return name
        return ""

    def is_phase_start_state(self, phase: str, state: str) -> bool:
        pc = self.phases.get(phase)
        return pc is not None and pc.start_state == state

    def is_phase_end_state(self, phase: str, state: str) -> bool:
        pc = self.phases.get(phase)
        return pc is not None and pc.end_state == state

    def task_supporting_phases(self) -> list[str]:
        return sorted(name for name, pc in self.phases.items() if pc.supports_tasks)

    def phase_supports_tasks(self, phase: str) -> bool:
        pc = self.phases.get(phase)
        return pc is not None and pc.supports_tasks

    def default_task_phase(self, state: str) -> str:
        """Task phase bounded by state, else the first task phase by name, else ""."""
        for name, pc in sorted(self.phases.items()):
            if pc.supports_tasks and state in (pc.start_state, pc.end_state):
                return name
        supporting = self.task_supporting_phases()
        return supporting[0] if supporting else ""

    # --- prompts and initialization ---

    def state_prompt(self, state: str, project: "Project") -> str:
        gen = self.prompts.get(state)
        return gen(project) if gen else ""

    def orchestrator_prompt(self, project: "Project") -> str:
        gen = self.orchestrator_prompt_generator
        return gen(project) if gen else ""

    def initialize(self, project: "Project", initial_inputs: dict | None = None) -> None:
        if self.initializer is not None:
            self.initializer(project, initial_inputs or {})

    # --- validation ---

    def validate(self, record, check_metadata: bool = True) -> None:
        """
        Phase-scoped validation of a record against this type.

        Checks that every phase in the record is declared, that artifacts
        fit the allow-lists and, when check_metadata, that phase metadata
        fits its schema. Declared phases missing from the record are fine.

        Raises:
            ValidationError (or subclass): first violation found
        """
        for name in record.phases:
            if name not in self.phases:
                raise ValidationError(
                    f"{self.name} phases",
                    f"phase {name} is not defined for project type {self.name}",
                    f"phases.{name}",
                )

        for name, pc in self.phases.items():
            phase = record.phases.get(name)
            if phase is None:
                continue
            validate_artifact_types(phase.inputs, pc.inputs, name, "input")
            validate_artifact_types(phase.outputs, pc.outputs, name, "output")
            if check_metadata:
                validate_metadata(phase.metadata, pc.metadata_schema, phase=name)

    # --- machine ---

    def determine_event(self, project: "Project") -> str:
        state = project.machine.state
        determiner = self.on_advance.get(state)
        if determiner is None:
            raise NoDeterminerError(state)
        try:
            return determiner(project)
        except TransitionError:
            raise
        except Exception as e:
            raise EventDeterminationError(f"failed to determine event from state {state}: {e}") from e

    def build_machine(self, project: "Project", initial_state: str) -> Machine:
        """Bind every transition template to project and build a Machine at initial_state."""

        def bind(func):
            if func is None:
                return None
            return lambda: func(project)

        transitions = [
            Transition(
                source=t.source,
                dest=t.dest,
                event=t.event,
                guard=bind(t.guard),
                guard_description=t.guard_description,
                on_entry=bind(t.on_entry),
                on_exit=bind(t.on_exit),
                description=t.description,
            )
            for t in self.transitions
        ]
        prompt = None
        if self.prompts:
            prompt = lambda state: self.state_prompt(state, project)  # noqa: E731
        return Machine(initial_state, transitions, name=project.name, prompt=prompt)

    def fire_with_phase_updates(self, machine: Machine, event: str, project: "Project") -> None:
        """
        Fire event, then keep phase statuses in step with the move.

        Leaving a phase's end state marks it completed (or failed, if the
        transition names it as failed_phase). Entering a phase's start state
        marks it in_progress when it is still pending.
        """
        old_state = machine.state
        machine.fire(event)
        new_state = machine.state

        record = project.record
        tc = self.get_transition(old_state, new_state, event)

        leaving = next((n for n, pc in self.phases.items() if pc.end_state == old_state), "")
        if leaving and leaving in record.phases:
            if tc is not None and tc.failed_phase == leaving:
                phase_ops.mark_phase_failed(record, leaving)
                logger.debug(f"[FSM] {project.name}: phase {leaving} failed")
            elif phase_ops.mark_phase_completed(record, leaving):
                logger.debug(f"[FSM] {project.name}: phase {leaving} completed")

        entering = next((n for n, pc in self.phases.items() if pc.start_state == new_state), "")
        if entering and entering in record.phases:
            if phase_ops.mark_phase_in_progress(record, entering):
                logger.debug(f"[FSM] {project.name}: phase {entering} in progress")


class ProjectTypeConfigBuilder:
    """
    Declarative builder for ProjectTypeConfig.

    Usage:
        config = (
            ProjectTypeConfigBuilder("standard")
            .with_phase("planning", start_state="PlanningActive", end_state="PlanningActive",
                        outputs=["task_list"])
            .set_initial_state("PlanningActive")
            .add_transition("PlanningActive", "ImplementationPlanning", "complete_planning",
                            guard=planning_approved, guard_description="task list approved")
            .on_advance("PlanningActive", lambda p: "complete_planning")
            .build()
        )
    """

    def __init__(self, name: str):
        self.name = name
        self._phases: dict[str, PhaseConfig] = {}
        self._initial_state = ""
        self._transitions: list[TransitionConfig] = []
        self._on_advance: dict[str, EventDeterminer] = {}
        self._prompts: dict[str, PromptGenerator] = {}
        self._orchestrator_prompt: PromptGenerator | None = None
        self._initializer: Initializer | None = None
        self._branches: dict[str, Any] = {}

    def with_phase(
        self,
        name: str,
        start_state: str = "",
        end_state: str = "",
        inputs=(),
        outputs=(),
        supports_tasks: bool = False,
        metadata_schema: dict | None = None,
    ) -> "ProjectTypeConfigBuilder":
        self._phases[name] = PhaseConfig(
            name=name,
            start_state=start_state,
            end_state=end_state,
            inputs=tuple(inputs),
            outputs=tuple(outputs),
            supports_tasks=supports_tasks,
            metadata_schema=metadata_schema,
        )
        return self

    def set_initial_state(self, state: str) -> "ProjectTypeConfigBuilder":
        self._initial_state = state
        return self

    def add_transition(
        self,
        source: str,
        dest: str,
        event: str,
        guard: GuardFunc | None = None,
        guard_description: str = "",
        on_entry: ActionFunc | None = None,
        on_exit: ActionFunc | None = None,
        description: str = "",
        failed_phase: str = "",
    ) -> "ProjectTypeConfigBuilder":
        self._transitions.append(TransitionConfig(
            source=source,
            dest=dest,
            event=event,
            guard=guard,
            guard_description=guard_description,
            on_entry=on_entry,
            on_exit=on_exit,
            description=description,
            failed_phase=failed_phase,
        ))
        return self

    def on_advance(self, state: str, determiner: EventDeterminer) -> "ProjectTypeConfigBuilder":
        if state in self._branches:
            raise ValueError(f"on_advance for state {state}: state already has a branch")
        self._on_advance[state] = determiner
        return self

    def add_branch(self, source: str, *options) -> "ProjectTypeConfigBuilder":
        """
        Declare a multi-way branch out of source.

        options are the results of branch_on() and when() from
        phasekeeper.workflow.branch. Expands into one transition per value
        plus an on_advance determiner that maps the discriminator's value
        to its event.

        Raises:
            BranchConfigError: missing discriminator, no paths, an empty or
                repeated value, or a state that already has on_advance
        """
        from phasekeeper.workflow.branch import BranchConfig, BranchConfigError

        if source in self._on_advance:
            raise BranchConfigError(
                source,
                "state already has on_advance determiner - cannot use both add_branch and on_advance on the same state",
            )

        branch = BranchConfig.from_options(source, options)
        for t in branch.expand():
            self._transitions.append(t)
        self._on_advance[source] = branch.determine_event
        self._branches[source] = branch
        return self

    def with_prompt(self, state: str, generator: PromptGenerator) -> "ProjectTypeConfigBuilder":
        self._prompts[state] = generator
        return self

    def with_orchestrator_prompt(self, generator: PromptGenerator) -> "ProjectTypeConfigBuilder":
        self._orchestrator_prompt = generator
        return self

    def with_initializer(self, initializer: Initializer) -> "ProjectTypeConfigBuilder":
        self._initializer = initializer
        return self

    def build(self) -> ProjectTypeConfig:
        """Snapshot the accumulated declarations. The builder stays reusable."""
        if not self._initial_state:
            raise ValueError(f"project type {self.name}: initial state not set")

        seen = set()
        for t in self._transitions:
            key = (t.source, t.event)
            if key in seen:
                raise ValueError(
                    f"project type {self.name}: duplicate transition for event {t.event} from state {t.source}"
                )
            seen.add(key)

        return ProjectTypeConfig(
            name=self.name,
            initial_state=self._initial_state,
            phases=dict(self._phases),
            transitions=tuple(self._transitions),
            on_advance=dict(self._on_advance),
            prompts=dict(self._prompts),
            orchestrator_prompt_generator=self._orchestrator_prompt,
            initializer=self._initializer,
            branches=dict(self._branches),
        )
