"""
Runtime project.

A Project wraps one ProjectState record together with the things that
are never persisted: its type config, its live state machine and the
backend it came from. Behavior lives here; the record stays pure data.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator

from phasekeeper.lib.constants import MAX_TASK_ID, TASK_ID_GAP, TASK_RESOLVED_STATUSES
from phasekeeper.state import metadata as meta
from phasekeeper.state.collections import (
    ArtifactCollection,
    DuplicateTaskIdError,
    NotFoundError,
    PhaseCollection,
    TaskCollection,
)
from phasekeeper.state.models import ArtifactState, PhaseState, ProjectState, TaskState, now_iso
from phasekeeper.workflow.machine import GuardRejectedError, Machine, NoTransitionError

if TYPE_CHECKING:
    from phasekeeper.state.backends import Backend
    from phasekeeper.workflow.config import ProjectTypeConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AvailableTransition:
    """A transition out of the current state, and whether its guard passes now."""
    event: str
    target: str
    description: str
    permitted: bool
    guard_description: str = ""


class Project:
    """Record + config + machine for one loaded or created project."""

    def __init__(
        self,
        record: ProjectState,
        config: "ProjectTypeConfig",
        backend: "Backend | None" = None,
        machine: Machine | None = None,
    ):
        self.record = record
        self.config = config
        self.backend = backend
        self.machine = machine

    def __repr__(self) -> str:
        state = self.machine.state if self.machine else self.record.statechart.current_state
        return f"Project({self.record.name!r}, type={self.record.type!r}, state={state!r})"

    @property
    def name(self) -> str:
        return self.record.name

    @property
    def type(self) -> str:
        return self.record.type

    @property
    def state(self) -> str:
        """Live machine state."""
        return self.machine.state

    # --- collections ---

    @property
    def phases(self) -> PhaseCollection:
        return PhaseCollection(self.record.phases)

    def phase(self, name: str) -> PhaseState:
        return self.phases.get(name)

    def tasks(self, phase: str) -> TaskCollection:
        return TaskCollection(self.phase(phase).tasks)

    def inputs(self, phase: str) -> ArtifactCollection:
        return ArtifactCollection(self.phase(phase).inputs)

    def outputs(self, phase: str) -> ArtifactCollection:
        return ArtifactCollection(self.phase(phase).outputs)

    def all_tasks(self) -> Iterator[TaskState]:
        for phase in self.record.phases.values():
            yield from phase.tasks

    def get_task(self, task_id: str) -> TaskState:
        """Find a task by ID in any phase."""
        for task in self.all_tasks():
            if task.id == task_id:
                return task
        raise NotFoundError("task", task_id)

    def add_output(self, phase: str, artifact_type: str, path: str, approved: bool = False, **metadata) -> ArtifactState:
        artifact = ArtifactState(type=artifact_type, path=path, approved=approved, metadata=metadata)
        self.outputs(phase).add(artifact)
        return artifact

    def add_input(self, phase: str, artifact_type: str, path: str, approved: bool = False, **metadata) -> ArtifactState:
        artifact = ArtifactState(type=artifact_type, path=path, approved=approved, metadata=metadata)
        self.inputs(phase).add(artifact)
        return artifact

    def approve_output(self, phase: str, index: int) -> ArtifactState:
        artifact = self.outputs(phase).get(index)
        artifact.approved = True
        return artifact

    def set_phase_metadata(self, phase: str, key: str, value) -> None:
        self.phase(phase).metadata[key] = value

    # --- tasks ---

    def next_task_id(self) -> str:
        """
        Next gap-numbered task ID: the highest existing ID rounded down to a
        multiple of ten, plus ten.

        Raises:
            ValueError: no room left below the maximum ID
        """
        highest = max((int(t.id) for t in self.all_tasks()), default=0)
        candidate = (highest // TASK_ID_GAP) * TASK_ID_GAP + TASK_ID_GAP
        if candidate > MAX_TASK_ID:
            raise ValueError(f"no task ids left (highest is {highest:03d})")
        return f"{candidate:03d}"

    def add_task(
        self,
        phase: str,
        name: str,
        assigned_agent: str = "implementer",
        task_id: str | None = None,
        inputs: list[ArtifactState] | None = None,
        **metadata,
    ) -> TaskState:
        """
        Create a task in a task-supporting phase.

        Raises:
            NotFoundError: unknown phase
            ValueError: phase does not support tasks
            DuplicateTaskIdError: task_id already used anywhere in the project
        """
        self.phase(phase)
        if not self.config.phase_supports_tasks(phase):
            raise ValueError(f"phase {phase} does not support tasks")

        task_id = task_id or self.next_task_id()
        if any(t.id == task_id for t in self.all_tasks()):
            raise DuplicateTaskIdError(task_id)

        task = TaskState(
            id=task_id,
            name=name,
            phase=phase,
            assigned_agent=assigned_agent,
            inputs=list(inputs or []),
            metadata=metadata,
        )
        self.tasks(phase).add(task)
        logger.debug(f"[STATE] {self.name}: added task {task_id} to {phase}")
        return task

    def set_task_status(self, task_id: str, status: str) -> TaskState:
        """Change a task's status, stamping started/completed times as they happen."""
        task = self.get_task(task_id)
        now = now_iso()
        task.status = status
        task.updated_at = now
        if status == "in_progress" and task.started_at is None:
            task.started_at = now
        if status == "completed":
            task.completed_at = now
        return task

    # --- guard helpers ---

    def latest_output(self, phase: str, artifact_type: str, approved_only: bool = False) -> ArtifactState | None:
        """Most recently added output of a type, or None. Unknown phases give None."""
        if phase not in self.record.phases:
            return None
        for artifact in reversed(self.record.phases[phase].outputs):
            if artifact.type == artifact_type and (artifact.approved or not approved_only):
                return artifact
        return None

    def phase_output_approved(self, phase: str, artifact_type: str) -> bool:
        return self.latest_output(phase, artifact_type, approved_only=True) is not None

    def phase_metadata_bool(self, phase: str, key: str) -> bool:
        if phase not in self.record.phases:
            return False
        return meta.bool_or_false(self.record.phases[phase].metadata, key)

    def all_tasks_complete(self) -> bool:
        """Every task in every phase is completed. True when there are no tasks."""
        return all(t.status == "completed" for t in self.all_tasks())

    def tasks_resolved(self, phase: str) -> bool:
        """Phase has at least one task and every task is completed or abandoned."""
        if phase not in self.record.phases:
            return False
        tasks = self.record.phases[phase].tasks
        return bool(tasks) and all(t.status in TASK_RESOLVED_STATUSES for t in tasks)

    def tasks_completed(self, phase: str) -> bool:
        """Phase has at least one task and every task is completed. Abandoned doesn't count."""
        if phase not in self.record.phases:
            return False
        tasks = self.record.phases[phase].tasks
        return bool(tasks) and all(t.status == "completed" for t in tasks)

    def completed_tasks(self, phase: str) -> list[TaskState]:
        if phase not in self.record.phases:
            return []
        return [t for t in self.record.phases[phase].tasks if t.status == "completed"]

    # --- state machine ---

    def can_fire(self, event: str) -> bool:
        return self.machine.can_fire(event)

    def fire(self, event: str) -> None:
        """Fire an event and update phase statuses to match."""
        self.config.fire_with_phase_updates(self.machine, event, self)

    def advance(self) -> str:
        """
        Ask the type's determiner for the next event and fire it.

        Returns the event fired.

        Raises:
            NoDeterminerError: no determiner for the current state
            EventDeterminationError: determiner could not pick an event
            NoTransitionError / GuardRejectedError: event not permitted now
            ActionFailedError: a transition action failed
        """
        state = self.machine.state
        event = self.config.determine_event(self)

        if not self.machine.can_fire(event):
            t = self.machine.transition_for(event)
            if t is None:
                raise NoTransitionError(state, event)
            raise GuardRejectedError(state, event, t.guard_description)

        self.fire(event)
        return event

    def available_transitions(self) -> list[AvailableTransition]:
        return [
            AvailableTransition(
                event=t.event,
                target=t.dest,
                description=t.description,
                permitted=self.machine.can_fire(t.event),
                guard_description=t.guard_description,
            )
            for t in self.machine.transitions_from()
        ]

    def prompt(self) -> str:
        return self.config.state_prompt(self.machine.state, self)

    def save(self) -> None:
        """Validate and persist through the backend this project came from."""
        from phasekeeper.state.loader import save
        save(self)
