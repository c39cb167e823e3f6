"""
Invariant-preserving views over phases, tasks and artifacts.

Each collection wraps the container that lives inside the data record,
so mutations through a collection are mutations of the record. Lookups
never return silent defaults: a missing key or a bad index raises an
error that names it.
"""

from typing import Iterator

from phasekeeper.state.models import ArtifactState, PhaseState, TaskState


class NotFoundError(LookupError):
    """Keyed lookup missed."""

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key}")


class IndexOutOfRangeError(IndexError):
    """Positional access outside the collection."""

    def __init__(self, index: int, length: int):
        self.index = index
        self.length = length
        super().__init__(f"index out of range: {index} (length: {length})")


class DuplicateTaskIdError(ValueError):
    """A task with this ID already exists."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"task already exists: {task_id}")


class PhaseCollection:
    """Phases keyed by name."""

    def __init__(self, phases: dict[str, PhaseState]):
        self._phases = phases

    def get(self, name: str) -> PhaseState:
        try:
            return self._phases[name]
        except KeyError:
            raise NotFoundError("phase", name) from None

    def add(self, name: str, phase: PhaseState) -> None:
        """Insert or replace a phase."""
        self._phases[name] = phase

    def names(self) -> list[str]:
        return list(self._phases)

    def items(self):
        return self._phases.items()

    def __contains__(self, name: object) -> bool:
        return name in self._phases

    def __iter__(self) -> Iterator[str]:
        return iter(self._phases)

    def __len__(self) -> int:
        return len(self._phases)

    def to_dict(self) -> dict:
        return {name: phase.to_dict() for name, phase in self._phases.items()}

    @classmethod
    def from_dict(cls, data: dict) -> "PhaseCollection":
        return cls({name: PhaseState.from_dict(p) for name, p in data.items()})


class TaskCollection:
    """Tasks of one phase, keyed by ID, kept in insertion order."""

    def __init__(self, tasks: list[TaskState]):
        self._tasks = tasks

    def get(self, task_id: str) -> TaskState:
        for task in self._tasks:
            if task.id == task_id:
                return task
        raise NotFoundError("task", task_id)

    def add(self, task: TaskState) -> None:
        if task.id in self:
            raise DuplicateTaskIdError(task.id)
        self._tasks.append(task)

    def remove(self, task_id: str) -> TaskState:
        for index, task in enumerate(self._tasks):
            if task.id == task_id:
                return self._tasks.pop(index)
        raise NotFoundError("task", task_id)

    def ids(self) -> list[str]:
        return [t.id for t in self._tasks]

    def __contains__(self, task_id: object) -> bool:
        return any(t.id == task_id for t in self._tasks)

    def __iter__(self) -> Iterator[TaskState]:
        return iter(self._tasks)

    def __len__(self) -> int:
        return len(self._tasks)

    def to_list(self) -> list[dict]:
        return [t.to_dict() for t in self._tasks]

    @classmethod
    def from_list(cls, data: list[dict]) -> "TaskCollection":
        return cls([TaskState.from_dict(t) for t in data])


class ArtifactCollection:
    """Artifacts addressed by position. Negative indices are never valid."""

    def __init__(self, artifacts: list[ArtifactState]):
        self._artifacts = artifacts

    def _check(self, index: int) -> None:
        if index < 0 or index >= len(self._artifacts):
            raise IndexOutOfRangeError(index, len(self._artifacts))

    def get(self, index: int) -> ArtifactState:
        self._check(index)
        return self._artifacts[index]

    def add(self, artifact: ArtifactState) -> None:
        self._artifacts.append(artifact)

    def remove(self, index: int) -> ArtifactState:
        self._check(index)
        return self._artifacts.pop(index)

    def of_type(self, artifact_type: str) -> list[ArtifactState]:
        return [a for a in self._artifacts if a.type == artifact_type]

    def __iter__(self) -> Iterator[ArtifactState]:
        return iter(self._artifacts)

    def __len__(self) -> int:
        return len(self._artifacts)

    def to_list(self) -> list[dict]:
        return [a.to_dict() for a in self._artifacts]

    @classmethod
    def from_list(cls, data: list[dict]) -> "ArtifactCollection":
        return cls([ArtifactState.from_dict(a) for a in data])
