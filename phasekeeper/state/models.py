"""
Persisted data records.

These dataclasses mirror the project_state schema one-to-one and carry
no behavior beyond conversion to and from the plain dict form that is
validated and written to disk. Optional timestamps are None until the
event they record has happened, and are omitted when serialized.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime, UTC


def now_iso() -> str:
    """Current time as an ISO-8601 string with offset."""
    return datetime.now(UTC).isoformat()


def _put_optional(data: dict, key: str, value) -> None:
    if value is not None:
        data[key] = value


@dataclass
class ArtifactState:
    """A produced or consumed file reference."""
    type: str
    path: str
    approved: bool = False
    created_at: str = field(default_factory=now_iso)
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = {
            "type": self.type,
            "path": self.path,
            "approved": self.approved,
            "created_at": self.created_at,
        }
        if self.metadata:
            data["metadata"] = copy.deepcopy(self.metadata)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ArtifactState":
        return cls(
            type=data["type"],
            path=data["path"],
            approved=data.get("approved", False),
            created_at=data["created_at"],
            metadata=copy.deepcopy(data.get("metadata") or {}),
        )


@dataclass
class TaskState:
    """A unit of work inside a phase."""
    id: str
    name: str
    phase: str
    assigned_agent: str
    status: str = "pending"
    created_at: str = field(default_factory=now_iso)
    started_at: str | None = None
    updated_at: str = field(default_factory=now_iso)
    completed_at: str | None = None
    iteration: int = 1
    inputs: list[ArtifactState] = field(default_factory=list)
    outputs: list[ArtifactState] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "phase": self.phase,
            "status": self.status,
            "created_at": self.created_at,
        }
        _put_optional(data, "started_at", self.started_at)
        data["updated_at"] = self.updated_at
        _put_optional(data, "completed_at", self.completed_at)
        data["iteration"] = self.iteration
        data["assigned_agent"] = self.assigned_agent
        data["inputs"] = [a.to_dict() for a in self.inputs]
        data["outputs"] = [a.to_dict() for a in self.outputs]
        if self.metadata:
            data["metadata"] = copy.deepcopy(self.metadata)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "TaskState":
        return cls(
            id=data["id"],
            name=data["name"],
            phase=data["phase"],
            assigned_agent=data["assigned_agent"],
            status=data.get("status", "pending"),
            created_at=data["created_at"],
            started_at=data.get("started_at"),
            updated_at=data["updated_at"],
            completed_at=data.get("completed_at"),
            iteration=data.get("iteration", 1),
            inputs=[ArtifactState.from_dict(a) for a in data.get("inputs") or []],
            outputs=[ArtifactState.from_dict(a) for a in data.get("outputs") or []],
            metadata=copy.deepcopy(data.get("metadata") or {}),
        )


@dataclass
class PhaseState:
    """Status, artifacts and tasks of one phase."""
    status: str = "pending"
    enabled: bool = False
    created_at: str = field(default_factory=now_iso)
    started_at: str | None = None
    completed_at: str | None = None
    failed_at: str | None = None
    iteration: int = 1
    inputs: list[ArtifactState] = field(default_factory=list)
    outputs: list[ArtifactState] = field(default_factory=list)
    tasks: list[TaskState] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = {
            "status": self.status,
            "enabled": self.enabled,
            "created_at": self.created_at,
        }
        _put_optional(data, "started_at", self.started_at)
        _put_optional(data, "completed_at", self.completed_at)
        _put_optional(data, "failed_at", self.failed_at)
        data["iteration"] = self.iteration
        data["inputs"] = [a.to_dict() for a in self.inputs]
        data["outputs"] = [a.to_dict() for a in self.outputs]
        data["tasks"] = [t.to_dict() for t in self.tasks]
        if self.metadata:
            data["metadata"] = copy.deepcopy(self.metadata)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "PhaseState":
        return cls(
            status=data.get("status", "pending"),
            enabled=data.get("enabled", False),
            created_at=data["created_at"],
            started_at=data.get("started_at"),
            completed_at=data.get("completed_at"),
            failed_at=data.get("failed_at"),
            iteration=data.get("iteration", 1),
            inputs=[ArtifactState.from_dict(a) for a in data.get("inputs") or []],
            outputs=[ArtifactState.from_dict(a) for a in data.get("outputs") or []],
            tasks=[TaskState.from_dict(t) for t in data.get("tasks") or []],
            metadata=copy.deepcopy(data.get("metadata") or {}),
        )


@dataclass
class StatechartState:
    """Serialized mirror of the live machine."""
    current_state: str
    updated_at: str = field(default_factory=now_iso)

    def to_dict(self) -> dict:
        return {"current_state": self.current_state, "updated_at": self.updated_at}

    @classmethod
    def from_dict(cls, data: dict) -> "StatechartState":
        return cls(current_state=data["current_state"], updated_at=data["updated_at"])


@dataclass
class ProjectState:
    """Root persisted record: one per project."""
    name: str
    type: str
    branch: str
    statechart: StatechartState
    description: str = ""
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)
    phases: dict[str, PhaseState] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "type": self.type,
            "branch": self.branch,
            "description": self.description,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "phases": {name: phase.to_dict() for name, phase in self.phases.items()},
            "statechart": self.statechart.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProjectState":
        return cls(
            name=data["name"],
            type=data["type"],
            branch=data["branch"],
            description=data.get("description", ""),
            created_at=data["created_at"],
            updated_at=data["updated_at"],
            phases={name: PhaseState.from_dict(p) for name, p in (data.get("phases") or {}).items()},
            statechart=StatechartState.from_dict(data["statechart"]),
        )
