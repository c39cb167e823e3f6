"""
Project state: data records, collections, persistence.

Typical use:
    ctx = ProjectContext.create(repo_root)
    project = load(ctx, default_registry())
    project.advance()
    save(project)
"""

from phasekeeper.state.models import (
    ArtifactState,
    PhaseState,
    ProjectState,
    StatechartState,
    TaskState,
)
from phasekeeper.state.collections import (
    ArtifactCollection,
    DuplicateTaskIdError,
    IndexOutOfRangeError,
    NotFoundError,
    PhaseCollection,
    TaskCollection,
)
from phasekeeper.state.fs import LocalFS, ProjectContext
from phasekeeper.state.backends import MemoryBackend, YAMLBackend
from phasekeeper.state.project import Project
from phasekeeper.state.loader import (
    ProjectStateError,
    UnknownProjectTypeError,
    create,
    load,
    save,
    transaction,
)

__all__ = [
    "ArtifactState",
    "PhaseState",
    "ProjectState",
    "StatechartState",
    "TaskState",
    "ArtifactCollection",
    "DuplicateTaskIdError",
    "IndexOutOfRangeError",
    "NotFoundError",
    "PhaseCollection",
    "TaskCollection",
    "LocalFS",
    "ProjectContext",
    "MemoryBackend",
    "YAMLBackend",
    "Project",
    "ProjectStateError",
    "UnknownProjectTypeError",
    "create",
    "load",
    "save",
    "transaction",
]
