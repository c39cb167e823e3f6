"""Shared fixtures for phasekeeper tests."""

import copy

import pytest

from phasekeeper.state.backends import MemoryBackend
from phasekeeper.state.fs import ProjectContext
from phasekeeper.workflow.registry import default_registry

TS = "2026-01-01T00:00:00+00:00"


def make_phase(status="pending", enabled=False, **extra) -> dict:
    phase = {
        "status": status,
        "enabled": enabled,
        "created_at": TS,
        "iteration": 1,
        "inputs": [],
        "outputs": [],
        "tasks": [],
    }
    phase.update(extra)
    return phase


def make_task(task_id="010", phase="implementation", **extra) -> dict:
    task = {
        "id": task_id,
        "name": f"task {task_id}",
        "phase": phase,
        "status": "pending",
        "created_at": TS,
        "updated_at": TS,
        "iteration": 1,
        "assigned_agent": "implementer",
        "inputs": [],
        "outputs": [],
    }
    task.update(extra)
    return task


def make_artifact(artifact_type="task_list", path="plan.md", approved=False, **extra) -> dict:
    artifact = {"type": artifact_type, "path": path, "approved": approved, "created_at": TS}
    artifact.update(extra)
    return artifact


def make_record(state="PlanningActive", project_type="standard", phases=None) -> dict:
    """A minimal valid standard-project record in dict form."""
    if phases is None:
        phases = {name: make_phase() for name in ("planning", "implementation", "review", "finalize")}
        phases["planning"]["status"] = "in_progress"
        phases["planning"]["enabled"] = True
    return {
        "name": "test-project",
        "type": project_type,
        "branch": "feat/test",
        "description": "Test project",
        "created_at": TS,
        "updated_at": TS,
        "phases": phases,
        "statechart": {"current_state": state, "updated_at": TS},
    }


@pytest.fixture
def record():
    return make_record()


@pytest.fixture
def registry():
    return default_registry()


@pytest.fixture
def memory_backend(record):
    return MemoryBackend(copy.deepcopy(record))


@pytest.fixture
def ctx(tmp_path):
    """Context rooted in a temporary repository."""
    return ProjectContext.create(tmp_path)
