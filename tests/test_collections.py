"""Tests for phasekeeper.state.collections module."""

import pytest

from phasekeeper.state.collections import (
    ArtifactCollection,
    DuplicateTaskIdError,
    IndexOutOfRangeError,
    NotFoundError,
    PhaseCollection,
    TaskCollection,
)
from phasekeeper.state.models import ArtifactState, PhaseState, TaskState


def task(task_id: str) -> TaskState:
    return TaskState(id=task_id, name=f"t{task_id}", phase="implementation", assigned_agent="implementer")


class TestPhaseCollection:
    """Tests for phases keyed by name."""

    def test_get_missing_phase(self):
        """Missing phase raises a named not-found error."""
        phases = PhaseCollection({})
        with pytest.raises(NotFoundError) as exc:
            phases.get("review")
        assert str(exc.value) == "phase not found: review"
        assert isinstance(exc.value, LookupError)

    def test_add_and_get(self):
        """Added phases are retrievable and write through to the backing dict."""
        backing = {}
        phases = PhaseCollection(backing)
        phase = PhaseState()
        phases.add("planning", phase)
        assert phases.get("planning") is phase
        assert backing["planning"] is phase
        assert "planning" in phases
        assert len(phases) == 1
        assert phases.names() == ["planning"]

    def test_round_trip(self):
        """to_dict/from_dict preserve content."""
        phases = PhaseCollection({"planning": PhaseState(status="in_progress", enabled=True)})
        again = PhaseCollection.from_dict(phases.to_dict())
        assert again.get("planning").status == "in_progress"


class TestTaskCollection:
    """Tests for tasks keyed by ID."""

    def test_get_missing_task(self):
        """Missing task raises a named not-found error."""
        tasks = TaskCollection([])
        with pytest.raises(NotFoundError, match="^task not found: 010$"):
            tasks.get("010")

    def test_add_preserves_order(self):
        """Tasks keep insertion order."""
        tasks = TaskCollection([])
        tasks.add(task("020"))
        tasks.add(task("010"))
        assert tasks.ids() == ["020", "010"]

    def test_duplicate_id_rejected(self):
        """Adding an existing ID fails and leaves the collection alone."""
        tasks = TaskCollection([task("010")])
        with pytest.raises(DuplicateTaskIdError):
            tasks.add(task("010"))
        assert len(tasks) == 1

    def test_remove(self):
        """Remove by ID returns the task."""
        tasks = TaskCollection([task("010"), task("020")])
        removed = tasks.remove("010")
        assert removed.id == "010"
        assert tasks.ids() == ["020"]

    def test_remove_missing(self):
        """Removing an unknown ID raises not-found and changes nothing."""
        tasks = TaskCollection([task("010")])
        with pytest.raises(NotFoundError):
            tasks.remove("999")
        assert len(tasks) == 1


class TestArtifactCollection:
    """Tests for artifacts addressed by index."""

    @pytest.fixture
    def artifacts(self):
        return ArtifactCollection([ArtifactState("task_list", "a.md"), ArtifactState("review", "b.md")])

    def test_get(self, artifacts):
        """Valid indices return the artifact."""
        assert artifacts.get(1).path == "b.md"

    @pytest.mark.parametrize("index", [2, 5, -1])
    def test_get_out_of_range(self, artifacts, index):
        """Out-of-range and negative indices raise a bounds error."""
        with pytest.raises(IndexOutOfRangeError) as exc:
            artifacts.get(index)
        assert str(exc.value) == f"index out of range: {index} (length: 2)"

    def test_get_on_empty(self):
        """Index 0 of an empty collection is out of range."""
        with pytest.raises(IndexOutOfRangeError, match=r"index out of range: 0 \(length: 0\)"):
            ArtifactCollection([]).get(0)

    @pytest.mark.parametrize("index", [2, -1])
    def test_remove_out_of_range_keeps_length(self, artifacts, index):
        """A failed remove leaves the collection unchanged."""
        with pytest.raises(IndexOutOfRangeError):
            artifacts.remove(index)
        assert len(artifacts) == 2

    def test_remove(self, artifacts):
        """Remove returns the artifact and shifts the rest."""
        removed = artifacts.remove(0)
        assert removed.type == "task_list"
        assert artifacts.get(0).type == "review"

    def test_add_and_of_type(self, artifacts):
        """of_type filters by artifact type."""
        artifacts.add(ArtifactState("review", "c.md"))
        assert [a.path for a in artifacts.of_type("review")] == ["b.md", "c.md"]

    def test_is_index_error(self):
        """Bounds errors are IndexErrors."""
        assert issubclass(IndexOutOfRangeError, IndexError)
