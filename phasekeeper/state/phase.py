"""Phase status helpers.

Used by transition actions and by automatic phase status updates. Every
helper takes the data record, so it works on a bare ProjectState as well
as on a loaded Project's record. Unknown phases raise NotFoundError.
"""

from typing import Callable

from phasekeeper.state.collections import NotFoundError, PhaseCollection
from phasekeeper.state.models import ArtifactState, PhaseState, ProjectState, now_iso


def _phase(record: ProjectState, name: str) -> PhaseState:
    return PhaseCollection(record.phases).get(name)


def mark_phase_in_progress(record: ProjectState, name: str) -> bool:
    """Start a pending phase. Returns False (no change) for any other status."""
    phase = _phase(record, name)
    if phase.status != "pending":
        return False
    phase.status = "in_progress"
    phase.enabled = True
    phase.started_at = now_iso()
    return True


def mark_phase_completed(record: ProjectState, name: str) -> bool:
    """Complete a phase unless it was explicitly failed."""
    phase = _phase(record, name)
    if phase.status == "failed":
        return False
    phase.status = "completed"
    phase.completed_at = now_iso()
    return True


def mark_phase_failed(record: ProjectState, name: str) -> None:
    phase = _phase(record, name)
    phase.status = "failed"
    phase.failed_at = now_iso()


def mark_phase_skipped(record: ProjectState, name: str) -> None:
    phase = _phase(record, name)
    phase.status = "skipped"
    phase.enabled = False


def enable_phase(record: ProjectState, name: str) -> None:
    _phase(record, name).enabled = True


def increment_phase_iteration(record: ProjectState, name: str) -> int:
    """Bump the iteration counter; returns the new value."""
    phase = _phase(record, name)
    phase.iteration += 1
    return phase.iteration


def add_phase_input_from_output(
    record: ProjectState,
    source: str,
    target: str,
    artifact_type: str,
    match: Callable[[ArtifactState], bool] | None = None,
) -> ArtifactState:
    """
    Copy the latest matching output of one phase into another's inputs.

    Raises:
        NotFoundError: unknown phase, or no output of that type matches
    """
    source_phase = _phase(record, source)
    target_phase = _phase(record, target)

    for artifact in reversed(source_phase.outputs):
        if artifact.type == artifact_type and (match is None or match(artifact)):
            copied = ArtifactState.from_dict(artifact.to_dict())
            target_phase.inputs.append(copied)
            return copied

    raise NotFoundError("artifact", f"{artifact_type} in {source} outputs")
