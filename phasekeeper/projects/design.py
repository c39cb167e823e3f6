"""Design project type: one task per design document, then finalize.

    Active --complete_design--> Finalizing --complete_finalization--> Completed

A document task counts as approved once it is completed. Abandoned
documents are allowed, but at least one must be completed. Finalization
(moving documents, opening the PR) is tracked as tasks too, and every
one of them must be completed.
"""

from phasekeeper.state import phase as phase_ops
from phasekeeper.state.models import PhaseState
from phasekeeper.workflow.config import ProjectTypeConfig, ProjectTypeConfigBuilder

ACTIVE = "Active"
FINALIZING = "Finalizing"
COMPLETED = "Completed"

EVENT_COMPLETE_DESIGN = "complete_design"
EVENT_COMPLETE_FINALIZATION = "complete_finalization"

DESIGN_OUTPUT_TYPES = ("design", "adr", "architecture", "diagram", "spec")

DESIGN_METADATA_SCHEMA = {
    "type": "object",
    "properties": {
        "scope": {"type": "string"},
        "target_dir": {"type": "string"},
    },
    "additionalProperties": False,
}

FINALIZATION_METADATA_SCHEMA = {
    "type": "object",
    "properties": {
        "pr_url": {"type": "string"},
    },
    "additionalProperties": False,
}


# --- guards ---

def all_documents_approved(p) -> bool:
    """Every document task completed or abandoned, and at least one completed."""
    return p.tasks_resolved("design") and bool(p.completed_tasks("design"))


def all_finalization_tasks_complete(p) -> bool:
    return p.tasks_completed("finalization")


# --- setup ---

def initialize(p, initial_inputs: dict) -> None:
    now = p.record.created_at
    for name in ("design", "finalization"):
        p.record.phases[name] = PhaseState(
            created_at=now,
            inputs=list(initial_inputs.get(name, [])),
        )


def _count(tasks, status: str) -> int:
    return sum(1 for t in tasks if t.status == status)


def active_prompt(p) -> str:
    lines = [f"Design: {p.name}", f"Branch: {p.record.branch}"]
    tasks = list(p.tasks("design")) if "design" in p.phases else []
    if not tasks:
        lines.append("No documents planned yet. Add one task per design document.")
        return "\n".join(lines)

    lines.append(
        f"Documents: {len(tasks)} total, {_count(tasks, 'completed')} completed, "
        f"{_count(tasks, 'abandoned')} abandoned"
    )
    for t in tasks:
        lines.append(f"- {t.id} {t.name} ({t.status})")
    if all_documents_approved(p):
        lines.append("All documents approved. Ready to finalize.")
    else:
        open_count = sum(1 for t in tasks if t.status not in ("completed", "abandoned"))
        lines.append(f"Continue design work ({open_count} documents remaining).")
    return "\n".join(lines)


def finalizing_prompt(p) -> str:
    lines = [f"Design: {p.name}", "All documents approved. Move artifacts, open the PR, clean up."]
    tasks = list(p.tasks("finalization")) if "finalization" in p.phases else []
    if not tasks:
        lines.append("Add a finalization task for each step.")
    for t in tasks:
        mark = "[x]" if t.status == "completed" else "[ ]"
        lines.append(f"{mark} {t.name}")
    return "\n".join(lines)


def new_config() -> ProjectTypeConfig:
    return (
        ProjectTypeConfigBuilder("design")
        .with_phase(
            "design",
            start_state=ACTIVE,
            end_state=ACTIVE,
            outputs=DESIGN_OUTPUT_TYPES,
            supports_tasks=True,
            metadata_schema=DESIGN_METADATA_SCHEMA,
        )
        .with_phase(
            "finalization",
            start_state=FINALIZING,
            end_state=FINALIZING,
            outputs=["pr"],
            supports_tasks=True,
            metadata_schema=FINALIZATION_METADATA_SCHEMA,
        )
        .set_initial_state(ACTIVE)
        .with_initializer(initialize)
        .add_transition(
            ACTIVE, FINALIZING, EVENT_COMPLETE_DESIGN,
            guard=all_documents_approved,
            guard_description="all documents approved",
            on_entry=lambda p: phase_ops.enable_phase(p.record, "finalization"),
            description="Design approved - finalize",
        )
        .add_transition(
            FINALIZING, COMPLETED, EVENT_COMPLETE_FINALIZATION,
            guard=all_finalization_tasks_complete,
            guard_description="all finalization tasks complete",
            description="Design complete",
        )
        .on_advance(ACTIVE, lambda p: EVENT_COMPLETE_DESIGN)
        .on_advance(FINALIZING, lambda p: EVENT_COMPLETE_FINALIZATION)
        .with_prompt(ACTIVE, active_prompt)
        .with_prompt(FINALIZING, finalizing_prompt)
        .with_orchestrator_prompt(
            lambda p: "Design project: draft one document per task, then finalize. "
                      "Each task is complete once its document is approved."
        )
        .build()
    )
