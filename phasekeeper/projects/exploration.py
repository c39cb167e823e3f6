"""Exploration project type: research topics, summarize, finalize.

    Active --begin_summarizing--> Summarizing
        --complete_summarizing--> Finalizing
        --complete_finalization--> Completed
"""

from phasekeeper.state import phase as phase_ops
from phasekeeper.state.models import PhaseState
from phasekeeper.workflow.config import ProjectTypeConfig, ProjectTypeConfigBuilder

ACTIVE = "Active"
SUMMARIZING = "Summarizing"
FINALIZING = "Finalizing"
COMPLETED = "Completed"

EVENT_BEGIN_SUMMARIZING = "begin_summarizing"
EVENT_COMPLETE_SUMMARIZING = "complete_summarizing"
EVENT_COMPLETE_FINALIZATION = "complete_finalization"

EXPLORATION_METADATA_SCHEMA = {
    "type": "object",
    "properties": {
        "topics": {"type": "array", "items": {"type": "string"}},
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


def all_tasks_resolved(p) -> bool:
    """At least one research topic, and every topic completed or abandoned."""
    return p.tasks_resolved("exploration")


def all_summaries_approved(p) -> bool:
    if "exploration" not in p.phases:
        return False
    summaries = p.outputs("exploration").of_type("summary")
    return bool(summaries) and all(s.approved for s in summaries)


def all_finalization_tasks_complete(p) -> bool:
    """Every finalization task completed; abandoned tasks block completion."""
    return p.tasks_completed("finalization")


def initialize(p, initial_inputs: dict) -> None:
    now = p.record.created_at
    p.record.phases["exploration"] = PhaseState(
        created_at=now,
        inputs=list(initial_inputs.get("exploration", [])),
    )
    p.record.phases["finalization"] = PhaseState(
        created_at=now,
        inputs=list(initial_inputs.get("finalization", [])),
    )


def new_config() -> ProjectTypeConfig:
    return (
        ProjectTypeConfigBuilder("exploration")
        .with_phase(
            "exploration",
            start_state=ACTIVE,
            end_state=SUMMARIZING,
            outputs=["summary", "findings"],
            supports_tasks=True,
            metadata_schema=EXPLORATION_METADATA_SCHEMA,
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
            ACTIVE, SUMMARIZING, EVENT_BEGIN_SUMMARIZING,
            guard=all_tasks_resolved,
            guard_description="all tasks resolved",
            description="Research done - summarize findings",
        )
        .add_transition(
            SUMMARIZING, FINALIZING, EVENT_COMPLETE_SUMMARIZING,
            guard=all_summaries_approved,
            guard_description="all summaries approved",
            on_entry=lambda p: phase_ops.enable_phase(p.record, "finalization"),
            description="Summaries approved - finalize",
        )
        .add_transition(
            FINALIZING, COMPLETED, EVENT_COMPLETE_FINALIZATION,
            guard=all_finalization_tasks_complete,
            guard_description="all finalization tasks complete",
            description="Exploration complete",
        )
        .on_advance(ACTIVE, lambda p: EVENT_BEGIN_SUMMARIZING)
        .on_advance(SUMMARIZING, lambda p: EVENT_COMPLETE_SUMMARIZING)
        .on_advance(FINALIZING, lambda p: EVENT_COMPLETE_FINALIZATION)
        .with_prompt(ACTIVE, lambda p: "Research each topic. Complete or abandon every task before summarizing.")
        .with_prompt(SUMMARIZING, lambda p: "Write summary outputs and get each one approved.")
        .with_prompt(FINALIZING, lambda p: "Add a finalization task for each step (PR, cleanup) and complete them all.")
        .with_orchestrator_prompt(
            lambda p: "Exploration project: research topics as tasks, summarize the findings, then finalize."
        )
        .build()
    )
