"""Standard project type: plan, implement, review, finalize.

    PlanningActive --complete_planning--> ImplementationPlanning
        --tasks_approved--> ImplementationExecuting
        --all_tasks_complete--> ReviewActive
    ReviewActive branches on the latest approved review's assessment:
        pass --review_pass--> FinalizeDocumentation
        fail --review_fail--> ImplementationPlanning (rework)
    FinalizeDocumentation --documentation_done--> FinalizeChecks
        --checks_done--> FinalizeDelete --project_delete--> NoProject
"""

from phasekeeper.lib.constants import NO_PROJECT
from phasekeeper.state import metadata as meta
from phasekeeper.state import phase as phase_ops
from phasekeeper.state.models import PhaseState
from phasekeeper.workflow.branch import branch_on, when
from phasekeeper.workflow.config import ProjectTypeConfig, ProjectTypeConfigBuilder

# States
PLANNING_ACTIVE = "PlanningActive"
IMPLEMENTATION_PLANNING = "ImplementationPlanning"
IMPLEMENTATION_EXECUTING = "ImplementationExecuting"
REVIEW_ACTIVE = "ReviewActive"
FINALIZE_DOCUMENTATION = "FinalizeDocumentation"
FINALIZE_CHECKS = "FinalizeChecks"
FINALIZE_DELETE = "FinalizeDelete"

# Events
EVENT_COMPLETE_PLANNING = "complete_planning"
EVENT_TASKS_APPROVED = "tasks_approved"
EVENT_ALL_TASKS_COMPLETE = "all_tasks_complete"
EVENT_REVIEW_PASS = "review_pass"
EVENT_REVIEW_FAIL = "review_fail"
EVENT_DOCUMENTATION_DONE = "documentation_done"
EVENT_CHECKS_DONE = "checks_done"
EVENT_PROJECT_DELETE = "project_delete"

PHASES = ("planning", "implementation", "review", "finalize")

IMPLEMENTATION_METADATA_SCHEMA = {
    "type": "object",
    "properties": {
        "tasks_approved": {"type": "boolean"},
    },
    "additionalProperties": False,
}

REVIEW_METADATA_SCHEMA = {
    "type": "object",
    "properties": {
        "notes": {"type": "string"},
    },
    "additionalProperties": False,
}

FINALIZE_METADATA_SCHEMA = {
    "type": "object",
    "properties": {
        "project_deleted": {"type": "boolean"},
        "pr_url": {"type": "string"},
        "documentation_updates": {"type": "array", "items": {"type": "string"}},
    },
    "additionalProperties": False,
}


# --- guards ---

def planning_approved(p) -> bool:
    return p.phase_output_approved("planning", "task_list")


def tasks_approved(p) -> bool:
    return p.phase_metadata_bool("implementation", "tasks_approved")


def implementation_done(p) -> bool:
    return p.tasks_resolved("implementation")


def latest_review_approved(p) -> bool:
    return p.latest_output("review", "review", approved_only=True) is not None


def project_deleted(p) -> bool:
    return p.phase_metadata_bool("finalize", "project_deleted")


def review_assessment(p) -> str:
    """assessment of the latest approved review, or "" when there is none."""
    review = p.latest_output("review", "review", approved_only=True)
    if review is None:
        return ""
    value, ok = meta.get_str(review.metadata, "assessment")
    return value if ok else ""


# --- actions ---

def restart_review(p) -> None:
    """A review that failed before starts a new iteration when re-entered."""
    review = p.phase("review")
    if review.status == "failed":
        review.status = "in_progress"
        review.iteration += 1


def rework_implementation(p) -> None:
    """Send implementation back for another round with the failed review as input."""
    phase_ops.increment_phase_iteration(p.record, "implementation")
    phase_ops.add_phase_input_from_output(
        p.record,
        "review",
        "implementation",
        "review",
        match=lambda a: a.approved and a.metadata.get("assessment") == "fail",
    )
    impl = p.phase("implementation")
    impl.status = "in_progress"
    impl.completed_at = None
    impl.metadata["tasks_approved"] = False


# --- setup ---

def initialize(p, initial_inputs: dict) -> None:
    unknown = sorted(set(initial_inputs) - set(PHASES))
    if unknown:
        raise ValueError(f"initial inputs for unknown phases: {', '.join(unknown)}")

    now = p.record.created_at
    for name in PHASES:
        p.record.phases[name] = PhaseState(
            status="pending",
            enabled=False,
            created_at=now,
            inputs=list(initial_inputs.get(name, [])),
        )


PROMPTS = {
    PLANNING_ACTIVE: "Gather context and produce a task list. Advance once the task_list output is approved.",
    IMPLEMENTATION_PLANNING: "Break the plan into tasks. Set implementation.tasks_approved once they are agreed.",
    IMPLEMENTATION_EXECUTING: "Work through the tasks. Advance when every task is completed or abandoned.",
    REVIEW_ACTIVE: "Review the implementation. Add a review output with assessment pass or fail and approve it.",
    FINALIZE_DOCUMENTATION: "Update documentation affected by the change.",
    FINALIZE_CHECKS: "Run final checks before cleanup.",
    FINALIZE_DELETE: "Delete project state and set finalize.project_deleted.",
}


def _prompt(state: str):
    def generate(p) -> str:
        text = PROMPTS[state]
        iteration = p.phase("implementation").iteration if "implementation" in p.phases else 1
        if state.startswith("Implementation") and iteration > 1:
            text += f" (rework iteration {iteration})"
        return text
    return generate


def new_config() -> ProjectTypeConfig:
    builder = (
        ProjectTypeConfigBuilder("standard")
        .with_phase(
            "planning",
            start_state=PLANNING_ACTIVE,
            end_state=PLANNING_ACTIVE,
            inputs=["context"],
            outputs=["task_list"],
        )
        .with_phase(
            "implementation",
            start_state=IMPLEMENTATION_PLANNING,
            end_state=IMPLEMENTATION_EXECUTING,
            supports_tasks=True,
            metadata_schema=IMPLEMENTATION_METADATA_SCHEMA,
        )
        .with_phase(
            "review",
            start_state=REVIEW_ACTIVE,
            end_state=REVIEW_ACTIVE,
            outputs=["review"],
            metadata_schema=REVIEW_METADATA_SCHEMA,
        )
        .with_phase(
            "finalize",
            start_state=FINALIZE_DOCUMENTATION,
            end_state=FINALIZE_DELETE,
            metadata_schema=FINALIZE_METADATA_SCHEMA,
        )
        .set_initial_state(PLANNING_ACTIVE)
        .with_initializer(initialize)
        .add_transition(
            PLANNING_ACTIVE, IMPLEMENTATION_PLANNING, EVENT_COMPLETE_PLANNING,
            guard=planning_approved,
            guard_description="task_list output approved",
            description="Planning complete - start implementation planning",
        )
        .add_transition(
            IMPLEMENTATION_PLANNING, IMPLEMENTATION_EXECUTING, EVENT_TASKS_APPROVED,
            guard=tasks_approved,
            guard_description="implementation tasks approved",
            description="Tasks approved - start execution",
        )
        .add_transition(
            IMPLEMENTATION_EXECUTING, REVIEW_ACTIVE, EVENT_ALL_TASKS_COMPLETE,
            guard=implementation_done,
            guard_description="all implementation tasks completed or abandoned",
            on_entry=restart_review,
            description="Implementation done - start review",
        )
        .add_branch(
            REVIEW_ACTIVE,
            branch_on(review_assessment),
            when(
                "pass", EVENT_REVIEW_PASS, FINALIZE_DOCUMENTATION,
                guard=latest_review_approved,
                guard_description="latest review approved",
                description="Review passed - proceed to finalization",
            ),
            when(
                "fail", EVENT_REVIEW_FAIL, IMPLEMENTATION_PLANNING,
                guard=latest_review_approved,
                guard_description="latest review approved",
                on_entry=rework_implementation,
                description="Review failed - return to implementation for rework",
                failed_phase="review",
            ),
        )
        .add_transition(
            FINALIZE_DOCUMENTATION, FINALIZE_CHECKS, EVENT_DOCUMENTATION_DONE,
            description="Documentation updated",
        )
        .add_transition(
            FINALIZE_CHECKS, FINALIZE_DELETE, EVENT_CHECKS_DONE,
            description="Final checks passed",
        )
        .add_transition(
            FINALIZE_DELETE, NO_PROJECT, EVENT_PROJECT_DELETE,
            guard=project_deleted,
            guard_description="project state deleted",
            description="Project cleaned up",
        )
        .on_advance(PLANNING_ACTIVE, lambda p: EVENT_COMPLETE_PLANNING)
        .on_advance(IMPLEMENTATION_PLANNING, lambda p: EVENT_TASKS_APPROVED)
        .on_advance(IMPLEMENTATION_EXECUTING, lambda p: EVENT_ALL_TASKS_COMPLETE)
        .on_advance(FINALIZE_DOCUMENTATION, lambda p: EVENT_DOCUMENTATION_DONE)
        .on_advance(FINALIZE_CHECKS, lambda p: EVENT_CHECKS_DONE)
        .on_advance(FINALIZE_DELETE, lambda p: EVENT_PROJECT_DELETE)
        .with_orchestrator_prompt(
            lambda p: "Standard project: planning, implementation, review, finalize. "
                      "A failed review sends work back to implementation."
        )
    )
    for state in PROMPTS:
        builder.with_prompt(state, _prompt(state))
    return builder.build()
