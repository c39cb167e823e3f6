"""Breakdown project type: decompose a body of work into publishable work units.

    Active --begin_publishing--> Publishing --complete_breakdown--> Completed

Each work unit is a task in the single breakdown phase. A unit's spec is a
work_unit_spec output linked through the task's artifact_path metadata.
Units may depend on each other through a dependencies list of task IDs;
the dependency graph must be acyclic and only reference completed units.
Publishing marks each completed unit published (optionally with its
github_issue_url).
"""

import logging

from phasekeeper.state import metadata as meta
from phasekeeper.state.models import PhaseState
from phasekeeper.workflow.config import ProjectTypeConfig, ProjectTypeConfigBuilder

logger = logging.getLogger(__name__)

ACTIVE = "Active"
PUBLISHING = "Publishing"
COMPLETED = "Completed"

EVENT_BEGIN_PUBLISHING = "begin_publishing"
EVENT_COMPLETE_BREAKDOWN = "complete_breakdown"

BREAKDOWN_METADATA_SCHEMA = {
    "type": "object",
    "properties": {
        "labels": {"type": "array", "items": {"type": "string"}},
        "milestone": {"type": "string"},
    },
    "additionalProperties": False,
}


class WorkUnitError(ValueError):
    """A work unit can't be completed as it stands."""


def _tasks(p) -> list:
    return list(p.tasks("breakdown")) if "breakdown" in p.phases else []


def task_dependencies(task) -> list[str]:
    """String entries of a task's dependencies list; anything else is ignored."""
    deps, ok = meta.get_list(task.metadata, "dependencies")
    if not ok:
        return []
    return [d for d in deps if isinstance(d, str)]


def is_published(task) -> bool:
    return meta.bool_or_false(task.metadata, "published")


# --- guards ---

def all_work_units_approved(p) -> bool:
    """Every unit completed or abandoned, and at least one completed."""
    return p.tasks_resolved("breakdown") and bool(p.completed_tasks("breakdown"))


def dependencies_valid(p) -> bool:
    """
    Dependencies among completed units form a DAG over completed units.

    Abandoned and unfinished units are ignored. A reference to anything
    but a completed unit is invalid, as is any cycle (a unit depending on
    itself included). No dependencies at all is valid.
    """
    if "breakdown" not in p.phases:
        return False

    completed = p.completed_tasks("breakdown")
    ids = {t.id for t in completed}
    graph = {t.id: task_dependencies(t) for t in completed}

    for deps in graph.values():
        if any(dep not in ids for dep in deps):
            return False

    visiting: set[str] = set()
    done: set[str] = set()

    def has_cycle(task_id: str) -> bool:
        visiting.add(task_id)
        for dep in graph[task_id]:
            if dep in visiting:
                return True
            if dep not in done and has_cycle(dep):
                return True
        visiting.discard(task_id)
        done.add(task_id)
        return False

    return not any(task_id not in done and has_cycle(task_id) for task_id in graph)


def ready_to_publish(p) -> bool:
    return all_work_units_approved(p) and dependencies_valid(p)


def all_work_units_published(p) -> bool:
    """At least one completed unit, and every completed unit published."""
    completed = p.completed_tasks("breakdown")
    return bool(completed) and all(is_published(t) for t in completed)


# --- work unit lifecycle ---

def complete_work_unit(p, task_id: str):
    """
    Complete a work unit and approve the spec it links to.

    The task's artifact_path must name an output of the breakdown phase.

    Raises:
        NotFoundError: unknown task
        WorkUnitError: missing artifact_path, or no output at that path
    """
    task = p.get_task(task_id)
    path, ok = meta.get_str(task.metadata, "artifact_path")
    if not ok or not path:
        raise WorkUnitError(f"task {task_id} has no artifact_path in metadata - link a spec before completing")

    spec = next((a for a in p.outputs("breakdown") if a.path == path), None)
    if spec is None:
        raise WorkUnitError(f"artifact not found at {path} - add the spec before completing task {task_id}")

    spec.approved = True
    p.set_task_status(task_id, "completed")
    logger.info(f"[BREAKDOWN] {p.name}: work unit {task_id} completed, spec {path} approved")
    return task


def mark_published(p, task_id: str, issue_url: str = ""):
    task = p.get_task(task_id)
    task.metadata["published"] = True
    if issue_url:
        task.metadata["github_issue_url"] = issue_url
    return task


# --- setup ---

def initialize(p, initial_inputs: dict) -> None:
    p.record.phases["breakdown"] = PhaseState(
        created_at=p.record.created_at,
        inputs=list(initial_inputs.get("breakdown", [])),
    )


def active_prompt(p) -> str:
    lines = [f"Breakdown: {p.name}", f"Branch: {p.record.branch}"]
    if p.record.description:
        lines.append(f"Description: {p.record.description}")

    tasks = _tasks(p)
    if not tasks:
        lines.append("No work units identified yet. Create one task per work unit before adding specs.")
        return "\n".join(lines)

    counts = {}
    for t in tasks:
        counts[t.status] = counts.get(t.status, 0) + 1
    summary = ", ".join(f"{status}: {n}" for status, n in sorted(counts.items()))
    lines.append(f"Work units: {len(tasks)} ({summary})")

    for t in tasks:
        lines.append(f"- {t.id} {t.name} ({t.status})")
        deps = task_dependencies(t)
        if deps:
            lines.append(f"    depends on: {', '.join(deps)}")

    if ready_to_publish(p):
        lines.append("All work units approved and dependencies valid. Ready to publish.")
    elif not all_work_units_approved(p):
        remaining = sum(1 for t in tasks if t.status not in ("completed", "abandoned"))
        lines.append(f"Continue breakdown work ({remaining} work units remaining).")
    else:
        lines.append("Dependency check failed: look for cycles or references to unfinished units.")
    return "\n".join(lines)


def publishing_prompt(p) -> str:
    completed = p.completed_tasks("breakdown")
    published = [t for t in completed if is_published(t)]
    lines = [
        f"Breakdown: {p.name}",
        "Publish each work unit as an issue, in dependency order.",
        f"Published: {len(published)} of {len(completed)}",
    ]
    for t in completed:
        if is_published(t):
            url, _ = meta.get_str(t.metadata, "github_issue_url")
            lines.append(f"[x] {t.id} {t.name}" + (f" {url}" if url else ""))
        else:
            lines.append(f"[ ] {t.id} {t.name}")
    return "\n".join(lines)


def new_config() -> ProjectTypeConfig:
    return (
        ProjectTypeConfigBuilder("breakdown")
        .with_phase(
            "breakdown",
            start_state=ACTIVE,
            end_state=PUBLISHING,
            outputs=["work_unit_spec"],
            supports_tasks=True,
            metadata_schema=BREAKDOWN_METADATA_SCHEMA,
        )
        .set_initial_state(ACTIVE)
        .with_initializer(initialize)
        .add_transition(
            ACTIVE, PUBLISHING, EVENT_BEGIN_PUBLISHING,
            guard=ready_to_publish,
            guard_description="all work units approved and dependencies valid",
            description="Work units approved - publish them",
        )
        .add_transition(
            PUBLISHING, COMPLETED, EVENT_COMPLETE_BREAKDOWN,
            guard=all_work_units_published,
            guard_description="all work units published",
            description="Breakdown complete",
        )
        .on_advance(ACTIVE, lambda p: EVENT_BEGIN_PUBLISHING)
        .on_advance(PUBLISHING, lambda p: EVENT_COMPLETE_BREAKDOWN)
        .with_prompt(ACTIVE, active_prompt)
        .with_prompt(PUBLISHING, publishing_prompt)
        .with_orchestrator_prompt(
            lambda p: "Breakdown project: split the work into units with specs and dependencies, "
                      "then publish every completed unit as an issue."
        )
        .build()
    )
