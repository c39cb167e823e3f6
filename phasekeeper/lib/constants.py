"""Shared constants for the state engine."""

import re

# Identifier validation (mirrored in schemas/project_state.schema.json)
PROJECT_NAME_PATTERN = re.compile(r'^[a-z0-9]([a-z0-9-]*[a-z0-9])?$')
PROJECT_TYPE_PATTERN = re.compile(r'^[a-z0-9]+(-[a-z0-9]+)*$')
PHASE_NAME_PATTERN = re.compile(r'^[a-z][a-z0-9_]*$')
TASK_ID_PATTERN = re.compile(r'^[0-9]{3}$')

MAX_PROJECT_NAME_LEN = 50

# Gap numbering for task IDs: 010, 020, ... leaves room for 015
TASK_ID_GAP = 10
MAX_TASK_ID = 990

PHASE_STATUSES = ("pending", "in_progress", "completed", "failed", "skipped")
TASK_STATUSES = ("pending", "in_progress", "needs_review", "completed", "abandoned", "failed")
TASK_RESOLVED_STATUSES = ("completed", "abandoned")

AGENT_ROLES = (
    "implementer",
    "architect",
    "reviewer",
    "planner",
    "researcher",
    "decomposer",
    "orchestrator",
)

# Shared terminal state used by project types that tear themselves down
NO_PROJECT = "NoProject"

# Filesystem layout, relative to the repository root
DEFAULT_STATE_DIR = ".phasekeeper"
DEFAULT_STATE_FILE = "project/state.yaml"
ENGINE_CONFIG_FILE = "engine.env"
LOCK_FILE = "locks/state.lock"
DEFAULT_LOCK_TIMEOUT = 30

# Branch prefix -> project type
BRANCH_TYPE_PREFIXES = {
    "explore/": "exploration",
    "design/": "design",
    "breakdown/": "breakdown",
}
DEFAULT_PROJECT_TYPE = "standard"
