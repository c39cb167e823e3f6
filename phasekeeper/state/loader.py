"""
Load, save and create projects.

Load:   read -> parse -> structural validation -> type lookup ->
        machine at the persisted state -> phase validation
Save:   sync statechart -> bump updated_at -> structural + phase/metadata
        validation -> serialize -> atomic write
Create: detect type -> build record -> initialize -> machine -> save

Every failure is raised as ProjectStateError naming the stage, with the
underlying exception chained. Nothing reaches disk unless the whole
record validates.
"""

import logging
from contextlib import contextmanager, nullcontext
from typing import TYPE_CHECKING

import yaml

from phasekeeper.lib.constants import (
    BRANCH_TYPE_PREFIXES,
    DEFAULT_PROJECT_TYPE,
    MAX_PROJECT_NAME_LEN,
)
from phasekeeper.lib.locking import acquire_lock
from phasekeeper.lib.validate import MetadataValidationError, ValidationError, validate_structure
from phasekeeper.state.backends import YAMLBackend
from phasekeeper.state.fs import ProjectContext
from phasekeeper.state.models import ProjectState, StatechartState, now_iso
from phasekeeper.state.phase import mark_phase_in_progress
from phasekeeper.state.project import Project

if TYPE_CHECKING:
    from phasekeeper.state.backends import Backend
    from phasekeeper.workflow.registry import Registry

logger = logging.getLogger(__name__)

STAGE_READ = "failed to read state"
STAGE_PARSE = "failed to parse state"
STAGE_STRUCTURE = "structural validation failed"
STAGE_TYPE = "unknown project type"
STAGE_STATECHART = "invalid statechart state"
STAGE_PHASES = "phase validation failed"
STAGE_METADATA = "metadata validation failed"
STAGE_SERIALIZE = "failed to serialize state"
STAGE_WRITE = "failed to write state"
STAGE_INIT = "failed to initialize project"


class ProjectStateError(Exception):
    """A load/save/create stage failed. The cause is chained."""

    def __init__(self, stage: str, cause, path: str | None = None):
        self.stage = stage
        self.path = path
        super().__init__(f"{stage}: {cause}")


class UnknownProjectTypeError(ProjectStateError):
    """record.type has no registered config."""

    def __init__(self, project_type: str, registered: list[str], path: str | None = None):
        self.project_type = project_type
        known = ", ".join(registered) or "none"
        super().__init__(STAGE_TYPE, f"{project_type} (registered: {known})", path)


def backend_for(ctx: ProjectContext) -> YAMLBackend:
    """The YAML state file backend for a context."""
    return YAMLBackend(ctx.fs, ctx.state_file)


def _as_backend(source) -> "Backend":
    return backend_for(source) if isinstance(source, ProjectContext) else source


def _lookup_config(registry: "Registry", project_type: str, path: str):
    config, found = registry.get(project_type)
    if not found:
        raise UnknownProjectTypeError(project_type, registry.names(), path)
    return config


def load(source, registry: "Registry") -> Project:
    """
    Load a project from a ProjectContext or a Backend.

    The persisted current_state is trusted as-is, but must be a state
    the project type's graph knows. Phase metadata schemas are not
    checked here, so state written under an older schema still loads.

    Raises:
        ProjectStateError: stage-tagged failure
        UnknownProjectTypeError: record.type not registered
    """
    backend = _as_backend(source)
    path = backend.location

    try:
        data = backend.load()
    except (yaml.YAMLError, ValueError) as e:
        raise ProjectStateError(STAGE_PARSE, e, path) from e
    except OSError as e:
        raise ProjectStateError(STAGE_READ, e, path) from e

    try:
        validate_structure(data)
    except ValidationError as e:
        raise ProjectStateError(STAGE_STRUCTURE, e, path) from e

    record = ProjectState.from_dict(data)
    config = _lookup_config(registry, record.type, path)

    current = record.statechart.current_state
    if current not in config.reachable_states():
        raise ProjectStateError(
            STAGE_STATECHART,
            f"state {current} is not reachable in project type {record.type}",
            path,
        )

    project = Project(record, config, backend)
    project.machine = config.build_machine(project, current)

    try:
        config.validate(record, check_metadata=False)
    except ValidationError as e:
        raise ProjectStateError(STAGE_PHASES, e, path) from e

    logger.debug(f"[STATE] loaded {record.name} at {current} from {path}")
    return project


def save(project: Project, backend: "Backend | None" = None) -> None:
    """
    Validate the whole record, then write it atomically.

    On any failure the stored state is left exactly as it was.

    Raises:
        ProjectStateError: stage-tagged failure
    """
    backend = backend or project.backend
    if backend is None:
        raise ValueError(f"project {project.name} has no backend to save to")
    path = backend.location
    record = project.record

    now = now_iso()
    if project.machine is not None:
        record.statechart.current_state = project.machine.state
        record.statechart.updated_at = now
    record.updated_at = now

    data = record.to_dict()
    try:
        validate_structure(data)
    except ValidationError as e:
        raise ProjectStateError(STAGE_STRUCTURE, e, path) from e

    try:
        project.config.validate(record, check_metadata=True)
    except MetadataValidationError as e:
        raise ProjectStateError(STAGE_METADATA, e, path) from e
    except ValidationError as e:
        raise ProjectStateError(STAGE_PHASES, e, path) from e

    try:
        backend.save(data)
    except yaml.YAMLError as e:
        raise ProjectStateError(STAGE_SERIALIZE, e, path) from e
    except OSError as e:
        raise ProjectStateError(STAGE_WRITE, e, path) from e

    project.backend = backend
    logger.info(f"[STATE] saved {record.name} at {record.statechart.current_state}")


def detect_project_type(branch: str) -> str:
    """Project type implied by a branch name prefix."""
    for prefix, project_type in BRANCH_TYPE_PREFIXES.items():
        if branch.startswith(prefix):
            return project_type
    return DEFAULT_PROJECT_TYPE


def generate_project_name(description: str) -> str:
    """
    Kebab-case name from a description.

    Takes the first 50 characters, lowercases ASCII letters, turns runs of
    spaces/underscores into one hyphen and drops everything else.
    """
    result = []
    for ch in description[:MAX_PROJECT_NAME_LEN]:
        if ch in (" ", "_"):
            if result and result[-1] != "-":
                result.append("-")
        elif ch.isascii() and (ch.islower() or ch.isdigit()):
            result.append(ch)
        elif ch.isascii() and ch.isupper():
            result.append(ch.lower())
    return "".join(result).rstrip("-")


def create(
    source,
    registry: "Registry",
    branch: str,
    description: str,
    project_type: str | None = None,
    initial_inputs: dict | None = None,
) -> Project:
    """
    Create, initialize and save a new project.

    project_type overrides branch-prefix detection. initial_inputs maps
    phase name -> list of ArtifactState handed to the type's initializer.

    Raises:
        ValueError: empty branch
        UnknownProjectTypeError: type not registered
        ProjectStateError: state already exists, initializer failed, or save failed
    """
    if not branch:
        raise ValueError("branch name required")

    backend = _as_backend(source)
    path = backend.location
    project_type = project_type or detect_project_type(branch)
    config = _lookup_config(registry, project_type, path)

    if backend.exists():
        raise ProjectStateError(STAGE_INIT, f"project state already exists at {path}", path)

    name = generate_project_name(description) or generate_project_name(branch.rsplit("/", 1)[-1])

    now = now_iso()
    record = ProjectState(
        name=name,
        type=project_type,
        branch=branch,
        description=description,
        created_at=now,
        updated_at=now,
        phases={},
        statechart=StatechartState(current_state=config.initial_state, updated_at=now),
    )
    project = Project(record, config, backend)

    try:
        config.initialize(project, initial_inputs)
    except Exception as e:
        raise ProjectStateError(STAGE_INIT, e, path) from e

    project.machine = config.build_machine(project, config.initial_state)

    for phase_name, pc in config.phases.items():
        if pc.start_state == config.initial_state and phase_name in record.phases:
            mark_phase_in_progress(record, phase_name)

    save(project, backend)
    logger.info(f"[STATE] created {project_type} project {name} on {branch}")
    return project


@contextmanager
def transaction(ctx: ProjectContext, registry: "Registry"):
    """
    Lock, load, yield the project, save on clean exit.

    An exception inside the block propagates and nothing is saved.

    Usage:
        with transaction(ctx, registry) as project:
            project.advance()
    """
    if ctx.config.use_lock:
        lock = acquire_lock(ctx.lock_path, ctx.config.lock_timeout, f"state lock for {ctx.root}")
    else:
        lock = nullcontext()

    with lock:
        project = load(ctx, registry)
        yield project
        save(project)
