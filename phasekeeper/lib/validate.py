"""
Schema validation for project state.

Two tiers:
- structural: the universal project_state schema, run on every load and save
- phase-scoped: artifact-type allow-lists and per-phase metadata schemas
  supplied by the project type

Fails hard with clear errors when data doesn't match. Validators never
mutate their input.
"""

import json
from pathlib import Path
from typing import Any, Iterable

import jsonschema

STRUCTURE_SCHEMA = "project_state"


class ValidationError(Exception):
    """Schema validation failed."""

    def __init__(self, schema_name: str, message: str, path: str = None):
        self.schema_name = schema_name
        self.path = path
        self.detail = message
        super().__init__(f"[{schema_name}] {message}" + (f" at {path}" if path else ""))


class MetadataValidationError(ValidationError):
    """Phase metadata does not match the schema its project type declares."""


class ArtifactTypeError(ValidationError):
    """Artifact type is not in the phase's allow-list."""


# Cache loaded schemas
_schema_cache: dict[str, dict] = {}


def _get_schemas_dir() -> Path:
    """Get path to the bundled schemas directory."""
    return Path(__file__).parent.parent / "schemas"


def _load_schema(schema_name: str) -> dict:
    """Load schema by name, with caching."""
    if schema_name not in _schema_cache:
        schema_path = _get_schemas_dir() / f"{schema_name}.schema.json"
        if not schema_path.exists():
            raise ValidationError(schema_name, f"Schema file not found: {schema_path}")
        _schema_cache[schema_name] = json.loads(schema_path.read_text())
    return _schema_cache[schema_name]


def _error_path(error: jsonschema.ValidationError) -> str:
    return ".".join(str(p) for p in error.absolute_path) if error.absolute_path else "(root)"


def validate(data: dict, schema_name: str) -> None:
    """
    Validate data against a bundled schema.

    Raises:
        ValidationError: If validation fails
    """
    schema = _load_schema(schema_name)

    try:
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as e:
        raise ValidationError(schema_name, e.message, _error_path(e)) from None


def validate_structure(record: Any) -> None:
    """
    Validate a project record against the universal structural schema.

    Accepts either the raw dict form or anything with a to_dict() method.
    Also enforces project-wide task ID uniqueness, which JSON Schema
    cannot express.

    Raises:
        ValidationError: On the first violation found
    """
    data = record.to_dict() if hasattr(record, "to_dict") else record
    validate(data, STRUCTURE_SCHEMA)

    seen: dict[str, str] = {}
    for phase_name, phase in data["phases"].items():
        for index, task in enumerate(phase.get("tasks", [])):
            task_id = task["id"]
            if task_id in seen:
                raise ValidationError(
                    STRUCTURE_SCHEMA,
                    f"duplicate task id '{task_id}' (already used in phase {seen[task_id]})",
                    f"phases.{phase_name}.tasks.{index}.id",
                )
            seen[task_id] = phase_name


def validate_metadata(metadata: dict | None, schema: dict | None, phase: str = "") -> None:
    """
    Validate a phase metadata map against a JSON Schema.

    Empty metadata is always valid. Non-empty metadata with no schema is
    rejected: a phase only carries metadata its project type describes.

    Raises:
        MetadataValidationError: If metadata doesn't fit the schema
    """
    schema_name = f"{phase} metadata" if phase else "metadata"

    if not metadata:
        return

    if schema is None:
        keys = ", ".join(sorted(str(k) for k in metadata))
        raise MetadataValidationError(
            schema_name, f"metadata present but no schema is configured (keys: {keys})"
        )

    try:
        jsonschema.validate(instance=metadata, schema=schema)
    except jsonschema.SchemaError as e:
        raise MetadataValidationError(schema_name, f"invalid metadata schema: {e.message}") from None
    except jsonschema.ValidationError as e:
        raise MetadataValidationError(schema_name, e.message, _error_path(e)) from None


def validate_artifact_types(
    artifacts: Iterable[Any],
    allowed: Iterable[str],
    phase: str,
    category: str,
) -> None:
    """
    Check artifact types against an allow-list.

    An empty allow-list permits every type. category is "input" or "output".

    Raises:
        ArtifactTypeError: On the first artifact with a disallowed type
    """
    allowed = list(allowed)
    if not allowed:
        return

    allowed_set = set(allowed)
    for index, artifact in enumerate(artifacts):
        artifact_type = artifact["type"] if isinstance(artifact, dict) else artifact.type
        if artifact_type not in allowed_set:
            raise ArtifactTypeError(
                f"{phase} {category}s",
                f"{category} artifact type '{artifact_type}' not allowed (allowed: {', '.join(allowed)})",
                f"phases.{phase}.{category}s.{index}",
            )
