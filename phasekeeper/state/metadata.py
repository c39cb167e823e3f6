"""Typed accessors over free-form metadata maps.

Metadata values are whatever YAML can hold: str, int, float, bool, list,
dict, or None. Accessors return (value, ok) instead of raising on a
missing key or a type mismatch, so guards can use them directly.
"""

from typing import Any, Union

MetadataValue = Union[str, int, float, bool, list, dict, None]


def _get_typed(metadata: dict | None, key: str, kinds: tuple) -> tuple[Any, bool]:
    if not metadata or key not in metadata:
        return None, False
    value = metadata[key]
    # bool is an int subclass; never let True pass for a number
    if isinstance(value, bool) and bool not in kinds:
        return None, False
    if not isinstance(value, kinds):
        return None, False
    return value, True


def get_str(metadata: dict | None, key: str) -> tuple[str | None, bool]:
    return _get_typed(metadata, key, (str,))


def get_bool(metadata: dict | None, key: str) -> tuple[bool | None, bool]:
    return _get_typed(metadata, key, (bool,))


def get_int(metadata: dict | None, key: str) -> tuple[int | None, bool]:
    return _get_typed(metadata, key, (int,))


def get_float(metadata: dict | None, key: str) -> tuple[float | None, bool]:
    """Numbers of either kind, widened to float."""
    value, ok = _get_typed(metadata, key, (int, float))
    return (float(value), True) if ok else (None, False)


def get_list(metadata: dict | None, key: str) -> tuple[list | None, bool]:
    return _get_typed(metadata, key, (list,))


def get_map(metadata: dict | None, key: str) -> tuple[dict | None, bool]:
    return _get_typed(metadata, key, (dict,))


def bool_or_false(metadata: dict | None, key: str) -> bool:
    """Read a flag, treating absence or a non-bool value as False."""
    value, ok = get_bool(metadata, key)
    return bool(value) if ok else False
