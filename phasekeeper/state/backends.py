"""
Storage backends for the project record.

A backend moves the plain dict form of a record to and from storage. It
does not validate; the loader validates before every save and after every
load.
"""

import copy
import datetime
import logging
from typing import Protocol

import yaml

from phasekeeper.state.fs import FileSystem

logger = logging.getLogger(__name__)

TEMP_SUFFIX = ".tmp"


class Backend(Protocol):
    @property
    def location(self) -> str: ...

    def load(self) -> dict: ...

    def save(self, data: dict) -> None: ...

    def exists(self) -> bool: ...

    def delete(self) -> None: ...


def normalize_timestamps(value):
    """Turn YAML-native datetimes back into ISO strings, recursively.

    Hand-edited state files may carry unquoted timestamps, which
    yaml.safe_load turns into datetime objects.
    """
    if isinstance(value, dict):
        return {k: normalize_timestamps(v) for k, v in value.items()}
    if isinstance(value, list):
        return [normalize_timestamps(v) for v in value]
    if isinstance(value, (datetime.datetime, datetime.date)):
        return value.isoformat()
    return value


class YAMLBackend:
    """YAML file behind a FileSystem, replaced atomically on every save."""

    def __init__(self, fs: FileSystem, path: str):
        self.fs = fs
        self.path = path

    @property
    def location(self) -> str:
        return str(self.fs.root / self.path)

    @property
    def temp_path(self) -> str:
        return self.path + TEMP_SUFFIX

    def load(self) -> dict:
        """Read and parse the state file.

        Raises:
            FileNotFoundError: no state file exists
            yaml.YAMLError: malformed YAML
            ValueError: the document is not a mapping
        """
        raw = self.fs.read_file(self.path)
        data = yaml.safe_load(raw)
        if not isinstance(data, dict):
            raise ValueError(f"expected a mapping at top level of {self.location}, got {type(data).__name__}")
        return normalize_timestamps(data)

    def serialize(self, data: dict) -> bytes:
        return yaml.safe_dump(data, sort_keys=False, default_flow_style=False, allow_unicode=True).encode("utf-8")

    def save(self, data: dict) -> None:
        """Write to a sibling temp file, then rename over the real path."""
        self.write(self.serialize(data))

    def write(self, payload: bytes) -> None:
        try:
            self.fs.write_file(self.temp_path, payload)
            self.fs.rename(self.temp_path, self.path)
        except OSError:
            if self.fs.exists(self.temp_path):
                try:
                    self.fs.remove(self.temp_path)
                except OSError as cleanup_error:
                    logger.warning(f"[STATE] Could not remove temp file {self.temp_path}: {cleanup_error}")
            raise

    def exists(self) -> bool:
        return self.fs.exists(self.path)

    def delete(self) -> None:
        self.fs.remove(self.path)


class MemoryBackend:
    """In-process backend; stores deep copies so callers can't alias state."""

    def __init__(self, data: dict | None = None):
        self._data = copy.deepcopy(data) if data is not None else None
        self.saves = 0

    @property
    def location(self) -> str:
        return "<memory>"

    def load(self) -> dict:
        if self._data is None:
            raise FileNotFoundError("no state stored in memory backend")
        return copy.deepcopy(self._data)

    def save(self, data: dict) -> None:
        self._data = copy.deepcopy(data)
        self.saves += 1

    def exists(self) -> bool:
        return self._data is not None

    def delete(self) -> None:
        if self._data is None:
            raise FileNotFoundError("no state stored in memory backend")
        self._data = None
