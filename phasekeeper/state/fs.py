"""
Filesystem seam for persistence.

The engine only ever touches disk through an object with this shape, so
tests and embedders can substitute their own. Paths handed to a LocalFS
are relative to its root.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from phasekeeper.lib.config import EngineConfig, load_engine_config
from phasekeeper.lib.constants import LOCK_FILE


class FileSystem(Protocol):
    root: Path

    def read_file(self, path: str) -> bytes: ...

    def write_file(self, path: str, data: bytes) -> None: ...

    def rename(self, src: str, dst: str) -> None: ...

    def remove(self, path: str) -> None: ...

    def stat(self, path: str) -> os.stat_result: ...

    def exists(self, path: str) -> bool: ...


class LocalFS:
    """Plain local filesystem rooted at a directory."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def resolve(self, path: str) -> Path:
        return self.root / path

    def read_file(self, path: str) -> bytes:
        return self.resolve(path).read_bytes()

    def write_file(self, path: str, data: bytes) -> None:
        target = self.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())

    def rename(self, src: str, dst: str) -> None:
        os.replace(self.resolve(src), self.resolve(dst))

    def remove(self, path: str) -> None:
        self.resolve(path).unlink()

    def stat(self, path: str) -> os.stat_result:
        return self.resolve(path).stat()

    def exists(self, path: str) -> bool:
        return self.resolve(path).exists()


@dataclass
class ProjectContext:
    """Working root, engine config and filesystem for one invocation."""
    root: Path
    config: EngineConfig = field(default_factory=EngineConfig)
    fs: FileSystem = None

    def __post_init__(self):
        self.root = Path(self.root)
        if self.fs is None:
            self.fs = LocalFS(self.state_dir)

    @classmethod
    def create(cls, root: Path) -> "ProjectContext":
        """Build a context for a repository root, reading its engine.env."""
        return cls(root=Path(root), config=load_engine_config(root))

    @property
    def state_dir(self) -> Path:
        return self.root / self.config.state_dir

    @property
    def state_file(self) -> str:
        """State file path, relative to the filesystem root."""
        return self.config.state_file

    @property
    def lock_path(self) -> Path:
        return self.state_dir / LOCK_FILE
