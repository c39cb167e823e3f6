"""Project-type registry.

A Registry is an explicit value, built at startup and passed to load()
and create(). Registering the same name twice, or under a name a record
could never carry, is a programming error and fails immediately.
"""

import logging

from phasekeeper.lib.constants import PROJECT_TYPE_PATTERN
from phasekeeper.workflow.config import ProjectTypeConfig

logger = logging.getLogger(__name__)


class DuplicateRegistrationError(RuntimeError):
    """A project type name was registered twice."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"project type already registered: {name}")


class Registry:
    """Maps project type name -> ProjectTypeConfig."""

    def __init__(self):
        self._configs: dict[str, ProjectTypeConfig] = {}

    def register(self, name: str, config: ProjectTypeConfig) -> None:
        if not PROJECT_TYPE_PATTERN.match(name):
            raise ValueError(f"invalid project type name: {name!r} (must be kebab-case)")
        if name in self._configs:
            raise DuplicateRegistrationError(name)
        self._configs[name] = config
        logger.debug(f"[REGISTRY] registered project type {name}")

    def get(self, name: str) -> tuple[ProjectTypeConfig | None, bool]:
        """Look up a config; returns (config, found)."""
        config = self._configs.get(name)
        return config, config is not None

    def names(self) -> list[str]:
        return sorted(self._configs)

    def __contains__(self, name: object) -> bool:
        return name in self._configs

    def __len__(self) -> int:
        return len(self._configs)


def default_registry() -> Registry:
    """A fresh registry with every shipped project type."""
    from phasekeeper.projects import breakdown, design, exploration, standard

    registry = Registry()
    registry.register("standard", standard.new_config())
    registry.register("exploration", exploration.new_config())
    registry.register("design", design.new_config())
    registry.register("breakdown", breakdown.new_config())
    return registry
