"""
Shipped project types.

Each module exposes new_config(); workflow.registry.default_registry()
registers all of them.
"""

from phasekeeper.projects import breakdown, design, exploration, standard

__all__ = ["breakdown", "design", "exploration", "standard"]
