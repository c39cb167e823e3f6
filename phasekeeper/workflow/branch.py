"""Declarative multi-way branches.

A branch picks one of several transitions out of a single state by
switching on a discriminator computed from the project:

    builder.add_branch(
        "ReviewActive",
        branch_on(review_assessment),
        when("pass", "review_pass", "FinalizeDocumentation",
             description="Review approved - proceed to finalization"),
        when("fail", "review_fail", "ImplementationPlanning",
             description="Review failed - return to implementation for rework",
             failed_phase="review"),
    )

At build time each when() becomes an ordinary transition, in sorted value
order. At advance time the discriminator's value selects the event.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from phasekeeper.workflow.config import (
    ActionFunc,
    EventDeterminationError,
    GuardFunc,
    TransitionConfig,
)

if TYPE_CHECKING:
    from phasekeeper.state.project import Project

Discriminator = Callable[["Project"], str]


class BranchConfigError(ValueError):
    """A branch declaration is malformed. Raised while building a config."""

    def __init__(self, state: str, message: str):
        self.state = state
        super().__init__(f"add_branch for state {state}: {message}")


@dataclass(frozen=True)
class BranchOn:
    discriminator: Discriminator


@dataclass(frozen=True)
class BranchPath:
    """One arm of a branch: discriminator value -> event -> target state."""
    value: str
    event: str
    dest: str
    guard: GuardFunc | None = None
    guard_description: str = ""
    on_entry: ActionFunc | None = None
    on_exit: ActionFunc | None = None
    description: str = ""
    failed_phase: str = ""


def branch_on(discriminator: Discriminator) -> BranchOn:
    """Set the function whose return value selects the branch path."""
    return BranchOn(discriminator)


def when(
    value: str,
    event: str,
    dest: str,
    guard: GuardFunc | None = None,
    guard_description: str = "",
    on_entry: ActionFunc | None = None,
    on_exit: ActionFunc | None = None,
    description: str = "",
    failed_phase: str = "",
) -> BranchPath:
    """Map one discriminator value to an event and target state."""
    return BranchPath(
        value=value,
        event=event,
        dest=dest,
        guard=guard,
        guard_description=guard_description,
        on_entry=on_entry,
        on_exit=on_exit,
        description=description,
        failed_phase=failed_phase,
    )


class BranchConfig:
    """A validated branch out of one state."""

    def __init__(self, source: str, discriminator: Discriminator, paths: dict[str, BranchPath]):
        self.source = source
        self.discriminator = discriminator
        self.paths = paths

    @classmethod
    def from_options(cls, source: str, options) -> "BranchConfig":
        """
        Collect branch_on()/when() options into a BranchConfig.

        Raises:
            BranchConfigError: missing discriminator, no paths, empty or repeated value
        """
        discriminator = None
        paths: dict[str, BranchPath] = {}

        for opt in options:
            if isinstance(opt, BranchOn):
                discriminator = opt.discriminator
            elif isinstance(opt, BranchPath):
                if opt.value == "":
                    raise BranchConfigError(source, "empty string is not allowed as a discriminator value")
                if opt.value in paths:
                    raise BranchConfigError(source, f"discriminator value {opt.value!r} declared twice")
                paths[opt.value] = opt
            else:
                raise TypeError(f"add_branch for state {source}: unexpected option {opt!r}")

        if discriminator is None:
            raise BranchConfigError(
                source, "no discriminator provided - use branch_on() to specify discriminator function"
            )
        if not paths:
            raise BranchConfigError(
                source, "no branch paths provided - use when() to define at least one branch path"
            )

        return cls(source, discriminator, paths)

    def values(self) -> list[str]:
        return sorted(self.paths)

    def expand(self) -> list[TransitionConfig]:
        """One transition per path, ordered by discriminator value."""
        return [
            TransitionConfig(
                source=self.source,
                dest=path.dest,
                event=path.event,
                guard=path.guard,
                guard_description=path.guard_description,
                on_entry=path.on_entry,
                on_exit=path.on_exit,
                description=path.description,
                failed_phase=path.failed_phase,
            )
            for path in (self.paths[v] for v in self.values())
        ]

    def determine_event(self, project: "Project") -> str:
        """Event for the discriminator's current value.

        Raises:
            EventDeterminationError: value has no path
        """
        value = self.discriminator(project)
        path = self.paths.get(value)
        if path is None:
            available = ", ".join(f'"{v}"' for v in self.values())
            raise EventDeterminationError(
                f'no branch defined for discriminator value "{value}" from state {self.source} '
                f"(available values: {available})"
            )
        return path.event
