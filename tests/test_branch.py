"""Tests for phasekeeper.workflow.branch module."""

import pytest

from phasekeeper.state.models import PhaseState, ProjectState, StatechartState
from phasekeeper.state.project import Project
from phasekeeper.workflow.branch import BranchConfigError, branch_on, when
from phasekeeper.workflow.config import EventDeterminationError, ProjectTypeConfigBuilder


def build(outcome: dict):
    """Review-style branch whose discriminator reads outcome['value']."""
    return (
        ProjectTypeConfigBuilder("branchy")
        .with_phase("review", start_state="Review", end_state="Review")
        .set_initial_state("Review")
        .add_branch(
            "Review",
            branch_on(lambda p: outcome["value"]),
            when("pass", "review_pass", "Done", description="passed"),
            when("fail", "review_fail", "Rework", failed_phase="review"),
        )
        .build()
    )


def project_for(config) -> Project:
    record = ProjectState(
        name="p", type=config.name, branch="b",
        statechart=StatechartState(config.initial_state),
        phases={"review": PhaseState(status="in_progress", enabled=True)},
    )
    project = Project(record, config)
    project.machine = config.build_machine(project, config.initial_state)
    return project


class TestBranchExpansion:
    """Branches become ordinary transitions."""

    def test_transitions_sorted_by_value(self):
        """One transition per value, in value order."""
        config = build({"value": "pass"})
        assert [(t.event, t.dest) for t in config.transitions] == [
            ("review_fail", "Rework"),
            ("review_pass", "Done"),
        ]

    def test_options_carried_over(self):
        """Description and failed_phase survive expansion."""
        config = build({"value": "pass"})
        by_event = {t.event: t for t in config.transitions}
        assert by_event["review_pass"].description == "passed"
        assert by_event["review_fail"].failed_phase == "review"

    def test_generates_determiner(self):
        """The branch state gets an on_advance determiner."""
        config = build({"value": "pass"})
        assert "Review" in config.on_advance
        assert "Review" in config.branches


class TestBranchResolution:
    """Advance follows the discriminator."""

    def test_pass(self):
        """'pass' fires exactly the pass event."""
        project = project_for(build({"value": "pass"}))
        assert project.advance() == "review_pass"
        assert project.state == "Done"
        assert project.phase("review").status == "completed"

    def test_fail(self):
        """'fail' lands on the fail target and fails the phase."""
        project = project_for(build({"value": "fail"}))
        assert project.advance() == "review_fail"
        assert project.state == "Rework"
        assert project.phase("review").status == "failed"

    def test_unmapped_value(self):
        """Unknown values error without moving the machine."""
        project = project_for(build({"value": "maybe"}))
        with pytest.raises(EventDeterminationError) as exc:
            project.advance()
        assert str(exc.value) == (
            'no branch defined for discriminator value "maybe" from state Review '
            '(available values: "fail", "pass")'
        )
        assert project.state == "Review"

    def test_discriminator_exception_wrapped(self):
        """A discriminator that raises becomes an EventDeterminationError."""
        def explode(p):
            raise KeyError("assessment")

        config = (
            ProjectTypeConfigBuilder("x")
            .set_initial_state("S")
            .add_branch("S", branch_on(explode), when("a", "go", "T"))
            .build()
        )
        project = project_for_state(config)
        with pytest.raises(EventDeterminationError):
            project.advance()
        assert project.state == "S"


def project_for_state(config) -> Project:
    record = ProjectState(name="p", type=config.name, branch="b", statechart=StatechartState(config.initial_state))
    project = Project(record, config)
    project.machine = config.build_machine(project, config.initial_state)
    return project


class TestBranchValidation:
    """Malformed branches fail while building."""

    def test_missing_discriminator(self):
        """branch_on() is required."""
        with pytest.raises(BranchConfigError, match="no discriminator provided"):
            ProjectTypeConfigBuilder("x").add_branch("S", when("a", "go", "T"))

    def test_no_paths(self):
        """At least one when() is required."""
        with pytest.raises(BranchConfigError, match="no branch paths provided"):
            ProjectTypeConfigBuilder("x").add_branch("S", branch_on(lambda p: "a"))

    def test_conflicts_with_on_advance(self):
        """A state cannot have both on_advance and a branch."""
        builder = ProjectTypeConfigBuilder("x").on_advance("S", lambda p: "go")
        with pytest.raises(BranchConfigError, match="already has on_advance"):
            builder.add_branch("S", branch_on(lambda p: "a"), when("a", "go", "T"))

    def test_on_advance_after_branch(self):
        """Adding on_advance to a branch state is rejected too."""
        builder = ProjectTypeConfigBuilder("x").add_branch("S", branch_on(lambda p: "a"), when("a", "go", "T"))
        with pytest.raises(ValueError):
            builder.on_advance("S", lambda p: "go")

    def test_empty_value(self):
        """Empty discriminator values are not allowed."""
        with pytest.raises(BranchConfigError, match="empty string"):
            ProjectTypeConfigBuilder("x").add_branch("S", branch_on(lambda p: ""), when("", "go", "T"))

    def test_repeated_value(self):
        """Each value maps to one path."""
        with pytest.raises(BranchConfigError, match="declared twice"):
            ProjectTypeConfigBuilder("x").add_branch(
                "S", branch_on(lambda p: "a"), when("a", "go", "T"), when("a", "other", "U"),
            )

    def test_errors_name_state(self):
        """Messages name the branching state."""
        with pytest.raises(BranchConfigError, match="^add_branch for state Review: "):
            ProjectTypeConfigBuilder("x").add_branch("Review", when("a", "go", "T"))
