"""Tests for model invariants: immutability and the project lifecycle."""

import pytest
from pydantic import ValidationError

from sla_core_lib.models.forensics import ProjectAnalysis, ProjectState, is_valid_transition
from sla_core_lib.models.statistics import ProjectStatistics


class TestProjectLifecycle:

    def test_forward_path(self):
        analysis = ProjectAnalysis(name="JDA")
        for state in (
            ProjectState.STATISTICS_COMPUTED,
            ProjectState.GENERATIVE_IN_PROGRESS,
            ProjectState.ENRICHED,
        ):
            analysis.advance(state)
        assert analysis.state.is_terminal

    def test_partial_is_terminal(self):
        assert ProjectState.ENRICHED_PARTIAL.is_terminal
        assert not ProjectState.GENERATIVE_IN_PROGRESS.is_terminal

    @pytest.mark.parametrize("from_state,to_state", [
        (ProjectState.CREATED, ProjectState.ENRICHED),
        (ProjectState.STATISTICS_COMPUTED, ProjectState.CREATED),
        (ProjectState.ENRICHED, ProjectState.GENERATIVE_IN_PROGRESS),
        (ProjectState.ENRICHED_PARTIAL, ProjectState.ENRICHED),
    ])
    def test_invalid_transitions(self, from_state, to_state):
        assert not is_valid_transition(from_state, to_state)
        analysis = ProjectAnalysis(name="JDA", state=from_state)
        with pytest.raises(ValueError):
            analysis.advance(to_state)
        assert analysis.state == from_state

    def test_failures_are_recorded_in_order(self):
        analysis = ProjectAnalysis(name="JDA")
        analysis.record_failure("ticket T-1: timeout")
        analysis.record_failure("ticket T-2: unrecoverable response")
        assert analysis.failures == ["ticket T-1: timeout", "ticket T-2: unrecoverable response"]


def test_workflow_step_is_immutable(step_factory):
    step = step_factory()
    with pytest.raises(ValidationError):
        step.days_rested = 5


def test_negative_days_rejected(step_factory):
    with pytest.raises(ValidationError):
        step_factory(days_rested=-1)


def test_anomaly_rate():
    assert ProjectStatistics().anomaly_rate == 0.0
    assert ProjectStatistics(total_steps=40, anomaly_count=2).anomaly_rate == 5.0
