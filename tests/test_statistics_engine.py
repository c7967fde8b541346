"""Tests for the deterministic statistics engine."""

import pytest

from sla_core_lib.config.settings import AnalysisSettings
from sla_core_lib.core.statistics.engine import (
    StatisticsEngine,
    analyze_workflow_data,
    classify_severity,
    project_severity,
)
from sla_core_lib.models.statistics import RiskCategory, Severity, TrendDirection


@pytest.fixture
def engine():
    return StatisticsEngine(AnalysisSettings())


class TestScalarSummaries:

    def test_empty_input_yields_zeroed_statistics(self, engine):
        stats = engine.analyze([])
        assert stats.total_steps == 0
        assert stats.avg_days == 0.0
        assert stats.trend == TrendDirection.STABLE
        assert stats.critical_bottleneck is None
        assert stats.top_performers == [] and stats.risk_applications == []
        assert stats.hierarchy.departments == []
        assert stats.anomaly_rate == 0.0

    def test_summary_values(self, engine, step_factory):
        steps = [
            step_factory(ticket_id="T-1", days_rested=2, delivery_date="01/05/2024"),
            step_factory(ticket_id="T-1", days_rested=4),
            step_factory(ticket_id="T-2", days_rested=6, delivery_date="01/09/2024"),
            step_factory(ticket_id="T-3", days_rested=8),
        ]
        stats = engine.analyze(steps)
        assert stats.total_steps == 4
        assert stats.unique_tickets == 3
        assert stats.completed_steps == 2
        assert stats.completion_rate == 50.0
        assert stats.avg_days == 5.0
        assert stats.min_days == 2 and stats.max_days == 8
        assert stats.std_days == pytest.approx(2.24, abs=0.01)
        assert stats.trend == TrendDirection.INCREASING

    def test_uniform_delays_have_no_anomalies(self, engine, step_factory):
        stats = engine.analyze([step_factory(days_rested=3) for _ in range(10)])
        assert stats.anomaly_count == 0
        assert stats.risk_applications == []

    def test_single_outlier_counts_as_anomaly(self, engine, step_factory):
        steps = [step_factory(days_rested=1) for _ in range(20)] + [step_factory(days_rested=100)]
        stats = engine.analyze(steps)
        assert stats.anomaly_count == 1
        assert stats.anomaly_rate == pytest.approx(100 / 21)


class TestBottleneck:

    def test_slowest_staff_role_with_enough_samples(self, engine, step_factory):
        steps = (
            [step_factory(role="Clerk", days_rested=3) for _ in range(6)]
            + [step_factory(role="Tehsildar", days_rested=10) for _ in range(6)]
            + [step_factory(role="Applicant", days_rested=50) for _ in range(10)]
            + [step_factory(role="Commissioner", days_rested=90) for _ in range(5)]
        )
        bottleneck = engine.find_bottleneck(steps)
        assert bottleneck.role == "Tehsildar"
        assert bottleneck.cases == 6
        assert bottleneck.avg_delay == 10.0
        assert bottleneck.threshold_exceeded == 100

    def test_no_qualifying_role(self, engine, step_factory):
        assert engine.find_bottleneck([step_factory(role="Clerk", days_rested=0) for _ in range(8)]) is None


class TestRankings:

    def test_top_performers_need_ten_tasks_and_sort_fastest_first(self, engine, step_factory):
        steps = (
            [step_factory(remark_from="Fast", days_rested=1) for _ in range(10)]
            + [step_factory(remark_from="Slow", days_rested=5) for _ in range(12)]
            + [step_factory(remark_from="Fastest", days_rested=0.5) for _ in range(9)]
            + [step_factory(remark_from="Citizen Reply", days_rested=0) for _ in range(20)]
        )
        performers = engine.rank_performers(steps)
        assert [p.name for p in performers] == ["Fast", "Slow"]
        assert performers[0].tasks == 10

    def test_top_performers_capped_at_five(self, engine, step_factory):
        steps = []
        for i in range(7):
            steps += [step_factory(remark_from=f"Officer {i}", days_rested=i) for _ in range(10)]
        assert len(engine.rank_performers(steps)) == 5

    def test_risk_ranking_puts_applicant_rows_first(self, engine, step_factory):
        steps = [step_factory(ticket_id=f"N-{i}", days_rested=1) for i in range(40)]
        steps.append(step_factory(ticket_id="SLOW", days_rested=60))
        steps.append(step_factory(ticket_id="APP", remark_from="Reply from Applicant", days_rested=1))

        risks = engine.analyze(steps).risk_applications

        assert [r.ticket_id for r in risks] == ["APP", "SLOW"]
        applicant = risks[0]
        assert applicant.applicant_flagged
        assert applicant.risk_score >= 25
        slow = risks[1]
        assert slow.z_score > 6
        assert slow.category in (RiskCategory.HIGH, RiskCategory.CRITICAL)
        assert 0 <= slow.risk_score <= 100

    def test_risk_list_capped(self, engine, step_factory):
        steps = [step_factory(ticket_id=f"A-{i}", remark_from="Citizen", days_rested=1) for i in range(20)]
        assert len(engine.analyze(steps).risk_applications) == 15


class TestPerformanceViews:

    def test_zone_performance_sorted_worst_first(self, engine, step_factory):
        steps = (
            [step_factory(zone="North", days_rested=2) for _ in range(4)]
            + [step_factory(zone="South", days_rested=9) for _ in range(2)]
            + [step_factory(zone="South", days_rested=3) for _ in range(2)]
        )
        zones = engine.zone_performance(steps)
        assert [z.zone for z in zones] == ["South", "North"]
        assert zones[0].avg_days == 6.0
        assert zones[0].on_time_percent == 50.0
        assert zones[1].on_time_percent == 100.0

    def test_zone_limit(self, engine, step_factory):
        steps = [step_factory(zone=f"Z{i}", days_rested=i + 1) for i in range(9)]
        assert len(engine.zone_performance(steps)) == 6

    def test_department_performance_is_per_role(self, engine, step_factory):
        steps = [
            step_factory(role="Clerk", days_rested=2),
            step_factory(role="Clerk", days_rested=4),
            step_factory(role="Engineer", days_rested=8),
            step_factory(role="Peon", days_rested=0),
        ]
        depts = engine.dept_performance(steps)
        assert [(d.name, d.avg_days) for d in depts] == [("Engineer", 8.0), ("Clerk", 3.0)]


def test_analyze_workflow_data_builds_hierarchy(step_factory):
    stats = analyze_workflow_data([step_factory(remark="Documents missing")])
    _, _, service, ticket = next(stats.hierarchy.iter_tickets())
    assert service.name == "Building Plan Approval"
    assert ticket.detected_category.value == "Documentation Issues"


@pytest.mark.parametrize("anomaly_rate,completion_rate,avg_days,expected", [
    (25, 100, 1, Severity.CRITICAL),
    (0, 60, 1, Severity.CRITICAL),
    (0, 100, 31, Severity.CRITICAL),
    (12, 100, 1, Severity.HIGH),
    (0, 90, 1, Severity.MEDIUM),
    (0, 100, 8, Severity.MEDIUM),
    (1, 99, 2, Severity.LOW),
])
def test_classify_severity(anomaly_rate, completion_rate, avg_days, expected):
    assert classify_severity(anomaly_rate, completion_rate, avg_days) == expected


def test_project_severity_of_empty_upload_is_low(engine, step_factory):
    assert project_severity(engine.analyze([])) == Severity.LOW
    undelivered = engine.analyze([step_factory(days_rested=2)])
    assert project_severity(undelivered) == Severity.CRITICAL
