"""Statistics engine.

Turns normalized workflow steps into ProjectStatistics: scalar summaries,
bottleneck role, top performers, risk ranking, zone/department performance,
behavioral red flags and the categorized hierarchy. Purely synchronous and
total: an empty upload yields zeroed aggregates.
"""

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Sequence

from sla_core_lib.config.settings import AnalysisSettings
from sla_core_lib.core.categorization.categorizer import HierarchicalCategorizer
from sla_core_lib.core.statistics import math_utils
from sla_core_lib.core.statistics.behavior import BehavioralAnomalyDetector, is_excluded_actor
from sla_core_lib.models.statistics import (
    CriticalBottleneck,
    DeptPerformance,
    PerformerSummary,
    ProjectStatistics,
    RiskApplication,
    Severity,
    ZonePerformance,
)
from sla_core_lib.models.workflow import WorkflowStep

logger = logging.getLogger(__name__)

# Exact (case-insensitive) role names that are never bottleneck candidates
NON_STAFF_ROLES = frozenset({"applicant", "citizen", "system", "unknown", ""})


class StatisticsEngine:
    """Deterministic analysis of one upload"""

    def __init__(
        self,
        settings: Optional[AnalysisSettings] = None,
        categorizer: Optional[HierarchicalCategorizer] = None,
        behavior_detector: Optional[BehavioralAnomalyDetector] = None,
    ):
        self.settings = settings or AnalysisSettings()
        self.categorizer = categorizer or HierarchicalCategorizer()
        self.behavior_detector = behavior_detector or BehavioralAnomalyDetector()

    def analyze(self, steps: Sequence[WorkflowStep]) -> ProjectStatistics:
        if not steps:
            logger.info("No workflow steps supplied; returning empty statistics")
            return ProjectStatistics()

        days = [s.days_rested for s in steps]
        mean_days = math_utils.mean(days)
        std_days = math_utils.std_dev(days)
        z_scores = [math_utils.z_score(d, mean_days, std_days) for d in days]
        anomaly_count = sum(1 for z in z_scores if abs(z) > self.settings.anomaly_z_threshold)
        completed = sum(1 for s in steps if s.is_completed)

        stats = ProjectStatistics(
            total_steps=len(steps),
            unique_tickets=len({s.ticket_id for s in steps}),
            completed_steps=completed,
            completion_rate=round(completed / len(steps) * 100, 2),
            avg_days=round(mean_days, 2),
            min_days=min(days),
            max_days=max(days),
            std_days=round(std_days, 2),
            anomaly_count=anomaly_count,
            trend=math_utils.calculate_trend(days),
            critical_bottleneck=self.find_bottleneck(steps),
            top_performers=self.rank_performers(steps),
            risk_applications=self.rank_risk(steps, z_scores),
            zone_performance=self.zone_performance(steps),
            dept_performance=self.dept_performance(steps),
            behavior=self.behavior_detector.analyze(steps),
            hierarchy=self.categorizer.build(steps),
        )
        logger.info(
            f"Computed statistics for {stats.total_steps} steps / {stats.unique_tickets} tickets "
            f"(avg {stats.avg_days} days, {stats.anomaly_count} anomalies)"
        )
        return stats

    def find_bottleneck(self, steps: Sequence[WorkflowStep]) -> Optional[CriticalBottleneck]:
        by_role: Dict[str, List[float]] = defaultdict(list)
        for step in steps:
            if step.role.strip().lower() in NON_STAFF_ROLES:
                continue
            by_role[step.role].append(step.days_rested)

        best: Optional[CriticalBottleneck] = None
        for role, delays in by_role.items():
            if len(delays) <= self.settings.min_role_samples:
                continue
            avg = math_utils.mean(delays)
            if avg <= 0 or (best is not None and avg <= best.avg_delay):
                continue
            sla = self.settings.sla_threshold_days
            best = CriticalBottleneck(
                role=role,
                cases=len(delays),
                avg_delay=round(avg, 2),
                threshold_exceeded=round((avg - sla) / sla * 100),
            )
        return best

    def rank_performers(self, steps: Sequence[WorkflowStep]) -> List[PerformerSummary]:
        by_actor: Dict[str, List[float]] = defaultdict(list)
        for step in steps:
            if is_excluded_actor(step.actor):
                continue
            by_actor[step.actor].append(step.days_rested)

        performers = [
            PerformerSummary(name=actor, tasks=len(delays), avg_days=round(math_utils.mean(delays), 2))
            for actor, delays in by_actor.items()
            if len(delays) >= self.settings.min_performer_tasks
        ]
        performers.sort(key=lambda p: (p.avg_days, p.name))
        return performers[: self.settings.top_performer_count]

    def rank_risk(self, steps: Sequence[WorkflowStep], z_scores: Sequence[float]) -> List[RiskApplication]:
        candidates = []
        for step, z in zip(steps, z_scores):
            applicant = step.is_applicant_side
            if abs(z) <= self.settings.risk_z_threshold and not applicant:
                continue
            bonus = self.settings.applicant_risk_bonus if applicant else 0
            candidates.append(RiskApplication(
                ticket_id=step.ticket_id,
                service_name=step.service_name,
                role=step.role,
                zone=step.zone,
                days_rested=step.days_rested,
                z_score=round(z, 2),
                risk_score=math_utils.risk_score(z, bonus),
                category=math_utils.classify_risk(z),
                applicant_flagged=applicant,
                remark=step.remark,
            ))
        candidates.sort(key=lambda r: (not r.applicant_flagged, -r.z_score))
        return candidates[: self.settings.risk_cap]

    def zone_performance(self, steps: Sequence[WorkflowStep]) -> List[ZonePerformance]:
        by_zone: Dict[str, List[float]] = defaultdict(list)
        for step in steps:
            by_zone[step.zone].append(step.days_rested)

        sla = self.settings.sla_threshold_days
        zones = [
            ZonePerformance(
                zone=zone,
                steps=len(delays),
                avg_days=round(math_utils.mean(delays), 2),
                on_time_percent=round(sum(1 for d in delays if d <= sla) / len(delays) * 100, 1),
            )
            for zone, delays in by_zone.items()
        ]
        zones.sort(key=lambda z: (-z.avg_days, z.zone))
        return zones[: self.settings.zone_limit]

    def dept_performance(self, steps: Sequence[WorkflowStep]) -> List[DeptPerformance]:
        """Average delay per role, worst first"""
        by_role: Dict[str, List[float]] = defaultdict(list)
        for step in steps:
            by_role[step.role].append(step.days_rested)

        depts = [
            DeptPerformance(name=role, steps=len(delays), avg_days=round(math_utils.mean(delays), 2))
            for role, delays in by_role.items()
        ]
        depts = [d for d in depts if d.avg_days > 0]
        depts.sort(key=lambda d: (-d.avg_days, d.name))
        return depts[: self.settings.department_limit]


def analyze_workflow_data(
    steps: Sequence[WorkflowStep], settings: Optional[AnalysisSettings] = None
) -> ProjectStatistics:
    return StatisticsEngine(settings).analyze(steps)


def classify_severity(anomaly_rate: float, completion_rate: float, avg_days: float) -> Severity:
    """Overall project severity from percent anomalies, percent completion and mean delay"""
    if anomaly_rate > 20 or completion_rate < 70 or avg_days > 30:
        return Severity.CRITICAL
    if anomaly_rate > 10 or completion_rate < 85 or avg_days > 15:
        return Severity.HIGH
    if anomaly_rate > 5 or completion_rate < 95 or avg_days > 7:
        return Severity.MEDIUM
    return Severity.LOW


def project_severity(stats: ProjectStatistics) -> Severity:
    """Severity of a whole project; an empty upload has nothing to escalate"""
    if stats.total_steps == 0:
        return Severity.LOW
    return classify_severity(stats.anomaly_rate, stats.completion_rate, stats.avg_days)
