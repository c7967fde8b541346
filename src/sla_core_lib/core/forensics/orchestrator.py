"""
Forensic Batch Orchestrator.

Drives one project's analysis:

1. Deterministic stage: StatisticsEngine (statistics + categorized hierarchy).
2. Generative stage, strictly in order: anomaly patterns, bottleneck
   prediction, recommendations, tabular insight, per-ticket forensic
   analysis, hierarchy refinement.

Per-ticket and per-entry failures are isolated and recorded on the
ProjectAnalysis. A provider failure in an aggregate sub-analysis aborts the
run; the whole generative stage is then retried once on the fallback
provider before GenerativeStageError is raised. Statistics are never lost.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple, Union

from sla_core_lib.config.settings import AnalysisSettings
from sla_core_lib.core.categorization.categorizer import coerce_category, refinement_candidates
from sla_core_lib.core.forensics.adapter import (
    adapt_forensic_response,
    adapt_simple_response,
    is_empty_analysis,
)
from sla_core_lib.core.forensics.progress import ProgressReporter, ProgressSink
from sla_core_lib.core.forensics.scheduler import RateLimitedScheduler, Sleeper
from sla_core_lib.core.preprocessing.data_preprocessor import (
    build_ticket_transcript,
    format_bottleneck_data,
    format_generic_transcript,
    format_red_flags,
    format_risk_applications,
    format_top_performers,
    format_zone_performance,
    last_value,
    preprocess_statistics,
)
from sla_core_lib.core.prompts import templates
from sla_core_lib.core.prompts.templates import interpolate
from sla_core_lib.core.statistics.engine import StatisticsEngine, project_severity
from sla_core_lib.infrastructure.llm.providers.base import BaseLLMProvider, LLMProviderError, OutputFormat
from sla_core_lib.infrastructure.llm.providers.registry import ProviderId, ProviderRegistry
from sla_core_lib.infrastructure.llm.response_parser import (
    DEFAULT_OBJECT_KEYS,
    extract_section,
    parse_json_response,
    parse_numbered_list,
)
from sla_core_lib.models.forensics import (
    AIInsights,
    ForensicReport,
    ProjectAnalysis,
    ProjectState,
    TabularInsights,
)
from sla_core_lib.models.statistics import HierarchyTicket, ProjectStatistics, ServiceNode
from sla_core_lib.models.workflow import WorkflowStep

logger = logging.getLogger(__name__)

PLAYGROUND_TICKET_ID = "PLAYGROUND"
MAX_RECOMMENDATIONS = 3
JSON_TEMPERATURE = 0.3
SIMPLE_FALLBACK_TEMPERATURE = 0.2
SIMPLE_FALLBACK_SYSTEM_PROMPT = "Output JSON only."

_PREDICTION_LABEL_RE = re.compile(r"^\s*\**\s*PREDICTION\s*:?\s*\**\s*", re.IGNORECASE)

# Accepted date layouts for application/delivery columns; time parts are ignored
_DATE_FORMATS = ("%m/%d/%Y", "%Y-%m-%d", "%d-%m-%Y", "%m/%d/%y", "%d/%m/%Y")

# (stage, percent) checkpoints reported during enrichment
PROGRESS_STATISTICS = ("statistics", 10)
PROGRESS_ANOMALY = ("anomaly_analysis", 20)
PROGRESS_BOTTLENECK = ("bottleneck_prediction", 40)
PROGRESS_RECOMMENDATIONS = ("recommendations", 60)
PROGRESS_TABULAR = ("tabular_insights", 75)
PROGRESS_FORENSIC = ("forensic_analysis", 85)
PROGRESS_REFINEMENT = ("hierarchy_refinement", 90)
PROGRESS_COMPLETE = ("complete", 100)


class GenerativeStageError(Exception):
    """Generative stage failed on the configured and the fallback provider"""

    def __init__(self, message: str, analysis: Optional[ProjectAnalysis] = None):
        super().__init__(message)
        self.message = message
        self.analysis = analysis


@dataclass
class TicketContext:
    """One ticket's steps plus the context its forensic prompt needs"""

    ticket_id: str
    steps: List[WorkflowStep]
    delay: float

    @property
    def service_name(self) -> str:
        return last_value(self.steps, "service_name", "Unknown")

    @property
    def parent_service(self) -> str:
        return last_value(self.steps, "parent_service", "General")

    @property
    def stage(self) -> str:
        return last_value(self.steps, "role", "Unknown")

    @property
    def employee_name(self) -> str:
        return last_value(self.steps, "employee_name", "Unknown")


@dataclass
class GenerativeRun:
    insights: AIInsights
    failures: List[str] = field(default_factory=list)
    refinements: List[Tuple[HierarchyTicket, Dict[str, str]]] = field(default_factory=list)


# ============================================================
# Ticket selection
# ============================================================

def parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    text = value.strip().split()[0] if value.strip() else ""
    text = text.split("T")[0]
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def ticket_delay(steps: Sequence[WorkflowStep]) -> float:
    """Days between application and delivery; falls back to the longest rest"""
    applied = next((d for d in (parse_date(s.application_date) for s in steps) if d), None)
    delivered = next((d for d in (parse_date(s.delivery_date) for s in steps) if d), None)
    if applied and delivered and delivered >= applied:
        return float((delivered - applied).days)
    return max((s.days_rested for s in steps), default=0.0)


def collect_tickets(steps: Sequence[WorkflowStep], limit: Optional[int] = None) -> List[TicketContext]:
    """Group steps by ticket in upload order, worst delay first"""
    grouped: Dict[str, List[WorkflowStep]] = {}
    for step in steps:
        grouped.setdefault(step.ticket_id, []).append(step)

    tickets = [
        TicketContext(ticket_id=ticket_id, steps=ticket_steps, delay=ticket_delay(ticket_steps))
        for ticket_id, ticket_steps in grouped.items()
    ]
    tickets.sort(key=lambda t: (-t.delay, t.ticket_id))
    if limit is not None:
        tickets = tickets[:limit]
    return tickets


def fallback_recommendations(stats: ProjectStatistics) -> List[str]:
    zone = stats.zone_performance[0].zone if stats.zone_performance else "key zones"
    role = stats.critical_bottleneck.role if stats.critical_bottleneck else "bottleneck"
    return [
        "Analyze top performer workflows to identify best practices for others",
        f"Redirect low-complexity tickets in {zone} to improve throughput",
        f"Investigate the specific delay causes in the {role} role",
    ]


# ============================================================
# Orchestrator
# ============================================================

class ForensicBatchOrchestrator:
    """Runs the deterministic and generative stages for one project at a time"""

    def __init__(
        self,
        registry: Optional[ProviderRegistry] = None,
        settings: Optional[AnalysisSettings] = None,
        engine: Optional[StatisticsEngine] = None,
        progress_sink: Optional[ProgressSink] = None,
        sleep: Sleeper = asyncio.sleep,
    ):
        self.registry = registry or ProviderRegistry()
        self.settings = settings or AnalysisSettings()
        self.engine = engine or StatisticsEngine(self.settings)
        self.progress = ProgressReporter(progress_sink)
        self.ticket_scheduler = RateLimitedScheduler(
            batch_size=1, cooldown_seconds=self.settings.ticket_cooldown_seconds, sleep=sleep
        )
        self.refinement_scheduler = RateLimitedScheduler(
            batch_size=self.settings.refinement_batch_size,
            cooldown_seconds=self.settings.refinement_cooldown_seconds,
            sleep=sleep,
        )

    def compute_statistics(self, steps: Sequence[WorkflowStep], project_name: str) -> ProjectAnalysis:
        """Deterministic stage only; never touches a provider"""
        analysis = ProjectAnalysis(name=project_name)
        analysis.statistics = self.engine.analyze(steps)
        analysis.advance(ProjectState.STATISTICS_COMPUTED)
        logger.info(
            f"Project '{project_name}': {analysis.statistics.total_steps} steps, "
            f"{analysis.statistics.unique_tickets} tickets, {analysis.statistics.anomaly_count} anomalies"
        )
        return analysis

    async def analyze_project(
        self,
        steps: Sequence[WorkflowStep],
        project_name: str,
        provider: Union[str, ProviderId, None] = None,
        api_key: Optional[str] = None,
    ) -> ProjectAnalysis:
        """
        Full analysis of one upload.

        Generative failures never propagate from here: the returned analysis
        is ENRICHED, or ENRICHED_PARTIAL with the failures recorded.
        """
        analysis = self.compute_statistics(steps, project_name)
        await self.progress.report(*PROGRESS_STATISTICS, detail=f"{len(steps)} steps analyzed")
        try:
            await self.enrich(analysis, steps, provider=provider, api_key=api_key)
        except GenerativeStageError as e:
            logger.error(f"Project '{project_name}' enrichment failed; statistics kept: {e}")
        return analysis

    async def enrich(
        self,
        analysis: ProjectAnalysis,
        steps: Sequence[WorkflowStep],
        provider: Union[str, ProviderId, None] = None,
        api_key: Optional[str] = None,
    ) -> ProjectAnalysis:
        """
        Run the generative stage on an analysis whose statistics are computed.

        Raises:
            GenerativeStageError: both the configured and the fallback provider failed
        """
        analysis.advance(ProjectState.GENERATIVE_IN_PROGRESS)

        primary = self.registry.resolve(provider)
        attempts = [(primary, api_key)]
        fallback = self.registry.resolve(self.settings.fallback_provider)
        if fallback != primary:
            attempts.append((fallback, None))

        last_error: Optional[LLMProviderError] = None
        for attempt, (provider_id, key) in enumerate(attempts):
            if attempt:
                logger.warning(f"Retrying generative stage with fallback provider '{provider_id.value}'")
            try:
                service = self.registry.get_service(provider_id, api_key=key)
                run = await self._run_generative_stage(analysis.name, analysis.statistics, steps, service)
            except LLMProviderError as e:
                last_error = e
                logger.warning(f"Generative stage failed on provider '{provider_id.value}': {e}")
                analysis.record_failure(f"generative stage ({provider_id.value}): {e}")
                continue

            self._apply_refinements(run.refinements)
            analysis.insights = run.insights
            for failure in run.failures:
                analysis.record_failure(failure)
            partial = bool(run.failures) or attempt > 0
            analysis.advance(ProjectState.ENRICHED_PARTIAL if partial else ProjectState.ENRICHED)
            await self.progress.report(*PROGRESS_COMPLETE, detail=analysis.state.value)
            return analysis

        analysis.advance(ProjectState.ENRICHED_PARTIAL)
        raise GenerativeStageError(
            f"Generative stage failed on all providers: {last_error}", analysis=analysis
        ) from last_error

    async def _run_generative_stage(
        self,
        project_name: str,
        stats: ProjectStatistics,
        steps: Sequence[WorkflowStep],
        service: BaseLLMProvider,
    ) -> GenerativeRun:
        insights = AIInsights(
            provider=service.provider_name,
            severity=project_severity(stats),
        )
        run = GenerativeRun(insights=insights)

        insights.patterns, insights.root_cause = await self.analyze_anomalies(service, stats, project_name)
        await self.progress.report(*PROGRESS_ANOMALY)

        insights.bottleneck_prediction = await self.predict_bottlenecks(service, stats)
        await self.progress.report(*PROGRESS_BOTTLENECK)

        insights.recommendations = await self.generate_recommendations(service, stats)
        await self.progress.report(*PROGRESS_RECOMMENDATIONS)

        insights.tabular = await self.generate_tabular_insights(service, stats)
        await self.progress.report(*PROGRESS_TABULAR)

        reports, failures = await self.analyze_tickets(service, steps)
        insights.forensic_reports = reports
        insights.remark_analysis = next(iter(reports.values()), None)
        run.failures.extend(failures)
        await self.progress.report(*PROGRESS_FORENSIC, detail=f"{len(reports)} tickets analyzed")

        run.refinements, failures = await self.refine_hierarchy(service, stats)
        insights.refined_tickets = len(run.refinements)
        run.failures.extend(failures)
        return run

    # ------------------------------------------------------------
    # Aggregate sub-analyses
    # ------------------------------------------------------------

    async def analyze_anomalies(
        self, service: BaseLLMProvider, stats: ProjectStatistics, project_name: str = "current project"
    ) -> Tuple[str, str]:
        """Returns (patterns, root cause)"""
        bottleneck = stats.critical_bottleneck
        prompt = interpolate(templates.ANOMALY_ANALYSIS_PROMPT, {
            "projectName": project_name,
            "totalTickets": stats.unique_tickets,
            "totalWorkflowSteps": stats.total_steps,
            "topPerformers": format_top_performers(stats.top_performers),
            "highRiskApps": format_risk_applications(stats.risk_applications),
            "anomalyCount": stats.anomaly_count,
            "avgProcessingTime": f"{stats.avg_days:.1f}",
            "bottleneckRole": bottleneck.role if bottleneck else "None",
            "bottleneckCases": bottleneck.cases if bottleneck else 0,
            "bottleneckAvgDelay": f"{bottleneck.avg_delay:.1f}" if bottleneck else "0",
            "statisticsOverview": preprocess_statistics(stats),
        })
        response = await service.generate(prompt, system_prompt=templates.ANALYST_SYSTEM_PROMPT)
        patterns = extract_section(response.content, "PATTERNS")
        root_cause = extract_section(response.content, "ROOT CAUSE")
        if not patterns and not root_cause:
            logger.debug("Anomaly response carried no labelled sections; keeping full text as patterns")
            patterns = response.content.strip()
        return patterns, root_cause

    async def predict_bottlenecks(self, service: BaseLLMProvider, stats: ProjectStatistics) -> str:
        prompt = interpolate(templates.BOTTLENECK_PREDICTION_PROMPT, {
            "bottleneckData": format_bottleneck_data(stats),
        })
        response = await service.generate(prompt, system_prompt=templates.ANALYST_SYSTEM_PROMPT)
        return _PREDICTION_LABEL_RE.sub("", response.content.strip(), count=1).strip()

    async def generate_recommendations(self, service: BaseLLMProvider, stats: ProjectStatistics) -> List[str]:
        bottleneck = stats.critical_bottleneck
        prompt = interpolate(templates.RECOMMENDATIONS_PROMPT, {
            "anomalyCount": stats.anomaly_count,
            "avgProcessingTime": f"{stats.avg_days:.1f}",
            "bottleneckRole": bottleneck.role if bottleneck else "None",
            "bottleneckAvgDelay": f"{bottleneck.avg_delay:.1f}" if bottleneck else "0",
            "topPerformers": ", ".join(p.name for p in stats.top_performers[:3]) or "None",
            "primaryZones": ", ".join(z.zone for z in stats.zone_performance[:2]) or "None",
        })
        response = await service.generate(prompt, system_prompt=templates.ANALYST_SYSTEM_PROMPT)
        recommendations = parse_numbered_list(response.content, limit=MAX_RECOMMENDATIONS)
        if not recommendations:
            logger.warning("No numbered recommendations in response; using fallback recommendations")
            return fallback_recommendations(stats)
        return recommendations

    async def generate_tabular_insights(
        self, service: BaseLLMProvider, stats: ProjectStatistics
    ) -> TabularInsights:
        prompt = interpolate(templates.TABULAR_INSIGHTS_PROMPT, {
            "topPerformers": format_top_performers(stats.top_performers),
            "behavioralRedFlags": format_red_flags(stats.behavior.red_flags),
            "zonePerformance": format_zone_performance(stats.zone_performance),
            "riskApplications": format_risk_applications(stats.risk_applications),
        })
        response = await service.generate(prompt, system_prompt=templates.ANALYST_SYSTEM_PROMPT)
        content = response.content
        return TabularInsights(
            employee=extract_section(content, "PART_EMPLOYEE"),
            zone=extract_section(content, "PART_ZONE"),
            breach=extract_section(content, "PART_BREACH"),
            priority=extract_section(content, "PART_PRIORITY"),
            red_flags=extract_section(content, "PART_RED_FLAGS"),
        )

    # ------------------------------------------------------------
    # Per-ticket forensic analysis
    # ------------------------------------------------------------

    async def analyze_tickets(
        self, service: BaseLLMProvider, steps: Sequence[WorkflowStep]
    ) -> Tuple[Dict[str, ForensicReport], List[str]]:
        """One forensic report per recoverable ticket, plus failure descriptions"""
        tickets = collect_tickets(steps, self.settings.forensic_ticket_limit)
        logger.info(f"Running forensic analysis on {len(tickets)} tickets")

        outcomes = await self.ticket_scheduler.run(tickets, lambda t: self.analyze_ticket(service, t))

        reports: Dict[str, ForensicReport] = {}
        failures: List[str] = []
        for outcome in outcomes:
            ticket_id = outcome.item.ticket_id
            if outcome.error is not None:
                failures.append(f"ticket {ticket_id}: {outcome.error}")
            elif outcome.result is None:
                failures.append(f"ticket {ticket_id}: unrecoverable response")
            else:
                reports[ticket_id] = outcome.result
        return reports, failures

    async def analyze_ticket(self, service: BaseLLMProvider, ticket: TicketContext) -> Optional[ForensicReport]:
        prompt = interpolate(templates.FORENSIC_ANALYSIS_PROMPT, {
            "ticketId": ticket.ticket_id,
            "flowType": ticket.service_name,
            "flowTypeParent": ticket.parent_service,
            "employeeName": ticket.employee_name,
            "stage": ticket.stage,
            "totalDelay": f"{ticket.delay:g}",
            "conversationHistory": build_ticket_transcript(ticket.steps),
        })
        response = await service.generate(
            prompt,
            temperature=JSON_TEMPERATURE,
            system_prompt=templates.JSON_ONLY_SYSTEM_PROMPT,
            output_format=OutputFormat.JSON,
        )
        result = parse_json_response(response.content, expected_keys=DEFAULT_OBJECT_KEYS)
        if not result.recovered:
            logger.warning(f"Unrecoverable forensic response for ticket {ticket.ticket_id}; skipping")
            return None
        logger.debug(f"Ticket {ticket.ticket_id} parsed at stage {result.stage.value}")
        return adapt_forensic_response(ticket.ticket_id, result.value)

    # ------------------------------------------------------------
    # Hierarchy refinement
    # ------------------------------------------------------------

    async def refine_hierarchy(
        self, service: BaseLLMProvider, stats: ProjectStatistics
    ) -> Tuple[List[Tuple[HierarchyTicket, Dict[str, str]]], List[str]]:
        """Model-refined fields for uncategorized or long-resting entries"""
        candidates = refinement_candidates(stats.hierarchy, self.settings.refinement_delay_threshold)
        if not candidates:
            return [], []
        logger.info(f"Refining {len(candidates)} hierarchy entries")

        async def on_batch(done: int, total: int) -> None:
            stage, start = PROGRESS_REFINEMENT
            await self.progress.report(stage, start + (9 * done) // total, detail=f"batch {done}/{total}")

        outcomes = await self.refinement_scheduler.run(
            candidates, lambda pair: self.refine_entry(service, *pair), on_batch=on_batch
        )

        refinements: List[Tuple[HierarchyTicket, Dict[str, str]]] = []
        failures: List[str] = []
        for outcome in outcomes:
            _, entry = outcome.item
            if outcome.error is not None:
                failures.append(f"refinement {entry.ticket_id}: {outcome.error}")
            elif outcome.result is None:
                failures.append(f"refinement {entry.ticket_id}: unrecoverable response")
            else:
                refinements.append((entry, outcome.result))
        return refinements, failures

    async def refine_entry(
        self, service: BaseLLMProvider, node: ServiceNode, entry: HierarchyTicket
    ) -> Optional[Dict[str, str]]:
        prompt = interpolate(templates.HIERARCHY_REFINEMENT_PROMPT, {
            "serviceName": node.name,
            "role": entry.role or "Unknown",
            "daysRested": f"{entry.days_rested:g}",
            "remarks": entry.remark or "No remarks",
        })
        response = await service.generate(
            prompt,
            temperature=JSON_TEMPERATURE,
            system_prompt=templates.JSON_ONLY_SYSTEM_PROMPT,
            output_format=OutputFormat.JSON,
        )
        result = parse_json_response(response.content)
        if not result.recovered or not isinstance(result.value, dict):
            logger.warning(f"Unrecoverable refinement response for ticket {entry.ticket_id}")
            return None
        return {k: v for k, v in result.value.items() if isinstance(v, str) and v.strip()}

    def _apply_refinements(self, refinements: Sequence[Tuple[HierarchyTicket, Dict[str, str]]]) -> None:
        for entry, fields in refinements:
            entry.english_summary = fields.get("englishSummary") or entry.english_summary
            entry.employee_analysis = fields.get("employeeAnalysis") or entry.employee_analysis
            entry.applicant_analysis = fields.get("applicantAnalysis") or entry.applicant_analysis
            category = coerce_category(fields.get("category"))
            if category is not None:
                entry.detected_category = category
            elif fields.get("category"):
                logger.debug(f"Ignoring unknown category '{fields['category']}' for ticket {entry.ticket_id}")
            entry.refined = True

    # ------------------------------------------------------------
    # Free-form remark analysis
    # ------------------------------------------------------------

    async def analyze_remark_transcript(
        self,
        text: str,
        provider: Union[str, ProviderId, None] = None,
        api_key: Optional[str] = None,
    ) -> Optional[ForensicReport]:
        """
        Forensic analysis of pasted remark text outside any project.

        Falls back to a simplified prompt once when the full analysis comes
        back empty or unrecoverable. Provider errors propagate to the caller.
        """
        service = self.registry.get_service(provider, api_key=api_key)
        history = format_generic_transcript(text)

        prompt = interpolate(templates.FORENSIC_ANALYSIS_PROMPT, {
            "ticketId": PLAYGROUND_TICKET_ID,
            "flowType": "Generic Request",
            "flowTypeParent": "General",
            "employeeName": "Unknown",
            "stage": "Forensic Review",
            "totalDelay": "0",
            "conversationHistory": history,
        })
        response = await service.generate(
            prompt,
            temperature=JSON_TEMPERATURE,
            system_prompt=templates.JSON_ONLY_SYSTEM_PROMPT,
            output_format=OutputFormat.JSON,
        )
        result = parse_json_response(response.content, expected_keys=DEFAULT_OBJECT_KEYS)

        if not is_empty_analysis(result.value):
            report = adapt_forensic_response(PLAYGROUND_TICKET_ID, result.value)
            if report is not None:
                return report

        logger.info("Full remark analysis came back empty; retrying with simplified prompt")
        fallback = await service.generate(
            interpolate(templates.SIMPLE_REMARK_PROMPT, {"conversationHistory": history}),
            temperature=SIMPLE_FALLBACK_TEMPERATURE,
            system_prompt=SIMPLE_FALLBACK_SYSTEM_PROMPT,
            output_format=OutputFormat.JSON,
        )
        fallback_result = parse_json_response(fallback.content)
        report = adapt_simple_response(PLAYGROUND_TICKET_ID, fallback_result.value)
        if report is None and result.recovered:
            # Simplified prompt failed too; keep whatever the full analysis produced
            report = adapt_forensic_response(PLAYGROUND_TICKET_ID, result.value)
        return report
