"""Data Preprocessing Module

Purpose: Transform computed statistics and ticket histories into LLM-digestible text

The generative stage never sees raw rows directly. This module renders the
aggregates from the statistics engine and the per-ticket remark history into
concise, structured strings that fit the prompt templates.

Key Functions:
- build_ticket_transcript(): chronological remark history for one ticket
- format_generic_transcript(): free-form pasted remarks → Source/Content blocks
- format_*(): compact renderings of performers, risk rows, zones, red flags
- preprocess_statistics(): a bounded overview of a whole project

Design Principles:
- Row order is authoritative; histories are never re-sorted by timestamp
- Keep each rendering short and line-oriented
- Stay within LLM context limits
"""

import logging
from typing import List, Optional, Sequence

from sla_core_lib.models.statistics import (
    PerformerSummary,
    ProjectStatistics,
    RedFlag,
    RiskApplication,
    ZonePerformance,
)
from sla_core_lib.models.workflow import WorkflowStep

logger = logging.getLogger(__name__)

NO_HISTORY = "No remarks available"

SOURCE_KEYWORDS = (
    "notification", "reply", "applicant", "employee", "jda", "official", "case closed", "demand",
)
SHORT_SOURCE_LENGTH = 60


def _quote_safe(text: str) -> str:
    return (text or "").strip().replace('"', "'")


def build_ticket_transcript(steps: Sequence[WorkflowStep]) -> str:
    """
    Flatten one ticket's steps into a turn-by-turn transcript.

    Each line is ``[<timestamp>] lifetimeRemarksFrom: "<author>" | lifetimeRemarks: "<remark>"``.
    Double quotes inside values are replaced with single quotes so the
    transcript cannot break a JSON answer that echoes it.

    Args:
        steps: The ticket's steps in upload order

    Returns:
        Transcript text, or a placeholder when there are no steps
    """
    if not steps:
        return NO_HISTORY

    lines = []
    for step in steps:
        timestamp = step.event_timestamp or "Unknown Date"
        lines.append(
            f'[{timestamp}] lifetimeRemarksFrom: "{_quote_safe(step.remark_from)}" '
            f'| lifetimeRemarks: "{_quote_safe(step.remark)}"'
        )
    return "\n".join(lines)


def _split_source_content(first: str, second: str):
    """Decide which of two pasted columns is the source tag"""
    if not first and second:
        return "", second
    if first and not second:
        return "", first

    first_is_source = any(k in first.lower() for k in SOURCE_KEYWORDS)
    second_is_source = any(k in second.lower() for k in SOURCE_KEYWORDS)
    if first_is_source and not second_is_source:
        return first, second
    if second_is_source and not first_is_source:
        return second, first

    first_short = len(first) < SHORT_SOURCE_LENGTH
    second_short = len(second) < SHORT_SOURCE_LENGTH
    if second_short and not first_short:
        return second, first
    return first, second


def _guess_line_source(line: str) -> str:
    lower = line.lower()
    if lower.startswith(("applicant", "citizen", "reply")):
        return "Reply from Applicant"
    if lower.startswith(("employee", "jda", "notification", "official")):
        return "Notification sent to applicant"
    return ""


def format_generic_transcript(text: str) -> str:
    """
    Format free-form remark text (e.g. spreadsheet copy-paste) for analysis.

    Text that already contains transcript markers is returned unchanged.
    Tab-separated lines are split into a source tag and the remark content
    using keyword and length heuristics; other lines get a source guessed
    from their leading word.
    """
    if "lifetimeRemarksFrom" in text:
        return text

    blocks = []
    for line in text.splitlines():
        if not line.strip():
            continue
        parts = line.split("\t")
        if len(parts) >= 2:
            source, content = _split_source_content(parts[0].strip(), parts[1].strip())
        else:
            source, content = _guess_line_source(line), line.strip()
        blocks.append(f"Source: {source or 'Unknown Source'}\nContent: {content}\n")
    return "\n".join(blocks)


def format_top_performers(performers: Sequence[PerformerSummary]) -> str:
    if not performers:
        return "None"
    return ", ".join(f"{p.name} ({p.tasks} tasks, {p.avg_days:.1f}d avg)" for p in performers)


def format_risk_applications(risks: Sequence[RiskApplication], limit: int = 10) -> str:
    if not risks:
        return "None"
    lines = []
    for risk in risks[:limit]:
        line = (
            f"- {risk.ticket_id} | {risk.service_name} | {risk.role} | zone {risk.zone} | "
            f"{risk.days_rested:g} days | z={risk.z_score:.2f} | {risk.category.value}"
        )
        if risk.remark:
            line += f" | last remark: {_truncate(risk.remark, 120)}"
        lines.append(line)
    return "\n".join(lines)


def format_zone_performance(zones: Sequence[ZonePerformance]) -> str:
    if not zones:
        return "None"
    return "\n".join(
        f"- Zone {z.zone}: {z.avg_days:.1f}d avg, {z.on_time_percent:.0f}% on time ({z.steps} steps)"
        for z in zones
    )


def format_red_flags(flags: Sequence[RedFlag]) -> str:
    if not flags:
        return "None detected"
    return "\n".join(
        f"- [{f.severity.value}] {f.entity}: {f.flag_type.value} ({f.evidence})" for f in flags
    )


def format_bottleneck_data(stats: ProjectStatistics) -> str:
    parts: List[str] = []
    if stats.critical_bottleneck:
        b = stats.critical_bottleneck
        parts.append(
            f"Critical role: {b.role} ({b.cases} cases, avgDelay {b.avg_delay:.1f} days, "
            f"{b.threshold_exceeded}% over SLA)"
        )
    for dept in stats.dept_performance:
        parts.append(f"Role {dept.name}: avgDelay {dept.avg_days:.1f} days over {dept.steps} steps")
    for zone in stats.zone_performance:
        parts.append(f"Zone {zone.zone}: avgDelay {zone.avg_days:.1f} days, {zone.on_time_percent:.0f}% on time")
    parts.append(f"maxDelay {stats.max_days:g} days")
    return "\n".join(parts)


def preprocess_statistics(stats: ProjectStatistics, max_chars: int = 6000) -> str:
    """Bounded plain-text overview of a project's statistics"""
    summary_parts = [
        "## OVERVIEW",
        f"Workflow steps: {stats.total_steps:,}",
        f"Tickets: {stats.unique_tickets:,}",
        f"Average days rested: {stats.avg_days:.2f} (std {stats.std_days:.2f}, max {stats.max_days:g})",
        f"Completion rate: {stats.completion_rate:.1f}%",
        f"Anomalies (|z| > 3): {stats.anomaly_count}",
        f"Trend: {stats.trend.value}",
        "",
        "## BOTTLENECKS",
        format_bottleneck_data(stats),
        "",
        "## RED FLAGS",
        format_red_flags(stats.behavior.red_flags),
    ]
    if stats.behavior.topics:
        summary_parts += ["", "## FREQUENT TOPICS",
                          ", ".join(f"{t.topic} ({t.count})" for t in stats.behavior.topics)]

    full_summary = "\n".join(summary_parts)
    if len(full_summary) > max_chars:
        truncation_msg = f"\n\n[TRUNCATED: Summary exceeded {max_chars} characters.]"
        full_summary = full_summary[: max_chars - len(truncation_msg)] + truncation_msg
    return full_summary


def _truncate(text: str, max_length: int) -> str:
    """Truncate text to max_length with ellipsis"""
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def last_value(steps: Sequence[WorkflowStep], attribute: str, default: str) -> str:
    """Value of ``attribute`` on the last step that has one"""
    for step in reversed(steps):
        value: Optional[str] = getattr(step, attribute, None)
        if value and value != "Unknown":
            return value
    return default
