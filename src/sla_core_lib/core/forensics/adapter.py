"""
Forensic response adapter.

Turns whatever object the response parser recovered into a structurally
complete ForensicReport. Three shapes are accepted:

- nested: the full schema with employeeRemarkAnalysis at the top level
- flat: a smaller model's single-level summary (summary, rootCause, ...)
- simple: the playground fallback shape (employeeActions, delayReason, ...)

Missing fields take the report's defaults. Anything else is rejected with
None so the caller can record the ticket as unrecoverable.
"""

import logging
import math
from typing import Any, Dict, List, Optional

from sla_core_lib.models.forensics import (
    ApplicantRemarkAnalysis,
    CategoryAttribution,
    DelayAnalysis,
    DocumentClarityAnalysis,
    EmployeeRemarkAnalysis,
    ForcefulDelay,
    ForensicReport,
    InactionFlag,
)

logger = logging.getLogger(__name__)

NESTED_MARKER = "employeeRemarkAnalysis"

FLAT_MARKERS = (
    "summary",
    "rootCause",
    "delayAnalysis",
    "sentimentSummary",
    "ticketInsightSummary",
    "englishSummary",
    "employeeAnalysis",
)

SIMPLE_MARKERS = ("employeeActions", "applicantActions", "delayReason", "sentiment")

FLAT_EMPLOYEE_SUMMARY = "Analysis derived from flat response"
DEFAULT_SENTIMENT_SUMMARY = ForensicReport.model_fields["sentiment_summary"].default
DEFAULT_INSIGHT_SUMMARY = ForensicReport.model_fields["ticket_insight_summary"].default


# ============================================================
# Value coercion
# ============================================================

def _text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    if isinstance(value, (list, tuple)):
        value = "; ".join(_text(v) for v in value if v is not None)
    text = str(value).strip()
    return text or default


def _int(value: Any, default: int = 0) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return max(0, int(number))


def _confidence(value: Any) -> float:
    """Clamp to [0, 1]; percentages such as 85 are scaled down"""
    try:
        number = float(str(value).strip().rstrip("%"))
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    if number > 1:
        number /= 100
    return min(1.0, max(0.0, number))


def _text_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if isinstance(value, dict):
        value = [value]
    items = []
    for item in value if isinstance(value, (list, tuple)) else [value]:
        if isinstance(item, dict):
            item = item.get("text") or item.get("description") or item.get("reason") or " ".join(
                _text(v) for v in item.values()
            )
        text = _text(item)
        if text:
            items.append(text)
    return items


def _dicts(value: Any) -> List[Dict[str, Any]]:
    if isinstance(value, dict):
        return [value]
    if isinstance(value, (list, tuple)):
        return [v for v in value if isinstance(v, dict)]
    return []


def _section(parsed: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = parsed.get(key)
    return value if isinstance(value, dict) else {}


# ============================================================
# Sub-object builders
# ============================================================

def _employee_analysis(data: Dict[str, Any]) -> EmployeeRemarkAnalysis:
    defaults = EmployeeRemarkAnalysis()
    return EmployeeRemarkAnalysis(
        summary=_text(data.get("summary"), defaults.summary),
        total_employee_remarks=_int(data.get("totalEmployeeRemarks")),
        key_actions=_text_list(data.get("keyActions")),
        response_timeliness=_text(data.get("responseTimeliness"), defaults.response_timeliness),
        communication_clarity=_text(data.get("communicationClarity"), defaults.communication_clarity),
        inaction_flags=[
            InactionFlag(observation=_text(f.get("observation")), evidence=_text(f.get("evidence")))
            for f in _dicts(data.get("inactionFlags"))
        ],
    )


def _applicant_analysis(data: Dict[str, Any]) -> ApplicantRemarkAnalysis:
    defaults = ApplicantRemarkAnalysis()
    return ApplicantRemarkAnalysis(
        summary=_text(data.get("summary"), defaults.summary),
        total_applicant_remarks=_int(data.get("totalApplicantRemarks")),
        key_actions=_text_list(data.get("keyActions")),
        response_timeliness=_text(data.get("responseTimeliness"), defaults.response_timeliness),
        sentiment_trend=_text(data.get("sentimentTrend"), defaults.sentiment_trend),
        compliance_level=_text(data.get("complianceLevel"), defaults.compliance_level),
    )


def _delay_analysis(data: Dict[str, Any], fallback: Optional[Dict[str, Any]] = None) -> DelayAnalysis:
    """Build DelayAnalysis from ``data``; ``fallback`` supplies values absent from it"""
    fallback = fallback or {}

    def pick(key: str) -> Any:
        value = data.get(key)
        return value if value not in (None, "", []) else fallback.get(key)

    defaults = DelayAnalysis()
    clarity = data.get("documentClarityAnalysis")
    clarity = clarity if isinstance(clarity, dict) else {}
    return DelayAnalysis(
        primary_delay_category=_text(pick("primaryDelayCategory"), defaults.primary_delay_category),
        primary_category_confidence=_confidence(pick("primaryCategoryConfidence")),
        category_summary=_text(pick("categorySummary"), defaults.category_summary),
        all_applicable_categories=[
            CategoryAttribution(
                category=_text(c.get("category"), "Unknown"),
                confidence=_confidence(c.get("confidence")),
                reasoning=_text(c.get("reasoning")),
            )
            for c in _dicts(pick("allApplicableCategories"))
        ],
        process_gaps=_text_list(pick("processGaps")),
        pain_points=_text_list(pick("painPoints")),
        forceful_delays=[
            ForcefulDelay(
                reason=_text(d.get("reason")),
                confidence=_confidence(d.get("confidence")),
                category=_text(d.get("category"), "Unknown"),
                evidence=_text(d.get("evidence")),
                recommendation=_text(d.get("recommendation")),
            )
            for d in _dicts(pick("forcefulDelays"))
        ],
        document_clarity_analysis=DocumentClarityAnalysis(
            document_clarity_provided=bool(clarity.get("documentClarityProvided", False)),
            document_names=_text_list(clarity.get("documentNames")),
        ),
    )


# ============================================================
# Public adapters
# ============================================================

def is_nested_response(parsed: Any) -> bool:
    return isinstance(parsed, dict) and isinstance(parsed.get(NESTED_MARKER), dict)


def is_flat_response(parsed: Any) -> bool:
    return isinstance(parsed, dict) and any(parsed.get(key) for key in FLAT_MARKERS)


def adapt_forensic_response(ticket_id: str, parsed: Any) -> Optional[ForensicReport]:
    """
    Build a complete ForensicReport from a parsed model response.

    Returns:
        The report, or None when the object matches neither the nested nor
        the flat shape
    """
    if is_nested_response(parsed):
        report = ForensicReport(
            ticket_id=ticket_id,
            employee_remark_analysis=_employee_analysis(parsed[NESTED_MARKER]),
            applicant_remark_analysis=_applicant_analysis(_section(parsed, "applicantRemarkAnalysis")),
            delay_analysis=_delay_analysis(_section(parsed, "delayAnalysis")),
            sentiment_summary=_text(parsed.get("sentimentSummary"), DEFAULT_SENTIMENT_SUMMARY),
            ticket_insight_summary=_text(
                parsed.get("ticketInsightSummary"), DEFAULT_INSIGHT_SUMMARY
            ),
        )
        missing = [k for k in ("applicantRemarkAnalysis", "delayAnalysis") if not isinstance(parsed.get(k), dict)]
        if missing:
            logger.info(f"Ticket {ticket_id}: nested response missing {missing}; defaults applied")
            report.adapted = True
        return report

    if is_flat_response(parsed):
        logger.warning(f"Forensic analysis for ticket {ticket_id} parsed as flat object; adapting structure")
        summary = _text(parsed.get("summary"))
        employee = EmployeeRemarkAnalysis(
            summary=_text(
                parsed.get("summary") or parsed.get("employeeAnalysis") or parsed.get("englishSummary"),
                FLAT_EMPLOYEE_SUMMARY,
            ),
            key_actions=_text_list(parsed.get("keyActions")),
        )
        applicant = ApplicantRemarkAnalysis()
        if parsed.get("applicantAnalysis"):
            applicant.summary = _text(parsed.get("applicantAnalysis"))

        delay = _delay_analysis(_section(parsed, "delayAnalysis"), fallback=parsed)
        if delay.primary_delay_category == "Unknown" and parsed.get("category"):
            delay.primary_delay_category = _text(parsed.get("category"))
        if delay.category_summary == DelayAnalysis().category_summary and parsed.get("rootCause"):
            delay.category_summary = _text(parsed.get("rootCause"))

        return ForensicReport(
            ticket_id=ticket_id,
            employee_remark_analysis=employee,
            applicant_remark_analysis=applicant,
            delay_analysis=delay,
            sentiment_summary=_text(parsed.get("sentimentSummary"), DEFAULT_SENTIMENT_SUMMARY),
            ticket_insight_summary=_text(
                parsed.get("ticketInsightSummary") or summary,
                DEFAULT_INSIGHT_SUMMARY,
            ),
            adapted=True,
        )

    logger.warning(f"Valid JSON parsed but missing required forensic fields for ticket {ticket_id}")
    return None


def is_empty_analysis(parsed: Any) -> bool:
    """True when neither side of a nested response carries any content"""
    if not isinstance(parsed, dict):
        return True

    def side_empty(key: str, count_key: str) -> bool:
        side = _section(parsed, key)
        return not _text(side.get("summary")) or _int(side.get(count_key)) == 0

    return side_empty("employeeRemarkAnalysis", "totalEmployeeRemarks") and side_empty(
        "applicantRemarkAnalysis", "totalApplicantRemarks"
    )


def adapt_simple_response(ticket_id: str, parsed: Any) -> Optional[ForensicReport]:
    """Expand the four-field fallback shape into a full report"""
    if not isinstance(parsed, dict) or not any(parsed.get(key) for key in SIMPLE_MARKERS):
        return None

    employee_actions = _text(parsed.get("employeeActions"))
    applicant_actions = _text(parsed.get("applicantActions"))
    delay_reason = _text(parsed.get("delayReason"))
    sentiment = _text(parsed.get("sentiment"), "Neutral")

    return ForensicReport(
        ticket_id=ticket_id,
        employee_remark_analysis=EmployeeRemarkAnalysis(
            summary=employee_actions or "No employee actions detected",
            total_employee_remarks=1 if employee_actions else 0,
            key_actions=[employee_actions] if employee_actions else [],
            communication_clarity="Medium",
        ),
        applicant_remark_analysis=ApplicantRemarkAnalysis(
            summary=applicant_actions or "No applicant actions detected",
            total_applicant_remarks=1 if applicant_actions else 0,
            key_actions=[applicant_actions] if applicant_actions else [],
            response_timeliness="Unknown",
            sentiment_trend=sentiment,
        ),
        delay_analysis=DelayAnalysis(
            primary_delay_category=delay_reason or "Unknown",
            primary_category_confidence=0.7 if delay_reason else 0.0,
            category_summary=f"Identified delay reason: {delay_reason or 'Unknown'}",
        ),
        sentiment_summary=sentiment,
        ticket_insight_summary=f"Fallback analysis: {delay_reason or 'Unknown'}",
        adapted=True,
    )
