"""Forensic and enrichment models.

Key Models:
- ForensicReport: per-ticket narrative analysis, always structurally complete
- AIInsights: generative view merged onto ProjectStatistics
- ProjectAnalysis: one project's statistics, insights and lifecycle state

Lifecycle Flow:
  CREATED → STATISTICS_COMPUTED → GENERATIVE_IN_PROGRESS → ENRICHED
                                                        ↘ ENRICHED_PARTIAL

There is no failed terminal state: statistics stay usable even when
enrichment is incomplete.
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from sla_core_lib.models.statistics import ProjectStatistics, Severity


# ============================================================
# Forensic report
# ============================================================

class InactionFlag(BaseModel):
    observation: str = ""
    evidence: str = ""


class EmployeeRemarkAnalysis(BaseModel):
    summary: str = "No employee data detected"
    total_employee_remarks: int = 0
    key_actions: List[str] = Field(default_factory=list)
    response_timeliness: str = "Unknown"
    communication_clarity: str = "Unknown"
    inaction_flags: List[InactionFlag] = Field(default_factory=list)


class ApplicantRemarkAnalysis(BaseModel):
    summary: str = "No applicant remarks available"
    total_applicant_remarks: int = 0
    key_actions: List[str] = Field(default_factory=list)
    response_timeliness: str = "N/A"
    sentiment_trend: str = "Neutral"
    compliance_level: str = "Unknown"


class CategoryAttribution(BaseModel):
    category: str = "Unknown"
    confidence: float = Field(0.0, ge=0, le=1)
    reasoning: str = ""


class ForcefulDelay(BaseModel):
    reason: str = ""
    confidence: float = Field(0.0, ge=0, le=1)
    category: str = "Unknown"
    evidence: str = ""
    recommendation: str = ""


class DocumentClarityAnalysis(BaseModel):
    document_clarity_provided: bool = False
    document_names: List[str] = Field(default_factory=list)


class DelayAnalysis(BaseModel):
    primary_delay_category: str = "Unknown"
    primary_category_confidence: float = Field(0.0, ge=0, le=1)
    category_summary: str = "Analysis incomplete"
    all_applicable_categories: List[CategoryAttribution] = Field(default_factory=list)
    process_gaps: List[str] = Field(default_factory=list)
    pain_points: List[str] = Field(default_factory=list)
    forceful_delays: List[ForcefulDelay] = Field(default_factory=list)
    document_clarity_analysis: DocumentClarityAnalysis = Field(default_factory=DocumentClarityAnalysis)


class ForensicReport(BaseModel):
    """Full per-ticket analysis; every sub-object is present"""

    ticket_id: str
    employee_remark_analysis: EmployeeRemarkAnalysis = Field(default_factory=EmployeeRemarkAnalysis)
    applicant_remark_analysis: ApplicantRemarkAnalysis = Field(default_factory=ApplicantRemarkAnalysis)
    delay_analysis: DelayAnalysis = Field(default_factory=DelayAnalysis)
    sentiment_summary: str = "Analysis complete."
    ticket_insight_summary: str = "Detailed forensic analysis of the critical path."
    adapted: bool = Field(False, description="Built from a partial or flat response")


# ============================================================
# Insights
# ============================================================

class TabularInsights(BaseModel):
    employee: str = ""
    zone: str = ""
    breach: str = ""
    priority: str = ""
    red_flags: str = ""


class AIInsights(BaseModel):
    """Generative enrichment; every field is optional for callers"""

    provider: Optional[str] = None
    severity: Optional[Severity] = None
    patterns: Optional[str] = None
    root_cause: Optional[str] = None
    bottleneck_prediction: Optional[str] = None
    recommendations: List[str] = Field(default_factory=list)
    tabular: Optional[TabularInsights] = None
    remark_analysis: Optional[ForensicReport] = None
    forensic_reports: Dict[str, ForensicReport] = Field(default_factory=dict)
    refined_tickets: int = 0


# ============================================================
# Project lifecycle
# ============================================================

class ProjectState(str, Enum):
    CREATED = "created"
    STATISTICS_COMPUTED = "statistics_computed"
    GENERATIVE_IN_PROGRESS = "generative_in_progress"
    ENRICHED = "enriched"  # terminal
    ENRICHED_PARTIAL = "enriched_partial"  # terminal

    @property
    def is_terminal(self) -> bool:
        return self in (ProjectState.ENRICHED, ProjectState.ENRICHED_PARTIAL)


_ALLOWED_TRANSITIONS = {
    ProjectState.CREATED: {ProjectState.STATISTICS_COMPUTED},
    ProjectState.STATISTICS_COMPUTED: {ProjectState.GENERATIVE_IN_PROGRESS},
    ProjectState.GENERATIVE_IN_PROGRESS: {ProjectState.ENRICHED, ProjectState.ENRICHED_PARTIAL},
    ProjectState.ENRICHED: set(),
    ProjectState.ENRICHED_PARTIAL: set(),
}


def is_valid_transition(from_state: ProjectState, to_state: ProjectState) -> bool:
    return to_state in _ALLOWED_TRANSITIONS[from_state]


class ProjectAnalysis(BaseModel):
    """One project's deterministic statistics plus generative enrichment"""

    name: str
    state: ProjectState = ProjectState.CREATED
    statistics: Optional[ProjectStatistics] = None
    insights: Optional[AIInsights] = None
    failures: List[str] = Field(default_factory=list, description="Recorded enrichment failures")

    def advance(self, to_state: ProjectState) -> None:
        """Move forward in the lifecycle; regressions raise ValueError"""
        if not is_valid_transition(self.state, to_state):
            raise ValueError(f"Invalid project transition: {self.state.value} -> {to_state.value}")
        self.state = to_state

    def record_failure(self, description: str) -> None:
        self.failures.append(description)
