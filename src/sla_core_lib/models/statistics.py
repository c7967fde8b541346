"""Statistics models.

Key Models:
- ProjectStatistics: aggregate computed once per upload
- BehaviorMetrics: per-employee remark profiles, red flags and topics
- Hierarchy: Department -> ParentService -> Service -> Ticket entry
- MetricAnomaly: single-metric z-score classification

ProjectStatistics is append-only after construction except for the one-time
attachment of generative insights (see models.forensics.ProjectAnalysis).
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


# ============================================================
# Enumerations
# ============================================================

class TrendDirection(str, Enum):
    INCREASING = "INCREASING"
    DECREASING = "DECREASING"
    STABLE = "STABLE"


class RiskCategory(str, Enum):
    """Risk bucket by |z|, ordered Medium < High < Critical"""

    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

    @property
    def rank(self) -> int:
        return [RiskCategory.MEDIUM, RiskCategory.HIGH, RiskCategory.CRITICAL].index(self)


class RedFlagType(str, Enum):
    REPEATED_REMARK = "REPEATED_REMARK"  # same remark dominates an actor's history
    UNUSUAL_DELAY = "UNUSUAL_DELAY"  # actor mean delay is an outlier


class FlagSeverity(str, Enum):
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class Severity(str, Enum):
    """Overall project severity"""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class MetricSeverity(str, Enum):
    NORMAL = "NORMAL"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class DelayCategory(str, Enum):
    """The seven fixed delay categories plus the unmatched bucket"""

    DOCUMENTATION = "Documentation Issues"
    COMMUNICATION = "Communication Gaps"
    PROCESS = "Process Bottlenecks"
    APPLICANT = "Applicant-Side Issues"
    EMPLOYEE_SYSTEM = "Employee/System-Side Issues"
    EXTERNAL = "External Dependencies"
    COMPLEXITY = "Complexity/Special Cases"
    UNCATEGORIZED = "Uncategorized"


# ============================================================
# Ranked collections
# ============================================================

class CriticalBottleneck(BaseModel):
    role: str
    cases: int
    avg_delay: float
    threshold_exceeded: int = Field(..., description="Percent above the SLA threshold")


class PerformerSummary(BaseModel):
    name: str
    tasks: int
    avg_days: float


class RiskApplication(BaseModel):
    ticket_id: str
    service_name: str
    role: str
    zone: str
    days_rested: float
    z_score: float
    risk_score: int = Field(..., ge=0, le=100)
    category: RiskCategory
    applicant_flagged: bool = False
    remark: str = ""


class ZonePerformance(BaseModel):
    zone: str
    steps: int
    avg_days: float
    on_time_percent: float


class DeptPerformance(BaseModel):
    name: str
    steps: int
    avg_days: float


# ============================================================
# Behavior
# ============================================================

class RemarkFrequency(BaseModel):
    remark: str
    count: int


class EmployeeRemarkProfile(BaseModel):
    employee: str
    total_remarks: int
    avg_delay: float
    repetition_rate: float
    top_remarks: List[RemarkFrequency] = Field(default_factory=list)
    is_delay_outlier: bool = False
    anomaly_score: float = Field(0.0, ge=0, le=1)


class RedFlag(BaseModel):
    entity: str
    flag_type: RedFlagType
    evidence: str
    severity: FlagSeverity


class TopicFrequency(BaseModel):
    topic: str
    count: int


class BehaviorMetrics(BaseModel):
    profiles: List[EmployeeRemarkProfile] = Field(default_factory=list)
    red_flags: List[RedFlag] = Field(default_factory=list)
    topics: List[TopicFrequency] = Field(default_factory=list)


# ============================================================
# Hierarchy
# ============================================================

class HierarchyTicket(BaseModel):
    """Ticket entry at the leaf of the hierarchy; refined fields are filled later"""

    ticket_id: str
    remark: str = ""
    role: str = ""
    days_rested: float = 0.0
    detected_category: DelayCategory = DelayCategory.UNCATEGORIZED
    english_summary: Optional[str] = None
    employee_analysis: Optional[str] = None
    applicant_analysis: Optional[str] = None
    refined: bool = False


class ServiceNode(BaseModel):
    name: str
    avg_delay: float = 0.0
    step_count: int = 0
    insight: str = ""
    tickets: List[HierarchyTicket] = Field(default_factory=list)


class ParentServiceNode(BaseModel):
    name: str
    services: List[ServiceNode] = Field(default_factory=list)


class DepartmentNode(BaseModel):
    name: str
    parent_services: List[ParentServiceNode] = Field(default_factory=list)


class Hierarchy(BaseModel):
    departments: List[DepartmentNode] = Field(default_factory=list)

    def iter_tickets(self):
        """Yield (department, parent, service, ticket) for every leaf entry"""
        for dept in self.departments:
            for parent in dept.parent_services:
                for service in parent.services:
                    for ticket in service.tickets:
                        yield dept, parent, service, ticket


# ============================================================
# Aggregates
# ============================================================

class ProjectStatistics(BaseModel):
    """Deterministic aggregate for one upload"""

    total_steps: int = 0
    unique_tickets: int = 0
    completed_steps: int = 0
    completion_rate: float = Field(0.0, description="Percent of steps with a delivery date")
    avg_days: float = 0.0
    min_days: float = 0.0
    max_days: float = 0.0
    std_days: float = 0.0
    anomaly_count: int = 0
    trend: TrendDirection = TrendDirection.STABLE

    critical_bottleneck: Optional[CriticalBottleneck] = None
    top_performers: List[PerformerSummary] = Field(default_factory=list)
    risk_applications: List[RiskApplication] = Field(default_factory=list)
    zone_performance: List[ZonePerformance] = Field(default_factory=list)
    dept_performance: List[DeptPerformance] = Field(default_factory=list)

    behavior: BehaviorMetrics = Field(default_factory=BehaviorMetrics)
    hierarchy: Hierarchy = Field(default_factory=Hierarchy)

    @property
    def anomaly_rate(self) -> float:
        """Percent of steps flagged anomalous"""
        if not self.total_steps:
            return 0.0
        return self.anomaly_count / self.total_steps * 100


class MetricAnomaly(BaseModel):
    current_value: float
    mean: float
    std_dev: float
    z_score: float
    severity: MetricSeverity
    is_anomaly: bool
