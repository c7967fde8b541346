"""
Data models for the SLA analytics library.

Pydantic models for normalized workflow steps, deterministic statistics and
generative forensic enrichment, plus metric intelligence inputs and results.
"""

from sla_core_lib.models.workflow import WorkflowStep
from sla_core_lib.models.statistics import (
    BehaviorMetrics,
    CriticalBottleneck,
    DelayCategory,
    DepartmentNode,
    DeptPerformance,
    EmployeeRemarkProfile,
    FlagSeverity,
    Hierarchy,
    HierarchyTicket,
    MetricAnomaly,
    MetricSeverity,
    ParentServiceNode,
    PerformerSummary,
    ProjectStatistics,
    RedFlag,
    RedFlagType,
    RemarkFrequency,
    RiskApplication,
    RiskCategory,
    ServiceNode,
    Severity,
    TopicFrequency,
    TrendDirection,
    ZonePerformance,
)
from sla_core_lib.models.forensics import (
    AIInsights,
    ApplicantRemarkAnalysis,
    CategoryAttribution,
    DelayAnalysis,
    DocumentClarityAnalysis,
    EmployeeRemarkAnalysis,
    ForcefulDelay,
    ForensicReport,
    InactionFlag,
    ProjectAnalysis,
    ProjectState,
    TabularInsights,
)
from sla_core_lib.models.intelligence import (
    AlertRequest,
    AlertResponse,
    AlertSeverity,
    AlertUrgency,
    AnomalyMetadata,
    AnomalyResult,
    MetricData,
    PredictedPoint,
    PredictionResult,
    ResultSource,
    TimeSeriesData,
)

__all__ = [
    # Workflow
    "WorkflowStep",
    # Statistics
    "BehaviorMetrics", "CriticalBottleneck", "DelayCategory", "DepartmentNode",
    "DeptPerformance", "EmployeeRemarkProfile", "FlagSeverity", "Hierarchy",
    "HierarchyTicket", "MetricAnomaly", "MetricSeverity", "ParentServiceNode",
    "PerformerSummary", "ProjectStatistics", "RedFlag", "RedFlagType",
    "RemarkFrequency", "RiskApplication", "RiskCategory", "ServiceNode",
    "Severity", "TopicFrequency", "TrendDirection", "ZonePerformance",
    # Forensics
    "AIInsights", "ApplicantRemarkAnalysis", "CategoryAttribution", "DelayAnalysis",
    "DocumentClarityAnalysis", "EmployeeRemarkAnalysis", "ForcefulDelay",
    "ForensicReport", "InactionFlag", "ProjectAnalysis", "ProjectState",
    "TabularInsights",
    # Intelligence
    "AlertRequest", "AlertResponse", "AlertSeverity", "AlertUrgency", "AnomalyMetadata",
    "AnomalyResult", "MetricData", "PredictedPoint", "PredictionResult", "ResultSource",
    "TimeSeriesData",
]
