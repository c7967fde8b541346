"""SLA Core Library

Workflow SLA statistics, behavioral anomaly detection, remark categorization
and LLM-backed forensic enrichment and metric intelligence.
"""

__version__ = "0.1.0"

# Models first (no dependencies)
from sla_core_lib.models import (
    ForensicReport,
    ProjectAnalysis,
    ProjectState,
    ProjectStatistics,
    WorkflowStep,
)
from sla_core_lib.config import AnalysisSettings, LLMSettings, get_settings
from sla_core_lib.core.preprocessing import normalize_row, normalize_rows
from sla_core_lib.core.statistics.engine import StatisticsEngine, analyze_workflow_data
from sla_core_lib.core.forensics import ForensicBatchOrchestrator, GenerativeStageError
from sla_core_lib.core.intelligence import SLAIntelligenceService
from sla_core_lib.infrastructure.llm.providers import LLMProviderError, ProviderRegistry

__all__ = [
    # Models
    "ForensicReport", "ProjectAnalysis", "ProjectState", "ProjectStatistics", "WorkflowStep",
    # Configuration
    "AnalysisSettings", "LLMSettings", "get_settings",
    # Analysis
    "normalize_row", "normalize_rows", "StatisticsEngine", "analyze_workflow_data",
    "ForensicBatchOrchestrator", "GenerativeStageError", "SLAIntelligenceService",
    # LLM gateway
    "LLMProviderError", "ProviderRegistry",
]
