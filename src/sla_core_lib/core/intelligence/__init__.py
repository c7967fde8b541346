"""Metric intelligence: anomaly detection, prediction, alerts and project chat."""

from .service import SLAIntelligenceService, build_project_context

__all__ = ["SLAIntelligenceService", "build_project_context"]
