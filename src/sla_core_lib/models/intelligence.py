"""Metric intelligence models.

Inputs and results of the SLA intelligence service: single-metric anomaly
detection, short-horizon prediction, alert wording and free-form questions.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from sla_core_lib.models.statistics import MetricSeverity, TrendDirection


class AlertSeverity(str, Enum):
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


class AlertUrgency(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class ResultSource(str, Enum):
    MODEL = "model"  # recovered from the provider's answer
    STATISTICAL = "statistical"  # deterministic fallback


# ============================================================
# Inputs
# ============================================================

class MetricData(BaseModel):
    metric_name: str
    value: float
    timestamp: str = ""


class TimeSeriesData(BaseModel):
    """Equal-length value and timestamp sequences for one metric"""

    metric_name: str
    values: List[float] = Field(default_factory=list)
    timestamps: List[str] = Field(default_factory=list)
    unit: str = ""

    @model_validator(mode="after")
    def check_lengths(self):
        if self.timestamps and len(self.timestamps) != len(self.values):
            raise ValueError(
                f"{len(self.values)} values but {len(self.timestamps)} timestamps for {self.metric_name}"
            )
        return self


class AlertRequest(BaseModel):
    metric_name: str
    current_value: float
    threshold: float
    severity: AlertSeverity
    context: Optional[str] = None

    @property
    def deviation_percent(self) -> float:
        """Signed distance from the threshold, in percent of the threshold"""
        if self.threshold == 0:
            return 0.0
        return (self.current_value - self.threshold) / abs(self.threshold) * 100


# ============================================================
# Results
# ============================================================

class AnomalyMetadata(BaseModel):
    z_score: float
    threshold: float
    historical_mean: float
    historical_std_dev: float


class AnomalyResult(BaseModel):
    is_anomaly: bool
    severity: MetricSeverity
    score: int = Field(..., ge=0, le=100)
    explanation: str = ""
    confidence: float = Field(0.0, ge=0, le=1)
    detected_at: datetime
    metadata: AnomalyMetadata
    source: ResultSource = ResultSource.MODEL


class PredictedPoint(BaseModel):
    timestamp: str
    predicted_value: float
    confidence: float = Field(0.0, ge=0, le=1)


class PredictionResult(BaseModel):
    metric_name: str
    predictions: List[PredictedPoint] = Field(default_factory=list)
    trend: TrendDirection = TrendDirection.STABLE
    explanation: str = ""
    model_used: str = ""
    source: ResultSource = ResultSource.MODEL


class AlertResponse(BaseModel):
    message: str
    recommendation: str = ""
    urgency: AlertUrgency
    source: ResultSource = ResultSource.MODEL
