"""
SLA Intelligence Service.

Metric-level companions to the forensic orchestrator: anomaly detection on a
single metric, short-horizon prediction, alert wording, one-shot questions and
project-aware chat.

The deterministic numbers (mean, deviation, z-score, trend) are always
computed locally and shown to the model; the model only classifies and
explains. When its answer cannot be recovered, anomaly, prediction and alert
calls degrade to a statistical result marked ``ResultSource.STATISTICAL``.
Provider failures are not caught here: LLMProviderError reaches the caller.
"""

import json
import logging
import math
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Type, TypeVar, Union

from sla_core_lib.config.settings import AnalysisSettings
from sla_core_lib.core.prompts import templates
from sla_core_lib.core.prompts.templates import interpolate
from sla_core_lib.core.statistics.math_utils import (
    average_change,
    calculate_trend,
    detect_metric_anomaly,
    mean,
)
from sla_core_lib.infrastructure.llm.providers.base import BaseLLMProvider, OutputFormat
from sla_core_lib.infrastructure.llm.providers.registry import ProviderId, ProviderRegistry
from sla_core_lib.infrastructure.llm.response_parser import parse_json_response
from sla_core_lib.models.forensics import ProjectAnalysis
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
from sla_core_lib.models.statistics import MetricAnomaly, MetricSeverity, RiskCategory, TrendDirection

logger = logging.getLogger(__name__)

ANOMALY_TEMPERATURE = 0.2
PREDICTION_TEMPERATURE = 0.3
ALERT_TEMPERATURE = 0.4
QUERY_TEMPERATURE = 0.5
CHAT_TEMPERATURE = 0.6

SEVEN_POINT_WINDOW = 7
CONTEXT_RISK_LIMIT = 5
CONTEXT_PERFORMER_LIMIT = 3
STATISTICAL_MODEL_NAME = "Linear extrapolation of the average change"
CHAT_ROLES = ("user", "assistant")

URGENCY_BY_SEVERITY = {
    AlertSeverity.WARNING: AlertUrgency.MEDIUM,
    AlertSeverity.CRITICAL: AlertUrgency.HIGH,
}

E = TypeVar("E")


# ============================================================
# Value coercion
# ============================================================

def _finite(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _unit_interval(value: Any, default: float = 0.0) -> float:
    """Clamp to [0, 1]; percentages such as 85 are scaled down"""
    number = _finite(value)
    if number is None:
        return default
    if number > 1:
        number /= 100
    return min(1.0, max(0.0, number))


def _score(value: Any, default: int) -> int:
    number = _finite(value)
    if number is None:
        return default
    return int(min(100, max(0, round(number))))


def _member(enum_cls: Type[E], value: Any, default: E) -> E:
    try:
        return enum_cls(str(value).strip().upper())
    except ValueError:
        return default


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _format_number(value: float) -> str:
    return f"{value:.2f}"


def _next_dates(last_timestamp: str, count: int, today: datetime) -> List[str]:
    """Daily ISO dates following the last timestamp (or today when it does not parse)"""
    try:
        start = datetime.fromisoformat(last_timestamp[:10])
    except ValueError:
        start = today
    return [(start + timedelta(days=offset)).strftime("%Y-%m-%d") for offset in range(1, count + 1)]


# ============================================================
# Project context for chat
# ============================================================

def build_project_context(analysis: Optional[ProjectAnalysis]) -> str:
    """Render a project's statistics as the chat context section; empty without statistics"""
    if analysis is None or analysis.statistics is None:
        return ""
    stats = analysis.statistics
    bottleneck = stats.critical_bottleneck
    high_risk = [
        app for app in stats.risk_applications
        if app.category in (RiskCategory.HIGH, RiskCategory.CRITICAL)
    ]
    medium_risk = [app for app in stats.risk_applications if app.category == RiskCategory.MEDIUM]

    lines = [
        "Current Project Context:",
        f"- Project: {analysis.name}",
        f"- Total Tickets: {stats.unique_tickets}",
        f"- Avg Processing Time: {stats.avg_days:.1f} days",
        f"- Completion Rate: {stats.completion_rate:.1f}%",
        f"- Anomalies Detected: {stats.anomaly_count}",
    ]
    if bottleneck:
        lines.append(
            f"- Critical Bottleneck: {bottleneck.role} ({bottleneck.cases} cases, "
            f"{bottleneck.avg_delay:.1f} days avg delay)"
        )
    else:
        lines.append("- Critical Bottleneck: None")
    lines.append(f"- High Risk Applications: {len(high_risk)}")
    lines.append(f"- Medium Risk Applications: {len(medium_risk)}")

    if high_risk:
        lines.append("")
        lines.append("Top High-Risk Applications:")
        for idx, app in enumerate(high_risk[:CONTEXT_RISK_LIMIT], start=1):
            lines.append(f"{idx}. Ticket {app.ticket_id} - {app.service_name} ({app.zone})")
            lines.append(f"   - Assigned to: {app.role}")
            lines.append(f"   - Risk Score: {app.risk_score}")
            lines.append(f"   - Current Delay: {app.days_rested:g} days")
            lines.append(f"   - Z-Score: {app.z_score:.2f}")

    if stats.top_performers:
        lines.append("")
        lines.append("Top Performers:")
        for idx, performer in enumerate(stats.top_performers[:CONTEXT_PERFORMER_LIMIT], start=1):
            lines.append(f"{idx}. {performer.name} - {performer.tasks} tasks, {performer.avg_days:.1f} days avg")

    return "\n".join(lines)


# ============================================================
# Service
# ============================================================

class SLAIntelligenceService:
    """Metric anomaly, prediction, alert and question answering over one provider registry"""

    def __init__(
        self,
        registry: Optional[ProviderRegistry] = None,
        settings: Optional[AnalysisSettings] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.registry = registry or ProviderRegistry()
        self.settings = settings or AnalysisSettings()
        self.clock = clock

    def _service(self, provider: Union[str, ProviderId, None], api_key: Optional[str]) -> BaseLLMProvider:
        return self.registry.get_service(provider, api_key=api_key)

    async def _generate_json(
        self, service: BaseLLMProvider, prompt: str, system_prompt: str, temperature: float
    ) -> Optional[Dict[str, Any]]:
        response = await service.generate(
            prompt,
            temperature=temperature,
            system_prompt=system_prompt,
            output_format=OutputFormat.JSON,
        )
        parsed = parse_json_response(response.content)
        logger.debug(f"{service.provider_name} metric response parsed at stage {parsed.stage.value}")
        if isinstance(parsed.value, dict):
            return parsed.value
        return None

    # ------------------------------------------------------------
    # Anomaly detection
    # ------------------------------------------------------------

    async def detect_anomaly(
        self,
        current: MetricData,
        historical: Sequence[MetricData],
        provider: Union[str, ProviderId, None] = None,
        api_key: Optional[str] = None,
    ) -> AnomalyResult:
        """
        Classify the current value of a metric against its history.

        Args:
            current: Latest observation
            historical: Earlier observations of the same metric, oldest first
            provider: Provider identifier; None selects the configured default
            api_key: Per-call credential

        Returns:
            AnomalyResult whose metadata always carries the locally computed statistics

        Raises:
            LLMProviderError: the provider call failed
        """
        values = [point.value for point in historical]
        baseline = detect_metric_anomaly(
            values,
            current.value,
            warning_threshold=self.settings.metric_warning_z,
            critical_threshold=self.settings.metric_critical_z,
        )
        recent = values[-self.settings.recent_value_window:]
        prompt = interpolate(templates.METRIC_ANOMALY_PROMPT, {
            "metricName": current.metric_name,
            "currentValue": current.value,
            "timestamp": current.timestamp or "Unknown",
            "historicalMean": _format_number(baseline.mean),
            "historicalStdDev": _format_number(baseline.std_dev),
            "zScore": _format_number(baseline.z_score),
            "sampleSize": len(values),
            "recentValues": ", ".join(f"{v:g}" for v in recent),
            "warningThreshold": self.settings.metric_warning_z,
            "criticalThreshold": self.settings.metric_critical_z,
        })

        service = self._service(provider, api_key)
        data = await self._generate_json(
            service, prompt, templates.METRIC_ANOMALY_SYSTEM_PROMPT, ANOMALY_TEMPERATURE
        )
        if data is None:
            logger.warning(f"Unrecoverable anomaly response for '{current.metric_name}'; using z-score result")
            return self._statistical_anomaly(baseline, len(values))

        severity = _member(MetricSeverity, data.get("severity"), baseline.severity)
        flag = data.get("isAnomaly")
        return AnomalyResult(
            is_anomaly=flag if isinstance(flag, bool) else severity != MetricSeverity.NORMAL,
            severity=severity,
            score=_score(data.get("score"), self._statistical_score(baseline)),
            explanation=_text(data.get("explanation")),
            confidence=_unit_interval(data.get("confidence")),
            detected_at=self.clock(),
            metadata=self._anomaly_metadata(baseline),
        )

    def _anomaly_metadata(self, baseline: MetricAnomaly) -> AnomalyMetadata:
        return AnomalyMetadata(
            z_score=baseline.z_score,
            threshold=self.settings.metric_warning_z,
            historical_mean=baseline.mean,
            historical_std_dev=baseline.std_dev,
        )

    def _statistical_score(self, baseline: MetricAnomaly) -> int:
        """|z| at twice the critical threshold saturates the score"""
        ceiling = 2 * self.settings.metric_critical_z
        return _score(min(abs(baseline.z_score), ceiling) / ceiling * 100, 0)

    def _statistical_anomaly(self, baseline: MetricAnomaly, sample_size: int) -> AnomalyResult:
        return AnomalyResult(
            is_anomaly=baseline.is_anomaly,
            severity=baseline.severity,
            score=self._statistical_score(baseline),
            explanation=(
                f"z-score {baseline.z_score:.2f} against a mean of {baseline.mean:.2f} "
                f"(std dev {baseline.std_dev:.2f}, {sample_size} samples)"
            ),
            confidence=min(1.0, sample_size / self.settings.time_series_window),
            detected_at=self.clock(),
            metadata=self._anomaly_metadata(baseline),
            source=ResultSource.STATISTICAL,
        )

    # ------------------------------------------------------------
    # Prediction
    # ------------------------------------------------------------

    async def predict_metrics(
        self,
        series: TimeSeriesData,
        horizon_days: Optional[int] = None,
        provider: Union[str, ProviderId, None] = None,
        api_key: Optional[str] = None,
    ) -> PredictionResult:
        """
        Forecast the next ``horizon_days`` daily values of a metric.

        Raises:
            ValueError: the series has no values
            LLMProviderError: the provider call failed
        """
        if not series.values:
            raise ValueError(f"Cannot predict '{series.metric_name}' without historical values")
        horizon = horizon_days or self.settings.prediction_horizon_days
        window = self.settings.time_series_window

        values = series.values
        trend = calculate_trend(values)
        change = average_change(values)
        prompt = interpolate(templates.METRIC_PREDICTION_PROMPT, {
            "metricName": series.metric_name,
            "unit": series.unit or "n/a",
            "dataPoints": len(values),
            "windowSize": window,
            "recentValues": ", ".join(f"{v:g}" for v in values[-window:]),
            "recentTimestamps": ", ".join(series.timestamps[-window:]),
            "trend": trend.value,
            "averageChange": _format_number(change),
            "currentValue": values[-1],
            "sevenPointAverage": _format_number(mean(values[-SEVEN_POINT_WINDOW:])),
            "horizonDays": horizon,
        })

        service = self._service(provider, api_key)
        data = await self._generate_json(
            service, prompt, templates.METRIC_PREDICTION_SYSTEM_PROMPT, PREDICTION_TEMPERATURE
        )
        predictions = self._model_predictions(data, horizon) if data is not None else []
        if not predictions:
            logger.warning(f"No usable predictions for '{series.metric_name}'; extrapolating the trend")
            return self._statistical_prediction(series, horizon, trend, change)

        return PredictionResult(
            metric_name=series.metric_name,
            predictions=predictions,
            trend=_member(TrendDirection, data.get("trend"), trend),
            explanation=_text(data.get("explanation")),
            model_used=_text(data.get("modelUsed")) or service.provider_name,
        )

    @staticmethod
    def _model_predictions(data: Dict[str, Any], horizon: int) -> List[PredictedPoint]:
        entries = data.get("predictions")
        if not isinstance(entries, list):
            return []
        points = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            value = _finite(entry.get("predictedValue"))
            if value is None:
                continue
            points.append(PredictedPoint(
                timestamp=_text(entry.get("timestamp")),
                predicted_value=value,
                confidence=_unit_interval(entry.get("confidence")),
            ))
        return points[:horizon]

    def _statistical_prediction(
        self, series: TimeSeriesData, horizon: int, trend: TrendDirection, change: float
    ) -> PredictionResult:
        last_timestamp = series.timestamps[-1] if series.timestamps else ""
        dates = _next_dates(last_timestamp, horizon, self.clock())
        current = series.values[-1]
        points = [
            PredictedPoint(
                timestamp=date,
                predicted_value=current + change * step,
                confidence=max(0.1, 0.8 - 0.1 * (step - 1)),
            )
            for step, date in enumerate(dates, start=1)
        ]
        return PredictionResult(
            metric_name=series.metric_name,
            predictions=points,
            trend=trend,
            explanation=f"Average change of {change:.2f} per point carried forward ({trend.value.lower()} trend)",
            model_used=STATISTICAL_MODEL_NAME,
            source=ResultSource.STATISTICAL,
        )

    # ------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------

    async def generate_alert(
        self,
        request: AlertRequest,
        provider: Union[str, ProviderId, None] = None,
        api_key: Optional[str] = None,
    ) -> AlertResponse:
        deviation = request.deviation_percent
        max_length = self.settings.alert_max_length
        prompt = interpolate(templates.ALERT_PROMPT, {
            "metricName": request.metric_name,
            "currentValue": request.current_value,
            "threshold": request.threshold,
            "deviation": f"{deviation:.1f}",
            "severity": request.severity.value,
            "additionalContext": f"- Additional Context: {request.context}" if request.context else "",
            "maxLength": max_length,
        })

        service = self._service(provider, api_key)
        data = await self._generate_json(service, prompt, templates.ALERT_SYSTEM_PROMPT, ALERT_TEMPERATURE)
        default_urgency = URGENCY_BY_SEVERITY[request.severity]
        message = _text(data.get("message")) if data is not None else ""
        if not message:
            logger.warning(f"Unrecoverable alert response for '{request.metric_name}'; using template alert")
            return AlertResponse(
                message=(
                    f"{request.metric_name} is {request.current_value:g}, {deviation:+.1f}% against "
                    f"its threshold of {request.threshold:g}"
                )[:max_length],
                recommendation=f"Review the recent changes behind {request.metric_name} and restore it below the threshold",
                urgency=default_urgency,
                source=ResultSource.STATISTICAL,
            )

        return AlertResponse(
            message=message[:max_length],
            recommendation=_text(data.get("recommendation")),
            urgency=_member(AlertUrgency, data.get("urgency"), default_urgency),
        )

    # ------------------------------------------------------------
    # Questions and chat
    # ------------------------------------------------------------

    async def query(
        self,
        question: str,
        context: Optional[Mapping[str, Any]] = None,
        provider: Union[str, ProviderId, None] = None,
        api_key: Optional[str] = None,
    ) -> str:
        """Answer one question, optionally grounded on a JSON-serializable context"""
        prompt = question
        if context:
            prompt += "\n\nContext: " + json.dumps(context, indent=2, default=str)
        service = self._service(provider, api_key)
        response = await service.generate(
            prompt, temperature=QUERY_TEMPERATURE, system_prompt=templates.QUERY_SYSTEM_PROMPT
        )
        return response.content

    async def chat_query(
        self,
        question: str,
        history: Sequence[Mapping[str, str]] = (),
        analysis: Optional[ProjectAnalysis] = None,
        provider: Union[str, ProviderId, None] = None,
        api_key: Optional[str] = None,
    ) -> str:
        """
        Continue a conversation about one project.

        Only the most recent ``chat_history_limit`` user/assistant turns are
        forwarded; other roles and non-text turns are dropped.
        """
        system_prompt = templates.CHATBOT_SYSTEM_PROMPT
        project_context = build_project_context(analysis)
        if project_context:
            system_prompt += "\n" + project_context

        turns = [
            {"role": turn["role"], "content": turn["content"]}
            for turn in history
            if turn.get("role") in CHAT_ROLES and isinstance(turn.get("content"), str)
        ]
        limit = self.settings.chat_history_limit
        turns = turns[-limit:] if limit else []

        messages = [{"role": "system", "content": system_prompt}, *turns, {"role": "user", "content": question}]
        service = self._service(provider, api_key)
        logger.info(f"Chat query on '{service.provider_name}' with {len(turns)} prior turns")
        response = await service.chat(messages, temperature=CHAT_TEMPERATURE)
        return response.content
