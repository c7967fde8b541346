"""Numeric helpers for SLA statistics.

All functions are total: empty input and zero variance degrade to neutral
values (0, STABLE) instead of raising.
"""

from typing import Sequence

import numpy as np

from sla_core_lib.models.statistics import (
    MetricAnomaly,
    MetricSeverity,
    RiskCategory,
    TrendDirection,
)

# Relative change between half-averages that counts as a trend
TREND_CHANGE_THRESHOLD = 0.05


def _as_array(values: Sequence[float]) -> np.ndarray:
    return np.asarray(list(values), dtype=float)


def mean(values: Sequence[float]) -> float:
    data = _as_array(values)
    if data.size == 0:
        return 0.0
    return float(data.mean())


def std_dev(values: Sequence[float]) -> float:
    """Population standard deviation"""
    data = _as_array(values)
    if data.size == 0:
        return 0.0
    return float(data.std())


def z_score(value: float, mean_value: float, std_value: float) -> float:
    """Standard score; zero deviation means no anomaly (0)"""
    if std_value == 0:
        return 0.0
    return (value - mean_value) / std_value


def calculate_trend(values: Sequence[float]) -> TrendDirection:
    """Compare the averages of the first and second halves"""
    data = _as_array(values)
    if data.size < 2:
        return TrendDirection.STABLE

    mid = data.size // 2
    first_avg = float(data[:mid].mean())
    second_avg = float(data[mid:].mean())
    if first_avg == 0:
        return TrendDirection.STABLE

    change = (second_avg - first_avg) / abs(first_avg)
    if change > TREND_CHANGE_THRESHOLD:
        return TrendDirection.INCREASING
    if change < -TREND_CHANGE_THRESHOLD:
        return TrendDirection.DECREASING
    return TrendDirection.STABLE


def average_change(values: Sequence[float]) -> float:
    """Mean of consecutive differences"""
    data = _as_array(values)
    if data.size < 2:
        return 0.0
    return float(np.diff(data).mean())


def classify_risk(z: float) -> RiskCategory:
    magnitude = abs(z)
    if magnitude > 10:
        return RiskCategory.CRITICAL
    if magnitude > 5:
        return RiskCategory.HIGH
    return RiskCategory.MEDIUM


def risk_score(z: float, bonus: float = 0) -> int:
    """Scale |z| onto 0..100 (|z| of 20 saturates), plus an optional bonus"""
    score = round(abs(z) / 20 * 100 + bonus)
    return int(min(100, max(0, score)))


def detect_metric_anomaly(
    history: Sequence[float],
    current: float,
    warning_threshold: float = 2.0,
    critical_threshold: float = 3.0,
) -> MetricAnomaly:
    """Classify ``current`` against the historical distribution"""
    mean_value = mean(history)
    std_value = std_dev(history)
    z = z_score(current, mean_value, std_value)

    magnitude = abs(z)
    if magnitude >= critical_threshold:
        severity = MetricSeverity.CRITICAL
    elif magnitude >= warning_threshold:
        severity = MetricSeverity.WARNING
    else:
        severity = MetricSeverity.NORMAL

    return MetricAnomaly(
        current_value=current,
        mean=mean_value,
        std_dev=std_value,
        z_score=z,
        severity=severity,
        is_anomaly=severity != MetricSeverity.NORMAL,
    )
