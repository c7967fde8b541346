"""Behavioral anomaly detection over employee remark histories.

Two red flags are produced per actor:
- REPEATED_REMARK: one remark text dominates the actor's history
- UNUSUAL_DELAY: the actor's mean delay is an outlier against the global mean
"""

import logging
import re
from collections import Counter, defaultdict
from typing import Dict, List, Sequence

from sla_core_lib.core.statistics import math_utils
from sla_core_lib.models.statistics import (
    BehaviorMetrics,
    EmployeeRemarkProfile,
    FlagSeverity,
    RedFlag,
    RedFlagType,
    RemarkFrequency,
    TopicFrequency,
)
from sla_core_lib.models.workflow import WorkflowStep

logger = logging.getLogger(__name__)

EXCLUDED_ACTORS = ("applicant", "citizen", "system", "unknown")

REPETITION_THRESHOLD = 0.6
REPETITION_CRITICAL = 0.8
MIN_SAMPLE_SIZE = 5
MAX_RED_FLAGS = 10
TOP_REMARKS = 3
TOP_TOPICS = 15

STOP_WORDS = frozenset({
    "the", "and", "for", "with", "from", "that", "this", "have", "has", "been",
    "were", "was", "are", "not", "but", "into", "your", "their", "there", "which",
    "will", "shall", "would", "should", "could", "after", "before", "about", "than",
    "then", "them", "they", "also", "only", "same", "such", "upon", "under", "over",
    "being", "done", "please", "kindly", "sent", "send", "applicant", "application",
})

_TOKEN_RE = re.compile(r"[^\W_]+", re.UNICODE)


def is_excluded_actor(name: str) -> bool:
    """Non-staff actors, by case-insensitive substring"""
    lowered = name.lower()
    return any(token in lowered for token in EXCLUDED_ACTORS)


class BehavioralAnomalyDetector:
    """Profiles remark repetition and delay outliers per actor"""

    def __init__(
        self,
        repetition_threshold: float = REPETITION_THRESHOLD,
        min_sample_size: int = MIN_SAMPLE_SIZE,
        max_red_flags: int = MAX_RED_FLAGS,
    ):
        self.repetition_threshold = repetition_threshold
        self.min_sample_size = min_sample_size
        self.max_red_flags = max_red_flags

    def analyze(self, steps: Sequence[WorkflowStep]) -> BehaviorMetrics:
        if not steps:
            return BehaviorMetrics()

        days = [s.days_rested for s in steps]
        global_mean = math_utils.mean(days)
        global_std = math_utils.std_dev(days)

        remarks_by_actor: Dict[str, List[str]] = defaultdict(list)
        delays_by_actor: Dict[str, List[float]] = defaultdict(list)
        for step in steps:
            actor = step.actor
            if is_excluded_actor(actor):
                continue
            delays_by_actor[actor].append(step.days_rested)
            if step.remark:
                remarks_by_actor[actor].append(step.remark.strip())

        profiles: List[EmployeeRemarkProfile] = []
        red_flags: List[RedFlag] = []

        for actor, delays in delays_by_actor.items():
            remarks = remarks_by_actor.get(actor, [])
            counts = Counter(remarks)
            top = counts.most_common(TOP_REMARKS)
            total_remarks = len(remarks)
            repetition_rate = top[0][1] / total_remarks if total_remarks else 0.0
            avg_delay = math_utils.mean(delays)
            is_outlier = (
                len(delays) > self.min_sample_size
                and avg_delay > global_mean + global_std
            )

            profiles.append(EmployeeRemarkProfile(
                employee=actor,
                total_remarks=total_remarks,
                avg_delay=round(avg_delay, 2),
                repetition_rate=round(repetition_rate, 4),
                top_remarks=[RemarkFrequency(remark=r, count=c) for r, c in top],
                is_delay_outlier=is_outlier,
                anomaly_score=min(1.0, 0.7 * repetition_rate + 0.3 * (1.0 if is_outlier else 0.0)),
            ))

            if repetition_rate > self.repetition_threshold and total_remarks > self.min_sample_size:
                red_flags.append(RedFlag(
                    entity=actor,
                    flag_type=RedFlagType.REPEATED_REMARK,
                    evidence=(
                        f"Used remark '{top[0][0]}' in {top[0][1]} of {total_remarks} cases "
                        f"({repetition_rate:.0%})"
                    ),
                    severity=FlagSeverity.CRITICAL if repetition_rate > REPETITION_CRITICAL else FlagSeverity.HIGH,
                ))

            if is_outlier:
                red_flags.append(RedFlag(
                    entity=actor,
                    flag_type=RedFlagType.UNUSUAL_DELAY,
                    evidence=(
                        f"Average delay {avg_delay:.1f} days vs global mean {global_mean:.1f} "
                        f"over {len(delays)} tasks"
                    ),
                    severity=FlagSeverity.CRITICAL if avg_delay > 2 * global_mean else FlagSeverity.HIGH,
                ))

        profiles.sort(key=lambda p: (-p.anomaly_score, p.employee))
        if len(red_flags) > self.max_red_flags:
            logger.debug(f"Capping {len(red_flags)} red flags to {self.max_red_flags}")

        return BehaviorMetrics(
            profiles=profiles,
            red_flags=red_flags[: self.max_red_flags],
            topics=extract_topics(s.remark for s in steps),
        )


def extract_topics(remarks, limit: int = TOP_TOPICS) -> List[TopicFrequency]:
    """Most frequent content words across all remark text"""
    counts: Counter = Counter()
    for remark in remarks:
        if not remark:
            continue
        for token in _TOKEN_RE.findall(remark.lower()):
            if len(token) <= 3 or token.isdigit() or token in STOP_WORDS:
                continue
            counts[token] += 1
    return [TopicFrequency(topic=t, count=c) for t, c in counts.most_common(limit)]
