"""Progress events for long-running enrichment.

Progress is advisory: a sink that raises is logged and ignored, never
allowed to interrupt the analysis it is observing.
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressEvent:
    stage: str
    percent: int
    detail: str = ""


ProgressSink = Callable[[ProgressEvent], Any]


class ProgressReporter:
    """Forwards ProgressEvents to an optional sync or async sink"""

    def __init__(self, sink: Optional[ProgressSink] = None):
        self.sink = sink

    async def report(self, stage: str, percent: int, detail: str = "") -> None:
        percent = max(0, min(100, int(percent)))
        logger.info(f"[{percent:3d}%] {stage}{': ' + detail if detail else ''}")

        if self.sink is None:
            return
        try:
            result = self.sink(ProgressEvent(stage=stage, percent=percent, detail=detail))
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Progress sink failed at stage '{stage}': {e}")
