"""
Forensic enrichment package.

The orchestrator runs the generative stage over a project's statistics;
the scheduler, progress reporter and response adapter support it.
"""

from .adapter import adapt_forensic_response, adapt_simple_response
from .orchestrator import ForensicBatchOrchestrator, GenerativeStageError
from .progress import ProgressEvent, ProgressReporter
from .scheduler import BatchOutcome, RateLimitedScheduler

__all__ = [
    "adapt_forensic_response",
    "adapt_simple_response",
    "ForensicBatchOrchestrator",
    "GenerativeStageError",
    "ProgressEvent",
    "ProgressReporter",
    "BatchOutcome",
    "RateLimitedScheduler",
]
