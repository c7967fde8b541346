"""Utility modules for the SLA analytics library."""

from sla_core_lib.utils.resilience import (
    TRANSIENT_ERRORS,
    call_with_retry,
    create_custom_retry,
)

__all__ = [
    "TRANSIENT_ERRORS",
    "call_with_retry",
    "create_custom_retry",
]
