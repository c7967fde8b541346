"""Data Preprocessing Package

Normalizes upload rows and renders statistics into LLM-digestible text.
"""

from .record_normalizer import normalize_row, normalize_rows
from .data_preprocessor import (
    build_ticket_transcript,
    format_generic_transcript,
    preprocess_statistics,
)

__all__ = [
    "normalize_row",
    "normalize_rows",
    "build_ticket_transcript",
    "format_generic_transcript",
    "preprocess_statistics",
]
