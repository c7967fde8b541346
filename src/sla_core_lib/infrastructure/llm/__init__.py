"""LLM capability gateway and response recovery."""

from .response_parser import (
    ParseResult,
    ParseStage,
    extract_section,
    parse_json_response,
    parse_numbered_list,
)

__all__ = [
    "ParseResult",
    "ParseStage",
    "extract_section",
    "parse_json_response",
    "parse_numbered_list",
]
