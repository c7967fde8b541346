"""Recovery of structured data from generated text.

Model output routinely arrives wrapped in code fences, truncated mid-object,
with stray quotes from measurements (``50"``), missing separators or
Python-style quoting. parse_json_response() recovers a value through staged
fallbacks, each stage attempted only when the previous one failed:

1. strip fences and locate the JSON candidate (exact brace matching first)
2. strict parse
3. textual repairs, then strict parse again
4. relaxed literal evaluation, guarded by a denylist of code constructs
5. per-field reconstruction of top-level objects and flat string fields
6. UNRECOVERABLE

Each stage is a public function so it can be exercised on its own.
Structural repairs run on a skeleton in which every string literal has been
replaced by an indexed placeholder, so they never rewrite text inside strings.

extract_section() pulls one labelled part out of multi-part text answers.

Nothing in this module raises on malformed input.
"""

import ast
import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

# Work bound for pathological inputs
MAX_INPUT_CHARS = 200_000

# Top-level objects of a forensic answer
DEFAULT_OBJECT_KEYS = ("employeeRemarkAnalysis", "applicantRemarkAnalysis", "delayAnalysis")

# Top-level string fields worth recovering on their own
FLAT_STRING_FIELDS = (
    "sentimentSummary",
    "ticketInsightSummary",
    "category",
    "englishSummary",
    "employeeAnalysis",
    "applicantAnalysis",
    "summary",
    "rootCause",
)

_PAIRS = {"{": "}", "[": "]"}
_PARSE_ERRORS = (ValueError, TypeError, SyntaxError, RecursionError, MemoryError)


class ParseStage(str, Enum):
    STRICT = "strict"
    REPAIRED = "repaired"
    RELAXED = "relaxed"
    RECONSTRUCTED = "reconstructed"
    UNRECOVERABLE = "unrecoverable"


@dataclass
class ParseResult:
    value: Any
    stage: ParseStage

    @property
    def recovered(self) -> bool:
        return self.value is not None


# ============================================================
# Stage 1: candidate location
# ============================================================

_FENCE_RE = re.compile(r"```[A-Za-z]*")


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text).strip()


def _scan(text: str, start: int, string_aware: bool = True):
    """
    Match the bracket opened at ``text[start]``.

    Returns (end, stack, in_string): ``end`` is the index of the matching
    closer or None when the text runs out first, in which case ``stack``
    holds the closers still owed. A mismatched closer returns (None, None, False).
    """
    stack: List[str] = []
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"' and string_aware:
            in_string = True
        elif ch in _PAIRS:
            stack.append(_PAIRS[ch])
        elif ch in "}]":
            if not stack or stack[-1] != ch:
                return None, None, False
            stack.pop()
            if not stack:
                return i, [], False
    return None, stack, in_string


def candidate_starts(text: str) -> List[int]:
    """Positions of the first ``{`` and the first ``[``, earliest first"""
    return sorted(i for i in {text.find("{"), text.find("[")} if i != -1)


def locate_json_candidate(text: str, start: Optional[int] = None) -> Optional[str]:
    """
    Substring from the first ``{``/``[`` (or ``start``) to its best-guess closer.

    Tries, in order: string-aware bracket matching, bracket matching that
    ignores quoting (survives stray quotes), the last matching closer in the
    text, and finally the whole tail (truncated output).
    """
    if start is None:
        starts = candidate_starts(text)
        if not starts:
            return None
        start = starts[0]

    for string_aware in (True, False):
        end, _, _ = _scan(text, start, string_aware)
        if end is not None:
            return text[start:end + 1]

    last = text.rfind(_PAIRS[text[start]])
    if last > start:
        return text[start:last + 1]
    return text[start:]


# ============================================================
# Stage 2: strict parse
# ============================================================

def parse_strict(text: str) -> Optional[Any]:
    """JSON grammar; raw control characters inside strings are tolerated"""
    try:
        value = json.loads(text, strict=False)
    except _PARSE_ERRORS:
        return None
    return value if isinstance(value, (dict, list)) else None


# ============================================================
# Stage 3: textual repairs
# ============================================================

_PLACEHOLDER_RE = re.compile('"\x00(\\d+)\x00"')


def _mask_strings(text: str) -> Tuple[str, List[str]]:
    """Replace double-quoted literals with indexed placeholders"""
    text = text.replace("\x00", "")
    literals: List[str] = []
    out: List[str] = []
    i, n = 0, len(text)
    while i < n:
        j = text.find('"', i)
        if j == -1:
            out.append(text[i:])
            break
        out.append(text[i:j])
        k = j + 1
        while k < n:
            c = text[k]
            if c == "\\":
                k += 2
                continue
            if c == '"':
                break
            k += 1
        end = min(k + 1, n)
        literals.append(text[j:end])
        out.append(f'"\x00{len(literals) - 1}\x00"')
        i = end
    return "".join(out), literals


def _unmask_strings(skeleton: str, literals: Sequence[str]) -> str:
    return _PLACEHOLDER_RE.sub(lambda m: literals[int(m.group(1))], skeleton)


def _on_skeleton(text: str, transform) -> str:
    skeleton, literals = _mask_strings(text)
    return _unmask_strings(transform(skeleton), literals)


_DIMENSION_QUOTE_RE = re.compile(r'(?<![\d.])(\d+(?:\.\d+)?)"(?!\s*[,}\]:"]|\s*$)')


def escape_dimension_quotes(text: str) -> str:
    """Escape a quote that follows a number inside a string (``50" wide``)"""
    def replace(match):
        source = match.string
        i = match.start() - 1
        while i >= 0 and source[i] in " \t\r\n":
            i -= 1
        # A bare numeral value (after ':' ',' '[') is followed by a missing comma, not a unit
        if i >= 0 and source[i] in ":,[":
            return match.group(0)
        return match.group(1) + '\\"'
    return _DIMENSION_QUOTE_RE.sub(replace, text)


_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


def strip_trailing_commas(text: str) -> str:
    return _on_skeleton(text, lambda s: _TRAILING_COMMA_RE.sub(r"\1", s))


_ADJACENT_STRINGS_RE = re.compile(r'"\s*"')
_ADJACENT_CONTAINERS_RE = re.compile(r"([}\]])\s*(?=[{\[\"])")
_BARE = r"(?<![\w.\x00])(-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?|true|false|null)"
_BARE_BEFORE_QUOTE_RE = re.compile(_BARE + r'(\s*)(?=")')
_BARE_BEFORE_VALUE_RE = re.compile(_BARE + r"\s+(?=[-\d{\[]|true\b|false\b|null\b)")


def insert_missing_commas(text: str) -> str:
    """Comma between adjacent strings, objects, arrays and bare values"""
    def transform(s: str) -> str:
        s = _ADJACENT_STRINGS_RE.sub('","', s)
        s = _ADJACENT_CONTAINERS_RE.sub(r"\1,", s)
        s = _BARE_BEFORE_QUOTE_RE.sub(r"\1,\2", s)
        return _BARE_BEFORE_VALUE_RE.sub(r"\1, ", s)
    return _on_skeleton(text, transform)


_DUPLICATE_COMMA_RE = re.compile(r",(?:\s*,)+")
_LEADING_COMMA_RE = re.compile(r"([{\[])\s*,")


def collapse_duplicate_commas(text: str) -> str:
    def transform(s: str) -> str:
        s = _DUPLICATE_COMMA_RE.sub(",", s)
        return _LEADING_COMMA_RE.sub(r"\1", s)
    return _on_skeleton(text, transform)


_SINGLE_QUOTED_KEY_RE = re.compile(r"([{,]\s*)'([^'\"\n]*)'(\s*:)")
_SINGLE_QUOTED_VALUE_RE = re.compile(r"(:\s*)'([^'\"\n]*)'")
_SINGLE_QUOTED_ITEM_RE = re.compile(r"([\[,]\s*)'([^'\"\n]*)'(?=\s*[,\]])")


def normalize_single_quotes(text: str) -> str:
    """Single-quoted keys, values and array items become double-quoted"""
    def transform(s: str) -> str:
        s = _SINGLE_QUOTED_KEY_RE.sub(r'\1"\2"\3', s)
        s = _SINGLE_QUOTED_VALUE_RE.sub(r'\1"\2"', s)
        return _SINGLE_QUOTED_ITEM_RE.sub(r'\1"\2"', s)
    return _on_skeleton(text, transform)


REPAIRS = (
    escape_dimension_quotes,
    strip_trailing_commas,
    insert_missing_commas,
    collapse_duplicate_commas,
    normalize_single_quotes,
)


def repair_json(text: str) -> str:
    """Apply every textual repair in order"""
    for repair in REPAIRS:
        text = repair(text)
    return text


# ============================================================
# Stage 4: relaxed evaluation
# ============================================================

_DANGEROUS_RE = re.compile(
    r"__\w+|\blambda\b|\bimport\b|\bdef\s|\bclass\s|=>|\bfunction\b"
    r"|\b(?:eval|exec|compile|open|getattr|setattr|globals|locals|require|input)\s*\("
)
_BARE_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_][\w\-]*)(\s*:)")
_JSON_LITERALS = {"true": "True", "false": "False", "null": "None"}
_JSON_LITERAL_RE = re.compile(r"\b(true|false|null)\b")


def contains_code(text: str) -> bool:
    """True when text outside string literals looks like code"""
    skeleton, _ = _mask_strings(text)
    return bool(_DANGEROUS_RE.search(skeleton))


def parse_relaxed(text: str) -> Optional[Any]:
    """Evaluate as a Python literal after a code-construct denylist check"""
    if contains_code(text):
        logger.debug("Relaxed evaluation refused: code-like construct found")
        return None

    def transform(s: str) -> str:
        s = _BARE_KEY_RE.sub(r'\1"\2"\3', s)
        return _JSON_LITERAL_RE.sub(lambda m: _JSON_LITERALS[m.group(1)], s)

    try:
        value = ast.literal_eval(_on_skeleton(text, transform).strip())
    except _PARSE_ERRORS:
        return None
    return value if isinstance(value, (dict, list)) else None


# ============================================================
# Stage 5: field reconstruction
# ============================================================

_OBJECT_KEY_RE = re.compile(r'"([A-Za-z_]\w*)"\s*:\s*\{')
_DANGLING_KEY_RE = re.compile(r'([,{])\s*"[^"]*"\s*$')
_DANGLING_MEMBER_RE = re.compile(r',?\s*"[^"]*"\s*:\s*[A-Za-z]*\s*$')
_TRAILING_COMMA_END_RE = re.compile(r",\s*$")
_TAIL_WINDOW = 512


def _depth_map(text: str) -> List[int]:
    """Nesting depth before each index, or -1 inside string literals"""
    depths = [0] * len(text)
    depth = 0
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            depths[i] = -1
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        depths[i] = depth
        if ch == '"':
            in_string = True
        elif ch in _PAIRS:
            depth += 1
        elif ch in "}]":
            depth = max(0, depth - 1)
    return depths


def close_truncated(fragment: str) -> Optional[str]:
    """
    Best-effort closure of an object cut off mid-stream.

    Closes an open string, drops a dangling key or ``"key":`` member and any
    trailing comma, then appends the closers still owed.
    """
    end, stack, in_string = _scan(fragment, 0)
    if end is not None:
        return fragment[:end + 1]
    if stack is None:
        return None

    text = fragment + ('"' if in_string else "")
    cut = max(0, len(text) - _TAIL_WINDOW)
    head, tail = text[:cut], text[cut:].rstrip()

    if stack and stack[-1] == "}":
        match = _DANGLING_KEY_RE.search(tail)
        if match:
            tail = tail[:match.start(1) + (1 if match.group(1) == "{" else 0)]
    tail = _DANGLING_MEMBER_RE.sub("", tail)
    tail = _TRAILING_COMMA_END_RE.sub("", tail)
    return head + tail + "".join(reversed(stack))


def _parse_fragment(fragment: str) -> Optional[Any]:
    value = parse_strict(fragment)
    if value is None:
        repaired = repair_json(fragment)
        value = parse_strict(repaired)
        if value is None:
            value = parse_relaxed(repaired)
    return value


def _extract_object(text: str, brace_index: int) -> Optional[dict]:
    end, _, _ = _scan(text, brace_index)
    if end is not None:
        fragment = text[brace_index:end + 1]
    else:
        fragment = close_truncated(text[brace_index:])
        if fragment is None:
            return None
        logger.debug("Closed truncated object during reconstruction")
    value = _parse_fragment(fragment)
    return value if isinstance(value, dict) else None


def _unescape(raw: str) -> str:
    try:
        return json.loads(f'"{raw}"', strict=False)
    except _PARSE_ERRORS:
        return raw


def reconstruct_fields(
    text: str,
    expected_keys: Optional[Iterable[str]] = None,
    flat_keys: Iterable[str] = FLAT_STRING_FIELDS,
) -> Optional[dict]:
    """
    Recover top-level fields one by one from an otherwise broken document.

    Every ``"key": {`` at the shallowest nesting level found (plus any
    ``expected_keys``, wherever they occur) is extracted with explicit brace
    counting and parsed on its own, so one corrupted field cannot poison the
    rest. Flat string fields are recovered by pattern. Returns None when
    nothing is recovered.
    """
    depths = _depth_map(text)
    recovered = {}

    for key in expected_keys or ():
        match = re.search(rf'"{re.escape(key)}"\s*:\s*\{{', text)
        if match:
            value = _extract_object(text, match.end() - 1)
            if value is not None:
                recovered[key] = value

    matches = [m for m in _OBJECT_KEY_RE.finditer(text) if depths[m.start()] >= 0]
    if matches:
        shallowest = min(depths[m.start()] for m in matches)
        for match in matches:
            key = match.group(1)
            if depths[match.start()] != shallowest or key in recovered:
                continue
            value = _extract_object(text, match.end() - 1)
            if value is not None:
                recovered[key] = value

    for key in flat_keys:
        if key in recovered:
            continue
        for match in re.finditer(rf'"{re.escape(key)}"\s*:\s*"((?:[^"\\]|\\.)*)"', text):
            if 0 <= depths[match.start()] <= 1:
                recovered[key] = _unescape(match.group(1))
                break

    return recovered or None


# ============================================================
# Entry point
# ============================================================

def _coerce_text(text: Any) -> str:
    if isinstance(text, bytes):
        return text.decode("utf-8", errors="replace")
    if text is None:
        return ""
    return str(text)


def _parse(text: str, expected_keys: Optional[Iterable[str]]) -> ParseResult:
    stripped = strip_code_fences(_coerce_text(text)[:MAX_INPUT_CHARS])
    if not stripped:
        return ParseResult(None, ParseStage.UNRECOVERABLE)

    covered = -1
    for start in candidate_starts(stripped):
        if start < covered:
            continue  # nested inside an earlier candidate
        candidate = locate_json_candidate(stripped, start)
        covered = start + len(candidate)
        value = parse_strict(candidate)
        if value is not None:
            return ParseResult(value, ParseStage.STRICT)

        repaired = repair_json(candidate)
        value = parse_strict(repaired)
        if value is not None:
            logger.debug("Recovered JSON after textual repair")
            return ParseResult(value, ParseStage.REPAIRED)

        for attempt in (repaired, candidate):
            value = parse_relaxed(attempt)
            if value is not None:
                logger.debug("Recovered JSON through relaxed evaluation")
                return ParseResult(value, ParseStage.RELAXED)

    value = reconstruct_fields(stripped, expected_keys)
    if value is not None:
        logger.debug(f"Reconstructed fields: {sorted(value)}")
        return ParseResult(value, ParseStage.RECONSTRUCTED)

    return ParseResult(None, ParseStage.UNRECOVERABLE)


def parse_json_response(text: Any, expected_keys: Optional[Iterable[str]] = None) -> ParseResult:
    """Recover a JSON object or array from generated text; never raises"""
    try:
        return _parse(text, expected_keys)
    except (*_PARSE_ERRORS, re.error, IndexError) as e:
        logger.warning(f"Response parsing gave up: {type(e).__name__}: {e}")
        return ParseResult(None, ParseStage.UNRECOVERABLE)


# ============================================================
# Section extraction
# ============================================================

_MARKUP_OPEN = r"(?:#{1,6}[ \t]*|\*{1,2}|\[)?"
_MARKUP_CLOSE = r"(?:\]|\*{1,2})?"
_PART_LABEL_RE = re.compile(_MARKUP_OPEN + r"[ \t]*PART_[A-Z0-9_]+", re.IGNORECASE)
_COLON_LABEL_RE = re.compile(
    r"^[ \t]*" + _MARKUP_OPEN + r"[ \t]*[A-Z][A-Z0-9 ]{1,40}[ \t]*" + _MARKUP_CLOSE + r"[ \t]*:",
    re.MULTILINE,
)


def extract_section(text: Any, label: str) -> str:
    """
    Content of one labelled section, up to the next label of the same family.

    Two label families are recognised: ``PART_*`` tags (``## PART_ZONE``,
    ``**PART_ZONE**``, ``[PART_ZONE]``) and uppercase colon labels
    (``ROOT CAUSE:``, ``**PATTERNS:**``). Returns "" when the label is absent.
    """
    if not isinstance(text, str) or not text or not label:
        return ""

    name = label.strip().strip("#*[]: \t")
    if not name:
        return ""
    name_pattern = r"\s+".join(re.escape(part) for part in name.split())
    is_part = name.upper().startswith("PART_")

    if is_part:
        label_re = re.compile(
            _MARKUP_OPEN + r"[ \t]*" + name_pattern + r"(?![A-Za-z0-9_])[ \t]*" + _MARKUP_CLOSE
            + r"[ \t]*:?",
            re.IGNORECASE,
        )
        next_re = _PART_LABEL_RE
    else:
        label_re = re.compile(
            _MARKUP_OPEN + r"[ \t]*" + name_pattern + r"[ \t]*" + _MARKUP_CLOSE + r"[ \t]*:[ \t]*"
            + _MARKUP_CLOSE,
            re.IGNORECASE,
        )
        next_re = _COLON_LABEL_RE

    match = label_re.search(text)
    if not match:
        return ""

    start = match.end()
    following = next_re.search(text, start)
    end = following.start() if following else len(text)
    return text[start:end].strip()


_LIST_ITEM_RE = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s+(.+?)\s*$", re.MULTILINE)


def parse_numbered_list(text: Any, limit: Optional[int] = None) -> List[str]:
    """Numbered or bulleted lines, markdown emphasis removed"""
    if not isinstance(text, str):
        return []
    items = []
    for match in _LIST_ITEM_RE.finditer(text):
        item = match.group(1).replace("**", "").strip()
        if item:
            items.append(item)
        if limit is not None and len(items) >= limit:
            break
    return items
