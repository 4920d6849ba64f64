"""Repair raw generated text into parseable JSON.

The generation backend wraps structured output in markdown fences, adds prose,
leaves trailing commas and writes comments. The passes below run in a fixed
order; each one assumes the previous ones already ran, so the order is part of
the contract:

1. strip_fenced_prose      prose before the first fence opener / after the last closer
2. remove_fence_markers    any remaining ``` markers (language tag included)
3. trim_whitespace
4. slice_to_structure      first ``[``/``{`` to the last matching closer
5. remove_trailing_commas  ``,`` right before ``]``/``}``, outside strings
6. strip_line_comments     ``// ...`` outside strings
7. strip_control_chars     C0 controls except newline, carriage return, tab
8. strict parse            ``json.loads``

Text that already parses as JSON is returned untouched; no pass runs on it.

If the strict parse fails, one fallback runs against the original text: the
first bracketed array is extracted, trailing commas are removed and it is
parsed again. The sanitizer never raises.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple

import structlog

logger = structlog.get_logger(__name__)

FENCE = "```"

_FENCE_OPENER = re.compile(r"```[A-Za-z0-9_+.-]*[ \t]*\r?\n?")
_FENCE_MARKER = re.compile(r"```[A-Za-z0-9_+.-]*")
_STRING_OR_TRAILING_COMMA = re.compile(r'("(?:\\.|[^"\\])*")|,(\s*[\]}])')
_STRING_OR_COMMENT = re.compile(r'("(?:\\.|[^"\\])*")|//[^\n\r]*')
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")
# Longer inputs are cut before the fallback scan
FALLBACK_MAX_CHARS = 200_000

FALLBACK_PASS = "fallback_array_extraction"


@dataclass(slots=True)
class SanitizationResult:
    """Outcome of one sanitize call."""

    value: Any = None
    ok: bool = False
    attempted_passes: List[str] = field(default_factory=list)


def strip_fenced_prose(text: str) -> str:
    opener = _FENCE_OPENER.search(text)
    if opener is None:
        return text
    body = text[opener.end():]
    closer = body.rfind(FENCE)
    if closer == -1:
        return body
    return body[:closer]


def remove_fence_markers(text: str) -> str:
    return _FENCE_MARKER.sub("", text)


def trim_whitespace(text: str) -> str:
    return text.strip()


def slice_to_structure(text: str) -> str:
    # A bare JSON string literal may legitimately contain brackets
    if len(text) >= 2 and text[0] == '"' and text[-1] == '"':
        return text

    starts = [index for index in (text.find("["), text.find("{")) if index != -1]
    if not starts:
        return text

    start = min(starts)
    closer = "]" if text[start] == "[" else "}"
    end = text.rfind(closer)
    if end < start:
        return text
    return text[start:end + 1]


def remove_trailing_commas(text: str) -> str:
    return _STRING_OR_TRAILING_COMMA.sub(
        lambda m: m.group(1) if m.group(1) is not None else m.group(2),
        text
    )


def strip_line_comments(text: str) -> str:
    return _STRING_OR_COMMENT.sub(
        lambda m: m.group(1) if m.group(1) is not None else "",
        text
    )


def strip_control_chars(text: str) -> str:
    return _CONTROL_CHARS.sub("", text)


TextPass = Callable[[str], str]

REPAIR_PASSES: List[Tuple[str, TextPass]] = [
    ("strip_fenced_prose", strip_fenced_prose),
    ("remove_fence_markers", remove_fence_markers),
    ("trim_whitespace", trim_whitespace),
    ("slice_to_structure", slice_to_structure),
    ("remove_trailing_commas", remove_trailing_commas),
    ("strip_line_comments", strip_line_comments),
    ("strip_control_chars", strip_control_chars),
]

PARSE_PASS = "strict_parse"


def first_bracketed_array(text: str) -> Optional[str]:
    """First `[` through the last `]`, the span a greedy bracket regex matches"""

    start = text.find("[")
    end = text.rfind("]")
    if start < 0 or end < start:
        return None
    return text[start:end + 1]


def _strict_parse(text: str) -> Tuple[bool, Any]:
    try:
        return True, json.loads(text)
    except (ValueError, RecursionError):
        return False, None


class ResponseSanitizer:
    """Ordered, non-branching repair pipeline for generated JSON."""

    def __init__(self, passes: Optional[List[Tuple[str, TextPass]]] = None) -> None:
        self.passes = list(passes) if passes is not None else list(REPAIR_PASSES)

    def sanitize(self, raw: Optional[str]) -> SanitizationResult:
        result = SanitizationResult()
        original = raw if isinstance(raw, str) else ""

        ok, value = _strict_parse(original)
        if ok:
            result.attempted_passes.append(PARSE_PASS)
            result.value, result.ok = value, True
            return result

        text = original
        for name, repair in self.passes:
            result.attempted_passes.append(name)
            text = repair(text)

        result.attempted_passes.append(PARSE_PASS)
        ok, value = _strict_parse(text)
        if ok:
            result.value, result.ok = value, True
            return result

        result.attempted_passes.append(FALLBACK_PASS)
        candidate = first_bracketed_array(original[:FALLBACK_MAX_CHARS])
        if candidate is not None:
            ok, value = _strict_parse(remove_trailing_commas(candidate))
            if ok:
                result.value, result.ok = value, True
                return result

        logger.debug("Sanitization failed", raw_prefix=original[:80], length=len(original))
        return result


_default_sanitizer = ResponseSanitizer()


def sanitize(raw: Optional[str]) -> SanitizationResult:
    """Sanitize with the default pass order"""
    return _default_sanitizer.sanitize(raw)
