"""Recovery of structured records from generated text.

Generated responses are frequently wrapped in code fences, cut off by the
token limit or otherwise not valid JSON. ``parse`` tries three recovery tiers
in a fixed order and returns the records of the first tier that yields any:

1. whole-text JSON parse (array, single object or ``{"key": [...]}`` envelope)
2. independent parse of every top-level ``{...}`` object found by balanced
   brace matching, including a trailing object cut off by truncation
3. per-field regex extraction of ``"field": "value"`` fragments

Results of different tiers are never merged.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Iterable, Optional, Sequence, Type, TypeVar

from pydantic import ValidationError

from storyreel_core_schemas import GeneratedRecord, RecoveryLevel

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=GeneratedRecord)

_FENCE = re.compile(r"```[A-Za-z0-9_-]*")
_CLOSERS = {"{": "}", "[": "]"}
_STRING = r'"((?:[^"\\]|\\.)*)"'
_NUMBER = r'(-?\d+(?:\.\d+)?)'
_STRING_LIST = r'\[((?:\s*"(?:[^"\\]|\\.)*"\s*,?)*)'
# Dangling key at the end of a truncated object: `, "key":` or `, "key"`
_DANGLING_KEY_WITH_COLON = re.compile(r',?\s*"(?:[^"\\]|\\.)*"\s*:\s*$')
_DANGLING_KEY = re.compile(r',\s*"(?:[^"\\]|\\.)*"\s*$')


class ParseTier(str, Enum):
    """Recovery tier that produced a parse result."""

    WHOLE_TEXT = "whole_text"
    OBJECT_SCAN = "object_scan"
    FIELD_EXTRACTION = "field_extraction"
    NONE = "none"


@dataclass
class ParseResult:
    """Raw records recovered from generated text."""

    records: list[dict[str, Any]]
    recovery: RecoveryLevel
    tier: ParseTier
    truncated: bool = False

    @property
    def failed(self) -> bool:
        return self.recovery == RecoveryLevel.FAILED


@dataclass
class ParsedRecords(Generic[T]):
    """Validated records recovered from generated text."""

    records: list[T] = field(default_factory=list)
    recovery: RecoveryLevel = RecoveryLevel.FAILED
    tier: ParseTier = ParseTier.NONE
    dropped: int = 0

    @property
    def failed(self) -> bool:
        return self.recovery == RecoveryLevel.FAILED


def strip_code_fences(text: str) -> str:
    """Remove markdown code fence markers (```json ... ```)."""
    return _FENCE.sub("", text or "").strip()


def parse(
    raw_text: str,
    expected_fields: Sequence[str],
    expected_count: Optional[int] = None,
) -> ParseResult:
    """Recover records from generated text.

    Args:
        raw_text: Text returned by the generator
        expected_fields: Field names a record must contain at least one of
        expected_count: Number of records the caller asked for, if known

    Returns:
        ParseResult with the records of the first successful tier. Recovery is
        ``failed`` when no tier yields a record, ``partial`` when fewer records
        than expected came back or the text looks cut off, else ``full``.
        A legitimately empty array is a ``full`` result with no records.
    """
    text = strip_code_fences(raw_text)
    expected = list(expected_fields)
    truncated = appears_truncated(text)

    parsed = _parse_whole_text(text, expected)
    if parsed is not None:
        container_size, records = parsed
        if container_size == 0:
            logger.debug("Whole-text parse returned an empty list")
            return ParseResult([], RecoveryLevel.FULL, ParseTier.WHOLE_TEXT, truncated)
        if records:
            return _result(records, ParseTier.WHOLE_TEXT, truncated, expected_count)

    records = _parse_objects(text, expected)
    if records:
        return _result(records, ParseTier.OBJECT_SCAN, truncated, expected_count)

    records = _extract_fields(text, expected)
    if records:
        return _result(records, ParseTier.FIELD_EXTRACTION, truncated, expected_count)

    preview = text[:200] + "..." if len(text) > 200 else text
    logger.warning("No records recovered from generated text: %r", preview)
    return ParseResult([], RecoveryLevel.FAILED, ParseTier.NONE, truncated)


def parse_records(
    raw_text: str,
    model: Type[T],
    expected_count: Optional[int] = None,
) -> ParsedRecords[T]:
    """Recover records and validate them into a record model.

    Items that fail validation are dropped and logged; dropping any item
    downgrades a ``full`` recovery to ``partial``.
    """
    result = parse(raw_text, model.expected_fields(), expected_count)

    records: list[T] = []
    dropped = 0
    for raw in result.records:
        try:
            records.append(model.model_validate(raw))
        except ValidationError as e:
            dropped += 1
            logger.warning("Dropping invalid %s: %s", model.__name__, e)

    recovery = result.recovery
    if result.records and not records:
        recovery = RecoveryLevel.FAILED
    elif dropped and recovery == RecoveryLevel.FULL:
        recovery = RecoveryLevel.PARTIAL

    return ParsedRecords(records=records, recovery=recovery, tier=result.tier, dropped=dropped)


def appears_truncated(text: str) -> bool:
    """Whether structured text looks cut off.

    True when an array never gets its closing bracket or braces/brackets are
    left open at the end of the text.
    """
    stripped = text.strip()
    if stripped.startswith("[") and not stripped.endswith("]"):
        return True
    start = _first_delimiter(stripped)
    if start < 0:
        return False
    stack, _ = _open_delimiters(stripped[start:])
    return bool(stack)


def _result(
    records: list[dict[str, Any]],
    tier: ParseTier,
    truncated: bool,
    expected_count: Optional[int],
) -> ParseResult:
    short = expected_count is not None and len(records) < expected_count
    recovery = RecoveryLevel.PARTIAL if (short or truncated) else RecoveryLevel.FULL
    logger.debug(
        "Recovered %d record(s) via %s (recovery=%s, truncated=%s)",
        len(records), tier.value, recovery.value, truncated,
    )
    return ParseResult(records, recovery, tier, truncated)


def _has_expected(item: Any, expected: Iterable[str]) -> bool:
    if not isinstance(item, dict):
        return False
    return any(item.get(name) is not None for name in expected)


def _keep(items: Iterable[Any], expected: Sequence[str]) -> list[dict[str, Any]]:
    return [item for item in items if _has_expected(item, expected)]


# ---------------- tier 1: whole text ----------------


def _parse_whole_text(
    text: str, expected: Sequence[str]
) -> Optional[tuple[int, list[dict[str, Any]]]]:
    """Parse the whole text.

    Returns (container size, kept records), or None if the text is not JSON
    of a usable shape.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None

    items = _unwrap(data, expected)
    if items is None:
        return None
    if len(expected) == 1:
        # ["Alice", "Bob"] for single-field records
        items = [{expected[0]: item} if isinstance(item, str) else item for item in items]
    return len(items), _keep(items, expected)


def _unwrap(data: Any, expected: Sequence[str]) -> Optional[list[Any]]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        if _has_expected(data, expected):
            return [data]
        # Envelope such as {"characters": [...]}
        lists = [value for value in data.values() if isinstance(value, list)]
        if len(lists) == 1:
            return lists[0]
    return None


# ---------------- tier 2: balanced object scan ----------------


def _parse_objects(text: str, expected: Sequence[str]) -> list[dict[str, Any]]:
    segments, tail = _scan_objects(text)

    records: list[dict[str, Any]] = []
    for segment in segments:
        try:
            obj = json.loads(segment)
        except json.JSONDecodeError as e:
            logger.debug("Skipping invalid object segment: %s", e)
            continue
        if _has_expected(obj, expected):
            records.append(obj)

    if tail is not None:
        obj = _close_truncated(*tail)
        if _has_expected(obj, expected):
            logger.debug("Recovered truncated trailing object")
            records.append(obj)

    return records


def _scan_objects(text: str) -> tuple[list[str], Optional[tuple[str, list[str]]]]:
    """Collect top-level ``{...}`` segments with string-aware matching.

    Returns the complete segments and, when the text ends inside an object
    but outside a string value, that unterminated object with its stack of
    open delimiters.
    """
    segments: list[str] = []
    stack: list[str] = []
    in_string = False
    escape = False
    start = -1

    for i, ch in enumerate(text):
        if not stack:
            if ch == "{":
                stack.append(ch)
                start = i
            continue

        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(ch)
        elif ch in ("}", "]"):
            stack.pop()
            if not stack:
                segments.append(text[start:i + 1])
                start = -1

    if stack and not in_string:
        return segments, (text[start:], stack)
    return segments, None


def _close_truncated(tail: str, stack: list[str]) -> Optional[dict[str, Any]]:
    """Close an object cut off by truncation, if it can be made valid JSON."""
    closers = "".join(_CLOSERS[ch] for ch in reversed(stack))
    body = tail.rstrip().rstrip(",").rstrip()

    candidates = [
        body,
        _DANGLING_KEY_WITH_COLON.sub("", body),
        _DANGLING_KEY.sub("", body),
    ]
    for candidate in candidates:
        try:
            obj = json.loads(candidate.rstrip().rstrip(",") + closers)
        except json.JSONDecodeError:
            continue
        if isinstance(obj, dict):
            return obj
    return None


def _first_delimiter(text: str) -> int:
    positions = [p for p in (text.find("{"), text.find("[")) if p >= 0]
    return min(positions) if positions else -1


def _open_delimiters(text: str) -> tuple[list[str], bool]:
    """Delimiters left open at the end of text, and whether a string is open."""
    stack: list[str] = []
    in_string = False
    escape = False
    for ch in text:
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(ch)
        elif ch in ("}", "]") and stack:
            stack.pop()
    return stack, in_string


# ---------------- tier 3: field extraction ----------------


def _extract_fields(text: str, expected: Sequence[str]) -> list[dict[str, Any]]:
    """Rebuild minimal records from ``"field": value`` fragments.

    Fragments are taken in text order; a field that repeats starts a new record.
    """
    matches: list[tuple[int, str, Any]] = []
    for name in expected:
        key = rf'"{re.escape(name)}"\s*:\s*'
        for m in re.finditer(key + _STRING, text):
            matches.append((m.start(), name, _unescape(m.group(1))))
        for m in re.finditer(key + _NUMBER, text):
            matches.append((m.start(), name, m.group(1)))
        for m in re.finditer(key + _STRING_LIST, text):
            items = [_unescape(s) for s in re.findall(_STRING, m.group(1))]
            matches.append((m.start(), name, items))

    matches.sort(key=lambda match: match[0])

    records: list[dict[str, Any]] = []
    current: dict[str, Any] = {}
    for _, name, value in matches:
        if name in current:
            records.append(current)
            current = {}
        current[name] = value
    if current:
        records.append(current)

    return _keep(records, expected)


def _unescape(value: str) -> str:
    try:
        return json.loads(f'"{value}"')
    except json.JSONDecodeError:
        return value
