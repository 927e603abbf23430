"""
Recovery cascade for language model item output.

A model response is first validated strictly. When that fails, a fixed
sequence of repair strategies runs, each one only if the previous failed:

1. numeric_repair     - round over-precise timestamps to one decimal
2. structural_repair  - fix delimiter mistakes and unbalanced brackets
3. partial_extraction - walk the parsed ``items`` array and keep what is usable
4. pattern_extraction - regex sweep when no JSON can be recovered at all

Every strategy is a pure ``(text, context) -> StepResult`` function. When all
of them fail the outcome is marked degraded and callers fall back to the
vision-derived scratch items.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from common.logging import get_logger

from ..categories.heuristics import HeuristicTables, load_heuristics
from ..errors import StructuredOutputError
from ..schemas import CandidateItem, ExtractionResponse

LOGGER = get_logger(__name__)

SCRATCH_FALLBACK = "scratch_fallback"

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)
_PRECISE_TIMESTAMP_RE = re.compile(
    r'("(?:timestamp|video_timestamp|item_timestamp)"\s*:\s*)(-?\d+\.\d{2,}(?:[eE][-+]?\d+)?)'
)
_NUMBER_RE = re.compile(r"-?\d[\d,]*(?:\.\d+)?")

_STRING = r'"((?:[^"\\]|\\.)*)"'
_NAME_RE = re.compile(r"""["']?\bname["']?\s*:\s*(?:"((?:[^"\\]|\\.)*)"|'([^']*)'|([^,\n}\]"']+))""")
_DESCRIPTION_RE = re.compile(r'["\']?\bdescription["\']?\s*:\s*' + _STRING)
_VALUE_RE = re.compile(
    r'["\']?\b(?:estimated_value|value|price)["\']?\s*:\s*"?\$?\s*(\d[\d,]*(?:\.\d+)?)'
)
_TIMESTAMP_RE = re.compile(r'["\']?\btimestamp["\']?\s*:\s*"?(\d+(?:\.\d+)?)')
_ROOM_RE = re.compile(r'["\']?\binferred_room_name["\']?\s*:\s*' + _STRING)


@dataclass
class ParseContext:
    """Owner vocabulary and heuristic tables used while coercing items."""

    tag_vocabulary: Sequence[str] = ()
    room_vocabulary: Sequence[str] = ()
    heuristics: HeuristicTables = field(default_factory=load_heuristics)


@dataclass
class StepResult:
    items: Optional[List[CandidateItem]]
    text: str
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.items is not None


@dataclass
class ParseOutcome:
    items: List[CandidateItem]
    strategy: str
    degraded: bool = False
    attempts: List[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Text-level helpers
# ---------------------------------------------------------------------------


def extract_json_text(raw: str) -> str:
    """Strip code fences and any prose around the outermost JSON value."""

    text = (raw or "").strip()
    fenced = _FENCE_RE.search(text)
    if fenced:
        text = fenced.group(1).strip()

    starts = [idx for idx in (text.find("{"), text.find("[")) if idx != -1]
    if not starts:
        return text
    start = min(starts)
    end = max(text.rfind("}"), text.rfind("]"))
    # A quote or opener after the last closer means truncated output, not trailing prose.
    if end > start and not any(ch in text[end + 1 :] for ch in '"{['):
        return text[start : end + 1]
    return text[start:]


def round_timestamps(text: str) -> str:
    """Round timestamp literals with more than one decimal place."""

    def _round(match: "re.Match[str]") -> str:
        return f"{match.group(1)}{round(float(match.group(2)), 1)}"

    return _PRECISE_TIMESTAMP_RE.sub(_round, text)


def balance_brackets(text: str) -> str:
    """Close an unterminated string and any brackets left open by truncation."""

    stack: List[str] = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            stack.append("}" if ch == "{" else "]")
        elif ch in "}]" and stack and stack[-1] == ch:
            stack.pop()

    suffix = '"' if in_string else ""
    return text + suffix + "".join(reversed(stack))


_STRUCTURAL_FIXES: Tuple[Tuple["re.Pattern[str]", str], ...] = (
    # missing comma between adjacent objects: } {  ->  }, {
    (re.compile(r"\}\s*\{"), "},{"),
    # missing comma between adjacent arrays: ] [  ->  ], [
    (re.compile(r"\]\s*\["), "],["),
    # stray separator right after an opening bracket
    (re.compile(r"([\[{])\s*,+"), r"\1"),
    # doubled separators
    (re.compile(r",\s*(?:,\s*)+"), ","),
    # trailing comma before a closing bracket
    (re.compile(r",\s*([}\]])"), r"\1"),
    # missing comma between a value and the next key on a new line
    (re.compile(r'("|\d|true|false|null|\]|\})(\s*\n\s*"[^"\n]+"\s*:)'), r"\1,\2"),
)


def repair_structure(text: str) -> str:
    """Apply targeted delimiter fixes, then balance brackets."""

    repaired = text
    for pattern, replacement in _STRUCTURAL_FIXES:
        repaired = pattern.sub(replacement, repaired)
    return balance_brackets(repaired)


def coerce_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    match = _NUMBER_RE.search(str(value))
    if not match:
        return None
    try:
        return float(match.group(0).replace(",", ""))
    except ValueError:
        return None


def coerce_positive_value(value: Any) -> Optional[float]:
    number = coerce_float(value)
    if number is None or number <= 0:
        return None
    return round(number, 2)


def coerce_timestamp(value: Any) -> float:
    number = coerce_float(value)
    if number is None or number < 0:
        return 0.0
    return round(number, 1)


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _unescape(value: str) -> str:
    try:
        return json.loads(f'"{value}"')
    except json.JSONDecodeError:
        return value


def sanitize_tags(tags: Iterable[Any], vocabulary: Sequence[str]) -> List[str]:
    """Keep only tags in the owner's vocabulary, using the vocabulary's spelling."""

    by_lower = {name.lower(): name for name in vocabulary}
    result: List[str] = []
    for tag in tags or []:
        if not isinstance(tag, str):
            continue
        match = by_lower.get(tag.strip().lower())
        if match is None:
            LOGGER.warning("dropping tag outside owner vocabulary", tag=tag)
            continue
        if match not in result:
            result.append(match)
    return result


def _with_fallback_categories(item: CandidateItem, context: ParseContext) -> CandidateItem:
    if item.tags or item.inferred_room_name:
        return item
    suggestion = context.heuristics.suggest_categories(
        item.name, item.description, context.tag_vocabulary, context.room_vocabulary
    )
    return item.model_copy(update={"tags": suggestion.tags, "inferred_room_name": suggestion.room})


def _validate(text: str, context: ParseContext) -> List[CandidateItem]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise StructuredOutputError(f"invalid JSON: {exc}") from exc
    if isinstance(data, list):
        data = {"items": data}
    try:
        response = ExtractionResponse.model_validate(data)
    except ValidationError as exc:
        raise StructuredOutputError(f"schema validation failed: {exc.error_count()} errors") from exc
    return [
        item.model_copy(update={"tags": sanitize_tags(item.tags, context.tag_vocabulary)})
        for item in response.items
    ]


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


def strict_parse(text: str, context: ParseContext) -> StepResult:
    try:
        return StepResult(_validate(text, context), text)
    except StructuredOutputError as exc:
        return StepResult(None, text, str(exc))


def numeric_repair(text: str, context: ParseContext) -> StepResult:
    repaired = round_timestamps(text)
    try:
        return StepResult(_validate(repaired, context), repaired)
    except StructuredOutputError as exc:
        return StepResult(None, repaired, str(exc))


def structural_repair(text: str, context: ParseContext) -> StepResult:
    repaired = round_timestamps(repair_structure(text))
    try:
        return StepResult(_validate(repaired, context), repaired)
    except StructuredOutputError as exc:
        return StepResult(None, repaired, str(exc))


def _find_item_entries(data: Any) -> List[Any]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        if isinstance(data.get("items"), list):
            return data["items"]
        for value in data.values():
            if isinstance(value, list) and any(isinstance(v, dict) for v in value):
                return value
        if "name" in data:
            return [data]
    return []


def _coerce_entry(entry: Dict[str, Any], context: ParseContext) -> Optional[CandidateItem]:
    name = _optional_str(entry.get("name"))
    if not name:
        LOGGER.warning("dropping item without a name", entry=str(entry)[:200])
        return None

    raw_tags = entry.get("tags")
    if isinstance(raw_tags, str):
        raw_tags = [part.strip() for part in raw_tags.split(",")]
    try:
        item = CandidateItem(
            name=name,
            timestamp=coerce_timestamp(entry.get("timestamp", entry.get("time"))),
            description=_optional_str(entry.get("description")),
            estimated_value=coerce_positive_value(entry.get("estimated_value", entry.get("value"))),
            inferred_room_name=_optional_str(entry.get("inferred_room_name") or entry.get("room")),
            tags=sanitize_tags(raw_tags or [], context.tag_vocabulary),
            brand=_optional_str(entry.get("brand")),
            model=_optional_str(entry.get("model")),
            condition=_optional_str(entry.get("condition")),
            serial_number=_optional_str(entry.get("serial_number")),
            purchase_date=_optional_str(entry.get("purchase_date")),
        )
    except ValidationError as exc:
        LOGGER.warning("dropping item that cannot be coerced", name=name, errors=exc.error_count())
        return None
    return _with_fallback_categories(item, context)


def partial_extraction(text: str, context: ParseContext) -> StepResult:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        return StepResult(None, text, f"invalid JSON: {exc}")

    items = [
        item
        for item in (
            _coerce_entry(entry, context) for entry in _find_item_entries(data) if isinstance(entry, dict)
        )
        if item is not None
    ]
    if not items:
        return StepResult(None, text, "no usable entries in items array")
    return StepResult(items, text)


def pattern_extraction(text: str, context: ParseContext) -> StepResult:
    matches = list(_NAME_RE.finditer(text))
    items: List[CandidateItem] = []
    for index, match in enumerate(matches):
        raw_name = match.group(1) if match.group(1) is not None else (match.group(2) or match.group(3) or "")
        name = _unescape(raw_name).strip()
        if not name:
            continue
        end = matches[index + 1].start() if index + 1 < len(matches) else len(text)
        segment = text[match.end() : end]

        description = _DESCRIPTION_RE.search(segment)
        value = _VALUE_RE.search(segment)
        timestamp = _TIMESTAMP_RE.search(segment)
        room = _ROOM_RE.search(segment)
        item = CandidateItem(
            name=name,
            timestamp=coerce_timestamp(timestamp.group(1) if timestamp else None),
            description=_unescape(description.group(1)) if description else None,
            estimated_value=coerce_positive_value(value.group(1) if value else None),
            inferred_room_name=_unescape(room.group(1)) if room else None,
        )
        items.append(_with_fallback_categories(item, context))

    if not items:
        return StepResult(None, text, "no name fragments found")
    return StepResult(items, text)


Strategy = Callable[[str, ParseContext], StepResult]

DEFAULT_STRATEGIES: Tuple[Tuple[str, Strategy], ...] = (
    ("strict", strict_parse),
    ("numeric_repair", numeric_repair),
    ("structural_repair", structural_repair),
    ("partial_extraction", partial_extraction),
    ("pattern_extraction", pattern_extraction),
)


class RecoveryParser:
    """Run the strategies in order and stop at the first that yields items."""

    def __init__(
        self,
        context: Optional[ParseContext] = None,
        strategies: Sequence[Tuple[str, Strategy]] = DEFAULT_STRATEGIES,
    ) -> None:
        self.context = context or ParseContext()
        self.strategies = tuple(strategies)

    def parse(self, raw: Optional[str]) -> ParseOutcome:
        if raw is None or not raw.strip():
            LOGGER.warning("no model output to recover, falling back to scratch items")
            return ParseOutcome(items=[], strategy=SCRATCH_FALLBACK, degraded=True)

        text = extract_json_text(raw)
        attempts: List[str] = []
        for name, strategy in self.strategies:
            attempts.append(name)
            result = strategy(text, self.context)
            if result.ok:
                LOGGER.info(
                    "structured output parsed",
                    strategy=name,
                    items=len(result.items or []),
                    attempts=attempts,
                )
                return ParseOutcome(items=list(result.items or []), strategy=name, attempts=attempts)
            LOGGER.info("recovery step failed", strategy=name, error=result.error)
            text = result.text

        LOGGER.warning("all recovery steps exhausted, falling back to scratch items", attempts=attempts)
        return ParseOutcome(items=[], strategy=SCRATCH_FALLBACK, degraded=True, attempts=attempts)


__all__ = [
    "DEFAULT_STRATEGIES",
    "ParseContext",
    "ParseOutcome",
    "RecoveryParser",
    "SCRATCH_FALLBACK",
    "StepResult",
    "balance_brackets",
    "coerce_positive_value",
    "coerce_timestamp",
    "extract_json_text",
    "numeric_repair",
    "partial_extraction",
    "pattern_extraction",
    "repair_structure",
    "round_timestamps",
    "sanitize_tags",
    "strict_parse",
    "structural_repair",
]
