"""Structural normalizers for bulk journal-entry and newsletter responses.

The model is asked for one canonical shape per document type::

    {"years": [{"year": 2020, "months": [{"title": "4月", "items": [...]}]}]}
    {"newsletters": [{"year": 2020, "content": "..."}]}

What actually comes back varies. A classifier labels the parsed payload
with a RawShape, then a repair step specific to that shape rebuilds
``(year, child)`` pairs. Both steps are total: malformed input degrades to
fewer (or zero) entries, never to an exception.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

from sme_history.documents import FISCAL_MONTH_LABELS, FISCAL_MONTHS
from sme_history.outcome import Outcome
from sme_history.parsing import parse_loose

logger = structlog.get_logger(__name__)

YEAR_TAG = re.compile(r"Year:\s*(\d{4})", re.IGNORECASE)
_YEAR_STRING = re.compile(r"^\s*(?:FY\s*)?((?:19|20)\d{2})\s*(?:年度?)?\s*$", re.IGNORECASE)
_BARE_YEAR_LINE = re.compile(r"(?m)^[\s#*\-]*((?:19|20)\d{2})\s*(?:年度?|:|：)")
_NUMERIC_STRING = re.compile(r"^\s*-?[\d,]+(?:\.\d+)?\s*$")
_MONTH_KANJI = re.compile(r"(\d{1,2})\s*月")
_MONTH_ISO = re.compile(r"(?:19|20)\d{2}\s*[-/.]\s*(\d{1,2})")
_MONTH_NAMES = {
    name: index
    for index, names in enumerate(
        (
            ("january", "jan"),
            ("february", "feb"),
            ("march", "mar"),
            ("april", "apr"),
            ("may",),
            ("june", "jun"),
            ("july", "jul"),
            ("august", "aug"),
            ("september", "sep", "sept"),
            ("october", "oct"),
            ("november", "nov"),
            ("december", "dec"),
        ),
        start=1,
    )
    for name in names
}

MAX_NESTING = 3


class RawShape(str, Enum):
    """Observed shapes of a parsed bulk response."""

    EXPECTED_KEY = "expected_key"  # {key: [objects]}
    OBJECTS = "objects"  # bare [objects], or found under another key
    WRONG_KEY = "wrong_key"  # dict without the primary key
    YEAR_KEYED = "year_keyed"  # {"2020": ..., "2021": ...}
    SINGLE_ENTRY = "single_entry"  # one entry object instead of a list
    NESTED_JSON_STRING = "nested_json_string"  # ["{\"years\": ...}"] or {key: "..."}
    YEAR_PRIMITIVES = "year_primitives"  # [2020, 2021] or ["2020", "2021"]
    ALTERNATING = "alternating"  # [2020, "text", 2021, "text"]
    YEAR_TAGGED_STRINGS = "year_tagged_strings"  # ["Year: 2020 ...", ...]
    NUMERIC_GARBAGE = "numeric_garbage"  # [0, 3.5, 12] with no structure
    EMPTY = "empty"
    UNRECOGNIZED = "unrecognized"


@dataclass
class Classified:
    """Classifier output: the shape plus the array it was judged on."""

    shape: RawShape
    items: Any = None


@dataclass(frozen=True)
class Layout:
    """Canonical shape of one document type's bulk response."""

    key: str
    child_key: str
    child_aliases: tuple[str, ...]
    empty_child: Callable[[], Any]
    coerce_child: Callable[[Any, int], Any]


# =============================================================================
# PRIMITIVE HELPERS
# =============================================================================


def year_of(value: Any) -> int | None:
    """Return ``value`` as a plausible four-digit year, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if 1900 <= value <= 2100 else None
    if isinstance(value, float) and value.is_integer():
        return year_of(int(value))
    if isinstance(value, str):
        match = _YEAR_STRING.match(value)
        if match:
            return int(match.group(1))
    return None


def _is_numeric(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    return isinstance(value, str) and bool(_NUMERIC_STRING.match(value))


def _looks_like_json(value: Any) -> bool:
    return isinstance(value, str) and value.strip()[:1] in ("{", "[")


def _entry_year(obj: dict[str, Any]) -> int | None:
    for key in ("year", "fiscalYear", "fiscal_year", "Year"):
        if key in obj:
            found = year_of(obj[key])
            if found is not None:
                return found
    return None


def _child_value(obj: dict[str, Any], layout: Layout) -> Any:
    for key in (layout.child_key, *layout.child_aliases):
        if key in obj:
            return obj[key]
    return None


# =============================================================================
# CLASSIFIER
# =============================================================================


def _classify_array(items: list[Any]) -> RawShape:
    if not items:
        return RawShape.EMPTY
    if len(items) == 1 and _looks_like_json(items[0]):
        return RawShape.NESTED_JSON_STRING
    if all(year_of(item) is not None for item in items):
        return RawShape.YEAR_PRIMITIVES
    if (
        len(items) >= 2
        and len(items) % 2 == 0
        and all(year_of(item) is not None for item in items[0::2])
        and all(year_of(item) is None for item in items[1::2])
        and not all(_is_numeric(item) for item in items[1::2])
    ):
        return RawShape.ALTERNATING
    if any(isinstance(item, dict) for item in items):
        return RawShape.OBJECTS
    if all(isinstance(item, str) for item in items) and any(
        YEAR_TAG.search(item) for item in items
    ):
        return RawShape.YEAR_TAGGED_STRINGS
    if all(_is_numeric(item) for item in items):
        return RawShape.NUMERIC_GARBAGE
    return RawShape.UNRECOGNIZED


def classify_payload(value: Any, key: str, layout: Layout | None = None) -> Classified:
    """Label a parsed response with its RawShape.

    Args:
        value: Output of the JSON extractor.
        key: The primary key of the canonical shape ("years" or "newsletters").
        layout: When given, lets single entry objects be recognized.
    """
    if value is None:
        return Classified(RawShape.EMPTY)

    if isinstance(value, str):
        if _looks_like_json(value):
            return Classified(RawShape.NESTED_JSON_STRING, [value])
        return Classified(RawShape.UNRECOGNIZED, value)

    if isinstance(value, list):
        return Classified(_classify_array(value), value)

    if not isinstance(value, dict):
        return Classified(RawShape.UNRECOGNIZED, value)

    if key in value:
        primary = value[key]
        if isinstance(primary, str):
            nested = _looks_like_json(primary)
            shape = RawShape.NESTED_JSON_STRING if nested else RawShape.UNRECOGNIZED
            return Classified(shape, [primary])
        if isinstance(primary, dict):
            if primary and all(year_of(k) is not None for k in primary):
                return Classified(RawShape.YEAR_KEYED, primary)
            return Classified(RawShape.SINGLE_ENTRY, primary)
        if isinstance(primary, list):
            shape = _classify_array(primary)
            if shape == RawShape.OBJECTS:
                shape = RawShape.EXPECTED_KEY
            return Classified(shape, primary)
        return Classified(RawShape.UNRECOGNIZED, primary)

    if value and all(year_of(k) is not None for k in value):
        return Classified(RawShape.YEAR_KEYED, value)

    if layout is not None and (
        _entry_year(value) is not None or _child_value(value, layout) is not None
    ):
        return Classified(RawShape.SINGLE_ENTRY, value)

    return Classified(RawShape.WRONG_KEY, value)


# =============================================================================
# REPAIR
# =============================================================================


@dataclass
class _Repair:
    """Accumulates ``(year | None, raw child)`` pairs and the repairs applied."""

    pairs: list[tuple[int | None, Any]] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)

    def note(self, text: str) -> None:
        if text not in self.notes:
            self.notes.append(text)


def _pairs_from_objects(items: Sequence[Any], layout: Layout, repair: _Repair) -> None:
    for item in items:
        if isinstance(item, dict):
            repair.pairs.append((_entry_year(item), _child_value(item, layout)))
        elif year_of(item) is not None:
            repair.pairs.append((year_of(item), None))
            repair.note("mixed_primitives")
        else:
            repair.note("dropped_non_object")


def _pairs_from_tagged(items: Sequence[Any], repair: _Repair) -> None:
    for item in items:
        if not isinstance(item, str):
            continue
        match = YEAR_TAG.search(item)
        if match is None:
            continue
        content = (item[: match.start()] + item[match.end() :]).strip(" \t\r\n-:：")
        repair.pairs.append((int(match.group(1)), content))


def _strip_fragment(text: str) -> str:
    return text.strip().strip("\"',:{}[] \t\r\n").strip()


def scan_raw_text(raw_text: str, expected_years: Sequence[int] = ()) -> list[tuple[int, str]]:
    """Find ``Year:<N>`` (or bare year) markers in text and slice content between them."""
    if not raw_text:
        return []

    markers: list[tuple[int, int, int]] = [
        (m.start(), m.end(), int(m.group(1))) for m in YEAR_TAG.finditer(raw_text)
    ]
    if not markers:
        markers = [
            (m.start(), m.end(), int(m.group(1))) for m in _BARE_YEAR_LINE.finditer(raw_text)
        ]
    if not markers and expected_years:
        for year in expected_years:
            found = re.search(rf"(?<!\d){year}(?!\d)\s*(?:年度?)?", raw_text)
            if found:
                markers.append((found.start(), found.end(), year))
        markers.sort()

    if expected_years:
        wanted = set(expected_years)
        markers = [m for m in markers if m[2] in wanted]

    results: list[tuple[int, str]] = []
    seen: set[int] = set()
    for index, (_, end, year) in enumerate(markers):
        stop = markers[index + 1][0] if index + 1 < len(markers) else len(raw_text)
        if year in seen:
            continue
        seen.add(year)
        results.append((year, _strip_fragment(raw_text[end:stop])))
    return results


def _repair(
    value: Any,
    layout: Layout,
    raw_text: str,
    expected_years: Sequence[int],
    repair: _Repair,
    depth: int = 0,
) -> RawShape:
    classified = classify_payload(value, layout.key, layout)
    shape = classified.shape
    items = classified.items

    if shape in (RawShape.EXPECTED_KEY, RawShape.OBJECTS):
        if shape == RawShape.OBJECTS:
            repair.note("bare_list" if isinstance(value, list) else "objects_under_other_key")
        _pairs_from_objects(items, layout, repair)

    elif shape == RawShape.SINGLE_ENTRY:
        repair.note("single_entry")
        _pairs_from_objects([items], layout, repair)

    elif shape == RawShape.YEAR_KEYED:
        repair.note("year_keyed")
        for key, child in items.items():
            if isinstance(child, dict) and _child_value(child, layout) is not None:
                child = _child_value(child, layout)
            repair.pairs.append((year_of(key), child))

    elif shape == RawShape.YEAR_PRIMITIVES:
        repair.note("years_only")
        repair.pairs.extend((year_of(item), None) for item in items)

    elif shape == RawShape.ALTERNATING:
        repair.note("alternating")
        for marker, child in zip(items[0::2], items[1::2]):
            repair.pairs.append((year_of(marker), child))

    elif shape == RawShape.YEAR_TAGGED_STRINGS:
        repair.note("year_tagged_strings")
        _pairs_from_tagged(items, repair)

    elif shape == RawShape.NESTED_JSON_STRING:
        if depth >= MAX_NESTING:
            repair.note("nesting_limit")
            return shape
        repair.note("nested_json_string")
        inner = parse_loose(items[0])
        if isinstance(inner, str) and not _looks_like_json(inner):
            inner = None
        return _repair(inner, layout, raw_text, expected_years, repair, depth + 1)

    elif shape == RawShape.WRONG_KEY:
        found = False
        candidates = []
        for other_key, candidate in items.items():
            if not isinstance(candidate, (list, dict, str)):
                continue
            inner = classify_payload(candidate, layout.key, layout).shape
            if inner in (RawShape.EMPTY, RawShape.UNRECOGNIZED, RawShape.NUMERIC_GARBAGE):
                continue
            if inner == RawShape.WRONG_KEY and depth >= MAX_NESTING:
                continue
            candidates.append((inner == RawShape.WRONG_KEY, other_key, candidate))
        # structured candidates first, nested wrappers last
        candidates.sort(key=lambda c: c[0])
        for _, other_key, candidate in candidates:
            repair.note(f"wrong_key:{other_key}")
            _repair(candidate, layout, raw_text, expected_years, repair, depth + 1)
            found = True
            break
        if not found:
            tagged = [v for v in items.values() if isinstance(v, str) and YEAR_TAG.search(v)]
            if tagged:
                repair.note("year_tagged_values")
                _pairs_from_tagged(tagged, repair)

    if not repair.pairs and shape in (
        RawShape.NUMERIC_GARBAGE,
        RawShape.UNRECOGNIZED,
        RawShape.WRONG_KEY,
        RawShape.EMPTY,
    ):
        scanned = scan_raw_text(raw_text, expected_years)
        if scanned:
            repair.note("raw_text_scan")
            repair.pairs.extend(scanned)

    return shape


def _normalize(
    parsed: Any,
    layout: Layout,
    expected_years: Sequence[int],
    raw_text: str,
) -> Outcome:
    repair = _Repair()
    try:
        shape = _repair(parsed, layout, raw_text or "", list(expected_years), repair)
    except RecursionError:
        logger.warning("normalize_recursion_limit", key=layout.key)
        return Outcome.failed("recursion limit", {layout.key: []})

    entries: list[dict[str, Any]] = []
    seen: set[int] = set()
    for index, (year, child) in enumerate(repair.pairs):
        if year is None:
            if index < len(expected_years):
                year = expected_years[index]
                repair.note("backfilled_year")
            else:
                repair.note("dropped_yearless")
                continue
        if year in seen:
            repair.note("duplicate_year")
            continue
        seen.add(year)
        if child is None:
            child = layout.empty_child()
        else:
            child = layout.coerce_child(child, 0)
        entries.append({"year": year, layout.child_key: child})

    value = {layout.key: entries}
    if not entries:
        return Outcome.failed(f"no entries recovered from {shape.value}", value)
    if shape == RawShape.EXPECTED_KEY and not repair.notes:
        return Outcome.ok(value)
    return Outcome.degraded(value, ",".join(repair.notes) or shape.value)


# =============================================================================
# JOURNAL ENTRIES
# =============================================================================


def _month_items(month: Any) -> list[Any]:
    if isinstance(month, list):
        return list(month)
    if isinstance(month, dict):
        for key in ("items", "entries", "lines", "journal"):
            if isinstance(month.get(key), list):
                return list(month[key])
    return []


def _coerce_months(value: Any, depth: int = 0) -> list[Any]:
    if isinstance(value, str):
        if depth >= MAX_NESTING:
            return []
        return _coerce_months(parse_loose(value), depth + 1)
    if isinstance(value, dict):
        for key in ("months", "sections", "entries"):
            if key in value:
                return _coerce_months(value[key], depth + 1)
        if "items" in value:
            return [value]
        return []
    if isinstance(value, list):
        if value and all(isinstance(item, dict) and "items" not in item and (
            "account" in item or "debit" in item or "credit" in item
        ) for item in value):
            # a flat list of journal lines rather than months
            return [{"items": value}]
        return [item for item in value if isinstance(item, (dict, list))]
    return []


JOURNAL_LAYOUT = Layout(
    key="years",
    child_key="months",
    child_aliases=("sections", "entries", "journal", "content"),
    empty_child=list,
    coerce_child=lambda value, depth: _coerce_months(value, depth),
)


def normalize_journal_entries(
    parsed: Any,
    expected_years: Sequence[int] = (),
    raw_text: str = "",
) -> Outcome:
    """Repair a bulk journal-entry response into ``{"years": [...]}``."""
    return _normalize(parsed, JOURNAL_LAYOUT, expected_years, raw_text)


def month_number(month: Any) -> int | None:
    """Calendar month (1-12) named by a month bucket, if recognizable."""
    if not isinstance(month, dict):
        return None
    raw_month = month.get("month")
    if isinstance(raw_month, int) and not isinstance(raw_month, bool) and 1 <= raw_month <= 12:
        return raw_month
    for candidate in (month.get("title"), raw_month, month.get("label"), month.get("name")):
        if not isinstance(candidate, str):
            continue
        text = candidate.strip()
        found = _MONTH_KANJI.search(text) or _MONTH_ISO.search(text)
        if found:
            number = int(found.group(1))
            if 1 <= number <= 12:
                return number
        if text.isdigit() and 1 <= int(text) <= 12:
            return int(text)
        lowered = text.lower()
        for word in re.findall(r"[a-z]+", lowered):
            if word in _MONTH_NAMES:
                return _MONTH_NAMES[word]
    return None


def _fill_months(months: Any) -> list[dict[str, Any]]:
    buckets: list[dict[str, Any]] = [
        {"title": label, "items": []} for label in FISCAL_MONTH_LABELS
    ]
    if not isinstance(months, list):
        return buckets

    assigned: set[int] = set()
    unplaced: list[tuple[int, list[Any]]] = []
    for position, month in enumerate(months):
        items = _month_items(month)
        number = month_number(month)
        if number is not None:
            slot = FISCAL_MONTHS.index(number)
            buckets[slot]["items"].extend(items)
            assigned.add(slot)
        else:
            unplaced.append((position, items))

    free = [slot for slot in range(12) if slot not in assigned]
    for position, items in unplaced:
        slot = free.pop(0) if free else position % 12
        buckets[slot]["items"].extend(items)
    return buckets


def ensure_year_months(payload: Any) -> dict[str, Any]:
    """Give every year entry exactly twelve April-to-March month buckets.

    Months are matched by the month named in their title (or a ``month``
    key) and otherwise placed in the next empty bucket. The input is not
    modified.
    """
    years = payload.get("years") if isinstance(payload, dict) else None
    if not isinstance(years, list):
        return {"years": []}

    result = []
    for entry in years:
        if not isinstance(entry, dict):
            continue
        fixed = {k: v for k, v in entry.items() if k != "months"}
        fixed["months"] = _fill_months(entry.get("months"))
        result.append(fixed)
    return {"years": result}


# =============================================================================
# NEWSLETTERS
# =============================================================================


def _coerce_content(value: Any, depth: int = 0) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        text = value.strip()
        if _looks_like_json(text) and depth < MAX_NESTING:
            inner = parse_loose(text)
            if isinstance(inner, (dict, list)):
                return _coerce_content(inner, depth + 1)
        return text
    if isinstance(value, dict):
        inner = _child_value(value, NEWSLETTER_LAYOUT)
        if inner is not None and depth < MAX_NESTING:
            return _coerce_content(inner, depth + 1)
        return ""
    if isinstance(value, list):
        parts = [_coerce_content(item, depth + 1) for item in value]
        return "\n\n".join(part for part in parts if part)
    return str(value)


NEWSLETTER_LAYOUT = Layout(
    key="newsletters",
    child_key="content",
    child_aliases=("text", "body", "message", "markdown", "newsletter"),
    empty_child=str,
    coerce_child=lambda value, depth: _coerce_content(value, depth),
)


def normalize_newsletters(
    parsed: Any,
    expected_years: Sequence[int] = (),
    raw_text: str = "",
) -> Outcome:
    """Repair a bulk newsletter response into ``{"newsletters": [...]}``."""
    return _normalize(parsed, NEWSLETTER_LAYOUT, expected_years, raw_text)
