"""Best-effort JSON salvage for free-form LLM output.

Model responses are asked to be JSON but regularly arrive wrapped in prose,
fenced in markdown, truncated, or as several JSON values separated by
blank lines. The extractor walks a fixed fallback chain and never raises:

1. the whole trimmed text
2. the span from the first ``{`` to the last ``}``
3. the span from the first ``[`` to the last ``]``
4. every blank-line separated block on its own (raw string when a block
   does not parse)
"""

import json
import re
from typing import Any

import structlog

from sme_history.outcome import Fidelity, Outcome

logger = structlog.get_logger(__name__)

_BLOCK_SPLIT = re.compile(r"\n\s*\n")


def _try_loads(text: str) -> tuple[bool, Any]:
    try:
        return True, json.loads(text)
    except (ValueError, RecursionError):
        return False, None


def _span(text: str, opener: str, closer: str) -> str | None:
    start = text.find(opener)
    end = text.rfind(closer)
    if start == -1 or end <= start:
        return None
    return text[start : end + 1]


def extract_json(text: Any) -> Outcome:
    """Parse ``text`` with the fallback chain and report which stage won."""
    if not isinstance(text, str):
        if text is None:
            return Outcome.failed("no text")
        text = str(text)

    trimmed = text.strip()
    if not trimmed:
        return Outcome.failed("empty text")

    ok, value = _try_loads(trimmed)
    if ok:
        return Outcome.ok(value)

    for opener, closer, stage in (("{", "}", "object_span"), ("[", "]", "array_span")):
        candidate = _span(trimmed, opener, closer)
        if candidate is None:
            continue
        ok, value = _try_loads(candidate)
        if ok:
            return Outcome.degraded(value, stage)

    blocks = [block.strip() for block in _BLOCK_SPLIT.split(trimmed)]
    values: list[Any] = []
    for block in blocks:
        if not block:
            continue
        ok, value = _try_loads(block)
        values.append(value if ok else block)
    if values:
        return Outcome.degraded(values, "block_split")

    return Outcome.failed("no parseable content")


def parse_loose(text: Any) -> Any | None:
    """Return the best-effort parsed value of ``text``, or None."""
    outcome = extract_json(text)
    if outcome.status == Fidelity.DEGRADED:
        logger.debug("json_salvaged", stage=outcome.reason)
    return outcome.value
