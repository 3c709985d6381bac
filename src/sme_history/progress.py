"""Progress events emitted while a batch runs.

Two callback shapes are supported: the simple ``(completed, label)`` pair
used by interactive callers, and a richer ProgressEvent carrying the unit's
position, the affected document id and the stage it reached.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


class ProgressStage(str, Enum):
    """Stages a unit of work can report."""

    LOCAL_RENDERED = "local.rendered"
    LOCAL_SKIPPED = "local.skipped"
    CHUNK_STARTED = "chunk.started"
    CHUNK_COMPLETED = "chunk.completed"
    CHUNK_DEGRADED = "chunk.degraded"
    CHUNK_FAILED = "chunk.failed"
    FALLBACK_COMPLETED = "fallback.completed"
    FALLBACK_FAILED = "fallback.failed"
    BATCH_COMPLETED = "batch.completed"


@dataclass
class ProgressEvent:
    """One progress notification."""

    index: int
    total: int
    doc_id: str
    stage: ProgressStage
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "total": self.total,
            "docId": self.doc_id,
            "stage": self.stage.value,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
        }


ProgressCallback = Callable[[int, str], None]
EventCallback = Callable[[ProgressEvent], None]


def notify(callback: Callable[..., None] | None, *args: Any) -> None:
    """Invoke a progress callback; a failing callback never stops the batch."""
    if callback is None:
        return
    try:
        callback(*args)
    except Exception as e:
        logger.warning("progress_callback_failed", error=str(e))
