"""Sinks for raw LLM responses that could not be salvaged.

A failed response is the only durable evidence of why a chunk degraded to
placeholders, so it is persisted for offline postmortem. The sink is
injected: a directory on disk, or a null object that only logs.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

import structlog

from sme_history.config import get_settings

logger = structlog.get_logger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_prefix(name: str, max_length: int = 80) -> str:
    """Make ``name`` safe for use as a filename prefix."""
    cleaned = _UNSAFE.sub("_", name).strip("._")
    return cleaned[:max_length] or "response"


def artifact_filename(name: str, now: datetime | None = None) -> str:
    """Build ``{sanitized-prefix}-{timestamp}.txt``."""
    stamp = (now or datetime.now(UTC)).strftime("%Y%m%dT%H%M%S%fZ")
    return f"{sanitize_prefix(name)}-{stamp}.txt"


class ArtifactSink(Protocol):
    """Anything that can keep a named blob and say where it went."""

    def persist(self, name: str, data: bytes | str) -> str: ...


class DirectoryArtifactSink:
    """Writes artifacts as files under a directory created on first write."""

    def __init__(self, directory: str | Path | None = None):
        self._directory = Path(directory or get_settings().debug_dir)
        self._logger = logger.bind(sink="directory", directory=str(self._directory))

    @property
    def directory(self) -> Path:
        return self._directory

    def persist(self, name: str, data: bytes | str) -> str:
        """Write ``data`` and return the file path."""
        payload = data.encode("utf-8") if isinstance(data, str) else data
        self._directory.mkdir(parents=True, exist_ok=True)
        path = self._directory / artifact_filename(name)
        path.write_bytes(payload)
        self._logger.info("artifact_persisted", name=name, path=str(path), size=len(payload))
        return str(path)


class NullArtifactSink:
    """Logs the artifact instead of storing it; for environments without a filesystem."""

    def persist(self, name: str, data: bytes | str) -> str:
        text = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data
        logger.warning("artifact_not_persisted", name=name, content=text)
        return ""
