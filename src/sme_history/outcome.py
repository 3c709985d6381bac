"""Result type shared by the extractor and the normalizers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class Fidelity(str, Enum):
    """How far a value can be trusted."""

    OK = "ok"  # parsed as-is
    DEGRADED = "degraded"  # salvaged or reconstructed from a malformed shape
    FAILED = "failed"  # nothing usable
    PLACEHOLDER = "placeholder"  # synthetic stand-in (documents only)


@dataclass(frozen=True)
class Outcome:
    """A best-effort result with an explicit trust level."""

    status: Fidelity
    value: Any = None
    reason: str = ""

    @classmethod
    def ok(cls, value: Any) -> Outcome:
        return cls(Fidelity.OK, value)

    @classmethod
    def degraded(cls, value: Any, reason: str) -> Outcome:
        return cls(Fidelity.DEGRADED, value, reason)

    @classmethod
    def failed(cls, reason: str, value: Any = None) -> Outcome:
        return cls(Fidelity.FAILED, value, reason)

    @property
    def usable(self) -> bool:
        return self.status in (Fidelity.OK, Fidelity.DEGRADED)

    def downgrade(self, reason: str) -> Outcome:
        """Return a copy marked DEGRADED unless it already failed."""
        if self.status == Fidelity.FAILED:
            return self
        merged = f"{self.reason}; {reason}" if self.reason else reason
        return Outcome(Fidelity.DEGRADED, self.value, merged)
