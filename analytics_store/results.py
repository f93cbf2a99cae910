"""
Operation Results

Explicit outcome type for the fire-and-forget write path. Callers never
see exceptions from the analytics store; they get an OpResult that tells
"nothing happened because the store is unavailable" apart from
"something failed".
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class OpStatus(str, Enum):
    """Outcome of a store operation"""
    OK = "ok"
    SKIPPED = "skipped"  # Store unavailable, nothing attempted
    FAILED = "failed"  # Attempted and failed, error logged


@dataclass(frozen=True)
class OpResult:
    """Result of a single write operation"""
    status: OpStatus
    value: Any = None
    reason: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, value: Any = None) -> "OpResult":
        return cls(status=OpStatus.OK, value=value)

    @classmethod
    def skipped(cls, reason: str = "unavailable") -> "OpResult":
        return cls(status=OpStatus.SKIPPED, reason=reason)

    @classmethod
    def failed(cls, error: Any) -> "OpResult":
        return cls(status=OpStatus.FAILED, error=str(error))

    @property
    def is_ok(self) -> bool:
        return self.status == OpStatus.OK

    @property
    def is_skipped(self) -> bool:
        return self.status == OpStatus.SKIPPED

    @property
    def is_failed(self) -> bool:
        return self.status == OpStatus.FAILED
