"""
==============================================================================
Quick Scan History Module
==============================================================================

Bounded, most-recent-first record of confirmed patient scans.

Every confirm is one entry, so scanning the same patient twice yields two
entries. Nothing here is persisted.

==============================================================================
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, Optional, Tuple

from .models import IdentityPayload


DEFAULT_HISTORY_CAPACITY = 5


@dataclass(frozen=True)
class ScanHistoryEntry:
    """A confirmed scan event."""
    payload: IdentityPayload
    scanned_at: int

    def to_dict(self) -> Dict[str, Any]:
        return {"payload": self.payload.to_wire(), "scanned_at": self.scanned_at}


class QuickScanHistory:
    """
    Recency list of confirmed scans for fast re-selection.

    Example:
        >>> history = QuickScanHistory(capacity=5)
        >>> history.record(entry)
        >>> history.all()[0] is entry
        True
    """

    def __init__(self, capacity: int = DEFAULT_HISTORY_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("History capacity must be at least 1")
        self._capacity = capacity
        self._entries: Deque[ScanHistoryEntry] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._capacity

    def record(self, entry: ScanHistoryEntry) -> None:
        """Prepend an entry, dropping the oldest one beyond capacity."""
        self._entries.appendleft(entry)

    def all(self) -> Tuple[ScanHistoryEntry, ...]:
        """Entries, most recent first."""
        return tuple(self._entries)

    def recent(self, limit: int) -> Tuple[ScanHistoryEntry, ...]:
        """First ``limit`` entries, most recent first."""
        return self.all()[:max(limit, 0)]

    def latest(self) -> Optional[ScanHistoryEntry]:
        return self._entries[0] if self._entries else None

    def find(self, patient_id: str) -> Optional[ScanHistoryEntry]:
        """Most recent entry for a patient, if any."""
        for entry in self._entries:
            if entry.payload.patient_id == patient_id:
                return entry
        return None

    def __len__(self) -> int:
        return len(self._entries)
