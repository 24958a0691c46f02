"""Phase timing store keyed by request id."""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional

logger = logging.getLogger(__name__)

PRE_API = "pre-api"
API = "api"
POST_API = "post-api"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TimingRecord:
    """Start/end of one named phase; ``total`` is in milliseconds."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None
    total: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "start": self.start.isoformat() if self.start else None,
            "end": self.end.isoformat() if self.end else None,
            "total": self.total,
        }


class TimingStore:
    """Table of (key, phase) -> TimingRecord.

    Bounded: once ``capacity`` keys are held, the least recently started
    key is evicted. A phase that is started but never ended keeps
    ``end``/``total`` unset.
    """

    def __init__(self, capacity: int = 1024):
        self.capacity = capacity
        self._records: "OrderedDict[str, Dict[str, TimingRecord]]" = OrderedDict()

    def start(self, key: str, phase: str) -> TimingRecord:
        phases = self._records.get(key)
        if phases is None:
            phases = self._records[key] = {}
            self._evict()
        else:
            self._records.move_to_end(key)

        record = phases.setdefault(phase, TimingRecord())
        record.start = _now()
        record.end = None
        record.total = None
        return record

    def end(self, key: str, phase: str) -> TimingRecord:
        record = self._records.setdefault(key, {}).setdefault(phase, TimingRecord())
        record.end = _now()
        if record.start is not None:
            record.total = (record.end - record.start).total_seconds() * 1000
        logger.debug(f"Timing has ended for '{phase}' [{record.total} ms]")
        return record

    def get(self, key: str, phase: str) -> Optional[TimingRecord]:
        return self._records.get(key, {}).get(phase)

    def phases(self, key: str) -> Dict[str, TimingRecord]:
        return dict(self._records.get(key, {}))

    def round_trip(self, key: str) -> Optional[float]:
        """Milliseconds from ``pre-api`` start to ``post-api`` end, read from recorded phases."""
        pre = self.get(key, PRE_API)
        post = self.get(key, POST_API)
        if not pre or not post or pre.start is None or post.end is None:
            return None
        return (post.end - pre.start).total_seconds() * 1000

    def clear(self, key: Optional[str] = None) -> None:
        """Drop one key, or everything when no key is given."""
        if key is None:
            self._records.clear()
        else:
            self._records.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._records

    def __len__(self) -> int:
        return len(self._records)

    def _evict(self) -> None:
        while self.capacity and len(self._records) > self.capacity:
            evicted, _ = self._records.popitem(last=False)
            logger.debug(f"Evicted timing records for {evicted}")
