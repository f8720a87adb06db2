"""Aggregator counters: what the normalizer saw and how flush cycles went.

Every counter exists from the start so snapshots always carry the same keys.
"""

import json
import os
import tempfile
import time
from datetime import datetime, timezone

COUNTERS = (
    "lines_read",
    "events_queued",
    "lines_ignored",
    "parse_errors",
    "shape_errors",
    "cycles_succeeded",
    "cycles_failed",
    "documents_created",
    "documents_updated",
    "orphans_resolved",
)


class Metrics:
    def __init__(self, path: str | None = None):
        self._path = path
        self._counters = dict.fromkeys(COUNTERS, 0)
        self._last_cycle: str | None = None
        self._start_time = time.time()

    def get(self, name: str) -> int:
        return self._counters[name]

    # normalizer side

    def line_read(self) -> None:
        self._counters["lines_read"] += 1

    def event_queued(self) -> None:
        self._counters["events_queued"] += 1

    def line_ignored(self) -> None:
        self._counters["lines_ignored"] += 1

    def parse_error(self) -> None:
        self._counters["parse_errors"] += 1

    # controller side

    def cycle_failed(self) -> None:
        self._counters["cycles_failed"] += 1

    def cycle_succeeded(self, created: int, updated: int, resolved: int,
                        shape_errors: int = 0) -> None:
        """Record a persisted cycle. Counts cover the successful attempt only."""
        self._counters["cycles_succeeded"] += 1
        self._counters["documents_created"] += created
        self._counters["documents_updated"] += updated
        self._counters["orphans_resolved"] += resolved
        self._counters["shape_errors"] += shape_errors
        self._last_cycle = datetime.now(timezone.utc).isoformat()

    def snapshot(self) -> dict:
        return {
            "counters": dict(self._counters),
            "last_cycle": self._last_cycle,
            "uptime_seconds": round(time.time() - self._start_time, 1),
        }

    def save(self) -> None:
        """Write the snapshot atomically; a no-op without a path."""
        if not self._path:
            return
        directory = os.path.dirname(self._path) or "."
        os.makedirs(directory, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=directory)
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(self.snapshot(), f, indent=2)
            os.replace(tmp, self._path)
        except Exception:
            os.unlink(tmp)
            raise
