"""
Health monitoring for the stardiff harness.

Records discrete noteworthy events to a JSONL log file. Ordinary
uninteresting iterations are never logged; the events kept here are the
ones a human triaging a long run wants to count: which suppression rules
keep firing, which oracles fail to start, and where deadlines expire.

The HealthMonitor never raises and adds negligible overhead per iteration.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

# Timed-out primary workers still running when a backlog event is written.
ABANDONED_WORKER_THRESHOLD = 8


class HealthMonitor:
    """Track and record harness events for observability.

    Writes events to a JSONL log file (when a path is given) and keeps
    in-memory counters keyed by "category.event".
    """

    def __init__(self, log_path: Path | None = None) -> None:
        """
        Args:
            log_path: Path to the JSONL log, or None to only count events.
        """
        self.log_path = log_path
        self.counters: dict[str, int] = {}

    def _write_event(self, category: str, event: str, **kwargs: Any) -> None:
        """Append a single event to the JSONL log and bump its counter."""
        counter_key = f"{category}.{event}"
        self.counters[counter_key] = self.counters.get(counter_key, 0) + 1

        if self.log_path is None:
            return
        try:
            record: dict[str, Any] = {
                "ts": datetime.now(timezone.utc).isoformat(),
                "cat": category,
                "event": event,
            }
            record.update(kwargs)
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(record, default=str) + "\n")
        except OSError:
            pass  # Never stop fuzzing for a health event

    # =========================================================================
    # Classification Events
    # =========================================================================

    def record_suppressed(self, rule_name: str, source: bytes) -> None:
        """Record a unanimous oracle rejection explained by a known rule."""
        self._write_event(
            "classification",
            "suppressed",
            rule=rule_name,
            source=source.decode("utf-8", errors="replace")[:200],
        )

    def record_divergence(self, fingerprint: str, source: bytes) -> None:
        self._write_event(
            "classification",
            "divergence",
            fingerprint=fingerprint,
            source=source.decode("utf-8", errors="replace")[:200],
        )

    # =========================================================================
    # Execution Events
    # =========================================================================

    def record_primary_timeout(self, abandoned_workers: int = 0) -> None:
        """Record a primary timeout and the size of the abandoned-worker backlog.

        Writes a worker_backlog event each time the number of abandoned
        workers still running reaches ABANDONED_WORKER_THRESHOLD.
        """
        self._write_event("primary", "timeout", abandoned_workers=abandoned_workers)
        if abandoned_workers == ABANDONED_WORKER_THRESHOLD:
            self._write_event("primary", "worker_backlog", count=abandoned_workers)

    def record_oracle_timeout(self, oracle: str) -> None:
        self._write_event("oracle", "timeout", oracle=oracle)

    def record_oracle_unavailable(self, oracle: str, error: str) -> None:
        """Record an oracle that could not be spawned mid-run."""
        self._write_event("oracle", "unavailable", oracle=oracle, error=error)

    # =========================================================================
    # Summary
    # =========================================================================

    def get_summary(self) -> dict[str, int]:
        """Return a copy of the in-memory event counters."""
        return dict(self.counters)
