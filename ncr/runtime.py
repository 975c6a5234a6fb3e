from __future__ import annotations

from threading import Lock

from .status import STATUS_SUCCEEDED, CycleOutcome


class RuntimeState:
    """In-memory view of the reconciler for the status API."""

    def __init__(self) -> None:
        self.lock = Lock()
        self.last_outcome: CycleOutcome | None = None
        self.last_applied_checksum: str | None = None  # checksum of the last fully applied document
        self.restart_requested = False
        self.cycles_run = 0

    def record(self, outcome: CycleOutcome) -> None:
        with self.lock:
            self.last_outcome = outcome
            self.cycles_run += 1
            if outcome.status == STATUS_SUCCEEDED and outcome.checksum:
                self.last_applied_checksum = outcome.checksum
            if outcome.restart_requested:
                self.restart_requested = True

    def is_current(self, checksum: str) -> bool:
        with self.lock:
            return self.last_applied_checksum == checksum

    def snapshot(self) -> dict:
        with self.lock:
            return {
                "cycles_run": self.cycles_run,
                "last_applied_checksum": self.last_applied_checksum,
                "restart_requested": self.restart_requested,
                "last_outcome": self.last_outcome.to_dict() if self.last_outcome else None,
            }
