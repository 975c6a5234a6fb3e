from __future__ import annotations

from threading import Lock

import yaml

from . import db
from .fs_ops import LocalFilesystem
from .models import AppliedState, DesiredState


class Bookkeeper:
    """Owns the applied-state baseline on disk.

    The baseline is the desired state of the last apply attempt, successful or
    not. It is written atomically and only through `commit`.
    """

    def __init__(self, path: str, fs: LocalFilesystem | None = None):
        self.path = path
        self.fs = fs or LocalFilesystem("/")
        self.lock = Lock()

    @staticmethod
    def serialized(desired: DesiredState) -> bytes:
        return yaml.safe_dump(desired.to_dict(), sort_keys=False, default_flow_style=False).encode("utf-8")

    def load(self) -> AppliedState:
        with self.lock:
            if not self.fs.exists(self.path):
                return AppliedState()
            raw = self.fs.read_file(self.path)
        try:
            return AppliedState.from_dict(yaml.safe_load(raw))
        except (yaml.YAMLError, KeyError, TypeError, AttributeError) as e:
            # Unreadable baseline: everything is re-applied.
            db.log_event("WARN", f"Ignoring unreadable applied state {self.path}: {type(e).__name__}: {e}")
            return AppliedState()

    def commit(self, attempted: DesiredState, outcome: str) -> None:
        blob = self.serialized(attempted)
        with self.lock:
            self.fs.write_file(self.path, blob, 0o600)
        db.log_event("INFO", f"Recorded applied state ({outcome}) with {len(attempted.files)} files and {len(attempted.units)} units")
