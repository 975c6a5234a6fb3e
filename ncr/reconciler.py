from __future__ import annotations

from dataclasses import dataclass
from threading import Event, Lock, Thread
from typing import Any, Callable

from . import alerts, db
from .assembler import assemble
from .bookkeeper import Bookkeeper
from .content import ContentResolver
from .diff import ChangeSet, diff
from .document import checksum, parse_document
from .errors import DesiredStateError, InvalidDocument, SourceUnavailable
from .executor import PlanExecutor
from .fs_ops import LocalFilesystem
from .planner import ReconciliationPlan, plan
from .runtime import RuntimeState
from .settings import settings
from .sources import source_from
from .status import STATUS_FAILED, STATUS_SKIPPED, STATUS_SUCCEEDED, CycleOutcome, Reason, summarize
from .systemd_ops import Systemctl


@dataclass
class Preview:
    changeset: ChangeSet
    plan: ReconciliationPlan


class Reconciler:
    """Runs reconciliation cycles: fetch, assemble, diff, plan, execute, commit.

    Cycles never overlap. A cycle that changes the reconciler's own unit sets
    `cancelled`; the loop then ends and `on_cancel` is called so the hosting
    process can exit and be restarted by its supervisor.
    """

    def __init__(
        self,
        runtime: RuntimeState,
        source: Any,
        fs: LocalFilesystem,
        manager: Any,
        bookkeeper: Bookkeeper,
        resolver: ContentResolver,
        own_unit: str | None = None,
        unit_dir: str = "/etc/systemd/system",
        workers: int = 4,
        poll_interval_s: float = 30,
        on_cancel: Callable[[], None] | None = None,
    ):
        self.runtime = runtime
        self.source = source
        self.fs = fs
        self.manager = manager
        self.bookkeeper = bookkeeper
        self.resolver = resolver
        self.own_unit = own_unit
        self.unit_dir = unit_dir
        self.executor = PlanExecutor(fs, manager, workers=workers)
        self.poll_interval_s = poll_interval_s
        self.on_cancel = on_cancel

        self.cancelled = Event()
        self._cycle_lock = Lock()
        self._wake = Event()
        self._stop = False
        self._thr: Thread | None = None

    @classmethod
    def from_settings(cls, runtime: RuntimeState, on_cancel: Callable[[], None] | None = None) -> "Reconciler":
        fs = LocalFilesystem(settings.fs_root)
        return cls(
            runtime=runtime,
            source=source_from(settings.source, timeout_s=settings.source_timeout_s),
            fs=fs,
            manager=Systemctl(settings.systemctl_bin, timeout_s=settings.step_timeout_s),
            bookkeeper=Bookkeeper(settings.applied_state_path, fs=fs),
            resolver=ContentResolver(settings.image_mount_dir),
            own_unit=settings.own_unit,
            unit_dir=settings.unit_dir,
            workers=settings.file_workers,
            poll_interval_s=settings.poll_interval_s,
            on_cancel=on_cancel,
        )

    # Loop

    def start(self) -> None:
        if self._thr and self._thr.is_alive():
            return
        self._stop = False
        self._thr = Thread(target=self._loop, daemon=True)
        self._thr.start()

    def stop(self) -> None:
        self._stop = True
        self._wake.set()

    def trigger(self) -> None:
        """Run a cycle as soon as possible (e.g. the document changed)."""
        self._wake.set()

    def _loop(self) -> None:
        db.log_event("INFO", f"Reconciler started (source: {self.source!r})")
        while not self._stop:
            try:
                self.reconcile()
            except Exception as e:
                db.log_event("ERROR", f"Reconcile cycle crashed: {type(e).__name__}: {e}")
            if self.cancelled.is_set():
                db.log_event("WARN", f"Own unit {self.own_unit} changed; exiting so the supervisor restarts the reconciler")
                if self.on_cancel:
                    self.on_cancel()
                return
            self._wake.wait(max(1, self.poll_interval_s))
            self._wake.clear()
        db.log_event("INFO", "Reconciler stopped")

    # Cycles

    def reconcile(self, force: bool = False, reason: Reason = Reason.DECLARATIVE) -> CycleOutcome:
        try:
            raw = self.source.fetch()
        except SourceUnavailable as e:
            return self._finish(CycleOutcome(status=STATUS_FAILED, reason=reason, failure_reason=str(e)))
        return self.reconcile_document(raw, force=force, reason=reason)

    def reconcile_document(self, raw: bytes, force: bool = False, reason: Reason = Reason.DECLARATIVE) -> CycleOutcome:
        digest = checksum(raw)
        with self._cycle_lock:
            if not force and self.runtime.is_current(digest):
                return self._finish(CycleOutcome(status=STATUS_SKIPPED, checksum=digest, reason=reason), record=False)

            try:
                preview = self._preview(raw)
            except (InvalidDocument, DesiredStateError) as e:
                db.log_event("ERROR", f"Desired state rejected: {e}")
                return self._finish(CycleOutcome(status=STATUS_FAILED, checksum=digest, reason=reason, failure_reason=str(e)))

            desired, cs, p = preview
            result = self.executor.execute(p)
            self.bookkeeper.commit(desired, "fully applied" if result.fully_applied else f"{len(result.failed)} steps failed")

            outcome = summarize(cs, result, digest, reason=reason, unit_dir=self.unit_dir)
            if outcome.restart_requested:
                self.cancelled.set()
                self._stop = True
            return self._finish(outcome)

    def _preview(self, raw: bytes):
        doc = parse_document(raw)
        desired = assemble(doc.files, doc.units, doc.extension_files, doc.extension_units)
        cs = diff(desired, self.bookkeeper.load(), self.resolver)
        return desired, cs, plan(cs, own_unit=self.own_unit, unit_dir=self.unit_dir)

    def preview(self, raw: bytes) -> Preview:
        """Diff and plan a document without executing or recording anything."""
        _, cs, p = self._preview(raw)
        return Preview(changeset=cs, plan=p)

    def _finish(self, outcome: CycleOutcome, record: bool = True) -> CycleOutcome:
        if record:
            self.runtime.record(outcome)
            db.record_cycle(
                checksum=outcome.checksum,
                status=outcome.status,
                reason=outcome.reason.value,
                steps_total=outcome.steps_total,
                steps_failed=outcome.steps_failed,
                restart_requested=outcome.restart_requested,
                description=outcome.description,
                failure_reason=outcome.failure_reason,
            )
            level = "INFO" if outcome.status == STATUS_SUCCEEDED else "ERROR"
            db.log_event(level, f"Cycle {outcome.status}: {outcome.description}")
            alerts.notify_cycle(outcome)
        return outcome
