"""Cycle outcome summary published to the status sink.

Every changed file and unit gets one human-readable line with its before and
after value, the reason for the change and whether it was applied.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .diff import ChangeKind, ChangeSet, FileChange, UnitChange
from .executor import ExecutionResult
from .planner import drop_in_dir, unit_path

STATUS_SUCCEEDED = "succeeded"
STATUS_PARTIAL = "succeeded-with-failures"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"


class Reason(str, Enum):
    DECLARATIVE = "declarative change"
    AUTO_UPDATE = "auto-update"
    FORCED_UPDATE = "forced-update"

    @property
    def text(self) -> str:
        return _REASON_TEXT[self]


_REASON_TEXT = {
    Reason.DECLARATIVE: "Desired configuration was changed",
    Reason.AUTO_UPDATE: "Automatic update of the node configuration is configured",
    Reason.FORCED_UPDATE: "Version expired - force update required",
}


@dataclass(frozen=True)
class EntityChange:
    kind: str  # file|unit
    name: str
    change: str  # added|modified|removed
    details: tuple[str, ...] = ()
    applied: bool = True
    error: str | None = None

    def describe(self, reason: Reason) -> str:
        label = "File" if self.kind == "file" else "Unit"
        what = "; ".join(self.details) if self.details else self.change.capitalize()
        line = f"{label} \"{self.name}\": {what}. Reason: {reason.text}"
        if not self.applied:
            line += f" (failed: {self.error})"
        return line

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "name": self.name,
            "change": self.change,
            "details": list(self.details),
            "applied": self.applied,
            "error": self.error,
        }


@dataclass
class CycleOutcome:
    status: str
    checksum: str | None = None
    reason: Reason = Reason.DECLARATIVE
    steps_total: int = 0
    steps_failed: int = 0
    restart_requested: bool = False
    changes: list[EntityChange] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)
    failure_reason: str | None = None

    @property
    def description(self) -> str:
        if self.status == STATUS_SKIPPED:
            head = "Desired configuration unchanged."
        elif self.status == STATUS_FAILED and not self.steps_total:
            head = "Reconciliation failed."
        elif self.steps_failed:
            head = f"{self.steps_failed} of {self.steps_total} steps failed."
        else:
            head = "All operations successful."
        parts = [head] + [c.describe(self.reason) for c in self.changes]
        if self.restart_requested:
            parts.append("Restart of the reconciler requested.")
        return " ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "checksum": self.checksum,
            "reason": self.reason.value,
            "steps_total": self.steps_total,
            "steps_failed": self.steps_failed,
            "restart_requested": self.restart_requested,
            "description": self.description,
            "failure_reason": self.failure_reason,
            "changes": [c.to_dict() for c in self.changes],
            "failures": list(self.failures),
        }


def _short(value: Any, limit: int = 40) -> str:
    if value is None:
        return "unset"
    if isinstance(value, bool):
        return "true" if value else "false"
    text = str(value).replace("\n", "\\n")
    return text if len(text) <= limit else text[: limit - 3] + "..."


def _file_details(c: FileChange) -> tuple[str, ...]:
    if c.after is None:
        return ("Removed",)
    if c.before is None:
        return (f"Added with mode {c.after.effective_permissions:04o}",)
    out = []
    if c.before.effective_permissions != c.after.effective_permissions:
        out.append(f"Updated permissions from \"{c.before.effective_permissions:04o}\" to \"{c.after.effective_permissions:04o}\"")
    if c.before.content != c.after.content:
        out.append("Updated content")
    return tuple(out) or ("Updated content",)


def _unit_details(c: UnitChange) -> tuple[str, ...]:
    if c.after is None:
        return ("Removed",)
    if c.before is None:
        return ("Added",)
    out = []
    for attr in ("enable", "command", "content"):
        b, a = getattr(c.before, attr), getattr(c.after, attr)
        if b != a:
            out.append(f"Updated {attr} from \"{_short(b)}\" to \"{_short(a)}\"")
    if c.drop_ins_added:
        out.append(f"Added drop-ins {', '.join(c.drop_ins_added)}")
    if c.drop_ins_removed:
        out.append(f"Removed drop-ins {', '.join(c.drop_ins_removed)}")
    if c.drop_ins_changed:
        out.append(f"Updated drop-ins {', '.join(c.drop_ins_changed)}")
    if not out and c.before.drop_ins != c.after.drop_ins:
        out.append("Reordered drop-ins")
    if c.files_changed:
        out.append("Embedded files changed")
    return tuple(out)


def _belongs_to_unit(target: str, name: str, unit_dir: str) -> bool:
    return target == name or target == unit_path(unit_dir, name) or target.startswith(drop_in_dir(unit_dir, name) + "/") or target == drop_in_dir(unit_dir, name)


def summarize(
    changeset: ChangeSet,
    result: ExecutionResult,
    checksum: str | None,
    reason: Reason = Reason.DECLARATIVE,
    unit_dir: str = "/etc/systemd/system",
) -> CycleOutcome:
    failed = result.failed
    total = len(result.results)
    if not failed:
        status = STATUS_SUCCEEDED
    elif len(failed) == total:
        status = STATUS_FAILED
    else:
        status = STATUS_PARTIAL

    def first_error(match) -> str | None:
        for r in failed:
            if match(r.step.target):
                return r.error
        return None

    changes: list[EntityChange] = []
    for fc in changeset.changed_files():
        err = first_error(lambda t, p=fc.path: t == p)
        changes.append(EntityChange("file", fc.path, fc.kind.value, _file_details(fc), applied=err is None, error=err))
    for uc in changeset.changed_units():
        err = first_error(lambda t, n=uc.name: _belongs_to_unit(t, n, unit_dir))
        change = uc.kind.value if uc.kind is not ChangeKind.UNCHANGED else ChangeKind.MODIFIED.value
        changes.append(EntityChange("unit", uc.name, change, _unit_details(uc), applied=err is None, error=err))

    failures = [f"{r.step.describe()}: {r.error}" for r in failed]
    return CycleOutcome(
        status=status,
        checksum=checksum,
        reason=reason,
        steps_total=total,
        steps_failed=len(failed),
        restart_requested=result.cancel,
        changes=changes,
        failures=failures,
        failure_reason="; ".join(failures) if failures else None,
    )
