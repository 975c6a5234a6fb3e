from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from enum import Enum, IntEnum

from .diff import ChangeKind, ChangeSet, UnitChange
from .models import COMMAND_START, COMMAND_STOP, UNIT_FILE_MODE


class Phase(IntEnum):
    FILES = 1
    ENABLEMENT = 2
    RELOAD = 3
    COMMANDS = 4


class Action(str, Enum):
    WRITE_FILE = "write-file"
    DELETE_FILE = "delete-file"
    DELETE_DIR = "delete-dir"
    ENABLE_UNIT = "enable-unit"
    DISABLE_UNIT = "disable-unit"
    RELOAD_MANAGER = "reload-manager"
    START_UNIT = "start-unit"
    STOP_UNIT = "stop-unit"
    RESTART_UNIT = "restart-unit"


PHASE_OF = {
    Action.WRITE_FILE: Phase.FILES,
    Action.DELETE_FILE: Phase.FILES,
    Action.DELETE_DIR: Phase.FILES,
    Action.ENABLE_UNIT: Phase.ENABLEMENT,
    Action.DISABLE_UNIT: Phase.ENABLEMENT,
    Action.RELOAD_MANAGER: Phase.RELOAD,
    Action.START_UNIT: Phase.COMMANDS,
    Action.STOP_UNIT: Phase.COMMANDS,
    Action.RESTART_UNIT: Phase.COMMANDS,
}


@dataclass(frozen=True)
class Step:
    action: Action
    target: str  # file/dir path or unit name; empty for reload-manager
    data: bytes | None = None
    mode: int | None = None
    error: str | None = None  # known to fail before execution (unresolvable content)

    @property
    def phase(self) -> Phase:
        return PHASE_OF[self.action]

    def describe(self) -> str:
        return f"{self.action.value} {self.target}".strip()


@dataclass
class ReconciliationPlan:
    steps: list[Step] = field(default_factory=list)
    cancel: bool = False  # own unit changed; exit after this cycle

    def add(self, step: Step) -> None:
        self.steps.append(step)

    def phase(self, phase: Phase) -> list[Step]:
        return [s for s in self.steps if s.phase == phase]

    def actions(self) -> list[tuple[str, str]]:
        return [(s.action.value, s.target) for s in self.steps]

    def __len__(self) -> int:
        return len(self.steps)


def unit_path(unit_dir: str, name: str) -> str:
    return posixpath.join(unit_dir, name)


def drop_in_dir(unit_dir: str, name: str) -> str:
    return posixpath.join(unit_dir, f"{name}.d")


def should_cancel(changeset: ChangeSet, own_unit: str | None) -> bool:
    """True when the reconciler's own unit is added, modified or removed.

    The process then has to exit after the current cycle and leave the
    restart to its supervisor.
    """
    if not own_unit:
        return False
    change = changeset.unit(own_unit)
    if change is None:
        return False
    return change.kind is not ChangeKind.UNCHANGED or change.files_changed


def _needs_command(c: UnitChange) -> bool:
    if c.kind is ChangeKind.ADDED or c.files_changed or c.needs_reload:
        return True
    before = c.before.command if c.before else None
    after = c.after.command if c.after else None
    return c.kind is ChangeKind.MODIFIED and before != after


def _plan_unit_files(c: UnitChange, unit_dir: str, writes: list[Step], deletes: list[Step], dirs: list[Step]) -> None:
    before, after = c.before, c.after
    path = unit_path(unit_dir, c.name)
    ddir = drop_in_dir(unit_dir, c.name)

    if after is None:
        if before is None:
            return
        if before.content is not None:
            deletes.append(Step(Action.DELETE_FILE, path))
        for d in before.drop_ins:
            deletes.append(Step(Action.DELETE_FILE, posixpath.join(ddir, d.name)))
        dirs.append(Step(Action.DELETE_DIR, ddir))
        return

    if after.content is not None and (before is None or before.content != after.content):
        writes.append(Step(Action.WRITE_FILE, path, data=after.content.encode("utf-8"), mode=UNIT_FILE_MODE))
    elif after.content is None and before is not None and before.content is not None:
        deletes.append(Step(Action.DELETE_FILE, path))

    changed = set(c.drop_ins_added) | set(c.drop_ins_changed)
    for d in after.drop_ins:
        if d.name in changed:
            writes.append(Step(Action.WRITE_FILE, posixpath.join(ddir, d.name), data=d.content.encode("utf-8"), mode=UNIT_FILE_MODE))
    for name in c.drop_ins_removed:
        deletes.append(Step(Action.DELETE_FILE, posixpath.join(ddir, name)))
    if c.drop_ins_removed and not after.drop_ins:
        dirs.append(Step(Action.DELETE_DIR, ddir))


def plan(changeset: ChangeSet, own_unit: str | None = None, unit_dir: str = "/etc/systemd/system") -> ReconciliationPlan:
    """Order the changes into file, enablement, reload and command phases."""
    p = ReconciliationPlan(cancel=should_cancel(changeset, own_unit))

    # 1. Files: writes first, then deletions, then now-empty drop-in directories.
    writes: list[Step] = []
    deletes: list[Step] = []
    dirs: list[Step] = []
    for fc in changeset.files:
        if fc.kind in {ChangeKind.ADDED, ChangeKind.MODIFIED}:
            writes.append(Step(Action.WRITE_FILE, fc.path, data=fc.data, mode=fc.mode, error=fc.error))
        elif fc.kind is ChangeKind.REMOVED:
            deletes.append(Step(Action.DELETE_FILE, fc.path))
    for uc in changeset.units:
        if uc.kind is not ChangeKind.UNCHANGED:
            _plan_unit_files(uc, unit_dir, writes, deletes, dirs)
    for s in writes + deletes + dirs:
        p.add(s)

    # 2. Enablement. A unit without `enable` is not managed here.
    for uc in changeset.units:
        if uc.after is None:
            if uc.before is not None and uc.before.enable:
                p.add(Step(Action.DISABLE_UNIT, uc.name))
            continue
        want = uc.after.enable
        had = uc.before.enable if uc.before else None
        if want is None or (uc.kind is not ChangeKind.ADDED and want == had):
            continue
        p.add(Step(Action.ENABLE_UNIT if want else Action.DISABLE_UNIT, uc.name))

    # 3. One manager reload if any unit definition changed on disk.
    if any(uc.needs_reload for uc in changeset.units):
        p.add(Step(Action.RELOAD_MANAGER, ""))

    # 4. Commands. The own unit never gets one; the supervisor restarts or
    # stops us once this cycle is committed.
    for uc in changeset.units:
        if own_unit and uc.name == own_unit:
            continue
        if uc.after is None:
            p.add(Step(Action.STOP_UNIT, uc.name))
            continue
        if not _needs_command(uc):
            continue
        if uc.after.command == COMMAND_START:
            p.add(Step(Action.START_UNIT if uc.kind is ChangeKind.ADDED else Action.RESTART_UNIT, uc.name))
        elif uc.after.command == COMMAND_STOP:
            p.add(Step(Action.STOP_UNIT, uc.name))

    return p
