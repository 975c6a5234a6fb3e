from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .content import ContentResolver
from .errors import ContentUnavailable
from .models import AppliedState, DesiredState, File, Unit


class ChangeKind(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class FileChange:
    path: str
    kind: ChangeKind
    before: File | None = None
    after: File | None = None
    data: bytes | None = None  # resolved desired content
    error: str | None = None  # desired content could not be resolved
    owner: str | None = None  # unit embedding this file, if any

    @property
    def mode(self) -> int | None:
        return self.after.effective_permissions if self.after else None


@dataclass(frozen=True)
class UnitChange:
    name: str
    kind: ChangeKind
    before: Unit | None = None
    after: Unit | None = None
    drop_ins_added: tuple[str, ...] = ()
    drop_ins_removed: tuple[str, ...] = ()
    drop_ins_changed: tuple[str, ...] = ()
    files_changed: bool = False

    @property
    def content_changed(self) -> bool:
        before = self.before.content if self.before else None
        after = self.after.content if self.after else None
        return before != after

    @property
    def drop_ins_differ(self) -> bool:
        before = self.before.drop_ins if self.before else ()
        after = self.after.drop_ins if self.after else ()
        return before != after

    @property
    def needs_reload(self) -> bool:
        """Whether the service manager has to re-read unit definitions."""
        if self.kind in {ChangeKind.ADDED, ChangeKind.REMOVED}:
            return True
        if self.kind is ChangeKind.MODIFIED:
            return self.content_changed or self.drop_ins_differ
        return False


@dataclass
class ChangeSet:
    files: list[FileChange] = field(default_factory=list)
    units: list[UnitChange] = field(default_factory=list)

    @property
    def unresolved(self) -> dict[str, str]:
        return {c.path: c.error for c in self.files if c.error is not None}

    def changed_files(self) -> list[FileChange]:
        return [c for c in self.files if c.kind is not ChangeKind.UNCHANGED]

    def changed_units(self) -> list[UnitChange]:
        return [c for c in self.units if c.kind is not ChangeKind.UNCHANGED or c.files_changed]

    def unit(self, name: str) -> UnitChange | None:
        for c in self.units:
            if c.name == name:
                return c
        return None

    def is_empty(self) -> bool:
        return not self.changed_files() and not self.changed_units()


def _resolve(resolver: ContentResolver, f: File) -> bytes:
    return resolver.resolve(f.content)


def _diff_file(resolver: ContentResolver, path: str, after: File, before: File | None, owner: str | None) -> FileChange:
    if before is not None and before == after:
        return FileChange(path=path, kind=ChangeKind.UNCHANGED, before=before, after=after, owner=owner)

    try:
        data = _resolve(resolver, after)
    except ContentUnavailable as e:
        # Still scheduled as a write so the failure shows up per file.
        return FileChange(path=path, kind=ChangeKind.ADDED if before is None else ChangeKind.MODIFIED,
                          before=before, after=after, error=str(e), owner=owner)

    if before is None:
        return FileChange(path=path, kind=ChangeKind.ADDED, after=after, data=data, owner=owner)

    if before.effective_permissions != after.effective_permissions:
        same = False
    else:
        try:
            same = _resolve(resolver, before) == data
        except ContentUnavailable:
            same = False

    kind = ChangeKind.UNCHANGED if same else ChangeKind.MODIFIED
    return FileChange(path=path, kind=kind, before=before, after=after, data=data, owner=owner)


def _diff_unit(after: Unit, before: Unit | None, changed_paths: set[str]) -> UnitChange:
    after_paths = {f.path for f in after.files}
    before_paths = {f.path for f in before.files} if before else set()
    files_changed = bool(after_paths & changed_paths) or (before is not None and after_paths != before_paths)

    if before is None:
        return UnitChange(
            name=after.name,
            kind=ChangeKind.ADDED,
            after=after,
            drop_ins_added=tuple(d.name for d in after.drop_ins),
            files_changed=files_changed,
        )

    old = {d.name: d for d in before.drop_ins}
    new = {d.name: d for d in after.drop_ins}
    kind = ChangeKind.UNCHANGED if before.definition() == after.definition() else ChangeKind.MODIFIED
    return UnitChange(
        name=after.name,
        kind=kind,
        before=before,
        after=after,
        drop_ins_added=tuple(n for n in new if n not in old),
        drop_ins_removed=tuple(n for n in old if n not in new),
        drop_ins_changed=tuple(n for n in new if n in old and new[n] != old[n]),
        files_changed=files_changed,
    )


def diff(desired: DesiredState, applied: AppliedState, resolver: ContentResolver) -> ChangeSet:
    """Classify every file and unit of `desired` against the last applied state."""
    cs = ChangeSet()

    for path, f in desired.files.items():
        cs.files.append(_diff_file(resolver, path, f, applied.files.get(path), desired.owner_of(path)))
    for path, f in applied.files.items():
        if path not in desired.files:
            cs.files.append(FileChange(path=path, kind=ChangeKind.REMOVED, before=f, owner=applied.owner_of(path)))

    changed_paths = {c.path for c in cs.files if c.kind in {ChangeKind.ADDED, ChangeKind.MODIFIED}}
    for name, u in desired.units.items():
        cs.units.append(_diff_unit(u, applied.units.get(name), changed_paths))
    for name, u in applied.units.items():
        if name not in desired.units:
            cs.units.append(
                UnitChange(name=name, kind=ChangeKind.REMOVED, before=u, drop_ins_removed=tuple(d.name for d in u.drop_ins))
            )

    return cs
