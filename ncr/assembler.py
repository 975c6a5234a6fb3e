from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable

from .errors import AmbiguousDropIn, AmbiguousFile, AmbiguousUnit, OrphanDropIn
from .models import DesiredState, DropIn, File, Unit


@dataclass(frozen=True)
class _Entry:
    unit: Unit
    fragment: bool
    owner: bool


def _add_file(files: dict[str, File], f: File) -> None:
    if f.path in files:
        raise AmbiguousFile(f.path)
    files[f.path] = f


def assemble(
    owner_files: Iterable[File],
    owner_units: Iterable[Unit],
    extension_files: Iterable[File] = (),
    extension_units: Iterable[Unit] = (),
) -> DesiredState:
    """Merge owner and extension declarations into one desired state.

    Units sharing a name are folded into a single unit: the (only) base
    definition provides enable/command/content, an owner entry standing in
    as the base when no entry sets any of them; drop-ins are concatenated in
    declaration order (owner before extension). Raises a DesiredStateError
    subclass when the declarations do not describe one consistent state.
    """
    files: dict[str, File] = {}
    for f in list(owner_files) + list(extension_files):
        _add_file(files, f)

    # Pass 1: group by name, tagging each contribution.
    groups: dict[str, list[_Entry]] = {}
    for u in owner_units:
        groups.setdefault(u.name, []).append(_Entry(unit=u, fragment=u.is_fragment, owner=True))
    for u in extension_units:
        groups.setdefault(u.name, []).append(_Entry(unit=u, fragment=u.is_fragment, owner=False))

    # Pass 2: fold each group onto its base definition.
    units: dict[str, Unit] = {}
    for name, entries in groups.items():
        bases = [e for e in entries if not e.fragment]
        if len(bases) > 1:
            raise AmbiguousUnit(name)
        if not bases:
            # An owner entry declares the unit even when it only carries drop-ins.
            bases = [e for e in entries if e.owner][:1]
        if not bases:
            raise OrphanDropIn(name)

        drop_ins: list[DropIn] = []
        seen: set[str] = set()
        unit_files: list[File] = []
        for e in entries:
            for d in e.unit.drop_ins:
                if d.name in seen:
                    raise AmbiguousDropIn(name, d.name)
                seen.add(d.name)
                drop_ins.append(d)
            unit_files.extend(e.unit.files)

        units[name] = replace(bases[0].unit, drop_ins=tuple(drop_ins), files=tuple(unit_files))

    for unit in units.values():
        for f in unit.files:
            _add_file(files, f)

    return DesiredState(files=files, units=units)
