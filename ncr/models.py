from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

DEFAULT_FILE_MODE = 0o600
UNIT_FILE_MODE = 0o600

COMMAND_START = "start"
COMMAND_STOP = "stop"


@dataclass(frozen=True)
class InlineContent:
    data: str
    encoding: str = ""  # ""|base64|b64


@dataclass(frozen=True)
class ImageContent:
    image: str
    path_in_image: str


Content = Union[InlineContent, ImageContent]


@dataclass(frozen=True)
class File:
    path: str
    content: Content
    permissions: int | None = None
    transmit_unencoded: bool = False

    @property
    def effective_permissions(self) -> int:
        return DEFAULT_FILE_MODE if self.permissions is None else self.permissions

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"path": self.path}
        if isinstance(self.content, ImageContent):
            out["content"] = {"imageRef": {"image": self.content.image, "filePathInImage": self.content.path_in_image}}
        else:
            out["content"] = {"inline": {"encoding": self.content.encoding, "data": self.content.data}}
        if self.permissions is not None:
            out["permissions"] = self.permissions
        if self.transmit_unencoded:
            out["transmitUnencoded"] = True
        return out

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "File":
        content_raw = raw["content"]
        content: Content
        if "imageRef" in content_raw:
            ref = content_raw["imageRef"]
            content = ImageContent(image=ref["image"], path_in_image=ref["filePathInImage"])
        else:
            inline = content_raw["inline"]
            content = InlineContent(data=inline.get("data", ""), encoding=inline.get("encoding", "") or "")
        return cls(
            path=raw["path"],
            content=content,
            permissions=raw.get("permissions"),
            transmit_unencoded=bool(raw.get("transmitUnencoded", False)),
        )


@dataclass(frozen=True)
class DropIn:
    name: str
    content: str


@dataclass(frozen=True)
class Unit:
    name: str
    enable: bool | None = None
    command: str | None = None  # start|stop
    content: str | None = None
    drop_ins: tuple[DropIn, ...] = ()
    files: tuple[File, ...] = ()

    @property
    def is_fragment(self) -> bool:
        """Only contributes drop-ins (and maybe files) to a unit defined elsewhere."""
        return self.enable is None and self.command is None and self.content is None

    def definition(self) -> tuple[Any, ...]:
        """The parts of a unit that decide whether it changed (embedded files excluded)."""
        return (self.enable, self.command, self.content, self.drop_ins)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name}
        if self.enable is not None:
            out["enable"] = self.enable
        if self.command is not None:
            out["command"] = self.command
        if self.content is not None:
            out["content"] = self.content
        if self.drop_ins:
            out["dropIns"] = [{"name": d.name, "content": d.content} for d in self.drop_ins]
        if self.files:
            out["files"] = [f.to_dict() for f in self.files]
        return out

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Unit":
        return cls(
            name=raw["name"],
            enable=raw.get("enable"),
            command=raw.get("command"),
            content=raw.get("content"),
            drop_ins=tuple(DropIn(name=d["name"], content=d.get("content", "")) for d in raw.get("dropIns") or []),
            files=tuple(File.from_dict(f) for f in raw.get("files") or []),
        )


@dataclass
class DesiredState:
    """Files keyed by path and merged units keyed by name, both in declaration order.

    The same shape is used for the applied-state baseline.
    """

    files: dict[str, File] = field(default_factory=dict)
    units: dict[str, Unit] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not self.files and not self.units

    def owner_of(self, path: str) -> str | None:
        """Name of the unit that embeds `path`, if any."""
        for unit in self.units.values():
            if any(f.path == path for f in unit.files):
                return unit.name
        return None

    def to_dict(self) -> dict[str, Any]:
        embedded = {f.path for u in self.units.values() for f in u.files}
        return {
            "files": [f.to_dict() for p, f in self.files.items() if p not in embedded],
            "units": [u.to_dict() for u in self.units.values()],
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> "DesiredState":
        state = cls()
        if not raw:
            return state
        for f in raw.get("files") or []:
            file = File.from_dict(f)
            state.files[file.path] = file
        for u in raw.get("units") or []:
            unit = Unit.from_dict(u)
            state.units[unit.name] = unit
            for file in unit.files:
                state.files[file.path] = file
        return state


# Applied state is only ever a previously assembled desired state.
AppliedState = DesiredState
