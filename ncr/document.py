"""Desired-state document as published by the config owner.

The document is YAML (JSON is accepted as well, it is a YAML subset):

    files: [...]
    units: [...]
    extensionFiles: [...]
    extensionUnits: [...]
"""
from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import InvalidDocument
from .models import Content, DropIn, File, ImageContent, InlineContent, Unit
from .systemd_ops import UNIT_NAME_RE

_DOT_NAMES = {".", ".."}


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class InlineSpec(_Model):
    encoding: str = ""
    data: str = ""


class ImageRefSpec(_Model):
    image: str = Field(..., min_length=1)
    file_path_in_image: str = Field(..., alias="filePathInImage", min_length=1)


class ContentSpec(_Model):
    inline: InlineSpec | None = None
    image_ref: ImageRefSpec | None = Field(None, alias="imageRef")

    @model_validator(mode="after")
    def _exactly_one(self) -> "ContentSpec":
        if (self.inline is None) == (self.image_ref is None):
            raise ValueError("exactly one of 'inline' or 'imageRef' must be set")
        return self


class FileSpec(_Model):
    path: str
    content: ContentSpec
    permissions: int | None = Field(None, ge=0, le=0o7777)
    transmit_unencoded: bool = Field(False, alias="transmitUnencoded")

    @model_validator(mode="after")
    def _absolute(self) -> "FileSpec":
        if not self.path.startswith("/"):
            raise ValueError(f"file path {self.path!r} must be absolute")
        return self

    def to_file(self) -> File:
        inline, ref = self.content.inline, self.content.image_ref
        if ref is not None:
            content: Content = ImageContent(image=ref.image, path_in_image=ref.file_path_in_image)
        elif inline is not None:
            content = InlineContent(data=inline.data, encoding=inline.encoding)
        else:
            raise InvalidDocument(f"file {self.path!r} has no content")
        return File(path=self.path, content=content, permissions=self.permissions, transmit_unencoded=self.transmit_unencoded)


class DropInSpec(_Model):
    name: str = Field(..., min_length=1)
    content: str = ""


class UnitSpec(_Model):
    name: str = Field(..., min_length=1)
    enable: bool | None = None
    command: Literal["start", "stop"] | None = None
    content: str | None = None
    drop_ins: list[DropInSpec] = Field(default_factory=list, alias="dropIns")
    files: list[FileSpec] = Field(default_factory=list)

    @model_validator(mode="after")
    def _plain_name(self) -> "UnitSpec":
        if not UNIT_NAME_RE.match(self.name) or self.name in _DOT_NAMES:
            raise ValueError(f"invalid unit name {self.name!r}")
        for d in self.drop_ins:
            if "/" in d.name or d.name in _DOT_NAMES:
                raise ValueError(f"invalid drop-in name {d.name!r} of unit {self.name!r}")
        return self

    def to_unit(self) -> Unit:
        return Unit(
            name=self.name,
            enable=self.enable,
            command=self.command,
            content=self.content,
            drop_ins=tuple(DropIn(name=d.name, content=d.content) for d in self.drop_ins),
            files=tuple(f.to_file() for f in self.files),
        )


class DocumentSpec(_Model):
    files: list[FileSpec] = Field(default_factory=list)
    units: list[UnitSpec] = Field(default_factory=list)
    extension_files: list[FileSpec] = Field(default_factory=list, alias="extensionFiles")
    extension_units: list[UnitSpec] = Field(default_factory=list, alias="extensionUnits")


@dataclass(frozen=True)
class Document:
    """Parsed desired-state input, still split into owner and extension parts."""

    checksum: str
    files: list[File]
    units: list[Unit]
    extension_files: list[File]
    extension_units: list[Unit]


def checksum(raw: bytes) -> str:
    return hashlib.sha256(raw).hexdigest()


def parse_document(raw: bytes) -> Document:
    try:
        data = yaml.safe_load(raw) or {}
    except yaml.YAMLError as e:
        raise InvalidDocument(f"document is not valid YAML: {e}") from e
    if not isinstance(data, dict):
        raise InvalidDocument("document must be a mapping")

    try:
        parsed = DocumentSpec.model_validate(data)
    except ValidationError as e:
        raise InvalidDocument(f"document failed validation: {e}") from e

    return Document(
        checksum=checksum(raw),
        files=[f.to_file() for f in parsed.files],
        units=[u.to_unit() for u in parsed.units],
        extension_files=[f.to_file() for f in parsed.extension_files],
        extension_units=[u.to_unit() for u in parsed.extension_units],
    )
