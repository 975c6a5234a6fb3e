from __future__ import annotations

import base64
import binascii
import os

from .errors import ContentUnavailable
from .models import Content, ImageContent, InlineContent

BASE64_ENCODINGS = {"base64", "b64"}


def image_dir_name(image: str) -> str:
    """Directory name an image reference is mounted under."""
    return image.replace("/", "_").replace(":", "_").replace("@", "_")


class ContentResolver:
    """Turns a file or unit content declaration into bytes.

    Image references must already be mounted below `image_mount_dir`
    (one directory per image); mounting is not done here.
    """

    def __init__(self, image_mount_dir: str):
        self.image_mount_dir = image_mount_dir

    def resolve(self, content: Content) -> bytes:
        if isinstance(content, InlineContent):
            return self._inline(content)
        if isinstance(content, ImageContent):
            return self._from_image(content)
        raise TypeError(f"unsupported content type {type(content).__name__}")

    def _inline(self, content: InlineContent) -> bytes:
        if not content.encoding:
            return content.data.encode("utf-8")
        if content.encoding in BASE64_ENCODINGS:
            try:
                return base64.b64decode(content.data, validate=True)
            except (binascii.Error, ValueError) as e:
                raise ContentUnavailable("inline", f"invalid base64 data: {e}") from e
        raise ContentUnavailable("inline", f"unknown encoding {content.encoding!r}")

    def _from_image(self, content: ImageContent) -> bytes:
        ref = f"{content.image}:{content.path_in_image}"
        mount = os.path.join(self.image_mount_dir, image_dir_name(content.image))
        if not os.path.isdir(mount):
            raise ContentUnavailable(ref, "image is not mounted")

        mount_real = os.path.realpath(mount)
        target = os.path.realpath(os.path.join(mount_real, content.path_in_image.lstrip("/")))
        if os.path.commonpath([mount_real, target]) != mount_real:
            raise ContentUnavailable(ref, "path escapes the image mount")
        try:
            with open(target, "rb") as fh:
                return fh.read()
        except FileNotFoundError as e:
            raise ContentUnavailable(ref, "path does not exist in image") from e
        except IsADirectoryError as e:
            raise ContentUnavailable(ref, "path is a directory") from e
