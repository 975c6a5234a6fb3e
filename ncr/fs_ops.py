from __future__ import annotations

import os
import shutil
import tempfile


class LocalFilesystem:
    """Filesystem adapter; every absolute path is taken relative to `root`.

    Production uses root="/"; tests point it at a temporary directory.
    """

    def __init__(self, root: str = "/"):
        self.root = root

    def _p(self, path: str) -> str:
        return os.path.join(self.root, path.lstrip("/"))

    def exists(self, path: str) -> bool:
        return os.path.lexists(self._p(path))

    def read_file(self, path: str) -> bytes:
        with open(self._p(path), "rb") as fh:
            return fh.read()

    def mkdir_all(self, path: str, mode: int = 0o755) -> None:
        os.makedirs(self._p(path), mode=mode, exist_ok=True)

    def write_file(self, path: str, data: bytes, mode: int) -> None:
        """Write content and mode to a temp file, then rename it into place.

        Readers see either the old file or the complete new one.
        """
        target = self._p(path)
        parent = os.path.dirname(target)
        os.makedirs(parent, mode=0o755, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=f".{os.path.basename(target)}.", dir=parent)
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fchmod(fh.fileno(), mode)
                os.fsync(fh.fileno())
            os.replace(tmp, target)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def chmod(self, path: str, mode: int) -> None:
        os.chmod(self._p(path), mode)

    def mode(self, path: str) -> int:
        return os.stat(self._p(path)).st_mode & 0o7777

    def remove(self, path: str) -> None:
        """Remove a file; an already missing file is fine."""
        try:
            os.unlink(self._p(path))
        except FileNotFoundError:
            return

    def remove_dir(self, path: str) -> None:
        """Remove a directory and whatever is left in it (or nothing if gone)."""
        try:
            shutil.rmtree(self._p(path))
        except FileNotFoundError:
            return

    def list_dir(self, path: str) -> list[str]:
        try:
            return sorted(os.listdir(self._p(path)))
        except FileNotFoundError:
            return []
