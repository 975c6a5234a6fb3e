from __future__ import annotations

import httpx

from .errors import SourceUnavailable


class FileSource:
    """Desired-state document kept on local disk by an external watcher."""

    def __init__(self, path: str):
        self.path = path

    def fetch(self) -> bytes:
        try:
            with open(self.path, "rb") as fh:
                return fh.read()
        except OSError as e:
            raise SourceUnavailable(f"cannot read {self.path}: {e}") from e

    def __repr__(self) -> str:
        return f"FileSource({self.path!r})"


class HttpSource:
    """Desired-state document published at an HTTP(S) URL."""

    def __init__(self, url: str, timeout_s: float = 10.0):
        self.url = url
        self.timeout_s = timeout_s

    def fetch(self) -> bytes:
        try:
            with httpx.Client(timeout=self.timeout_s, follow_redirects=False) as client:
                resp = client.get(self.url)
        except httpx.HTTPError as e:
            raise SourceUnavailable(f"cannot fetch {self.url}: {type(e).__name__}: {e}") from e
        if resp.status_code != 200:
            raise SourceUnavailable(f"cannot fetch {self.url}: HTTP {resp.status_code}")
        return resp.content

    def __repr__(self) -> str:
        return f"HttpSource({self.url!r})"


def source_from(location: str, timeout_s: float = 10.0) -> FileSource | HttpSource:
    if location.startswith(("http://", "https://")):
        return HttpSource(location, timeout_s=timeout_s)
    return FileSource(location)
