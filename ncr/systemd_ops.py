from __future__ import annotations

import re
import subprocess
from dataclasses import dataclass, field
from threading import Lock

from .errors import ManagerUnreachable, StepFailed

UNIT_NAME_RE = re.compile(r"^[A-Za-z0-9:_.\\@-]{1,255}$")

# systemctl prints these when it cannot reach the manager at all.
_UNREACHABLE_MARKERS = (
    "Failed to connect to bus",
    "System has not been booted with systemd",
    "Transport endpoint is not connected",
)


def validate_unit_name(name: str) -> None:
    if not UNIT_NAME_RE.match(name):
        raise StepFailed(name, f"invalid unit name {name!r}")


class Systemctl:
    """Service-manager adapter driving systemd through `systemctl`.

    Every call blocks for at most `timeout_s`; a hang turns into StepFailed.
    """

    def __init__(self, binary: str = "systemctl", timeout_s: float = 60.0):
        self.binary = binary
        self.timeout_s = timeout_s

    def _run(self, target: str, *args: str) -> None:
        cmd = [self.binary, *args]
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout_s, check=False)
        except FileNotFoundError as e:
            raise ManagerUnreachable(f"{self.binary} not found") from e
        except subprocess.TimeoutExpired as e:
            raise StepFailed(target, f"timed out after {self.timeout_s}s") from e

        if proc.returncode == 0:
            return
        err = (proc.stderr or proc.stdout or "").strip()
        if any(m in err for m in _UNREACHABLE_MARKERS):
            raise ManagerUnreachable(err)
        raise StepFailed(target, f"{' '.join(args)} exited with {proc.returncode}: {err}")

    def ping(self) -> bool:
        try:
            self._run("manager", "is-system-running")
            return True
        except ManagerUnreachable:
            return False
        except StepFailed:
            # degraded/starting still answers
            return True

    def enable(self, name: str) -> None:
        validate_unit_name(name)
        self._run(name, "enable", name)

    def disable(self, name: str) -> None:
        validate_unit_name(name)
        self._run(name, "disable", name)

    def start(self, name: str) -> None:
        validate_unit_name(name)
        self._run(name, "start", name)

    def stop(self, name: str) -> None:
        validate_unit_name(name)
        self._run(name, "stop", name)

    def restart(self, name: str) -> None:
        validate_unit_name(name)
        self._run(name, "restart", name)

    def reload_manager(self) -> None:
        self._run("manager", "daemon-reload")


@dataclass
class FakeServiceManager:
    """Records actions instead of executing them (dry runs and tests).

    `failures` maps (action, unit) to an error message; `unreachable` makes
    every call raise ManagerUnreachable.
    """

    actions: list[tuple[str, str]] = field(default_factory=list)
    failures: dict[tuple[str, str], str] = field(default_factory=dict)
    unreachable: bool = False
    _lock: Lock = field(default_factory=Lock, repr=False)

    def _record(self, action: str, name: str = "") -> None:
        if self.unreachable:
            raise ManagerUnreachable("fake manager is down")
        msg = self.failures.get((action, name))
        if msg is not None:
            raise StepFailed(name or "manager", msg)
        with self._lock:
            self.actions.append((action, name))

    def ping(self) -> bool:
        return not self.unreachable

    def enable(self, name: str) -> None:
        self._record("enable", name)

    def disable(self, name: str) -> None:
        self._record("disable", name)

    def start(self, name: str) -> None:
        self._record("start", name)

    def stop(self, name: str) -> None:
        self._record("stop", name)

    def restart(self, name: str) -> None:
        self._record("restart", name)

    def reload_manager(self) -> None:
        self._record("daemon-reload")
