from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # Core
    db_path: str = os.getenv("NCR_DB_PATH", "/var/lib/ncr/ncr.db")
    poll_interval_s: int = _env_int("NCR_POLL_INTERVAL_S", 30)
    own_unit: str = os.getenv("NCR_OWN_UNIT", "ncr.service")

    # Desired-state input (a local file or an HTTP URL)
    source: str = os.getenv("NCR_SOURCE", "/var/lib/ncr/desired-config.yaml")
    source_timeout_s: float = _env_float("NCR_SOURCE_TIMEOUT_S", 10.0)

    # Host layout
    fs_root: str = os.getenv("NCR_FS_ROOT", "/")
    unit_dir: str = os.getenv("NCR_UNIT_DIR", "/etc/systemd/system")
    image_mount_dir: str = os.getenv("NCR_IMAGE_MOUNT_DIR", "/var/lib/ncr/images")
    applied_state_path: str = os.getenv("NCR_APPLIED_STATE_PATH", "/var/lib/ncr/last-applied-config.yaml")

    # Execution
    step_timeout_s: float = _env_float("NCR_STEP_TIMEOUT_S", 60.0)
    file_workers: int = _env_int("NCR_FILE_WORKERS", 4)
    systemctl_bin: str = os.getenv("NCR_SYSTEMCTL", "systemctl")

    # Email alerting (optional)
    enable_email: bool = _env_bool("NCR_ENABLE_EMAIL", False)
    smtp_host: str = os.getenv("NCR_SMTP_HOST", "smtp.gmail.com")
    smtp_port: int = _env_int("NCR_SMTP_PORT", 587)
    smtp_user: str | None = os.getenv("NCR_SMTP_USER")
    smtp_password: str | None = os.getenv("NCR_SMTP_PASSWORD")
    email_from: str | None = os.getenv("NCR_EMAIL_FROM")
    email_to: str | None = os.getenv("NCR_EMAIL_TO")


settings = Settings()
