import os as _os
import sys
from dataclasses import replace

import pytest

# Ensure project root is importable (so `import main` / `import ncr` work without installing)
_project_root = _os.path.dirname(_os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from ncr import db  # noqa: E402
from ncr.bookkeeper import Bookkeeper  # noqa: E402
from ncr.content import ContentResolver  # noqa: E402
from ncr.fs_ops import LocalFilesystem  # noqa: E402
from ncr.reconciler import Reconciler  # noqa: E402
from ncr.runtime import RuntimeState  # noqa: E402
from ncr.systemd_ops import FakeServiceManager  # noqa: E402

UNIT_DIR = "/etc/systemd/system"
APPLIED_PATH = "/var/lib/ncr/last-applied-config.yaml"
OWN_UNIT = "ncr.service"


@pytest.fixture(autouse=True)
def isolated_db(tmp_path, monkeypatch):
    """Point the sqlite event store at a per-test file."""
    monkeypatch.setattr(db, "settings", replace(db.settings, db_path=str(tmp_path / "ncr.db")))
    db.init_db()


@pytest.fixture
def fs(tmp_path):
    root = tmp_path / "root"
    root.mkdir()
    return LocalFilesystem(str(root))


@pytest.fixture
def image_dir(tmp_path):
    d = tmp_path / "images"
    d.mkdir()
    return d


@pytest.fixture
def resolver(image_dir):
    return ContentResolver(str(image_dir))


@pytest.fixture
def manager():
    return FakeServiceManager()


class DocumentSource:
    """Source whose document a test can swap between cycles."""

    def __init__(self, raw: bytes = b""):
        self.raw = raw

    def fetch(self) -> bytes:
        return self.raw


@pytest.fixture
def source():
    return DocumentSource()


@pytest.fixture
def reconciler(fs, manager, resolver, source):
    return Reconciler(
        runtime=RuntimeState(),
        source=source,
        fs=fs,
        manager=manager,
        bookkeeper=Bookkeeper(APPLIED_PATH, fs=fs),
        resolver=resolver,
        own_unit=OWN_UNIT,
        unit_dir=UNIT_DIR,
        workers=2,
        poll_interval_s=1,
    )
