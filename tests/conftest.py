from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure tests always import the local src tree, not an older installed wheel.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

from dbdeploy.core.connections import SqliteConnectionProvider  # noqa: E402

ADMIN = "ADMIN"
APP = "APP"


@pytest.fixture
def sqlite_provider(tmp_path):
    """File-backed SQLite with the ADMIN and APP schemas attached."""
    return SqliteConnectionProvider(tmp_path / "deploy.db", [ADMIN, APP])
