"""Pytest configuration: sandbox temp paths and per-test storage locations."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

import pytest

from config.settings import settings

_TMP = Path(".tmp").resolve()
_TMP.mkdir(parents=True, exist_ok=True)
os.environ["TMPDIR"] = str(_TMP)
os.environ["TEMP"] = str(_TMP)
os.environ["TMP"] = str(_TMP)
tempfile.tempdir = str(_TMP)


@pytest.fixture(autouse=True)
def isolated_storage(tmp_path, monkeypatch):
    """Point every on-disk store at the test's own directory."""
    monkeypatch.setattr(settings, "durable_store_path", str(tmp_path / "market_data.db"))
    monkeypatch.setattr(settings, "client_cache_dir", str(tmp_path / "client"))
    monkeypatch.setattr(settings, "client_cache_db", str(tmp_path / "client" / "bulk.db"))
    yield tmp_path
