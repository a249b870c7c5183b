# -*- coding: utf-8 -*-
"""
Shared test fixtures for the geohash autoresponder tests.
"""

import sys
from pathlib import Path

# Ensure project root and test helpers are importable without pip install
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

import pytest

from imap_fakes import FakeImapServer
from imap_fakes import make_test_config


@pytest.fixture
def fake_server():
    """In-memory IMAP server with the source folder selected."""
    server = FakeImapServer()
    server.select("INBOX")
    return server


@pytest.fixture
def test_config():
    """Minimal config object for testing."""
    return make_test_config()


@pytest.fixture(autouse=True)
def isolated_cache(tmp_path, monkeypatch):
    """Keep market index caching out of the user's home directory."""
    import config_data

    monkeypatch.setattr(config_data, "cache_prefix", str(tmp_path / "cache"))
