"""
Shared fixtures for the feed pipeline tests.

Each test drives its coroutines with a single `asyncio.run`, against a fresh
SQLite file and an `httpx.MockTransport` standing in for the network.
"""

import pytest


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'feedpipe.db'}"
