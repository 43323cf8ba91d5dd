"""
Pytest configuration for Drive unit tests.

The Drive layer talks only to a mocked service, so no database is needed.
"""

import pytest


@pytest.fixture(autouse=True)
async def setup_database():
    """No-op database setup for unit tests."""
    yield
