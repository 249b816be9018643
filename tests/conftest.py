"""
This file contains shared fixtures for all tests.
"""
from unittest.mock import MagicMock

import pytest

from tests.helpers import FakeNginx


@pytest.fixture
def fake_nginx():
    """An nginx admin interface with one 'web' upstream holding 10.0.0.1:80."""
    return FakeNginx({"web": ["10.0.0.1:80"]})


@pytest.fixture
def admin(fake_nginx):
    client = fake_nginx.client()
    yield client
    client.close()


@pytest.fixture
def core_v1():
    """A CoreV1Api stand-in; the fake watch never calls through to it."""
    return MagicMock()


@pytest.fixture
def no_sleep():
    """Records requested sleeps instead of sleeping."""
    return MagicMock()
