"""Shared fixtures."""

from __future__ import annotations

import pytest

from fakes import FakeServer

from ghostpixel.client.session import Session


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def session() -> Session:
    return Session(token="tok-1", subject="sub", user_id=42)
