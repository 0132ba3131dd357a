"""Pytest fixtures for PlayTimer."""

from __future__ import annotations

from typing import AsyncIterator

import pytest_asyncio

from ..app import PlayTimerApp
from .apps import app_fixture


@pytest_asyncio.fixture()
async def memory_app() -> AsyncIterator[PlayTimerApp]:
    app = app_fixture()
    await app.start(background=False)
    yield app
    await app.stop()
