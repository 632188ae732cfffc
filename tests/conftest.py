"""Shared fixtures: in-memory backend, session and workspace."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from bizflow.core import Workspace
from bizflow.session import Session, SessionCoordinator, StaticIdentity
from bizflow.store.memory import MemoryBackend


async def _eventually(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def eventually():
    """Poll a predicate until it holds (snapshots arrive asynchronously)."""
    return _eventually


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def session(backend: MemoryBackend) -> Session:
    return Session(
        backend=backend,
        coordinator=SessionCoordinator(StaticIdentity("alice")),
        app_id="test-app",
    )


@pytest.fixture
def workspace(session: Session) -> Workspace:
    return Workspace(session)
