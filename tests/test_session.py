"""Tests for the session coordinator and identity providers."""

import asyncio

import pytest

from bizflow.errors import NotReady
from bizflow.session import (
    AnonymousIdentity,
    Session,
    SessionCoordinator,
    SessionState,
    StaticIdentity,
    TokenIdentity,
)
from bizflow.store.memory import MemoryBackend


class FailingIdentity:
    def __init__(self):
        self.calls = 0

    async def sign_in(self) -> str:
        self.calls += 1
        raise ConnectionError("auth service unreachable")


class SlowIdentity:
    def __init__(self, actor_id: str):
        self.actor_id = actor_id
        self.release = asyncio.Event()

    async def sign_in(self) -> str:
        await self.release.wait()
        return self.actor_id


class TestSessionCoordinator:
    def test_starts_uninitialized(self):
        coordinator = SessionCoordinator(StaticIdentity("alice"))
        assert coordinator.state == SessionState.UNINITIALIZED
        assert coordinator.actor_id is None
        with pytest.raises(NotReady):
            coordinator.require_actor()

    @pytest.mark.asyncio
    async def test_establish(self):
        coordinator = SessionCoordinator(StaticIdentity("alice"))
        assert await coordinator.establish() == "alice"
        assert coordinator.state == SessionState.ESTABLISHED
        assert coordinator.require_actor() == "alice"

    @pytest.mark.asyncio
    async def test_establishing_state_is_observable(self):
        identity = SlowIdentity("alice")
        coordinator = SessionCoordinator(identity)
        task = asyncio.create_task(coordinator.establish())
        await asyncio.sleep(0)
        assert coordinator.state == SessionState.ESTABLISHING
        with pytest.raises(NotReady):
            coordinator.require_actor()
        identity.release.set()
        assert await task == "alice"

    @pytest.mark.asyncio
    async def test_establish_is_idempotent(self):
        coordinator = SessionCoordinator(AnonymousIdentity())
        first = await coordinator.establish()
        assert await coordinator.establish() == first

    @pytest.mark.asyncio
    async def test_failure_can_be_reattempted(self):
        failing = FailingIdentity()
        coordinator = SessionCoordinator(failing)
        with pytest.raises(NotReady, match="Sign-in failed"):
            await coordinator.establish()
        assert coordinator.state == SessionState.UNINITIALIZED
        assert isinstance(coordinator.last_error, ConnectionError)
        assert failing.calls == 1  # no automatic retry

        assert await coordinator.establish(StaticIdentity("alice")) == "alice"
        assert coordinator.last_error is None

    @pytest.mark.asyncio
    async def test_teardown_runs_before_new_identity(self):
        coordinator = SessionCoordinator(StaticIdentity("alice"))
        seen: list[str | None] = []
        coordinator.on_teardown(lambda: seen.append(coordinator.actor_id))

        await coordinator.establish()
        await coordinator.establish(StaticIdentity("bob"))
        assert coordinator.actor_id == "bob"
        # first establish had no actor yet; switch saw alice still in place
        assert seen == [None, "alice"]

    @pytest.mark.asyncio
    async def test_sign_out(self):
        coordinator = SessionCoordinator(StaticIdentity("alice"))
        torn_down = []
        coordinator.on_teardown(lambda: torn_down.append(True))
        await coordinator.establish()
        await coordinator.sign_out()
        assert coordinator.state == SessionState.UNINITIALIZED
        assert coordinator.actor_id is None
        assert torn_down == [True, True]


class TestIdentities:
    @pytest.mark.asyncio
    async def test_anonymous_ids_are_unique(self):
        identity = AnonymousIdentity()
        assert await identity.sign_in() != await identity.sign_in()

    @pytest.mark.asyncio
    async def test_token_identity(self):
        identity = TokenIdentity("tok", verify=lambda token: {"uid": f"user-{token}"})
        assert await identity.sign_in() == "user-tok"

    @pytest.mark.asyncio
    async def test_token_falls_back(self):
        def reject(token):
            raise ValueError("expired")

        identity = TokenIdentity("tok", fallback=StaticIdentity("anon"), verify=reject)
        assert await identity.sign_in() == "anon"

    @pytest.mark.asyncio
    async def test_token_without_fallback_raises(self):
        def reject(token):
            raise ValueError("expired")

        with pytest.raises(ValueError):
            await TokenIdentity("tok", verify=reject).sign_in()


class TestSession:
    @pytest.mark.asyncio
    async def test_collection_path_is_actor_scoped(self):
        session = Session(MemoryBackend(), SessionCoordinator(StaticIdentity("alice")), "app")
        with pytest.raises(NotReady):
            session.collection_path("invoices")
        await session.coordinator.establish()
        assert session.collection_path("invoices") == "artifacts/app/users/alice/invoices"

    @pytest.mark.asyncio
    async def test_close_signs_out(self):
        session = Session(MemoryBackend(), SessionCoordinator(StaticIdentity("alice")))
        await session.coordinator.establish()
        await session.close()
        assert not session.coordinator.is_ready
