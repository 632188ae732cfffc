"""Actor identity lifecycle and the session context.

    uninitialized -> establishing -> established(actor_id)
          ^               |                 |
          +---- failure --+---- sign_out ---+

Only one identity is held at a time. Teardown hooks (entity store
subscriptions) run before a new identity is established and on sign-out, so
no snapshot from one actor is ever delivered under another.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from bizflow.errors import NotReady
from bizflow.store.base import collection_path

if TYPE_CHECKING:
    from bizflow.store.base import DocumentBackend

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    ESTABLISHING = "establishing"
    ESTABLISHED = "established"


@runtime_checkable
class IdentityProvider(Protocol):
    """Signs an actor in and returns its id."""

    async def sign_in(self) -> str: ...


class AnonymousIdentity:
    async def sign_in(self) -> str:
        return uuid.uuid4().hex


@dataclass
class StaticIdentity:
    actor_id: str

    async def sign_in(self) -> str:
        return self.actor_id


def _verify_firebase_token(token: str) -> dict[str, Any]:
    try:
        from firebase_admin import auth
    except ImportError:
        raise ImportError(
            "firebase-admin package required. Install with: pip install 'bizflow[firestore]'"
        )
    return auth.verify_id_token(token)


class TokenIdentity:
    """Verify an ID token; on failure fall back to another provider if given."""

    def __init__(
        self,
        token: str,
        fallback: IdentityProvider | None = None,
        verify: Callable[[str], dict[str, Any]] | None = None,
    ) -> None:
        self._token = token
        self._fallback = fallback
        self._verify = verify or _verify_firebase_token

    async def sign_in(self) -> str:
        try:
            claims = await asyncio.to_thread(self._verify, self._token)
            return claims["uid"]
        except Exception as e:
            if self._fallback is None:
                raise
            logger.warning("Token sign-in failed (%s), using fallback identity", e)
            return await self._fallback.sign_in()


class SessionCoordinator:
    """Owns the actor identity and tears down dependents on change."""

    def __init__(self, identity: IdentityProvider) -> None:
        self._identity = identity
        self._actor_id: str | None = None
        self._teardown_hooks: list[Callable[[], None]] = []
        self._lock = asyncio.Lock()
        self.state = SessionState.UNINITIALIZED
        self.last_error: Exception | None = None

    @property
    def actor_id(self) -> str | None:
        return self._actor_id

    @property
    def is_ready(self) -> bool:
        return self.state == SessionState.ESTABLISHED

    def require_actor(self) -> str:
        if self.state != SessionState.ESTABLISHED or not self._actor_id:
            raise NotReady()
        return self._actor_id

    def on_teardown(self, hook: Callable[[], None]) -> None:
        self._teardown_hooks.append(hook)

    def _teardown(self) -> None:
        for hook in list(self._teardown_hooks):
            hook()

    async def establish(self, identity: IdentityProvider | None = None) -> str:
        """Sign in. With a new identity provider, replaces the current actor.

        A failed attempt leaves the coordinator uninitialized, ready to be
        re-attempted; nothing is retried automatically.
        """
        async with self._lock:
            if identity is None and self.state == SessionState.ESTABLISHED:
                return self._actor_id
            if identity is not None:
                self._identity = identity

            self._teardown()
            self._actor_id = None
            self.state = SessionState.ESTABLISHING
            try:
                actor_id = await self._identity.sign_in()
            except Exception as e:
                self.state = SessionState.UNINITIALIZED
                self.last_error = e
                logger.error("Sign-in failed: %s", e)
                raise NotReady(f"Sign-in failed: {e}") from e
            if not actor_id:
                self.state = SessionState.UNINITIALIZED
                self.last_error = NotReady("Sign-in returned no actor id")
                raise self.last_error

            self._actor_id = actor_id
            self.state = SessionState.ESTABLISHED
            self.last_error = None
            logger.info("Signed in as %s", actor_id)
            return actor_id

    async def sign_out(self) -> None:
        async with self._lock:
            self._teardown()
            if self._actor_id:
                logger.info("Signed out %s", self._actor_id)
            self._actor_id = None
            self.state = SessionState.UNINITIALIZED


@dataclass
class Session:
    """Explicit session context: backend handle, app id, identity owner."""

    backend: DocumentBackend
    coordinator: SessionCoordinator
    app_id: str = "default-app-id"

    @property
    def actor_id(self) -> str:
        return self.coordinator.require_actor()

    def collection_path(self, collection: str) -> str:
        return collection_path(self.app_id, self.actor_id, collection)

    async def close(self) -> None:
        await self.coordinator.sign_out()
        await self.backend.close()
