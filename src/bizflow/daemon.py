"""Daemon process: always-on mode.

Usage: python -m bizflow serve

Manages:
- Session + subscriptions (realtime snapshots of all four collections)
- Scheduler (reminder tick)
- PID file (prevent duplicate instances)
- Graceful shutdown (SIGTERM/SIGINT)
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys

from bizflow.config import BizflowConfig, load_config
from bizflow.core import Workspace
from bizflow.scheduler.jobs import Scheduler
from bizflow.session import (
    AnonymousIdentity,
    IdentityProvider,
    Session,
    SessionCoordinator,
    StaticIdentity,
    TokenIdentity,
)
from bizflow.store.base import DocumentBackend

logger = logging.getLogger(__name__)


def build_backend(config: BizflowConfig) -> DocumentBackend:
    name = config.store.backend
    if name == "memory":
        from bizflow.store.memory import MemoryBackend

        return MemoryBackend()
    if name == "file":
        from bizflow.store.files import FileBackend

        return FileBackend(config.store.data_dir)
    if name == "firestore":
        from bizflow.store.firestore import FirestoreBackend

        return FirestoreBackend(config.store.project_id, config.store.credentials)
    raise ValueError(f"Unknown backend: {name}")


def build_identity(config: BizflowConfig) -> IdentityProvider:
    """Token (falling back to the configured or anonymous actor), else static, else anonymous."""
    fallback: IdentityProvider = (
        StaticIdentity(config.session.actor_id) if config.session.actor_id else AnonymousIdentity()
    )
    if config.session.token:
        return TokenIdentity(config.session.token, fallback=fallback)
    return fallback


def build_workspace(config: BizflowConfig) -> Workspace:
    session = Session(
        backend=build_backend(config),
        coordinator=SessionCoordinator(build_identity(config)),
        app_id=config.app_id,
    )
    return Workspace(session)


class BizflowDaemon:
    """Always-on daemon process."""

    def __init__(self, config: BizflowConfig | None = None) -> None:
        self.config = config or load_config()
        self._shutdown_event = asyncio.Event()

    # ── PID file management ──────────────────────────────────

    def _write_pid(self) -> None:
        self.config.pid_file.parent.mkdir(parents=True, exist_ok=True)
        self.config.pid_file.write_text(str(os.getpid()))
        logger.info("PID file written: %s (pid=%d)", self.config.pid_file, os.getpid())

    def _remove_pid(self) -> None:
        if self.config.pid_file.exists():
            self.config.pid_file.unlink()

    def _check_existing(self) -> None:
        if not self.config.pid_file.exists():
            return
        try:
            pid = int(self.config.pid_file.read_text().strip())
            os.kill(pid, 0)  # Check if process exists
            print(f"bizflow daemon already running (pid={pid}). Exiting.", file=sys.stderr)
            sys.exit(1)
        except (ProcessLookupError, ValueError):
            # Stale PID file, remove it
            self._remove_pid()

    # ── Signal handling ──────────────────────────────────────

    def _setup_signals(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._handle_signal, sig)

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info("Received %s, shutting down...", sig.name)
        self._shutdown_event.set()

    # ── Main run loop ────────────────────────────────────────

    async def run(self) -> None:
        self._check_existing()
        self._write_pid()
        self._setup_signals()

        workspace = build_workspace(self.config)
        scheduler = Scheduler(workspace, self.config)

        logger.info(
            "bizflow daemon starting (backend=%s, app=%s)",
            self.config.store.backend,
            self.config.app_id,
        )

        try:
            if await workspace.start():
                await workspace.synced()
                await scheduler.start(self._shutdown_event)
        except asyncio.CancelledError:
            pass
        finally:
            await workspace.stop()
            self._remove_pid()
            logger.info("bizflow daemon stopped.")
