"""Tests for daemon wiring: backend/identity selection and PID handling."""

import pytest

from bizflow.config import BizflowConfig, SessionConfig, StoreConfig
from bizflow.daemon import BizflowDaemon, build_backend, build_identity, build_workspace
from bizflow.session import AnonymousIdentity, StaticIdentity, TokenIdentity
from bizflow.store.files import FileBackend
from bizflow.store.memory import MemoryBackend


class TestBuilders:
    def test_memory_backend(self):
        config = BizflowConfig(store=StoreConfig(backend="memory"))
        assert isinstance(build_backend(config), MemoryBackend)

    def test_file_backend(self, tmp_path):
        config = BizflowConfig(store=StoreConfig(backend="file", data_dir=tmp_path))
        backend = build_backend(config)
        assert isinstance(backend, FileBackend)
        assert backend.root == tmp_path

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            build_backend(BizflowConfig(store=StoreConfig(backend="sqlite")))

    def test_identity_selection(self):
        assert isinstance(build_identity(BizflowConfig()), StaticIdentity)
        blank = BizflowConfig(session=SessionConfig(actor_id=""))
        assert isinstance(build_identity(blank), AnonymousIdentity)
        token = BizflowConfig(session=SessionConfig(token="abc"))
        assert isinstance(build_identity(token), TokenIdentity)

    @pytest.mark.asyncio
    async def test_workspace_uses_app_id(self):
        config = BizflowConfig(store=StoreConfig(backend="memory"), app_id="studio")
        workspace = build_workspace(config)
        assert await workspace.start()
        assert workspace.session.collection_path("invoices") == (
            "artifacts/studio/users/local/invoices"
        )
        await workspace.stop()


class TestPidFile:
    def test_stale_pid_removed(self, tmp_path):
        pid_file = tmp_path / "bizflow.pid"
        pid_file.write_text("not-a-pid")
        daemon = BizflowDaemon(BizflowConfig(pid_file=pid_file))
        daemon._check_existing()
        assert not pid_file.exists()

    def test_write_and_remove(self, tmp_path):
        pid_file = tmp_path / "run" / "bizflow.pid"
        daemon = BizflowDaemon(BizflowConfig(pid_file=pid_file))
        daemon._write_pid()
        assert pid_file.read_text().isdigit()
        daemon._remove_pid()
        assert not pid_file.exists()
