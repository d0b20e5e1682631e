"""Tests for the core services: configuration, audit logging and the
inter-process vault lock."""

import json
import stat
import sys

import pytest

from strongbox.core.audit_log import (
    AuditLogger,
    EventSeverity,
    EventType,
    get_audit_logger,
    log_security_event,
)
from strongbox.core.config import VaultConfig, load_config
from strongbox.vault.exceptions import InvalidParameters, VaultBusy
from strongbox.vault.file_lock import VaultFileLock, lock_path_for
from strongbox.vault.kdf import DEFAULT_KDF_PARAMS, KdfParams


def _read_events(log_dir):
    lines = []
    for path in sorted(log_dir.glob("audit_*.log")):
        lines.extend(line for line in path.read_text(encoding="utf-8").splitlines() if line.strip())
    return [json.loads(line) for line in lines]


# ── Configuration ───────────────────────────────────────────────────


class TestLoadConfig:
    def test_defaults(self):
        config = load_config(environ={})
        assert config == VaultConfig()
        assert config.kdf_params == DEFAULT_KDF_PARAMS
        assert config.audit_log_dir is None
        assert config.fsync is True

    def test_reads_process_environment(self):
        # conftest sets the fast profile in os.environ
        assert load_config().kdf_params == KdfParams(memory_cost=8, time_cost=1, parallelism=1)

    def test_environment_values(self, tmp_path):
        config = load_config(environ={
            "STRONGBOX_KDF_MEMORY_KIB": "32768",
            "STRONGBOX_KDF_TIME_COST": "4",
            "STRONGBOX_KDF_PARALLELISM": "2",
            "STRONGBOX_AUDIT_LOG_DIR": str(tmp_path / "audit"),
            "STRONGBOX_FSYNC": "false",
        })
        assert config.kdf_params == KdfParams(memory_cost=32768, time_cost=4, parallelism=2)
        assert config.audit_log_dir == tmp_path / "audit"
        assert config.fsync is False

    def test_env_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text(
            "STRONGBOX_KDF_TIME_COST=2\n"
            "STRONGBOX_KDF_MEMORY_KIB=16\n"
            "STRONGBOX_FSYNC=off\n",
            encoding="utf-8",
        )
        config = load_config(env_file=env_file, environ={})
        assert config.kdf_params == KdfParams(memory_cost=16, time_cost=2, parallelism=1)
        assert config.fsync is False

    def test_environment_overrides_env_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("STRONGBOX_KDF_TIME_COST=2\n", encoding="utf-8")
        config = load_config(env_file=env_file, environ={"STRONGBOX_KDF_TIME_COST": "5"})
        assert config.kdf_params.time_cost == 5

    def test_missing_env_file_ignored(self, tmp_path):
        config = load_config(env_file=tmp_path / "absent.env", environ={})
        assert config == VaultConfig()

    def test_blank_values_use_defaults(self):
        config = load_config(environ={"STRONGBOX_KDF_TIME_COST": "  ", "STRONGBOX_AUDIT_LOG_DIR": ""})
        assert config.kdf_params.time_cost == DEFAULT_KDF_PARAMS.time_cost
        assert config.audit_log_dir is None

    @pytest.mark.parametrize("value,expected", [
        ("0", False), ("no", False), ("OFF", False), ("1", True), ("yes", True), ("true", True),
    ])
    def test_fsync_flag(self, value, expected):
        assert load_config(environ={"STRONGBOX_FSYNC": value}).fsync is expected

    @pytest.mark.parametrize("environ", [
        {"STRONGBOX_KDF_MEMORY_KIB": "lots"},
        {"STRONGBOX_KDF_TIME_COST": "1.5"},
        {"STRONGBOX_KDF_TIME_COST": "0"},
        {"STRONGBOX_KDF_TIME_COST": "65"},
        {"STRONGBOX_KDF_PARALLELISM": "256"},
        {"STRONGBOX_KDF_MEMORY_KIB": "8", "STRONGBOX_KDF_PARALLELISM": "2"},
    ])
    def test_invalid_kdf_settings(self, environ):
        with pytest.raises(InvalidParameters):
            load_config(environ=environ)

    def test_config_is_immutable(self):
        config = load_config(environ={})
        with pytest.raises(AttributeError):
            config.fsync = False


# ── Audit log ───────────────────────────────────────────────────────


class TestAuditLogger:
    def test_event_written_as_json(self, tmp_path):
        log_dir = tmp_path / "audit"
        audit = AuditLogger(log_dir=log_dir)
        try:
            event_id = audit.log_event(
                event_type=EventType.VAULT_SAVED,
                severity=EventSeverity.INFO,
                message="Vault saved",
                details={"path": "/tmp/v.bin", "entries": 3},
            )
        finally:
            audit.close()

        events = _read_events(log_dir)
        assert len(events) == 1
        event = events[0]
        assert event["event_id"] == event_id
        assert event["event_type"] == "vault.saved"
        assert event["severity"] == "info"
        assert event["details"] == {"path": "/tmp/v.bin", "entries": 3}
        assert set(event["user_context"]) == {"os_user", "hostname", "platform"}
        assert "timestamp" in event

    def test_severity_recorded(self, tmp_path):
        log_dir = tmp_path / "audit"
        audit = AuditLogger(log_dir=log_dir)
        try:
            audit.log_event(EventType.VAULT_UNLOCK_FAILED, EventSeverity.ALERT, "busy")
            audit.log_event(EventType.VAULT_ERROR, EventSeverity.CRITICAL, "disk full")
        finally:
            audit.close()

        assert [e["severity"] for e in _read_events(log_dir)] == ["alert", "critical"]

    def test_vault_event_helper(self, tmp_path):
        log_dir = tmp_path / "audit"
        audit = AuditLogger(log_dir=log_dir)
        try:
            audit.log_vault_event(EventType.VAULT_LOCKED, "Vault locked", details={"path": "v.bin"})
        finally:
            audit.close()

        event = _read_events(log_dir)[0]
        assert event["message"] == "Vault: Vault locked"
        assert event["severity"] == "info"

    def test_close_detaches_file(self, tmp_path):
        log_dir = tmp_path / "audit"
        audit = AuditLogger(log_dir=log_dir)
        audit.log_event(EventType.VAULT_LOCKED, EventSeverity.INFO, "first")
        audit.close()
        audit.close()
        audit.log_event(EventType.VAULT_LOCKED, EventSeverity.INFO, "after close")
        assert [e["message"] for e in _read_events(log_dir)] == ["first"]

    def test_singleton(self):
        assert get_audit_logger() is get_audit_logger()

    def test_log_security_event_uses_singleton(self):
        event_id = log_security_event(EventType.VAULT_ERROR, EventSeverity.CRITICAL, "boom")
        events = _read_events(get_audit_logger().log_dir)
        assert [e["event_id"] for e in events] == [event_id]


# ── Inter-process lock ──────────────────────────────────────────────


class TestVaultFileLock:
    def test_acquire_release(self, vault_path):
        lock = VaultFileLock(vault_path)
        assert not lock.is_held
        assert lock.acquire() is lock
        assert lock.is_held
        assert lock.acquire() is lock
        lock.release()
        assert not lock.is_held
        lock.release()

    def test_second_holder_is_busy(self, vault_path):
        with VaultFileLock(vault_path):
            with pytest.raises(VaultBusy):
                VaultFileLock(vault_path).acquire()

    def test_lock_available_after_release(self, vault_path):
        with VaultFileLock(vault_path):
            pass
        with VaultFileLock(vault_path) as lock:
            assert lock.is_held

    def test_lock_file_left_in_place(self, vault_path):
        with VaultFileLock(vault_path):
            pass
        assert lock_path_for(vault_path).exists()
        assert not vault_path.exists()

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_lock_file_private(self, vault_path):
        with VaultFileLock(vault_path):
            mode = stat.S_IMODE(lock_path_for(vault_path).stat().st_mode)
        assert mode == 0o600
