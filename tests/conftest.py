"""
Shared pytest fixtures for the Strongbox test suite.

Autouse fixtures below isolate tests from the real environment:
  - Audit logger   -> temp directory   (no audit files in the working dir)
  - Open sessions  -> closed after each test (no leaked locks or keys)
  - Engine config  -> fast KDF profile (Argon2 defaults take ~0.5s per derive)
"""

from pathlib import Path

import pytest

from strongbox.core.config import VaultConfig
from strongbox.vault.kdf import KdfParams

# Smallest profile Argon2id accepts with one lane: keeps tests fast
FAST_KDF = KdfParams(memory_cost=8, time_cost=1, parallelism=1)


@pytest.fixture(autouse=True)
def _isolate_audit_logs(tmp_path, monkeypatch):
    """Redirect the global AuditLogger to a temp directory for every test."""
    import strongbox.core.audit_log as audit_mod

    old_logger = audit_mod._audit_logger
    audit_mod._audit_logger = None

    orig_init = audit_mod.AuditLogger.__init__

    def patched_init(self, log_dir=None):
        orig_init(self, log_dir=log_dir or tmp_path / "audit_logs")

    monkeypatch.setattr(audit_mod.AuditLogger, "__init__", patched_init)

    yield

    if audit_mod._audit_logger is not None:
        audit_mod._audit_logger.close()
    audit_mod._audit_logger = old_logger


@pytest.fixture(autouse=True)
def _fast_default_kdf(monkeypatch):
    """Make load_config() default to the fast KDF profile."""
    monkeypatch.setenv("STRONGBOX_KDF_MEMORY_KIB", str(FAST_KDF.memory_cost))
    monkeypatch.setenv("STRONGBOX_KDF_TIME_COST", str(FAST_KDF.time_cost))
    monkeypatch.setenv("STRONGBOX_KDF_PARALLELISM", str(FAST_KDF.parallelism))
    monkeypatch.delenv("STRONGBOX_AUDIT_LOG_DIR", raising=False)
    monkeypatch.delenv("STRONGBOX_FSYNC", raising=False)


@pytest.fixture(autouse=True)
def _close_sessions():
    """Close any session a test left open."""
    yield
    from strongbox.vault.vault_manager import close_all_sessions

    close_all_sessions()


@pytest.fixture
def fast_kdf():
    return FAST_KDF


@pytest.fixture
def config():
    return VaultConfig(kdf_params=FAST_KDF)


@pytest.fixture
def vault_path(tmp_path) -> Path:
    return tmp_path / "v.bin"
