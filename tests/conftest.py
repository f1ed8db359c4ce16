"""
Shared pytest fixtures for the Lockbox test suite.

Autouse fixtures below isolate tests from the live application data:
  - Audit logger -> temp directory (prevents test events in the real audit log)
  - Argon2id     -> low memory cost (64 MiB per derivation makes the suite slow)
"""

import pytest

from lockbox.vault import SecretRegistry, VaultSession, VaultStore


@pytest.fixture(autouse=True)
def _isolate_audit_logs(tmp_path, monkeypatch):
    """Redirect the global AuditLogger to a temp directory for every test."""
    import lockbox.core.audit_log as audit_mod

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


def pytest_configure(config):
    config.addinivalue_line("markers", "real_kdf: run with the production Argon2id cost")


@pytest.fixture(autouse=True)
def _fast_kdf(request, monkeypatch):
    """Lower Argon2id cost; derivation stays deterministic, just cheaper."""
    if request.node.get_closest_marker("real_kdf"):
        return
    import lockbox.vault.crypto as crypto_mod

    monkeypatch.setattr(crypto_mod, "KDF_MEMORY_COST_KIB", 256)
    monkeypatch.setattr(crypto_mod, "KDF_ITERATIONS", 1)


@pytest.fixture
def vault_dir(tmp_path):
    return tmp_path / "vault"


@pytest.fixture
def store(vault_dir):
    s = VaultStore(vault_dir)
    yield s
    s.lock()


@pytest.fixture
def session(store):
    s = VaultSession(store)
    yield s
    s.close()


@pytest.fixture
def registry(store):
    return SecretRegistry(store)


@pytest.fixture
def unlocked(session):
    """A freshly created, unlocked vault. Returns the recovery phrase."""
    return session.create_master_password("correct-horse")
