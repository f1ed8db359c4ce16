# Tests for VaultStore: encrypted database lifecycle and auxiliary files

import os
import stat

import pytest

from lockbox.vault import crypto
from lockbox.vault.errors import (
    CorruptRecoveryError,
    InvalidKeyError,
    VaultExistsError,
    VaultLockedError,
    VaultNotFoundError,
    VaultStorageError,
)
from lockbox.vault.store import (
    SECRET_CATEGORIES,
    ActiveSecretPath,
    RecoveryEnvelope,
    SecretCategory,
    VaultStore,
)

KEY = "ab" * 32
OTHER_KEY = "cd" * 32


def _create(store, key=KEY):
    salt = crypto.generate_salt()
    store.create(b"p" * 48, b"r" * 48, salt, key)
    return salt


def _insert_secret(conn, secret_id, file_path=None, active=0):
    conn.execute(
        "INSERT INTO vault_secrets (id, name, category, content, file_path, is_active) "
        "VALUES (?, ?, 'token', ?, ?, ?)",
        (secret_id, secret_id, b"x", file_path, active),
    )


class TestCategories:
    def test_all_categories(self):
        assert set(SECRET_CATEGORIES) == {
            "kubeconfig", "ssh_key", "token", "certificate", "password", "other",
        }

    def test_parse(self):
        assert SecretCategory.parse("ssh_key") is SecretCategory.SSH_KEY

    def test_parse_invalid(self):
        from lockbox.vault.errors import InvalidCategoryError
        with pytest.raises(InvalidCategoryError):
            SecretCategory.parse("gpg")


class TestLifecycle:
    def test_absent_initially(self, store):
        assert not store.exists()
        assert not store.is_open

    def test_create_opens(self, store):
        _create(store)
        assert store.exists()
        assert store.is_open

    def test_zero_byte_file_is_not_a_vault(self, store, vault_dir):
        vault_dir.mkdir(parents=True)
        store.db_path.write_bytes(b"")
        assert not store.exists()
        _create(store)
        assert store.exists()

    def test_create_twice_fails(self, store):
        _create(store)
        with pytest.raises(VaultExistsError):
            _create(store)

    def test_file_is_encrypted(self, store):
        _create(store)
        store.lock()
        header = store.db_path.read_bytes()[:16]
        assert header != b"SQLite format 3\x00"

    def test_lock_then_open(self, store):
        _create(store)
        store.lock()
        assert not store.is_open
        store.open(KEY)
        assert store.is_open

    def test_open_wrong_key(self, store):
        _create(store)
        store.lock()
        with pytest.raises(InvalidKeyError):
            store.open(OTHER_KEY)
        assert not store.is_open

    def test_open_malformed_key(self, store):
        _create(store)
        store.lock()
        with pytest.raises(InvalidKeyError):
            store.open("not-hex")

    def test_open_missing(self, store):
        with pytest.raises(VaultNotFoundError):
            store.open(KEY)

    def test_wrong_key_keeps_existing_connection(self, store):
        _create(store)
        with pytest.raises(InvalidKeyError):
            store.open(OTHER_KEY)
        assert store.is_open

    def test_auth_record(self, store):
        salt = _create(store)
        record = store.read_auth_record()
        assert record.password_hash == b"p" * 48
        assert record.recovery_hash == b"r" * 48
        assert record.salt == salt
        assert record.created_at

    def test_destroy(self, store):
        _create(store)
        store.write_salt(crypto.generate_salt())
        store.destroy()
        assert not store.exists()
        assert not store.is_open
        assert not store.salt_path.exists()


class TestWithConn:
    def test_locked_raises(self, store):
        with pytest.raises(VaultLockedError):
            store.with_conn(lambda conn: None)

    def test_commits(self, store):
        _create(store)
        store.with_conn(lambda conn: _insert_secret(conn, "s1"))
        store.lock()
        store.open(KEY)
        count = store.with_conn(lambda conn: conn.execute("SELECT count(*) FROM vault_secrets").fetchone()[0])
        assert count == 1

    def test_rolls_back_on_error(self, store):
        _create(store)

        def fail(conn):
            _insert_secret(conn, "s1")
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            store.with_conn(fail)
        count = store.with_conn(lambda conn: conn.execute("SELECT count(*) FROM vault_secrets").fetchone()[0])
        assert count == 0

    def test_db_error_wrapped(self, store):
        _create(store)
        with pytest.raises(VaultStorageError):
            store.with_conn(lambda conn: conn.execute("SELECT * FROM no_such_table"))

    def test_category_check_constraint(self, store):
        _create(store)

        def bad(conn):
            conn.execute(
                "INSERT INTO vault_secrets (id, name, category, content) VALUES ('x', 'x', 'gpg', x'00')"
            )

        with pytest.raises(VaultStorageError):
            store.with_conn(bad)


class TestLock:
    def test_lock_when_locked(self, store):
        assert store.lock() == []

    def test_returns_active_paths(self, store):
        _create(store)

        def seed(conn):
            _insert_secret(conn, "a", "/tmp/a", active=1)
            _insert_secret(conn, "b", "/tmp/b", active=0)
            _insert_secret(conn, "c", None, active=1)

        store.with_conn(seed)
        assert store.lock() == [ActiveSecretPath("a", "/tmp/a")]

    def test_lock_clears_active_flags(self, store):
        _create(store)
        store.with_conn(lambda conn: _insert_secret(conn, "a", "/tmp/a", active=1))
        store.lock()
        store.open(KEY)
        active = store.with_conn(
            lambda conn: conn.execute("SELECT count(*) FROM vault_secrets WHERE is_active = 1").fetchone()[0]
        )
        assert active == 0


class TestAuxiliaryFiles:
    def test_salt_roundtrip(self, store):
        salt = crypto.generate_salt()
        store.write_salt(salt)
        assert store.read_salt() == salt

    def test_salt_missing(self, store):
        with pytest.raises(VaultStorageError, match="missing"):
            store.read_salt()

    def test_salt_corrupted(self, store, vault_dir):
        vault_dir.mkdir(parents=True)
        store.salt_path.write_bytes(b"short")
        with pytest.raises(VaultStorageError):
            store.read_salt()

    def test_write_salt_wrong_length(self, store):
        with pytest.raises(VaultStorageError):
            store.write_salt(b"x")

    def test_recovery_layout(self, store):
        encrypted = b"e" * 40
        store.write_recovery(b"s" * 16, b"h" * 48, encrypted)
        raw = store.recovery_path.read_bytes()
        assert raw == b"s" * 16 + b"h" * 48 + encrypted

        envelope = store.read_recovery()
        assert envelope.recovery_salt == b"s" * 16
        assert envelope.recovery_hash == b"h" * 48
        assert envelope.encrypted_db_key == encrypted

    def test_recovery_too_short(self, store, vault_dir):
        vault_dir.mkdir(parents=True)
        store.recovery_path.write_bytes(b"x" * (RecoveryEnvelope.MIN_LENGTH - 1))
        with pytest.raises(CorruptRecoveryError):
            store.read_recovery()

    def test_recovery_missing(self, store):
        with pytest.raises(VaultStorageError):
            store.read_recovery()

    @pytest.mark.skipif(os.name != "posix", reason="permission bits are POSIX only")
    def test_private_permissions(self, store):
        store.write_salt(crypto.generate_salt())
        store.write_recovery(b"s" * 16, b"h" * 48, b"e" * 40)
        assert stat.S_IMODE(store.salt_path.stat().st_mode) == 0o600
        assert stat.S_IMODE(store.recovery_path.stat().st_mode) == 0o600
