# Vault - Encrypted Store
#
# On-disk layout inside the data directory:
#
#   vault.db        SQLCipher database keyed with the derived key (hex)
#   vault.salt      16 raw bytes, input to password -> key derivation
#   vault.recovery  recovery_salt(16) || recovery_hash(48) || encrypted_db_key
#
# The salt and recovery files are necessarily plaintext: both are needed
# before the database can be opened.
#
# One connection at most, guarded by a lock. "Locked" means no connection.

import logging
import os
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, ClassVar, List, NamedTuple, Optional, TypeVar, Union

from ..core import db
from .crypto import HASH_LENGTH, NONCE_LENGTH, SALT_LENGTH, TAG_LENGTH
from .errors import (
    CorruptRecoveryError,
    InvalidCategoryError,
    InvalidKeyError,
    MigrationError,
    VaultExistsError,
    VaultLockedError,
    VaultNotFoundError,
    VaultStorageError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DB_FILENAME = "vault.db"
SALT_FILENAME = "vault.salt"
RECOVERY_FILENAME = "vault.recovery"

# Files SQLCipher may leave next to the database
_DB_SIDE_SUFFIXES = ("-journal", "-wal", "-shm")


class SecretCategory(str, Enum):
    KUBECONFIG = "kubeconfig"
    SSH_KEY = "ssh_key"
    TOKEN = "token"
    CERTIFICATE = "certificate"
    PASSWORD = "password"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Union[str, "SecretCategory"]) -> "SecretCategory":
        try:
            return cls(value)
        except ValueError:
            allowed = ", ".join(c.value for c in cls)
            raise InvalidCategoryError(f"Invalid category {value!r} (expected one of: {allowed})") from None


SECRET_CATEGORIES = tuple(c.value for c in SecretCategory)

SCHEMA = f"""
CREATE TABLE IF NOT EXISTS vault_auth (
    id INTEGER PRIMARY KEY DEFAULT 1,
    password_hash BLOB NOT NULL,
    recovery_hash BLOB NOT NULL,
    salt BLOB NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS vault_secrets (
    id TEXT PRIMARY KEY NOT NULL,
    name TEXT NOT NULL,
    category TEXT NOT NULL CHECK(category IN ({", ".join(f"'{c}'" for c in SECRET_CATEGORIES)})),
    content BLOB NOT NULL,
    file_path TEXT,
    notes TEXT,
    is_active INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_vault_secrets_active ON vault_secrets(is_active);
"""


class ActiveSecretPath(NamedTuple):
    """A secret that was materialized on disk when the vault was locked."""
    id: str
    file_path: str


@dataclass(frozen=True)
class MasterAuthRecord:
    """The singleton vault_auth row."""
    password_hash: bytes
    recovery_hash: bytes
    salt: bytes
    created_at: str


@dataclass(frozen=True)
class RecoveryEnvelope:
    """Escrowed database key, decryptable with the recovery phrase."""
    recovery_salt: bytes
    recovery_hash: bytes
    encrypted_db_key: bytes

    MIN_LENGTH: ClassVar[int] = SALT_LENGTH + HASH_LENGTH + NONCE_LENGTH + TAG_LENGTH

    def to_bytes(self) -> bytes:
        return self.recovery_salt + self.recovery_hash + self.encrypted_db_key

    @classmethod
    def from_bytes(cls, data: bytes) -> "RecoveryEnvelope":
        if len(data) < cls.MIN_LENGTH:
            raise CorruptRecoveryError(
                f"Recovery file is corrupted ({len(data)} bytes, need at least {cls.MIN_LENGTH})"
            )
        hash_end = SALT_LENGTH + HASH_LENGTH
        return cls(
            recovery_salt=data[:SALT_LENGTH],
            recovery_hash=data[SALT_LENGTH:hash_end],
            encrypted_db_key=data[hash_end:],
        )


def _write_private(path: Path, data: bytes):
    """Write ``data`` to ``path`` readable by the owner only."""
    fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(data)


class VaultStore:
    """
    Owns the encrypted database and its two auxiliary files.

    States:
    - Absent: no database file
    - LockedOnDisk: database file present, no connection
    - Unlocked: connection open

    All access to the connection goes through ``with_conn()``.
    """

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)
        self.db_path = self.data_dir / DB_FILENAME
        self.salt_path = self.data_dir / SALT_FILENAME
        self.recovery_path = self.data_dir / RECOVERY_FILENAME

        self._conn: Optional[db.Connection] = None
        self._lock = threading.Lock()

    # ── State ──────────────────────────────────────────────────────────

    def exists(self) -> bool:
        """True if the encrypted database is on disk (0-byte files are not vaults)."""
        return self.db_path.exists() and self.db_path.stat().st_size > 0

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    # ── Lifecycle ──────────────────────────────────────────────────────

    def create(
        self,
        password_hash: bytes,
        recovery_hash: bytes,
        salt: bytes,
        derived_key_hex: str,
    ):
        """
        Create a new encrypted database and keep it open.

        Args:
            password_hash: output of crypto.hash_password() for the master password
            recovery_hash: output of crypto.hash_password() for the recovery phrase
            salt: the raw salt used to derive ``derived_key_hex``
            derived_key_hex: hex-encoded 32-byte SQLCipher key

        Raises:
            VaultExistsError: If a vault already exists or is open
        """
        with self._lock:
            if self._conn is not None or self.exists():
                raise VaultExistsError("Vault already exists")

            self.data_dir.mkdir(parents=True, exist_ok=True)
            # Stale 0-byte file from an interrupted create
            self.db_path.unlink(missing_ok=True)

            conn = self._connect(derived_key_hex)
            try:
                self._run_migrations(conn)
                conn.execute(
                    "INSERT INTO vault_auth (id, password_hash, recovery_hash, salt) VALUES (1, ?, ?, ?)",
                    (password_hash, recovery_hash, salt),
                )
                conn.commit()
            except db.Error as e:
                conn.close()
                self._remove_db_files()
                raise VaultStorageError(f"Failed to create vault: {e}") from e
            except Exception:
                conn.close()
                self._remove_db_files()
                raise

            self._conn = conn
            logger.debug("Vault database created at %s", self.db_path)

    def open(self, derived_key_hex: str):
        """
        Open the existing database with ``derived_key_hex``.

        Raises:
            VaultNotFoundError: If there is no database file
            InvalidKeyError: If SQLCipher rejects the key
            MigrationError: If the schema cannot be brought up to date
        """
        with self._lock:
            if not self.exists():
                raise VaultNotFoundError("Vault does not exist")

            conn = self._connect(derived_key_hex)
            try:
                # SQLCipher does not report a wrong key until the first read
                db.probe(conn)
            except db.DatabaseError as e:
                conn.close()
                raise InvalidKeyError("Invalid vault key") from e

            try:
                self._run_migrations(conn)
            except MigrationError:
                conn.close()
                raise

            if self._conn is not None:
                self._conn.close()
            self._conn = conn

    def lock(self) -> List[ActiveSecretPath]:
        """
        Mark every active secret inactive and close the connection.

        Files are NOT deleted here; the caller gets the list of
        (id, file_path) that were active and is responsible for them.

        Returns:
            Secrets that were active with a file_path (empty if already locked)
        """
        with self._lock:
            conn = self._conn
            if conn is None:
                return []

            try:
                rows = conn.execute(
                    "SELECT id, file_path FROM vault_secrets "
                    "WHERE is_active = 1 AND file_path IS NOT NULL"
                ).fetchall()
                conn.execute("UPDATE vault_secrets SET is_active = 0 WHERE is_active = 1")
                conn.commit()
            except db.Error as e:
                conn.rollback()
                raise VaultStorageError(f"Failed to deactivate secrets: {e}") from e

            conn.close()
            self._conn = None

        return [ActiveSecretPath(id=row[0], file_path=row[1]) for row in rows]

    def with_conn(self, fn: Callable[[db.Connection], T]) -> T:
        """
        Run ``fn(conn)`` against the open connection.

        Commits when ``fn`` returns, rolls back when it raises. Database
        errors are re-raised as VaultStorageError.

        Raises:
            VaultLockedError: If the vault is locked
        """
        with self._lock:
            conn = self._conn
            if conn is None:
                raise VaultLockedError()

            try:
                result = fn(conn)
            except db.Error as e:
                conn.rollback()
                raise VaultStorageError(f"Database error: {e}") from e
            except BaseException:
                conn.rollback()
                raise

            conn.commit()
            return result

    def read_auth_record(self) -> MasterAuthRecord:
        """Return the singleton vault_auth row."""
        def _read(conn):
            row = conn.execute(
                "SELECT password_hash, recovery_hash, salt, created_at FROM vault_auth WHERE id = 1"
            ).fetchone()
            if row is None:
                raise VaultStorageError("Vault auth record is missing")
            return MasterAuthRecord(
                password_hash=bytes(row[0]),
                recovery_hash=bytes(row[1]),
                salt=bytes(row[2]),
                created_at=row[3],
            )

        return self.with_conn(_read)

    def destroy(self):
        """Close the connection and delete every vault file. Irreversible."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

            try:
                self._remove_db_files()
                self.salt_path.unlink(missing_ok=True)
                self.recovery_path.unlink(missing_ok=True)
            except OSError as e:
                raise VaultStorageError(f"Failed to remove vault files: {e}") from e

    # ── Auxiliary files ────────────────────────────────────────────────

    def write_salt(self, salt: bytes):
        if len(salt) != SALT_LENGTH:
            raise VaultStorageError(f"Salt must be {SALT_LENGTH} bytes")
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            _write_private(self.salt_path, salt)
        except OSError as e:
            raise VaultStorageError(f"Failed to write salt file: {e}") from e

    def read_salt(self) -> bytes:
        try:
            salt = self.salt_path.read_bytes()
        except FileNotFoundError:
            raise VaultStorageError("Salt file is missing") from None
        except OSError as e:
            raise VaultStorageError(f"Failed to read salt file: {e}") from e

        if len(salt) != SALT_LENGTH:
            raise VaultStorageError(f"Salt file is corrupted ({len(salt)} bytes)")
        return salt

    def write_recovery(self, recovery_salt: bytes, recovery_hash: bytes, encrypted_db_key: bytes):
        if len(recovery_salt) != SALT_LENGTH or len(recovery_hash) != HASH_LENGTH:
            raise VaultStorageError("Recovery salt or hash has the wrong length")
        if len(encrypted_db_key) < NONCE_LENGTH + TAG_LENGTH:
            raise VaultStorageError("Encrypted database key is too short")

        envelope = RecoveryEnvelope(recovery_salt, recovery_hash, encrypted_db_key)
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            _write_private(self.recovery_path, envelope.to_bytes())
        except OSError as e:
            raise VaultStorageError(f"Failed to write recovery file: {e}") from e

    def read_recovery(self) -> RecoveryEnvelope:
        """
        Raises:
            VaultStorageError: If the file cannot be read
            CorruptRecoveryError: If the file is shorter than the minimum layout
        """
        try:
            data = self.recovery_path.read_bytes()
        except FileNotFoundError:
            raise VaultStorageError("Recovery file is missing") from None
        except OSError as e:
            raise VaultStorageError(f"Failed to read recovery file: {e}") from e
        return RecoveryEnvelope.from_bytes(data)

    # ── Private helpers ────────────────────────────────────────────────

    def _connect(self, derived_key_hex: str) -> db.Connection:
        # FastAPI runs sync endpoints in a threadpool; access is serialized by self._lock
        try:
            return db.connect(self.db_path, derived_key_hex, check_same_thread=False)
        except ValueError as e:
            raise InvalidKeyError(str(e)) from e
        except db.Error as e:
            raise VaultStorageError(f"Failed to open {self.db_path.name}: {e}") from e

    def _remove_db_files(self):
        self.db_path.unlink(missing_ok=True)
        for suffix in _DB_SIDE_SUFFIXES:
            Path(f"{self.db_path}{suffix}").unlink(missing_ok=True)

    @staticmethod
    def _run_migrations(conn: db.Connection):
        try:
            conn.executescript(SCHEMA)
        except db.Error as e:
            raise MigrationError(f"Migration error: {e}") from e
