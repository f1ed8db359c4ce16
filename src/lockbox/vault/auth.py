# Vault - Authentication / Session
#
# Create / login / recover / lock state machine over a VaultStore.
#
# Flow for a new vault:
#   1. salt -> Argon2id(master password) -> database key (hex)
#   2. master password and a generated recovery phrase are hashed for storage
#   3. database key is encrypted under Argon2id(recovery phrase, recovery salt)
#   4. salt + recovery envelope are written, then the database is created
#
# Wrong credentials return False. Everything else raises a VaultError.

import logging
import threading
from dataclasses import asdict, dataclass
from typing import Optional

from ..core import EventSeverity, EventType, get_audit_logger
from . import crypto
from .errors import CryptoError, InvalidKeyError, VaultError, VaultExistsError
from .file_activator import deactivate_all
from .store import VaultStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VaultStatus:
    exists: bool
    unlocked: bool

    def to_dict(self):
        return asdict(self)


class VaultSession:
    """
    Holds the in-memory session key for one VaultStore.

    The session key is set only after the store reports the database open,
    and is cleared within the same locked section that closes it, so the
    two never disagree for an outside observer.

    Args:
        store: The VaultStore this session unlocks
        auto_lock_seconds: Inactivity timeout, 0 disables auto-lock
    """

    def __init__(self, store: VaultStore, auto_lock_seconds: int = 0):
        self.store = store
        self.auto_lock_seconds = auto_lock_seconds

        self._session_key: Optional[str] = None
        self._key_lock = threading.RLock()
        self._timer: Optional[threading.Timer] = None
        # Bumped whenever the timer is cancelled; a callback from an older
        # generation that already fired must not lock the vault
        self._timer_generation = 0

    @property
    def audit(self):
        return get_audit_logger()

    # ── Status ─────────────────────────────────────────────────────────

    @property
    def is_unlocked(self) -> bool:
        with self._key_lock:
            return self._session_key is not None

    def vault_status(self) -> VaultStatus:
        """Report whether the vault exists and is unlocked. Never mutates state."""
        return VaultStatus(exists=self.store.exists(), unlocked=self.is_unlocked)

    # ── Transitions ────────────────────────────────────────────────────

    def create_master_password(self, password: str) -> str:
        """
        Create a new vault protected by ``password``.

        Returns:
            The recovery phrase. This is the only time it exists in plaintext.

        Raises:
            VaultExistsError: If a vault already exists
        """
        with self._key_lock:
            if self.store.exists():
                raise VaultExistsError("Vault already exists. Use login() instead.")

            # 1. Database key from the master password
            salt = crypto.generate_salt()
            derived_hex = crypto.derive_key(password, salt).hex()

            # 2. Verification hashes
            password_hash = crypto.hash_password(password)
            recovery_key = crypto.generate_recovery_key()
            recovery_hash = crypto.hash_password(recovery_key)

            # 3. Escrow the database key under the recovery phrase
            recovery_salt = crypto.generate_salt()
            recovery_enc_key = crypto.derive_key(recovery_key, recovery_salt)
            encrypted_db_key = crypto.encrypt(derived_hex.encode("ascii"), recovery_enc_key)
            recovery_verify_hash = crypto.hash_password(recovery_key)

            # 4. Persist; undo everything if any step fails
            try:
                self.store.write_salt(salt)
                self.store.write_recovery(recovery_salt, recovery_verify_hash, encrypted_db_key)
                self.store.create(password_hash, recovery_hash, salt, derived_hex)
            except Exception as e:
                self.store.destroy()
                self.audit.log_vault_event(
                    EventType.VAULT_ERROR,
                    f"Failed to create vault: {e}",
                    severity=EventSeverity.CRITICAL,
                )
                raise

            self._session_key = derived_hex
            self._arm_timer()

        self.audit.log_vault_event(
            EventType.VAULT_CREATED,
            "Vault created with master password",
            details={"data_dir": str(self.store.data_dir)},
        )
        return recovery_key

    def login(self, password: str) -> bool:
        """
        Unlock the vault with the master password.

        Returns:
            False if the password is wrong

        Raises:
            VaultError: On infrastructure failures (e.g. missing salt file)
        """
        with self._key_lock:
            salt = self.store.read_salt()
            derived_hex = crypto.derive_key(password, salt).hex()

            try:
                self.store.open(derived_hex)
            except InvalidKeyError:
                self.audit.log_vault_event(
                    EventType.VAULT_UNLOCK_FAILED,
                    "Unlock failed: incorrect password",
                    severity=EventSeverity.INVESTIGATE,
                )
                return False

            self._session_key = derived_hex
            self._arm_timer()

        self.audit.log_vault_event(EventType.VAULT_UNLOCKED, "Vault unlocked")
        return True

    def recover_vault(self, recovery_key: str) -> bool:
        """
        Unlock the vault with the recovery phrase instead of the password.

        Returns:
            False if the phrase does not match
        """
        with self._key_lock:
            envelope = self.store.read_recovery()

            if not crypto.verify_password(recovery_key, envelope.recovery_hash):
                self.audit.log_vault_event(
                    EventType.VAULT_RECOVERY_FAILED,
                    "Recovery failed: phrase does not match",
                    severity=EventSeverity.INVESTIGATE,
                )
                return False

            recovery_enc_key = crypto.derive_key(recovery_key, envelope.recovery_salt)
            try:
                derived_hex = crypto.decrypt(envelope.encrypted_db_key, recovery_enc_key).decode("ascii")
            except (CryptoError, UnicodeDecodeError) as e:
                raise CryptoError(f"Failed to decrypt escrowed database key: {e}") from e

            # The phrase verified, so a rejected key here means a broken envelope
            try:
                self.store.open(derived_hex)
            except InvalidKeyError as e:
                raise VaultError("Escrowed database key was rejected by the vault") from e

            self._session_key = derived_hex
            self._arm_timer()

        self.audit.log_vault_event(EventType.VAULT_RECOVERED, "Vault unlocked with recovery phrase")
        return True

    def lock_vault(self) -> int:
        """
        Lock the vault and securely delete every materialized secret file.

        The database is flipped to inactive before any file is touched, so a
        crash in between leaves stale files rather than rows claiming files
        that no longer exist.

        Returns:
            Number of files removed
        """
        with self._key_lock:
            self._cancel_timer()
            was_unlocked = self._session_key is not None

            try:
                active = self.store.lock()
            except VaultError:
                if was_unlocked:
                    self._arm_timer()
                raise
            removed = deactivate_all(active)
            self._session_key = None

        if was_unlocked:
            self.audit.log_vault_event(
                EventType.VAULT_LOCKED,
                "Vault locked",
                details={"active_secrets": len(active), "files_removed": removed},
            )
        return removed

    def destroy_vault(self):
        """Lock (removing materialized files) and delete the vault. Irreversible."""
        with self._key_lock:
            self.lock_vault()
            self.store.destroy()

        self.audit.log_vault_event(
            EventType.VAULT_DESTROYED,
            "Vault destroyed",
            severity=EventSeverity.ALERT,
        )

    def close(self) -> int:
        """Application shutdown: stop the timer and lock."""
        return self.lock_vault()

    # ── Inactivity auto-lock ───────────────────────────────────────────

    def touch(self):
        """Record user activity; restarts the inactivity timer while unlocked."""
        with self._key_lock:
            if self._session_key is not None:
                self._arm_timer()

    def _arm_timer(self):
        self._cancel_timer()
        if self.auto_lock_seconds <= 0:
            return
        self._timer = threading.Timer(
            self.auto_lock_seconds, self._auto_lock, args=(self._timer_generation,)
        )
        self._timer.daemon = True
        self._timer.start()

    def _cancel_timer(self):
        # cancel() is a no-op once the callback is running
        self._timer_generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _auto_lock(self, generation: int):
        with self._key_lock:
            if generation != self._timer_generation or self._session_key is None:
                return
            try:
                removed = self.lock_vault()
            except VaultError:
                logger.exception("Auto-lock failed")
                return

        self.audit.log_vault_event(
            EventType.VAULT_AUTO_LOCKED,
            f"Vault auto-locked after {self.auto_lock_seconds}s of inactivity",
            details={"files_removed": removed},
        )
