# Vault Module - Encrypted Secret Store
#
# SQLCipher database keyed by Argon2id(master password)
# Recovery phrase escrow of the database key (AES-256-GCM)
# Secrets can be written to disk (0600) and securely removed again

from .auth import VaultSession, VaultStatus
from .errors import (
    CorruptRecoveryError,
    CryptoError,
    FileActivationError,
    InvalidCategoryError,
    InvalidKeyError,
    MigrationError,
    MissingFilePathError,
    SecretNotFoundError,
    VaultError,
    VaultExistsError,
    VaultLockedError,
    VaultNotFoundError,
    VaultStorageError,
)
from .file_activator import activate_file, deactivate_all, expand_path, secure_delete
from .registry import SecretRegistry, VaultSecret
from .store import ActiveSecretPath, RecoveryEnvelope, SecretCategory, VaultStore

__all__ = [
    "VaultSession",
    "VaultStatus",
    "VaultStore",
    "SecretRegistry",
    "VaultSecret",
    "SecretCategory",
    "ActiveSecretPath",
    "RecoveryEnvelope",
    "activate_file",
    "secure_delete",
    "deactivate_all",
    "expand_path",
    # Errors
    "VaultError",
    "VaultLockedError",
    "VaultExistsError",
    "VaultNotFoundError",
    "InvalidKeyError",
    "VaultStorageError",
    "CorruptRecoveryError",
    "MigrationError",
    "CryptoError",
    "SecretNotFoundError",
    "InvalidCategoryError",
    "MissingFilePathError",
    "FileActivationError",
]
