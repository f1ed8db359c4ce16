# Vault exceptions
#
# Wrong credentials are not exceptions: login() and recover_vault() return
# False. InvalidKeyError exists only so VaultStore.open() can report a
# rejected key to the auth layer, which turns it into False.


class VaultError(Exception):
    """Base exception for the vault."""


class VaultLockedError(VaultError):
    """Raised when an operation needs an unlocked vault."""

    def __init__(self, message: str = "Vault is locked"):
        super().__init__(message)


class VaultExistsError(VaultError):
    """Raised when creating a vault over an existing one."""


class VaultNotFoundError(VaultError):
    """Raised when opening a vault that has not been created."""


class InvalidKeyError(VaultError):
    """Raised when the database key is rejected by SQLCipher."""


class VaultStorageError(VaultError):
    """Raised when an auxiliary vault file cannot be read or written."""


class CorruptRecoveryError(VaultStorageError):
    """Raised when the recovery file is truncated or malformed."""


class MigrationError(VaultError):
    """Raised when the schema cannot be created or upgraded."""


class CryptoError(VaultError):
    """Raised on malformed input or failed authentication in crypto helpers."""


class SecretNotFoundError(VaultError):
    """Raised when the requested secret id does not exist."""


class InvalidCategoryError(VaultError):
    """Raised when a secret category is not one of SecretCategory."""


class MissingFilePathError(VaultError):
    """Raised when activating a secret that has no file_path."""


class FileActivationError(VaultError):
    """Raised when a secret cannot be written to its file_path."""
