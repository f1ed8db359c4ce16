# Lockbox - Local Secrets Vault
#
# Encrypted store for kubeconfigs, SSH keys, tokens and certificates,
# unlocked by a master password or a recovery phrase. Secrets can be
# written to disk for external tools and securely removed on lock.

__version__ = "0.3.0"
__description__ = "Local encrypted secrets vault with on-disk secret activation"

from .vault import SecretRegistry, VaultSession, VaultStore

__all__ = [
    "__version__",
    "SecretRegistry",
    "VaultSession",
    "VaultStore",
]
