# Vault - Crypto Primitives
#
# Master password -> database key (Argon2id)
# Password / recovery phrase verification hashes (salt || Argon2id output)
# Envelope encryption of the database key (AES-256-GCM)
# Recovery phrase generation

import os
import secrets
from typing import Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.argon2 import Argon2id

from .errors import CryptoError

# Argon2id parameters (64 MiB, 3 passes, 4 lanes)
KDF_MEMORY_COST_KIB = 64 * 1024
KDF_ITERATIONS = 3
KDF_LANES = 4

SALT_LENGTH = 16
KEY_LENGTH = 32  # 256 bits for AES-256 and SQLCipher raw keys
NONCE_LENGTH = 12  # 96-bit nonce for GCM (recommended)
TAG_LENGTH = 16
HASH_LENGTH = SALT_LENGTH + KEY_LENGTH  # stored verification value

RECOVERY_WORD_COUNT = 12

# 256 words -> 8 bits per word, 96 bits for a 12 word phrase
RECOVERY_WORDS = (
    "acid", "acorn", "actor", "adobe", "agent", "alarm", "album", "alley",
    "amber", "anchor", "angle", "ankle", "apple", "apron", "arena", "armor",
    "arrow", "aspen", "atlas", "attic", "audio", "avenue", "badge", "bagel",
    "baker", "bamboo", "banjo", "barn", "basin", "beach", "beacon", "bench",
    "berry", "bison", "blade", "blanket", "bloom", "board", "bonus", "border",
    "bottle", "brick", "bridge", "broom", "bucket", "bugle", "cabin", "cactus",
    "camel", "candle", "canoe", "canyon", "carbon", "cargo", "castle", "cedar",
    "cellar", "chalk", "cherry", "chess", "cider", "cinema", "circus", "citrus",
    "clover", "coast", "cobalt", "comet", "coral", "cotton", "crane", "crater",
    "cricket", "crown", "cypress", "dagger", "daisy", "delta", "denim", "desert",
    "diesel", "dinner", "dolphin", "domino", "dragon", "drum", "dune", "eagle",
    "easel", "ember", "engine", "falcon", "fabric", "fender", "ferry", "fiddle",
    "flint", "forest", "fossil", "fountain", "frost", "galaxy", "garden", "garlic",
    "geyser", "ginger", "glacier", "globe", "granite", "gravel", "harbor", "hazel",
    "helmet", "hermit", "hollow", "honey", "horizon", "iceberg", "igloo", "indigo",
    "island", "ivory", "jacket", "jaguar", "jasmine", "jelly", "jungle", "kayak",
    "kettle", "kiwi", "ladder", "lagoon", "lantern", "laser", "lemon", "lilac",
    "linen", "lizard", "lobster", "locket", "lotus", "magnet", "mango", "maple",
    "marble", "meadow", "melon", "meteor", "mirror", "mitten", "monsoon", "mosaic",
    "mountain", "muffin", "napkin", "nectar", "needle", "nickel", "noodle", "nutmeg",
    "oasis", "ocean", "olive", "onion", "opal", "orbit", "orchid", "otter",
    "oyster", "paddle", "palace", "panda", "paper", "parrot", "pebble", "pepper",
    "piano", "pillow", "pilot", "pine", "planet", "plum", "pocket", "polar",
    "pony", "prairie", "prism", "pumpkin", "puzzle", "quartz", "quill", "rabbit",
    "radar", "radish", "raven", "reef", "ribbon", "river", "robin", "rocket",
    "saddle", "salmon", "sandal", "saturn", "scarf", "shadow", "shell", "silver",
    "sketch", "sled", "socket", "sparrow", "spider", "spruce", "squid", "stable",
    "summit", "sunset", "swan", "tablet", "tango", "temple", "thistle", "thunder",
    "tiger", "timber", "tomato", "topaz", "torch", "tulip", "tundra", "turtle",
    "umbrella", "valley", "velvet", "violet", "volcano", "waffle", "walnut", "willow",
    "window", "winter", "wizard", "wolf", "wombat", "yacht", "yarn", "yogurt",
    "zebra", "zenith", "zephyr", "zinc", "zipper", "zodiac", "zucchini", "zoo",
)

Secret = Union[str, bytes]


def _to_bytes(value: Secret) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


def generate_salt() -> bytes:
    """Generate cryptographically random salt."""
    return os.urandom(SALT_LENGTH)


def derive_key(password: Secret, salt: bytes) -> bytes:
    """
    Derive a 256-bit key from a password using Argon2id.

    Deterministic for identical (password, salt) pairs.

    Raises:
        CryptoError: If the salt is not SALT_LENGTH bytes
    """
    if len(salt) != SALT_LENGTH:
        raise CryptoError(f"Salt must be {SALT_LENGTH} bytes, got {len(salt)}")

    kdf = Argon2id(
        salt=bytes(salt),
        length=KEY_LENGTH,
        iterations=KDF_ITERATIONS,
        lanes=KDF_LANES,
        memory_cost=KDF_MEMORY_COST_KIB,
    )
    return kdf.derive(_to_bytes(password))


def hash_password(password: Secret) -> bytes:
    """Return ``salt || derive_key(password, salt)`` with a fresh salt."""
    salt = generate_salt()
    return salt + derive_key(password, salt)


def verify_password(password: Secret, stored: bytes) -> bool:
    """
    Check a password against a value produced by hash_password().

    Raises:
        CryptoError: If ``stored`` is not HASH_LENGTH bytes
    """
    if len(stored) != HASH_LENGTH:
        raise CryptoError(f"Stored hash must be {HASH_LENGTH} bytes, got {len(stored)}")

    salt, expected = stored[:SALT_LENGTH], stored[SALT_LENGTH:]
    return constant_time_eq(derive_key(password, salt), expected)


def constant_time_eq(a: bytes, b: bytes) -> bool:
    """Compare two byte strings without an early exit on the first mismatch."""
    if len(a) != len(b):
        return False
    result = 0
    for x, y in zip(a, b):
        result |= x ^ y
    return result == 0


def encrypt(data: bytes, key: bytes) -> bytes:
    """
    Encrypt with AES-256-GCM.

    Returns:
        nonce (12) || ciphertext || tag (16). The nonce is random per call.
    """
    if len(key) != KEY_LENGTH:
        raise CryptoError(f"Key must be {KEY_LENGTH} bytes")

    nonce = os.urandom(NONCE_LENGTH)
    return nonce + AESGCM(key).encrypt(nonce, _to_bytes(data), None)


def decrypt(blob: bytes, key: bytes) -> bytes:
    """
    Reverse encrypt().

    Raises:
        CryptoError: If the blob is too short or authentication fails
    """
    if len(key) != KEY_LENGTH:
        raise CryptoError(f"Key must be {KEY_LENGTH} bytes")
    if len(blob) < NONCE_LENGTH:
        raise CryptoError("Ciphertext too short")

    nonce, ciphertext = blob[:NONCE_LENGTH], blob[NONCE_LENGTH:]
    try:
        return AESGCM(key).decrypt(nonce, ciphertext, None)
    except InvalidTag:
        raise CryptoError("Decryption failed: authentication tag mismatch") from None


def generate_recovery_key() -> str:
    """Twelve words drawn with replacement from RECOVERY_WORDS, hyphen-joined."""
    return "-".join(secrets.choice(RECOVERY_WORDS) for _ in range(RECOVERY_WORD_COUNT))
