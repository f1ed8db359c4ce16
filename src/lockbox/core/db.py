# Core Module - Encrypted SQLite Connection Helper
#
# Every Lockbox database goes through `connect()` from this module instead
# of a raw `sqlcipher.connect()`. This ensures:
#
#   - the SQLCipher key is applied before any other statement touches the file
#   - busy_timeout to avoid SQLITE_BUSY under contention
#   - foreign_keys enforcement on every connection
#
# SQLCipher only reads the file lazily, so `connect()` succeeds even with a
# wrong key. Callers must run a probe query (`probe()`) to find out.

import re
from pathlib import Path
from typing import Union

from sqlcipher3 import dbapi2 as sqlcipher

Error = sqlcipher.Error
DatabaseError = sqlcipher.DatabaseError
Connection = sqlcipher.Connection

_HEX_KEY = re.compile(r"^[0-9a-fA-F]{64}$")


def is_raw_key(key_hex: str) -> bool:
    """True if ``key_hex`` is a 256-bit key in hex (the only form we accept)."""
    return isinstance(key_hex, str) and bool(_HEX_KEY.match(key_hex))


def connect(
    db_path: Union[str, Path],
    key_hex: str,
    *,
    row_factory: bool = False,
    check_same_thread: bool = True,
) -> "sqlcipher.Connection":
    """Open a SQLCipher connection keyed with a raw 256-bit key.

    Args:
        db_path: Path to the database file.
        key_hex: 64 hex characters, passed as ``PRAGMA key = "x'...'"`` so
            SQLCipher uses it directly instead of running its own KDF.
        row_factory: If True, set conn.row_factory = Row.
        check_same_thread: Passed to connect().

    Raises:
        ValueError: If key_hex is not 64 hex characters.
    """
    if not is_raw_key(key_hex):
        raise ValueError("SQLCipher key must be 64 hexadecimal characters")

    conn = sqlcipher.connect(str(db_path), check_same_thread=check_same_thread)
    # Safe to interpolate: validated as hex above
    conn.execute(f"PRAGMA key = \"x'{key_hex}'\"")
    conn.execute("PRAGMA busy_timeout=5000")
    conn.execute("PRAGMA foreign_keys=ON")
    if row_factory:
        conn.row_factory = sqlcipher.Row
    return conn


def probe(conn) -> int:
    """Cheap read that fails with DatabaseError when the key is wrong."""
    return conn.execute("SELECT count(*) FROM sqlite_master").fetchone()[0]
