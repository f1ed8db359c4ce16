# Configuration
#
# Settings are read from environment variables (optionally seeded from a
# .env file by python-dotenv). CLI flags override them in __main__.

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from dotenv import find_dotenv, load_dotenv

DEFAULT_DATA_DIR = "~/.lockbox"

# Matches the 15 minute inactivity timeout of the desktop client
DEFAULT_AUTO_LOCK_SECONDS = 15 * 60

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000


@dataclass
class Settings:
    """Runtime configuration for the vault service."""
    data_dir: Path = field(default_factory=lambda: Path(DEFAULT_DATA_DIR).expanduser())
    audit_dir: Optional[Path] = None
    auto_lock_seconds: int = DEFAULT_AUTO_LOCK_SECONDS
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT

    def __post_init__(self):
        self.data_dir = Path(self.data_dir).expanduser()
        if self.audit_dir is None:
            self.audit_dir = self.data_dir / "audit_logs"
        else:
            self.audit_dir = Path(self.audit_dir).expanduser()
        if self.auto_lock_seconds < 0:
            raise ValueError("auto_lock_seconds must be >= 0")


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def load_settings(env: Optional[Mapping[str, str]] = None, dotenv: bool = True) -> Settings:
    """
    Build Settings from the environment.

    Args:
        env: Mapping to read instead of os.environ (tests)
        dotenv: Load a .env file from the working directory first

    Recognised variables:
        LOCKBOX_DATA_DIR, LOCKBOX_AUDIT_DIR, LOCKBOX_AUTO_LOCK_SECONDS,
        LOCKBOX_HOST, LOCKBOX_PORT
    """
    if env is None:
        if dotenv:
            load_dotenv(find_dotenv(usecwd=True))
        env = os.environ

    audit_dir = env.get("LOCKBOX_AUDIT_DIR") or None
    return Settings(
        data_dir=Path(env.get("LOCKBOX_DATA_DIR") or DEFAULT_DATA_DIR),
        audit_dir=Path(audit_dir) if audit_dir else None,
        auto_lock_seconds=_int_env(env, "LOCKBOX_AUTO_LOCK_SECONDS", DEFAULT_AUTO_LOCK_SECONDS),
        host=env.get("LOCKBOX_HOST") or DEFAULT_HOST,
        port=_int_env(env, "LOCKBOX_PORT", DEFAULT_PORT),
    )
