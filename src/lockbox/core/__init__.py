# Core Module - Shared Utilities
#
# Core module provides shared functionality across Lockbox modules:
# - Audit logging
# - Configuration
# - Encrypted database connections

from .audit_log import (
    AuditLogger,
    EventSeverity,
    EventType,
    get_audit_logger,
    log_security_event,
)
from .config import Settings, load_settings

__all__ = [
    # Audit Logging
    "AuditLogger",
    "EventType",
    "EventSeverity",
    "get_audit_logger",
    "log_security_event",
    # Configuration
    "Settings",
    "load_settings",
]
