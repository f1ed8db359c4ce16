# Main Entry Point
#
# Starts the vault API on localhost and prints the session token the client
# must send in X-Session-Token.

import argparse
import sys
from pathlib import Path

from . import __version__
from .core import EventSeverity, EventType, get_audit_logger, load_settings
from .core.audit_log import configure_audit_logger


def main(argv=None):
    """Parse arguments, then serve the API until interrupted."""
    settings = load_settings()

    parser = argparse.ArgumentParser(
        prog="lockbox",
        description="Lockbox - local encrypted secrets vault",
    )
    parser.add_argument(
        "--host",
        default=settings.host,
        help=f"Backend host (default: {settings.host})"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help=f"Backend port (default: {settings.port})"
    )
    parser.add_argument(
        "--data-dir",
        default=str(settings.data_dir),
        help=f"Vault directory (default: {settings.data_dir})"
    )
    parser.add_argument(
        "--auto-lock",
        type=int,
        default=settings.auto_lock_seconds,
        metavar="SECONDS",
        help="Lock after this many seconds of inactivity, 0 to disable "
             f"(default: {settings.auto_lock_seconds})"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"Lockbox v{__version__}"
    )

    args = parser.parse_args(argv)

    if args.auto_lock < 0:
        parser.error("--auto-lock must be >= 0")

    settings.host = args.host
    settings.port = args.port
    settings.auto_lock_seconds = args.auto_lock
    if args.data_dir != str(settings.data_dir):
        settings.data_dir = Path(args.data_dir).expanduser()
        settings.audit_dir = settings.data_dir / "audit_logs"

    configure_audit_logger(settings.audit_dir)

    from .api.main import start_api_server
    from .api.security import initialize_session_token

    token = initialize_session_token()

    print("=" * 60)
    print(f"  Lockbox v{__version__}")
    print(f"  Vault directory: {settings.data_dir}")
    print(f"  Listening on http://{settings.host}:{settings.port}")
    print(f"  X-Session-Token: {token}")
    print("  Press Ctrl+C to stop")
    print("=" * 60)

    try:
        start_api_server(settings)
    except KeyboardInterrupt:
        print("\nShutting down...")
    except Exception as e:
        print(f"\nError: {e}")
        get_audit_logger().log_event(
            event_type=EventType.SYSTEM_STOP,
            severity=EventSeverity.CRITICAL,
            message=f"Lockbox backend crashed: {e}"
        )
        sys.exit(1)


if __name__ == "__main__":
    main()
