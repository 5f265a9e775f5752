# HR Command Center - Command Line Entry Point
#
#   hrcommand export [PATH]   write an encrypted backup
#   hrcommand import PATH     restore an encrypted backup (replaces all data)
#   hrcommand inspect PATH    show what a backup contains
#   hrcommand serve           run the local backup API
#
# Passwords are read from the environment variable named by --password-env
# or prompted for interactively; they are never accepted as arguments.

import argparse
import getpass
import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .backup.backup_manager import BackupManager, default_backup_filename
from .backup.errors import BackupError
from .core import BackupSettings, EventSeverity, EventType, configure_audit_logger, get_audit_logger
from .storage.database import HRDatabase

logger = logging.getLogger(__name__)


def _read_password(args, confirm: bool = False) -> str:
    if args.password_env:
        password = os.environ.get(args.password_env)
        if password is None:
            raise SystemExit(f"Environment variable {args.password_env} is not set")
        return password
    password = getpass.getpass("Backup password: ")
    if confirm and getpass.getpass("Confirm password: ") != password:
        raise SystemExit("Passwords do not match")
    return password


def _print_json(payload: dict) -> None:
    print(json.dumps(payload, indent=2))


def _cmd_export(manager: BackupManager, args) -> int:
    destination = Path(args.path) if args.path else Path(default_backup_filename())
    summary = manager.export_backup(destination, _read_password(args, confirm=True))
    _print_json(summary.to_dict())
    return 0


def _cmd_import(manager: BackupManager, args) -> int:
    if not args.yes:
        answer = input("This replaces ALL current data. Continue? [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            print("Import aborted.")
            return 1
    summary = manager.import_backup(Path(args.path), _read_password(args))
    _print_json(summary.to_dict())
    return 0


def _cmd_inspect(manager: BackupManager, args) -> int:
    info = manager.inspect_backup(Path(args.path), _read_password(args))
    _print_json(info.to_dict())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hrcommand",
        description="HR Command Center - encrypted backup and restore",
    )
    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="SQLite database path (default: $HRCC_DB_PATH or data/hrcommand.db)"
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load settings from this .env file"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log pipeline stages to stderr"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"HR Command Center v{__version__}"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    password_help = "Read the password from this environment variable instead of prompting"

    p_export = sub.add_parser("export", help="Write an encrypted backup")
    p_export.add_argument("path", nargs="?", help="Destination file (default: timestamped name)")
    p_export.add_argument("--password-env", metavar="VAR", help=password_help)

    p_import = sub.add_parser("import", help="Restore an encrypted backup (replaces all data)")
    p_import.add_argument("path", help="Backup file to restore")
    p_import.add_argument("--password-env", metavar="VAR", help=password_help)
    p_import.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation")

    p_inspect = sub.add_parser("inspect", help="Show what a backup contains")
    p_inspect.add_argument("path", help="Backup file to inspect")
    p_inspect.add_argument("--password-env", metavar="VAR", help=password_help)

    p_serve = sub.add_parser("serve", help="Run the local backup API")
    p_serve.add_argument("--host", default=None, help="Bind host (default: $HRCC_API_HOST or 127.0.0.1)")
    p_serve.add_argument("--port", type=int, default=None, help="Bind port (default: $HRCC_API_PORT or 8000)")

    return parser


_COMMANDS = {
    "export": _cmd_export,
    "import": _cmd_import,
    "inspect": _cmd_inspect,
}


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for HR Command Center.
    """
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = BackupSettings.from_env(args.env_file)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    if args.db is not None:
        settings.db_path = args.db
    configure_audit_logger(settings.audit_log_dir)

    if args.command == "serve":
        from .api.backup_routes import set_backup_manager
        from .api.main import start_api_server

        set_backup_manager(BackupManager(HRDatabase(settings.db_path), settings))

        try:
            start_api_server(
                host=args.host or settings.api_host,
                port=args.port or settings.api_port,
            )
        except KeyboardInterrupt:
            get_audit_logger().log_event(
                event_type=EventType.SYSTEM_STOP,
                severity=EventSeverity.INFO,
                message="HR Command Center backend stopped (user interrupt)",
            )
        return 0

    with HRDatabase(settings.db_path) as db:
        manager = BackupManager(db, settings)
        try:
            return _COMMANDS[args.command](manager, args)
        except BackupError as e:
            print(f"Error ({e.code}): {e}", file=sys.stderr)
            return 1
        finally:
            manager.shutdown()


if __name__ == "__main__":
    sys.exit(main())
