"""Break-glass incident response from the command line.

Runs directly against the configured database, for when the API is not
reachable. Every transition is audited exactly as it would be through the API.

Usage:
    python scripts/break_glass_cli.py activate <faculty_id> --by <head_id> --reason "..."
    python scripts/break_glass_cli.py deactivate <user_id> [--by <head_id>]
    python scripts/break_glass_cli.py status [<user_id>]
    python scripts/break_glass_cli.py cleanup
"""

import argparse
import logging
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.database import SessionLocal
from app.exceptions import BreakGlassError
from app.services.break_glass_service import BreakGlassService
from app.utils.timezone import format_utc_iso

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger("break_glass_cli")


def cmd_activate(service: BreakGlassService, args) -> int:
    result = service.activate_break_glass(args.user_id, args.reason, args.by)
    print("=" * 70)
    print("BREAK-GLASS ACTIVATED")
    print("=" * 70)
    print(f"User:           {args.user_id}")
    print(f"Secret code:    {result.secret_code}")
    print(f"Promotion code: {result.promotion_code}")
    print("=" * 70)
    print("\nWARNING: These codes are shown once. Hand them over out of band.")
    return 0


def cmd_deactivate(service: BreakGlassService, args) -> int:
    if service.deactivate_break_glass(args.user_id, args.by):
        print(f"Break-glass session for {args.user_id} ended; original role restored.")
    else:
        print(f"NOTICE: No active break-glass session for {args.user_id}")
    return 0


def cmd_status(service: BreakGlassService, args) -> int:
    if args.user_id:
        sessions = [s for s in [service.get_break_glass_session(args.user_id)] if s]
    else:
        sessions = service.list_active_sessions()

    if not sessions:
        print("No active break-glass sessions.")
        return 0

    for session in sessions:
        print(
            f"{session.user_id:<20} activated {format_utc_iso(session.activated_at)} "
            f"by {session.activated_by} "
            f"expires {format_utc_iso(session.expires_at) if session.expires_at else 'never'} "
            f"reason: {session.reason}"
        )
    return 0


def cmd_cleanup(service: BreakGlassService, args) -> int:
    count = service.cleanup_expired_sessions()
    print(f"Expired {count} break-glass session(s).")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Break-glass emergency access tooling")
    subparsers = parser.add_subparsers(dest="command", required=True)

    activate = subparsers.add_parser("activate", help="Temporarily promote a Faculty member to Admin")
    activate.add_argument("user_id", help="Faculty user ID")
    activate.add_argument("--by", required=True, help="Activating Academic Head user ID")
    activate.add_argument("--reason", required=True, help="Why emergency access is needed")
    activate.set_defaults(func=cmd_activate)

    deactivate = subparsers.add_parser("deactivate", help="End a session and restore the original role")
    deactivate.add_argument("user_id", help="Temporary admin user ID")
    deactivate.add_argument("--by", default=None, help="Initiating user ID (omit for SYSTEM)")
    deactivate.set_defaults(func=cmd_deactivate)

    status = subparsers.add_parser("status", help="Show active sessions")
    status.add_argument("user_id", nargs="?", default=None, help="Limit to one user")
    status.set_defaults(func=cmd_status)

    cleanup = subparsers.add_parser("cleanup", help="End every session past its expiry")
    cleanup.set_defaults(func=cmd_cleanup)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    db = SessionLocal()
    try:
        return args.func(BreakGlassService(db), args)
    except BreakGlassError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"ERROR: {e.detail}")
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
