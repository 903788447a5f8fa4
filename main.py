#!/usr/bin/env python3
"""
TokenWarden -- password login, short-lived access tokens, rotating refresh tokens.

This CLI is the administrative path around the HTTP API: it starts the
server and performs the operations the API deliberately does not expose.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8080
  python main.py register alice@example.com
  python main.py delete-principal alice@example.com
  python main.py purge-tokens
  python main.py purge-tokens --older-than-days 30

Environment variables (see core/config.py for the full list):
  SECRET_KEY     Required unless DEBUG=true. At least 32 characters.
  DATABASE_URL   SQLAlchemy URL. Defaults to SQLite under auth/.
"""

from __future__ import annotations

import argparse
import getpass
import logging
import sys
from datetime import timedelta

from auth.errors import AuthError
from auth.service import AuthService, normalize_email
from core.clock import utc_now
from core.config import get_settings

logger = logging.getLogger("tokenwarden.cli")


def _build_service() -> AuthService:
    # Imported lazily: api.main configures logging and the FastAPI app at
    # import time, which the serve command leaves to uvicorn.
    from api.main import build_auth_service

    return build_auth_service(get_settings())


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def cmd_register(args: argparse.Namespace) -> int:
    """Register a principal. The password is prompted for, never taken from argv."""
    password = getpass.getpass("Password: ")
    if password != getpass.getpass("Repeat password: "):
        print("  [!] Passwords do not match.")
        return 1
    view = _build_service().register(args.email, password)
    print(f"  Registered {view.email} (id {view.id})")
    return 0


def cmd_delete_principal(args: argparse.Namespace) -> int:
    """Delete a principal by email. Its refresh tokens go with it (ON DELETE CASCADE)."""
    service = _build_service()
    principal = service.principals.get_by_email(normalize_email(args.email))
    if principal is None:
        print(f"  [!] No principal registered as {normalize_email(args.email)}.")
        return 1
    service.principals.delete(principal.id)
    logger.info("Deleted principal %s", principal.id)
    print(f"  Deleted {principal.email} and all of its refresh tokens.")
    return 0


def cmd_purge_tokens(args: argparse.Namespace) -> int:
    """Delete refresh tokens that expired more than N days ago."""
    if args.older_than_days < 0:
        print("  [!] --older-than-days must be zero or positive.")
        return 1
    cutoff = utc_now() - timedelta(days=args.older_than_days)
    removed = _build_service().refresh_tokens.purge_expired(before=cutoff)
    print(f"  Purged {removed} expired refresh token(s).")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tokenwarden",
        description="Credential and session authority: run the API or administer principals.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py serve --reload
  python main.py register alice@example.com
  python main.py delete-principal alice@example.com
  python main.py purge-tokens --older-than-days 30
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8080, help="Port (default: 8080)")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development only)")
    serve.set_defaults(func=cmd_serve)

    register = sub.add_parser("register", help="Register a principal (password prompted)")
    register.add_argument("email", help="Email address; stored trimmed and lowercased")
    register.set_defaults(func=cmd_register)

    delete = sub.add_parser("delete-principal", help="Delete a principal and its refresh tokens")
    delete.add_argument("email", help="Email address of the principal to delete")
    delete.set_defaults(func=cmd_delete_principal)

    purge = sub.add_parser("purge-tokens", help="Delete expired refresh tokens")
    purge.add_argument(
        "--older-than-days",
        type=int,
        default=0,
        metavar="N",
        help="Only delete tokens that expired more than N days ago (default: 0)",
    )
    purge.set_defaults(func=cmd_purge_tokens)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0
    try:
        return args.func(args)
    except AuthError as exc:
        print(f"  [!] {exc.message}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
