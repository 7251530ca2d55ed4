"""
MailFortress command line.

Usage:
    mailfortress serve
    mailfortress reset-emails [--yes]
    mailfortress check-connections
"""

from __future__ import annotations

import argparse
import sys

from dotenv import load_dotenv

from mailfortress.config import EMAILS_TABLE, HOST, LLM_DEFAULT_MODEL, PORT
from mailfortress.llm.gateway import GenerationError, GenerationOptions, LLMGateway
from mailfortress.observability.logging import configure_logging, get_logger
from mailfortress.storage.client import DataStore, DataStoreError
from mailfortress.storage.seed import RESET_EMAILS, reset_emails

logger = get_logger(__name__)


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("mailfortress.api.app:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def cmd_reset_emails(args: argparse.Namespace, store: DataStore | None = None) -> int:
    """Delete every email and insert the reset fixture set."""
    if not args.yes:
        answer = input(f"Delete ALL rows in '{EMAILS_TABLE}' and insert {len(RESET_EMAILS)} seed emails? [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            print("Aborted.")
            return 1

    store = store or DataStore()
    try:
        inserted = reset_emails(store)
    except DataStoreError as e:
        print(f"Reset failed: {e}", file=sys.stderr)
        return 1
    print(f"Inserted {inserted} seed emails into '{EMAILS_TABLE}'.")
    return 0


def cmd_check_connections(
    args: argparse.Namespace,
    gateway: LLMGateway | None = None,
    store: DataStore | None = None,
) -> int:
    """One LLM round-trip and one store read; exit code 1 if either fails."""
    gateway = gateway or LLMGateway()
    store = store or DataStore()
    failures = 0

    try:
        reply = gateway.generate("Reply with the single word OK.", GenerationOptions(LLM_DEFAULT_MODEL, 0.0, 16))
        print(f"LLM:   OK ({reply.strip()[:40]!r})")
    except GenerationError as e:
        failures += 1
        print(f"LLM:   FAIL ({e})")

    try:
        rows = store.select(EMAILS_TABLE, limit=1)
        print(f"Store: OK ({len(rows)} row sample from '{EMAILS_TABLE}')")
    except DataStoreError as e:
        failures += 1
        print(f"Store: FAIL ({e})")

    return 1 if failures else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mailfortress", description="MailFortress email triage")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the API and web UI")
    serve.add_argument("--host", default=HOST)
    serve.add_argument("--port", type=int, default=PORT)
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development)")
    serve.set_defaults(func=cmd_serve)

    reset = subparsers.add_parser("reset-emails", help="Replace all emails with the seed set")
    reset.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")
    reset.set_defaults(func=cmd_reset_emails)

    check = subparsers.add_parser("check-connections", help="Verify LLM and Supabase credentials")
    check.set_defaults(func=cmd_check_connections)

    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    configure_logging()
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
