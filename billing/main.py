from __future__ import annotations

import argparse
import logging

from billing.config import Settings, load_dotenv
from billing.document_service import DocumentService
from billing.logger import configure_logging
from billing.number_to_words import to_words
from billing.replay import replay_pending_confirms
from billing.server import main as serve_main
from schemas.billing_schema import DOCUMENT_KINDS


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="GST Billing")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("serve", help="Run the billing HTTP API")

    words = subparsers.add_parser("words", help="Print an amount in words")
    words.add_argument("amount")

    replay = subparsers.add_parser("replay-confirms", help="Apply counter confirms left in the dead-letter log")
    replay.add_argument("--dead-letter-path", default=None)
    replay.add_argument("--audit-path", default=None)
    replay.add_argument("--db-path", default=None)

    reconcile = subparsers.add_parser("reconcile", help="Move a stale counter up to the highest issued number")
    reconcile.add_argument("--owner", required=True)
    reconcile.add_argument("--kind", required=True, choices=DOCUMENT_KINDS)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "words":
        try:
            print(to_words(args.amount))
        except ValueError as exc:
            parser.error(str(exc))
        return 0

    load_dotenv()
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    logger = logging.getLogger(__name__)

    if args.command == "serve":
        serve_main()
        return 0
    if args.command == "replay-confirms":
        summary = replay_pending_confirms(
            dead_letter_path=args.dead_letter_path or settings.dead_letter_path,
            audit_path=args.audit_path or settings.replay_audit_path,
            db_path=args.db_path or settings.db_path,
        )
        logger.info(
            "Replay summary confirmed=%d skipped_invalid=%d",
            summary["confirmed"],
            summary["skipped_invalid"],
        )
        return 0
    if args.command == "reconcile":
        service = DocumentService.from_settings(settings)
        counter = service.reconcile_counter(args.owner, args.kind)
        logger.info("Counter for owner=%s kind=%s is at %d", args.owner, args.kind, counter)
        return 0
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
