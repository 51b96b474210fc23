"""Utility script to initialize or repair the configured database."""
from __future__ import annotations

import argparse
import sys

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from relay_review.core.logging import configure_logging
from relay_review.core.settings import settings
from relay_review.db.schema import drop_schema, ensure_schema
from relay_review.services.ledger import LedgerWriteError, ModerationLedger


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Ensure the ledger schema is current")
    parser.add_argument(
        "--url",
        default=None,
        help="Override database URL (defaults to effective settings URL)",
    )
    parser.add_argument(
        "--drop-tables",
        action="store_true",
        help="Drop all service tables before recreating them.",
    )
    parser.add_argument(
        "--backfill",
        action="store_true",
        help="Recompute ever_human_reviewed from the decision log.",
    )
    args = parser.parse_args(argv)

    configure_logging()
    engine = create_engine(args.url or settings.effective_database_url, pool_pre_ping=True)
    try:
        if args.drop_tables:
            drop_schema(engine)
            print("[ensure_db] dropped all tables")
        changes = ensure_schema(engine)
        for change in changes:
            print(f"[ensure_db] {change}")
        if not changes:
            print("[ensure_db] schema already current")
        if args.backfill:
            with Session(engine) as session:
                count = ModerationLedger(session).backfill_targets()
            print(f"[ensure_db] backfilled {count} targets")
    except (SQLAlchemyError, LedgerWriteError) as exc:
        print(f"[ensure_db] ERROR: {exc}", file=sys.stderr)
        sys.exit(1)
    finally:
        engine.dispose()


if __name__ == "__main__":
    main()
