#!/usr/bin/env python3
"""
Reset the receipt ledger database.

By default every table is dropped and recreated. With --sessions-only only the
extraction workflow state is cleared (batch sessions, extraction records,
clarification sessions and their turns); users, documents, contacts,
categories, bank accounts and committed transactions are kept.

WARNING: without --sessions-only this deletes ALL data.
"""

import argparse
import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv
load_dotenv(os.path.join(os.path.dirname(os.path.dirname(__file__)), '.env'))

from sqlalchemy import text

from app.database import engine, Base, SessionLocal
import app.models  # noqa: F401  Registers every table on Base.metadata
from app.models.batch_session import BatchSession, ExtractionRecordRow
from app.models.clarification import ClarificationSession, ClarificationMessage

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def clear_workflow_state():
    """Delete workflow rows child-first; committed transactions survive."""
    db = SessionLocal()
    try:
        rows = db.query(ExtractionRecordRow).delete(synchronize_session=False)
        turns = db.query(ClarificationMessage).delete(synchronize_session=False)
        sessions = db.query(ClarificationSession).delete(synchronize_session=False)
        batches = db.query(BatchSession).delete(synchronize_session=False)
        db.commit()
        logger.info(
            f"Cleared {batches} batch session(s), {rows} record(s), "
            f"{sessions} clarification session(s) and {turns} turn(s)"
        )
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def recreate_schema():
    logger.info(f"Dropping {len(Base.metadata.tables)} tables...")
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    logger.info("Schema recreated from models.")

    # The fresh schema already matches head; a stale version row would replay migrations
    with engine.connect() as conn:
        conn.execute(text("DROP TABLE IF EXISTS alembic_version"))
        conn.commit()
    logger.info("Alembic version table dropped. Run: alembic stamp head")


def main():
    parser = argparse.ArgumentParser(description="Reset the receipt ledger database")
    parser.add_argument("--sessions-only", action="store_true", help="only clear batch and clarification sessions")
    parser.add_argument("--yes", action="store_true", help="skip the confirmation prompt")
    args = parser.parse_args()

    scope = "workflow sessions" if args.sessions_only else "ALL DATA"
    logger.warning("=" * 60)
    logger.warning(f"This will delete {scope} in {engine.url.render_as_string(hide_password=True)}")
    logger.warning("=" * 60)

    if not args.yes and input("Continue? (yes/no): ").lower() != "yes":
        logger.info("Aborted.")
        return

    try:
        if args.sessions_only:
            clear_workflow_state()
        else:
            recreate_schema()
    except Exception as e:
        logger.error(f"Error resetting database: {e}", exc_info=True)
        raise


if __name__ == "__main__":
    main()
