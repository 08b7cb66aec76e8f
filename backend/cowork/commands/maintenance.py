#!/usr/bin/env python
# backend/cowork/commands/maintenance.py
"""
Maintenance commands for the coworking engine.

Usage:
    python -m cowork.commands.maintenance init-db         # Create all tables
    python -m cowork.commands.maintenance sweep-expired   # Expire ended subscriptions
    python -m cowork.commands.maintenance reconcile       # Check balances against the ledger
"""

import argparse
from datetime import date
import logging
import sys
from typing import Callable, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from ..core.logging import configure_logging
from ..database import Base, SessionLocal
from ..repositories import RepositoryFactory
from ..services.ledger_service import LedgerService
from ..services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)


class MaintenanceCommand:
    """Maintenance command handler."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal) -> None:
        self.session_factory = session_factory

    def init_db(self) -> None:
        """Create every table known to the models (development and tests)."""
        from .. import models  # noqa: F401

        db = self.session_factory()
        try:
            Base.metadata.create_all(bind=db.get_bind())
        finally:
            db.close()
        logger.info("Database schema created")

    def sweep_expired(self, today: Optional[date] = None) -> int:
        db = self.session_factory()
        try:
            expired = SubscriptionService(db).sweep_expired(today)
            logger.info(f"Expired {expired} subscriptions")
            return expired
        finally:
            db.close()

    def reconcile(self) -> Dict[str, List[str]]:
        """
        Compare every stored balance with its ledger sum.

        Returns:
            dict with ``checked`` and ``mismatched`` member ids
        """
        db = self.session_factory()
        try:
            ledger = LedgerService(db)
            member_ids = RepositoryFactory.create_member_repository(db).list_ids()
            mismatched = [member_id for member_id in member_ids if not ledger.verify_balance(member_id)]
            if mismatched:
                logger.error(f"Ledger mismatch for {len(mismatched)} of {len(member_ids)} members")
            else:
                logger.info(f"All {len(member_ids)} member balances reconcile")
            return {"checked": member_ids, "mismatched": mismatched}
        finally:
            db.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Coworking engine maintenance",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m cowork.commands.maintenance init-db
  python -m cowork.commands.maintenance sweep-expired --today 2024-06-01
  python -m cowork.commands.maintenance reconcile
        """,
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")
    subparsers.add_parser("init-db", help="Create all tables")
    sweep_parser = subparsers.add_parser("sweep-expired", help="Expire ended subscriptions")
    sweep_parser.add_argument(
        "--today",
        type=date.fromisoformat,
        default=None,
        help="Facility date to sweep as of (default: today)",
    )
    subparsers.add_parser("reconcile", help="Verify balances against the ledger")
    return parser


def main(argv: Optional[Sequence[str]] = None, command: Optional[MaintenanceCommand] = None) -> int:
    """Main entry point for the maintenance command."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    cmd = command or MaintenanceCommand()

    if args.command == "init-db":
        cmd.init_db()
        print("Schema created")
    elif args.command == "sweep-expired":
        expired = cmd.sweep_expired(args.today)
        print(f"Expired subscriptions: {expired}")
    elif args.command == "reconcile":
        result = cmd.reconcile()
        print(f"Members checked: {len(result['checked'])}")
        if result["mismatched"]:
            print("Mismatched members:")
            for member_id in result["mismatched"]:
                print(f"  {member_id}")
            return 1
    else:
        parser.print_help()
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
