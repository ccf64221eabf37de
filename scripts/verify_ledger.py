#!/usr/bin/env python3
"""
Verify credit balances against the transaction log.

For every user with ledger activity, compares the cached balance in
``user_balances`` with the sum of ``credit_transactions``. With ``--fix``
mismatched balances are rebuilt from the log.

Usage:
    python scripts/verify_ledger.py [--fix] [--user-id ID]
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from loguru import logger  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from contempla.config.database import (  # noqa: E402
    build_engine,
    build_session_maker,
)
from contempla.services.ledger.store import LedgerStore  # noqa: E402

# Configure logging
logger.remove()
logger.add(
    sys.stdout,
    format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    level="INFO",
)


async def verify_ledger(fix: bool = False, user_id: int | None = None) -> int:
    """
    Check every balance.

    Returns:
        Number of mismatched balances found
    """
    engine = build_engine(poolclass=NullPool)
    session_maker = build_session_maker(engine)
    mismatches = 0

    try:
        async with session_maker() as session:
            ledger = LedgerStore(session)
            user_ids = (
                [user_id] if user_id is not None
                else await ledger.list_user_ids()
            )
            logger.info(f"Checking {len(user_ids)} balance(s)")

            for uid in user_ids:
                check = await ledger.verify_balance(uid)
                if check.consistent:
                    continue

                mismatches += 1
                logger.warning(
                    f"User {uid}: cached={check.cached_balance} "
                    f"log={check.computed_balance}"
                )
                if fix:
                    await ledger.rebuild_balance(uid)

            if fix:
                await session.commit()
            else:
                await session.rollback()
    finally:
        await engine.dispose()

    logger.info("=" * 60)
    logger.info(f"Mismatched balances: {mismatches}")
    if mismatches and not fix:
        logger.info("Run again with --fix to rebuild them from the log")
    return mismatches


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Verify credit balances against the transaction log"
    )
    parser.add_argument(
        "--fix",
        action="store_true",
        help="Rebuild mismatched balances from the log",
    )
    parser.add_argument(
        "--user-id",
        type=int,
        default=None,
        help="Check a single user",
    )

    args = parser.parse_args()

    mismatches = asyncio.run(verify_ledger(fix=args.fix, user_id=args.user_id))
    sys.exit(1 if mismatches and not args.fix else 0)


if __name__ == "__main__":
    main()
