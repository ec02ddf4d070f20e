"""Audit materialized point balances against the transaction ledger.

Usage: uv run python scripts/reconcile_points.py [--fix]
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Ensure project root is on sys.path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.database import async_session
from app.logging_config import configure_logging
from app.services.points import reconcile_balances


async def reconcile(fix: bool) -> int:
    async with async_session() as session:
        drifts = await reconcile_balances(session, fix=fix)

    if not drifts:
        print("All balances match the ledger.")
        return 0

    for drift in drifts:
        print(
            f"  student {drift.student_id}: recorded={drift.recorded} "
            f"expected={drift.expected} ({drift.difference:+d})"
        )
    print(f"{len(drifts)} drifted balance(s){' repaired' if fix else ''}.")
    return 0 if fix else 1


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--fix", action="store_true", help="overwrite drifted balances with the ledger sum")
    args = parser.parse_args()
    configure_logging()
    sys.exit(asyncio.run(reconcile(args.fix)))
