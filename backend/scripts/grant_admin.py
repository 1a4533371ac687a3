#!/usr/bin/env python3
"""
Bootstrap an administrator.

The first administrator cannot be approved through the API, because every
admin route needs an admin. Sign in once so the user row exists, then run
this script with the user id (the identity provider's subject) to approve
and promote that user.
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Run from anywhere: make the backend modules importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from database import AsyncSessionLocal, close_db, init_db  # noqa: E402
from services.membership import MembershipLifecycle, UserNotFound  # noqa: E402
from utils.audit import audit  # noqa: E402
from utils.logging_utils import setup_logging  # noqa: E402


async def grant_admin(user_id: str, approve: bool = True) -> int:
    await init_db()
    audit.set_actor("cli:grant_admin")
    try:
        async with AsyncSessionLocal() as db:
            lifecycle = MembershipLifecycle(db)
            try:
                if approve:
                    await lifecycle.approve(user_id)
                user = await lifecycle.promote(user_id)
            except UserNotFound as e:
                print(f"Error: {e.message}. Has the user signed in yet?")
                return 1
    finally:
        await close_db()

    print(f"{user.display_name} ({user.id}): status={user.status} admin={user.is_admin}")
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Approve and promote a community member to administrator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/grant_admin.py 4815162342               # Approve and promote
  python scripts/grant_admin.py 4815162342 --no-approve  # Promote only
        """,
    )
    parser.add_argument("user_id", help="User id (identity provider subject)")
    parser.add_argument(
        "--no-approve", action="store_true",
        help="Only set the admin flag; leave membership status unchanged",
    )
    parser.add_argument(
        "--log-level", default="WARNING",
        help="Log level for audit output (default: WARNING)",
    )

    args = parser.parse_args()
    setup_logging(level=args.log_level)
    sys.exit(asyncio.run(grant_admin(args.user_id, approve=not args.no_approve)))


if __name__ == "__main__":
    main()
