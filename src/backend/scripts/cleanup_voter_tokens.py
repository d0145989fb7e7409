"""
Delete expired voter tokens once.

The background scheduler does this periodically. Use this script from cron
when background jobs are disabled.

Usage:
    python scripts/cleanup_voter_tokens.py [--finish-polls]
"""

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.logging import configure_logging  # noqa: E402
from db.session import async_session_maker, close_db  # noqa: E402
from services.voting_core import VotingCore  # noqa: E402


async def cleanup(finish_polls: bool) -> None:
    async with async_session_maker() as db:
        core = VotingCore.from_session(db)
        deleted = await core.cleanup_expired_voter_tokens()
        print(f"Deleted {deleted} expired voter token(s)")
        if finish_polls:
            finished = await core.finish_expired_polls()
            print(f"Finished {finished} poll(s)")
    await close_db()


def main() -> None:
    parser = argparse.ArgumentParser(description="Delete expired voter tokens.")
    parser.add_argument(
        "--finish-polls",
        action="store_true",
        help="also finish polls whose voting phase is over",
    )
    args = parser.parse_args()

    configure_logging()
    asyncio.run(cleanup(args.finish_polls))


if __name__ == "__main__":
    main()
