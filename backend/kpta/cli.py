#!/usr/bin/env python3
"""
Insights CLI
Runs the insight pipeline for one user against the configured database
"""

import argparse
import asyncio
import logging
import sys

from kpta import database
from kpta.agents.insights_formatter import InsightsFormatter
from kpta.core.config import settings
from kpta.core.exceptions import StorageError
from kpta.services.insights_service import InsightsService


async def run(user_id: str, limit: int, as_json: bool) -> int:
    await database.init_db()
    try:
        async with database.async_session_maker() as db:
            result = await InsightsService().get_insights(db, user_id, limit)
    except StorageError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        await database.close_db()

    if as_json:
        print(result.model_dump_json(indent=2))
    else:
        print(InsightsFormatter.format_insights(result))
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Show AI insights for a user's retrospectives")
    parser.add_argument("--user-id", required=True, help="User whose retrospectives to analyze")
    parser.add_argument("--limit", type=int, default=settings.INSIGHTS_DEFAULT_LIMIT,
                        help="Maximum number of retrospectives to include")
    parser.add_argument("--json", action="store_true", help="Print the raw result as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log pipeline stages")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )
    return asyncio.run(run(args.user_id, args.limit, args.json))


if __name__ == "__main__":
    sys.exit(main())
