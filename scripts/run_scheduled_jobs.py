"""
Runs the periodic jobs once

Meant to be called from cron, e.g. every five minutes:
    python scripts/run_scheduled_jobs.py
    python scripts/run_scheduled_jobs.py --only retry_due_deliveries
"""
import argparse
import asyncio

from loguru import logger

from alumni.core.database import close_db, init_db, session_scope
from alumni.services.tasks import SCHEDULED_JOBS

JOBS = {job.__name__: job for job in SCHEDULED_JOBS}


def parse_args():
    parser = argparse.ArgumentParser(description="Run scheduled jobs")
    parser.add_argument(
        "--only",
        choices=sorted(JOBS),
        action="append",
        help="run only the named job (repeatable)",
    )
    return parser.parse_args()


async def run(names):
    await init_db()
    failed = 0
    try:
        for name in names:
            # one transaction per job so a failure does not undo the others
            try:
                async with session_scope() as session:
                    result = await JOBS[name](session)
                logger.info("{}: {}", name, result)
            except Exception:
                failed += 1
                logger.exception("Scheduled job {} failed", name)
    finally:
        await close_db()
    return failed


def main():
    args = parse_args()
    names = args.only or list(JOBS)
    failed = asyncio.run(run(names))
    raise SystemExit(1 if failed else 0)


if __name__ == "__main__":
    main()
