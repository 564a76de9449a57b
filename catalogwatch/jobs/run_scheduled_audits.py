"""
Scheduled audit job.

Runs every due scheduled audit and sends notifications, the same cycle as
the cron endpoint, for deployments that schedule a process instead of an
HTTP call.

Usage:
    python -m catalogwatch.jobs.run_scheduled_audits
"""

import sys
import asyncio
import logging
from typing import Any, Dict

from catalogwatch.database.session import get_db_session_sync, get_session_factory
from catalogwatch.services.scheduled_audit_runner import run_scheduled_audit_cycle

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def run_scheduled_audits() -> Dict[str, Any]:
    """Run one cycle with a fresh session and return its summary."""
    db_gen = get_db_session_sync()
    session = next(db_gen)
    try:
        return await run_scheduled_audit_cycle(session, report_session_factory=get_session_factory())
    finally:
        session.close()


def main():
    """Entry point for running the job from the command line."""
    try:
        summary = asyncio.run(run_scheduled_audits())
    except Exception as e:
        logger.error("Scheduled audit job failed", extra={"error": str(e)}, exc_info=True)
        print(f"Scheduled audit job failed: {e}")
        sys.exit(1)

    stats = {k: v for k, v in summary.items() if k != "results"}
    print(f"Scheduled audit job completed: {stats}")
    sys.exit(1 if summary.get("failed") else 0)


if __name__ == "__main__":
    main()
