"""Apply due date-driven booking transitions once and exit.

Expires unanswered requests and unpaid approvals, checks in stays that have
started and completes stays that have ended. Schedule it with cron (or any
job runner) as an alternative to calling ``POST /api/v1/bookings/system/sweep``:

    */15 * * * *  cd /srv/smartrental && python -m scripts.run_status_sweep

Run:
    python -m scripts.run_status_sweep [--limit 500]
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add the project root to the path so imports work when run as a script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.database import engine, session_scope
from app.notifications.notifier import LoggingNotifier
from app.payments.gateways import get_payment_gateway
from app.repositories.availability import SqlAvailabilityIndex
from app.repositories.bookings import SqlBookingRepository
from app.services.booking_service import BookingService

logger = logging.getLogger("scripts.run_status_sweep")


async def sweep(limit: int) -> dict[str, int]:
    async with session_scope() as session:
        service = BookingService(
            SqlBookingRepository(session),
            SqlAvailabilityIndex(session),
            get_payment_gateway(),
            LoggingNotifier(),
        )
        applied = await service.run_status_sweep(limit=limit)
    await engine.dispose()
    return applied


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--limit", type=int, default=500, help="maximum bookings to examine")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    applied = asyncio.run(sweep(args.limit))
    logger.info("Applied transitions: %s", applied or "none")


if __name__ == "__main__":
    main()
