import argparse
import asyncio
import logging

from core.config import get_settings
from core.database import async_session
from core.log_config import setup_logging
from domains.expiry.scheduler import ExpiryScheduler

logger = logging.getLogger(__name__)


async def expire_once(late_window_seconds: int) -> int:
    scheduler = ExpiryScheduler(async_session, late_window_seconds=late_window_seconds)
    return await scheduler.sweep()


def main() -> None:
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)

    parser = argparse.ArgumentParser(
        description="Run one expiry sweep over PENDING orders past the late window."
    )
    parser.add_argument(
        "--window",
        type=int,
        default=settings.LATE_WINDOW_SECONDS,
        help="late window in seconds",
    )
    args = parser.parse_args()

    count = asyncio.run(expire_once(args.window))
    if count == 0:
        logger.info(" ✅ No pending orders past the window.")
    else:
        logger.info(f" 🎉 Expired {count} order(s).")
    print(count)


if __name__ == "__main__":
    main()
