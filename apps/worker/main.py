# apps/worker/main.py
import asyncio
import logging
import signal
from typing import Optional

from core.cache import build_order_cache
from core.config import Settings, get_settings
from core.database import async_session, engine
from core.log_config import setup_logging
from core.telemetry import instrument_app, setup_telemetry
from domains.expiry.scheduler import ExpiryScheduler
from domains.notification.callback import MerchantNotifier

logger = logging.getLogger(__name__)


def build_scheduler(settings: Settings) -> ExpiryScheduler:
    return ExpiryScheduler(
        async_session,
        late_window_seconds=settings.LATE_WINDOW_SECONDS,
        interval_seconds=settings.EXPIRY_SWEEP_INTERVAL_SECONDS,
        cache=build_order_cache(settings.REDIS_URL, settings.ORDER_CACHE_TTL_SECONDS),
        notifier=MerchantNotifier(timeout=settings.CALLBACK_TIMEOUT_SECONDS),
    )


def install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()

    def _handler(sig: signal.Signals) -> None:
        logger.warning(
            f" 🛑 Received shutdown signal ({sig.name}). Stopping worker gracefully..."
        )
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):  # Ctrl+C / Docker stop
        loop.add_signal_handler(sig, _handler, sig)


async def run_worker(
    scheduler: ExpiryScheduler, stop_event: Optional[asyncio.Event] = None
) -> None:
    """
    跑 expiry sweep 直到收到停止信號；停止時等目前這一輪結束再收
    """
    stop_event = stop_event or asyncio.Event()
    scheduler.start()
    logger.info(" [*] Expiry worker started. Press CTRL+C to exit.")
    try:
        await stop_event.wait()
    finally:
        logger.info(" 🧹 Stopping scheduler...")
        await scheduler.stop()
        if scheduler.cache is not None:
            await scheduler.cache.close()
    logger.info(" 👋 Bye.")


async def _main() -> None:
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)
    if settings.OTEL_ENABLED:
        setup_telemetry(
            f"{settings.SERVICE_NAME}-worker", settings.OTEL_EXPORTER_OTLP_ENDPOINT
        )
        instrument_app(None, engine)
    stop_event = asyncio.Event()
    install_signal_handlers(stop_event)
    await run_worker(build_scheduler(settings), stop_event)


def main() -> None:
    asyncio.run(_main())


if __name__ == "__main__":
    main()
