"""Main entry point for the Telegram bot."""

import asyncio
import logging

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from utility_monitor.bots.tg.handlers import (
    adjustment,
    billing,
    common,
    history,
    readings,
)
from utility_monitor.bots.tg.middlewares.access import AdminAccessMiddleware
from utility_monitor.config import settings
from utility_monitor.core.db import close_db, init_db
from utility_monitor.core.meter_config import load_monitor_config
from utility_monitor.services.importer import CsvHistoryImporter
from utility_monitor.services.monitor import UtilityMonitor
from utility_monitor.services.notifications import NotificationService, TelegramNotifier
from utility_monitor.services.scheduler import SchedulerService

logger = logging.getLogger(__name__)


async def on_startup(dispatcher: Dispatcher, bot: Bot):
    """Actions on bot startup."""
    logger.info("Initializing database...")
    await init_db(generate_schemas=settings.DB_GENERATE_SCHEMAS)

    config = load_monitor_config(settings.UTILITY_CONFIG_PATH)
    monitor = UtilityMonitor(config)
    await monitor.initialize()

    notifications = NotificationService(
        monitor.state, config, TelegramNotifier(bot, settings.NOTIFY_CHAT_IDS)
    )
    scheduler_service = SchedulerService(
        monitor,
        AsyncIOScheduler(),
        notifications,
        interval_seconds=settings.SWEEP_INTERVAL_SECONDS,
    )
    scheduler_service.start()

    dispatcher["monitor"] = monitor
    dispatcher["importer"] = CsvHistoryImporter(monitor.history, config)
    dispatcher["scheduler_service"] = scheduler_service
    logger.info("Services injected into dispatcher.")

    logger.info("Deleting webhook and dropping pending updates...")
    await bot.delete_webhook(drop_pending_updates=True)
    logger.info("Bot started.")


async def on_shutdown(dispatcher: Dispatcher, bot: Bot):
    """Actions on bot shutdown."""
    logger.info("Closing connections...")
    scheduler_service = dispatcher.get("scheduler_service")
    if scheduler_service:
        scheduler_service.shutdown()
    await close_db()
    await bot.session.close()
    logger.info("Connections closed.")


async def main():
    """Initializes and starts the bot."""
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )
    logger.info("Starting bot initialization...")

    bot = Bot(
        token=settings.BOT_TOKEN,
        default=DefaultBotProperties(parse_mode="HTML"),
    )
    dp = Dispatcher()

    # Register startup and shutdown hooks
    dp.startup.register(on_startup)
    dp.shutdown.register(on_shutdown)

    access = AdminAccessMiddleware()
    dp.message.outer_middleware(access)
    dp.callback_query.outer_middleware(access)

    # Register routers
    dp.include_router(common.router)
    dp.include_router(readings.router)
    dp.include_router(billing.router)
    dp.include_router(adjustment.router)
    dp.include_router(history.router)

    await dp.start_polling(bot, dispatcher=dp)


def run():
    """Console script entry point."""
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        logger.info("Bot stopped manually.")


if __name__ == "__main__":
    run()
