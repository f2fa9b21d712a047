import asyncio
import logging
import sys
from datetime import datetime

from aiogram import Bot, Dispatcher
from aiogram.enums import ParseMode
from aiogram.client.default import DefaultBotProperties

from payout_bot.config import config
from payout_bot.database.core import create_session_factory
from payout_bot.database.stores import (
    SqlStatementStore, SqlListingStore, SqlListingGroupStore, SqlNotificationStore, SqlScheduleStore
)
from payout_bot.handlers import admin
from payout_bot.middlewares.error import GlobalErrorMiddleware
from payout_bot.services.notification_service import NotificationEmitter
from payout_bot.services.providers import DatabaseExpenseProvider, HostawayReservationProvider
from payout_bot.services.schedule_service import ScheduleEngine
from payout_bot.services.statement_service import StatementGenerator
from payout_bot.cron import scheduler_loop


async def main():
    # Configure logging
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        stream=sys.stdout,
    )

    tz = config.TIMEZONE
    session_factory = create_session_factory(config.DATABASE_URL)

    bot = None
    if config.BOT_TOKEN:
        bot = Bot(
            token=config.BOT_TOKEN,
            default=DefaultBotProperties(parse_mode=ParseMode.HTML)
        )

    # Setup Services
    statement_store = SqlStatementStore(session_factory)
    listing_store = SqlListingStore(session_factory)
    generator = StatementGenerator(
        statement_store=statement_store,
        listing_store=listing_store,
        reservation_provider=HostawayReservationProvider(
            config.HOSTAWAY_ACCOUNT_ID, config.HOSTAWAY_API_KEY, base_url=config.HOSTAWAY_API_URL
        ),
        expense_provider=DatabaseExpenseProvider(session_factory),
        tz=tz,
    )
    clock = lambda: datetime.now(tz)
    emitter = NotificationEmitter(SqlNotificationStore(session_factory), bot, config.ADMIN_IDS, clock=clock)
    engine = ScheduleEngine(
        schedule_store=SqlScheduleStore(session_factory),
        listing_store=listing_store,
        group_store=SqlListingGroupStore(session_factory),
        generator=generator,
        emitter=emitter,
        clock=clock,
        tz=tz,
    )

    # Start Scheduler
    scheduler = asyncio.create_task(scheduler_loop(engine, config.POLL_INTERVAL_SECONDS))

    if bot is None:
        logging.info("No BOT_TOKEN, running scheduler only")
        await scheduler
        return

    dp = Dispatcher(schedule_engine=engine, emitter=emitter, statement_store=statement_store)
    dp.message.middleware(GlobalErrorMiddleware())
    dp.callback_query.middleware(GlobalErrorMiddleware())
    dp.include_router(admin.router)

    logging.info("Starting bot...")
    try:
        await dp.start_polling(bot)
    finally:
        scheduler.cancel()

if __name__ == "__main__":
    try:
        if sys.platform == "win32":
            asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        logging.info("Bot stopped.")
