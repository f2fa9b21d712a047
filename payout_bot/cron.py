import asyncio
import logging
from datetime import datetime, timedelta

from payout_bot.services.schedule_service import ScheduleEngine


def seconds_until_next_minute(now: datetime) -> float:
    next_minute = now.replace(second=0, microsecond=0) + timedelta(minutes=1)
    return max((next_minute - now).total_seconds(), 0.0)


async def scheduler_loop(engine: ScheduleEngine, interval: int = 60):
    """Tick the schedule engine at the start of every wall-clock minute."""
    logging.info("Scheduler started.")

    while True:
        try:
            now = engine.clock()
            # Polls stay aligned to minute boundaries; exact HH:MM matching depends on it
            wait_seconds = seconds_until_next_minute(now) if interval == 60 else interval
            await asyncio.sleep(wait_seconds)

            results = await engine.tick()
            if results:
                logging.info(f"Scheduler tick fired {len(results)} schedule(s)")

        except asyncio.CancelledError:
            logging.info("Scheduler stopped.")
            raise
        except Exception as e:
            logging.error(f"Error in scheduler loop: {e}")
            await asyncio.sleep(60)  # Prevent tight loop on error
