import asyncio

import pytest
from datetime import datetime

from payout_bot.cron import scheduler_loop, seconds_until_next_minute


def test_scheduler_waits_for_next_minute_boundary():
    assert seconds_until_next_minute(datetime(2024, 6, 10, 8, 59, 45)) == 15
    assert seconds_until_next_minute(datetime(2024, 6, 10, 9, 0, 0)) == 60


class CountingEngine:
    def __init__(self):
        self.ticks = 0

    def clock(self):
        return datetime(2024, 6, 10, 9, 0)

    async def tick(self):
        self.ticks += 1
        return []


@pytest.mark.asyncio
async def test_loop_ticks_and_stops_on_cancel():
    engine = CountingEngine()
    task = asyncio.create_task(scheduler_loop(engine, interval=0))

    while engine.ticks < 2:
        await asyncio.sleep(0)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
