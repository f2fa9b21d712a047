from datetime import date, datetime
from typing import Dict, List, Optional, Set
from zoneinfo import ZoneInfo

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from payout_bot.database.core import Base
from payout_bot.services.providers.base import Expense, ExpenseProvider, Reservation, ReservationProvider

TZ = ZoneInfo("America/New_York")


def make_reservation(
    res_id="R1",
    property_id=101,
    check_in=date(2024, 6, 4),
    check_out=date(2024, 6, 7),
    gross=1000.0,
    status="confirmed",
    source="VRBO",
    **kwargs
) -> Reservation:
    return Reservation(
        id=res_id,
        property_id=property_id,
        check_in_date=check_in,
        check_out_date=check_out,
        status=status,
        source=source,
        gross_amount=gross,
        **kwargs
    )


class FakeReservationProvider(ReservationProvider):
    def __init__(self, reservations: Optional[List[Reservation]] = None, failing: Optional[Set[int]] = None):
        self.reservations = reservations or []
        self.failing = failing or set()
        self.calls = []

    async def get_reservations(self, start_date, end_date, property_id, calculation_type):
        self.calls.append(("checkout", property_id, start_date, end_date))
        if property_id in self.failing:
            raise RuntimeError(f"provider down for {property_id}")
        return [r for r in self.reservations if r.property_id == property_id]

    async def get_overlapping_reservations(self, start_date, end_date, property_id):
        self.calls.append(("overlap", property_id, start_date, end_date))
        if property_id in self.failing:
            raise RuntimeError(f"provider down for {property_id}")
        return [
            r for r in self.reservations
            if r.property_id == property_id and r.check_in_date <= end_date and r.check_out_date > start_date
        ]


class FakeExpenseProvider(ExpenseProvider):
    def __init__(self, expenses: Optional[List[Expense]] = None):
        self.expenses = expenses or []

    async def get_expenses(self, start_date, end_date, property_id):
        return [
            e for e in self.expenses
            if (e.property_id is None or e.property_id == property_id) and start_date <= e.date <= end_date
        ]


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeBot:
    def __init__(self, fail_for: Optional[Set[int]] = None):
        self.sent: Dict[int, List[str]] = {}
        self.fail_for = fail_for or set()

    async def send_message(self, chat_id, text, **kwargs):
        if chat_id in self.fail_for:
            raise RuntimeError("chat not found")
        self.sent.setdefault(chat_id, []).append(text)


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    # File-backed SQLite so every store session sees the same data
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/test.db")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def clock():
    # Monday 2024-06-10 09:00 Eastern
    return FakeClock(datetime(2024, 6, 10, 9, 0, tzinfo=TZ))
