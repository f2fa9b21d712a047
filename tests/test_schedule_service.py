import pytest
from datetime import date, datetime, timedelta, timezone

from payout_bot.database.models import Listing, ListingGroup, TagSchedule
from payout_bot.database.stores import (
    SqlListingGroupStore, SqlListingStore, SqlNotificationStore, SqlScheduleStore, SqlStatementStore
)
from payout_bot.schemas.validation import ScheduleModel
from payout_bot.services.errors import ScheduleNotFoundError
from payout_bot.services.notification_service import NotificationEmitter
from payout_bot.services.schedule_service import ScheduleEngine, matches_frequency, sunday_weekday
from payout_bot.services.statement_service import StatementGenerator
from tests.conftest import TZ, FakeClock, FakeExpenseProvider, FakeReservationProvider, make_reservation

MONDAY = 1


def schedule(**kwargs) -> TagSchedule:
    values = dict(
        tag_name="WEEKLY", frequency_type="weekly", day_of_week=MONDAY, time_of_day="09:00",
        is_enabled=True, skip_dates=[]
    )
    values.update(kwargs)
    return TagSchedule(**values)


def bare_engine() -> ScheduleEngine:
    return ScheduleEngine(None, None, None, None, None, tz=TZ)


# --- Frequency rules ---

def test_sunday_based_weekday():
    assert sunday_weekday(date(2024, 6, 9)) == 0  # Sunday
    assert sunday_weekday(date(2024, 6, 10)) == 1  # Monday
    assert sunday_weekday(date(2024, 6, 15)) == 6  # Saturday


def test_weekly_matches_day_of_week():
    s = schedule()
    assert matches_frequency(s, date(2024, 6, 10))
    assert not matches_frequency(s, date(2024, 6, 11))


def test_biweekly_parity_from_anchor():
    s = schedule(frequency_type="biweekly", biweekly_anchor_date=date(2026, 1, 19))
    assert matches_frequency(s, date(2026, 1, 19))
    assert not matches_frequency(s, date(2026, 1, 26))
    assert matches_frequency(s, date(2026, 2, 2))


def test_biweekly_parity_is_stable_one_year_apart():
    s = schedule(frequency_type="biweekly", biweekly_anchor_date=date(2026, 1, 19))
    day = date(2026, 3, 2)
    while day < date(2026, 12, 31):
        # 364 days is exactly 52 weeks
        assert matches_frequency(s, day) == matches_frequency(s, day + timedelta(days=364))
        day += timedelta(days=7)


def test_biweekly_alternates_across_year_boundary():
    # ISO week parity would fire on both of these (weeks 53 and 1)
    s = schedule(frequency_type="biweekly", biweekly_anchor_date=date(2026, 1, 19))
    assert matches_frequency(s, date(2026, 12, 28)) != matches_frequency(s, date(2027, 1, 4))


def test_biweekly_before_anchor_keeps_parity():
    s = schedule(frequency_type="biweekly", biweekly_anchor_date=date(2026, 1, 19))
    assert matches_frequency(s, date(2026, 1, 5))
    assert not matches_frequency(s, date(2026, 1, 12))


def test_monthly_matches_exact_day_only():
    s = schedule(frequency_type="monthly", day_of_week=None, day_of_month=31)
    assert not matches_frequency(s, date(2024, 2, 29))
    assert not matches_frequency(s, date(2024, 2, 28))
    assert not matches_frequency(s, date(2024, 4, 30))
    assert matches_frequency(s, date(2024, 5, 31))
    assert not matches_frequency(s, date(2024, 5, 30))


# --- Due check ---

def test_due_only_at_exact_minute():
    engine = bare_engine()
    s = schedule()
    assert engine.is_due(s, datetime(2024, 6, 10, 9, 0, 30, tzinfo=TZ))
    assert not engine.is_due(s, datetime(2024, 6, 10, 9, 1, tzinfo=TZ))
    assert not engine.is_due(s, datetime(2024, 6, 10, 10, 0, tzinfo=TZ))


def test_due_evaluates_in_local_time():
    # 13:00 UTC is 09:00 EDT
    assert bare_engine().is_due(schedule(), datetime(2024, 6, 10, 13, 0, tzinfo=timezone.utc))


def test_not_due_on_skip_date():
    s = schedule(skip_dates=["2024-06-10"])
    assert not bare_engine().is_due(s, datetime(2024, 6, 10, 9, 0, tzinfo=TZ))


def test_not_due_when_disabled():
    assert not bare_engine().is_due(schedule(is_enabled=False), datetime(2024, 6, 10, 9, 0, tzinfo=TZ))


def test_not_due_twice_in_same_minute():
    engine = bare_engine()
    s = schedule(last_notified_at=datetime(2024, 6, 10, 9, 0, 2, tzinfo=TZ))
    assert not engine.is_due(s, datetime(2024, 6, 10, 9, 0, 40, tzinfo=TZ))

    # Naive values come back from SQLite in local time
    s = schedule(last_notified_at=datetime(2024, 6, 10, 9, 0, 2))
    assert not engine.is_due(s, datetime(2024, 6, 10, 9, 0, 40, tzinfo=TZ))

    s = schedule(last_notified_at=datetime(2024, 6, 3, 9, 0, tzinfo=TZ))
    assert engine.is_due(s, datetime(2024, 6, 10, 9, 0, tzinfo=TZ))


# --- Next run ---

def test_next_run_weekly():
    engine = bare_engine()
    nxt = engine.compute_next_run(schedule(time_of_day="07:30"), datetime(2024, 6, 10, 9, 0, tzinfo=TZ))
    assert nxt == datetime(2024, 6, 17, 7, 30, tzinfo=TZ)


def test_next_run_starts_tomorrow_even_before_todays_slot():
    engine = bare_engine()
    nxt = engine.compute_next_run(schedule(), datetime(2024, 6, 10, 6, 0, tzinfo=TZ))
    assert nxt.date() == date(2024, 6, 17)


def test_next_run_monthly_skips_short_months():
    engine = bare_engine()
    s = schedule(frequency_type="monthly", day_of_week=None, day_of_month=31)
    assert engine.compute_next_run(s, datetime(2024, 1, 31, 9, 0, tzinfo=TZ)) == datetime(2024, 3, 31, 9, 0, tzinfo=TZ)


def test_monthly_schedule_not_due_on_last_day_of_shorter_month():
    s = schedule(frequency_type="monthly", day_of_week=None, day_of_month=31)
    assert not bare_engine().is_due(s, datetime(2024, 4, 30, 9, 0, tzinfo=TZ))


def test_next_run_biweekly():
    engine = bare_engine()
    s = schedule(frequency_type="biweekly", biweekly_anchor_date=date(2026, 1, 19))
    assert engine.compute_next_run(s, datetime(2026, 1, 19, 9, 0, tzinfo=TZ)).date() == date(2026, 2, 2)


def test_next_run_gives_up_after_a_year():
    s = schedule(frequency_type="monthly", day_of_week=None, day_of_month=None)
    assert bare_engine().compute_next_run(s, datetime(2024, 1, 1, tzinfo=TZ)) is None


# --- Firing against the database ---

class FailingNotificationStore(SqlNotificationStore):
    async def create(self, values):
        raise RuntimeError("notifications table locked")


async def seed(session_factory, listings=(101,), schedule_values=None):
    async with session_factory() as session:
        values = dict(tag_name="WEEKLY", frequency_type="weekly", day_of_week=MONDAY, time_of_day="09:00")
        values.update(schedule_values or {})
        session.add(TagSchedule(**values))
        for listing_id in listings:
            session.add(Listing(id=listing_id, name=f"Listing {listing_id}", tags=["WEEKLY"]))
        await session.commit()


def build_engine(session_factory, clock, reservations=(), failing=None, notification_store=None, bot=None):
    generator = StatementGenerator(
        statement_store=SqlStatementStore(session_factory),
        listing_store=SqlListingStore(session_factory),
        reservation_provider=FakeReservationProvider(list(reservations), failing),
        expense_provider=FakeExpenseProvider(),
        tz=TZ,
    )
    emitter = NotificationEmitter(
        notification_store or SqlNotificationStore(session_factory), bot, [1], clock=clock
    )
    return ScheduleEngine(
        schedule_store=SqlScheduleStore(session_factory),
        listing_store=SqlListingStore(session_factory),
        group_store=SqlListingGroupStore(session_factory),
        generator=generator,
        emitter=emitter,
        clock=clock,
        tz=TZ,
    )


@pytest.mark.asyncio
async def test_tick_fires_due_schedule_and_advances(session_factory, clock):
    await seed(session_factory)
    engine = build_engine(session_factory, clock, [make_reservation()])

    [result] = await engine.tick()

    assert result.listings_generated == 1
    assert result.listing_count == 1
    assert str(result.period) == "2024-06-03 to 2024-06-09"
    assert result.notification_id is not None

    stored = await SqlScheduleStore(session_factory).get_by_tag("WEEKLY")
    assert engine.to_local(stored.last_notified_at) == clock.now
    assert engine.to_local(stored.next_scheduled_at) == datetime(2024, 6, 17, 9, 0, tzinfo=TZ)

    [notification] = await SqlNotificationStore(session_factory).list()
    assert notification.status == "unread"
    assert '"WEEKLY"' in notification.message
    assert "1 generated" in notification.message


@pytest.mark.asyncio
async def test_second_tick_in_same_minute_does_nothing(session_factory, clock):
    await seed(session_factory)
    engine = build_engine(session_factory, clock, [make_reservation()])

    await engine.tick()
    clock.now = clock.now + timedelta(seconds=30)

    assert await engine.tick() == []
    assert await SqlNotificationStore(session_factory).count() == 1


@pytest.mark.asyncio
async def test_utc_tick_is_stored_as_local_time(session_factory, clock):
    await seed(session_factory)
    engine = build_engine(session_factory, clock, [make_reservation()])
    utc_now = datetime(2024, 6, 10, 13, 0, tzinfo=timezone.utc)

    [result] = await engine.tick(utc_now)

    stored = await SqlScheduleStore(session_factory).get_by_tag("WEEKLY")
    assert engine.to_local(stored.last_notified_at) == datetime(2024, 6, 10, 9, 0, tzinfo=TZ)
    # Same minute again, now read back from the database
    assert await engine.tick(utc_now + timedelta(seconds=20)) == []


@pytest.mark.asyncio
async def test_tick_outside_slot_does_nothing(session_factory):
    await seed(session_factory)
    engine = build_engine(session_factory, FakeClock(datetime(2024, 6, 10, 9, 1, tzinfo=TZ)))
    assert await engine.tick() == []


@pytest.mark.asyncio
async def test_one_failing_listing_does_not_block_others(session_factory, clock):
    await seed(session_factory, listings=(101, 102))
    engine = build_engine(
        session_factory, clock,
        [make_reservation("A", property_id=101), make_reservation("B", property_id=102)],
        failing={101},
    )

    [result] = await engine.tick()

    assert result.listings_failed == 1
    assert result.listings_generated == 1
    [notification] = await SqlNotificationStore(session_factory).list()
    assert "Failed: listing Listing 101 (101)" in notification.message

    stored = await SqlScheduleStore(session_factory).get_by_tag("WEEKLY")
    assert stored.last_notified_at is not None


@pytest.mark.asyncio
async def test_notification_failure_still_advances_schedule(session_factory, clock):
    await seed(session_factory)
    engine = build_engine(
        session_factory, clock, [make_reservation()],
        notification_store=FailingNotificationStore(session_factory),
    )

    [result] = await engine.tick()

    assert result.notification_id is None
    stored = await SqlScheduleStore(session_factory).get_by_tag("WEEKLY")
    assert engine.to_local(stored.last_notified_at) == clock.now


@pytest.mark.asyncio
async def test_grouped_listings_are_billed_through_their_group(session_factory, clock):
    async with session_factory() as session:
        session.add(TagSchedule(tag_name="WEEKLY", frequency_type="weekly", day_of_week=MONDAY, time_of_day="09:00"))
        group = ListingGroup(name="Smith Portfolio", tags=["weekly"])
        session.add(group)
        await session.flush()
        session.add(Listing(id=101, name="Beach House", tags=["WEEKLY"], group_id=group.id))
        session.add(Listing(id=102, name="Lake Cabin", tags=["WEEKLY"], group_id=group.id))
        session.add(Listing(id=103, name="City Loft", tags=["WEEKLY"]))
        session.add(Listing(id=104, name="Retired", tags=["WEEKLY"], is_active=False))
        await session.commit()

    engine = build_engine(session_factory, clock, [make_reservation(property_id=101)])
    [result] = await engine.tick()

    assert result.groups_generated == 1
    assert result.listings_generated == 1
    assert result.listing_count == 3
    # City Loft had no stays
    assert any("ZERO_ACTIVITY" in flag for flag in result.flagged)


@pytest.mark.asyncio
async def test_trigger_manual_bypasses_due_check_without_advancing(session_factory):
    await seed(session_factory)
    # Tuesday afternoon, nowhere near the slot
    clock = FakeClock(datetime(2024, 6, 11, 15, 20, tzinfo=TZ))
    engine = build_engine(session_factory, clock, [make_reservation()])

    first = await engine.trigger_manual("weekly")
    second = await engine.trigger_manual("WEEKLY")

    assert first.manual
    assert first.listings_generated == 1
    assert second.listings_skipped == 1
    stored = await SqlScheduleStore(session_factory).get_by_tag("WEEKLY")
    assert stored.last_notified_at is None


@pytest.mark.asyncio
async def test_trigger_manual_unknown_tag(session_factory, clock):
    engine = build_engine(session_factory, clock)
    with pytest.raises(ScheduleNotFoundError):
        await engine.trigger_manual("QUARTERLY")


@pytest.mark.asyncio
async def test_get_status_reports_last_result_and_next_run(session_factory, clock):
    await seed(session_factory)
    engine = build_engine(session_factory, clock, [make_reservation()])
    await engine.tick()

    [status] = await engine.get_status()

    assert status.tag_name == "WEEKLY"
    assert status.next_run == datetime(2024, 6, 17, 9, 0, tzinfo=TZ)
    assert status.last_result.listings_generated == 1


@pytest.mark.asyncio
async def test_schedule_crud_and_skip_dates(session_factory, clock):
    engine = build_engine(session_factory, clock)

    saved = await engine.upsert_schedule(
        "BI-WEEKLY A", ScheduleModel(frequency_type="biweekly", day_of_week=MONDAY, time_of_day="8:15")
    )
    assert saved.time_of_day == "08:15"
    assert saved.biweekly_anchor_date == date(2026, 1, 19)
    assert saved.next_scheduled_at is not None

    await engine.add_skip_date("bi-weekly a", date(2024, 7, 1))
    await engine.add_skip_date("BI-WEEKLY A", date(2024, 6, 17))
    updated = await engine.remove_skip_date("BI-WEEKLY A", date(2024, 7, 1))
    assert updated.skip_dates == ["2024-06-17"]

    assert [s.tag_name for s in await engine.list_schedules()] == ["BI-WEEKLY A"]
    assert await engine.delete_schedule("BI-WEEKLY A")
    with pytest.raises(ScheduleNotFoundError):
        await engine.get_schedule("BI-WEEKLY A")
