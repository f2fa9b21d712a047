"""
Tag schedule engine.

Each TagSchedule says when statements for one frequency tag are due. The
polling loop calls ScheduleEngine.tick once a minute; a schedule fires when
the local wall-clock minute equals its time of day, today is not a skip date,
it has not already fired in this minute, and the frequency rule matches today.

Firing generates one statement per tagged group and per tagged listing that is
not in a group, records a notification describing the outcome, and advances
last_notified_at / next_scheduled_at even when parts of the run failed.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Callable, Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo

from payout_bot.database.models import FrequencyType, TagSchedule, DEFAULT_BIWEEKLY_ANCHOR
from payout_bot.database.stores import ScheduleStore, ListingStore, ListingGroupStore
from payout_bot.schemas.validation import ScheduleModel
from payout_bot.services.duplicate_guard import GenerationResult
from payout_bot.services.errors import ScheduleNotFoundError
from payout_bot.services.notification_service import FiringResult, NotificationEmitter
from payout_bot.services.period_service import DEFAULT_TIMEZONE, FrequencyTag, resolve_period
from payout_bot.services.statement_service import StatementGenerator

logger = logging.getLogger(__name__)

MAX_LOOKAHEAD_DAYS = 365


@dataclass
class ScheduleStatus:
    tag_name: str
    frequency_type: str
    time_of_day: str
    is_enabled: bool
    last_notified_at: Optional[datetime]
    next_run: Optional[datetime]
    last_result: Optional[FiringResult]


def sunday_weekday(day: date) -> int:
    """0=Sunday ... 6=Saturday"""
    return (day.weekday() + 1) % 7


def parse_time_of_day(value: str) -> time:
    hour, minute = (value or "09:00").strip().split(":")
    return time(int(hour), int(minute))


def matches_frequency(schedule: TagSchedule, day: date) -> bool:
    """Frequency rule only; time of day and skip dates are checked by is_due."""
    frequency = FrequencyType(schedule.frequency_type)

    if frequency == FrequencyType.monthly:
        # Exact day only; a 31st schedule skips shorter months
        return schedule.day_of_month is not None and day.day == schedule.day_of_month

    if schedule.day_of_week is None or sunday_weekday(day) != schedule.day_of_week:
        return False

    if frequency == FrequencyType.biweekly:
        anchor = schedule.biweekly_anchor_date or DEFAULT_BIWEEKLY_ANCHOR
        weeks = (day - anchor).days // 7
        return weeks % 2 == 0

    return True


class ScheduleEngine:
    def __init__(
        self,
        schedule_store: ScheduleStore,
        listing_store: ListingStore,
        group_store: ListingGroupStore,
        generator: StatementGenerator,
        emitter: NotificationEmitter,
        clock: Optional[Callable[[], datetime]] = None,
        tz: Optional[ZoneInfo] = None
    ):
        self.schedule_store = schedule_store
        self.listing_store = listing_store
        self.group_store = group_store
        self.generator = generator
        self.emitter = emitter
        self.tz = tz or DEFAULT_TIMEZONE
        self.clock = clock or (lambda: datetime.now(self.tz))
        self.last_results: Dict[str, FiringResult] = {}

    def to_local(self, dt: Optional[datetime]) -> Optional[datetime]:
        if dt is None:
            return None
        # SQLite hands back naive datetimes; they were written in local time
        if dt.tzinfo is None:
            return dt.replace(tzinfo=self.tz)
        return dt.astimezone(self.tz)

    # --- Due-ness ---

    def is_due(self, schedule: TagSchedule, now: datetime) -> bool:
        if not schedule.is_enabled:
            return False

        local = self.to_local(now)
        slot = parse_time_of_day(schedule.time_of_day)
        if (local.hour, local.minute) != (slot.hour, slot.minute):
            return False

        today = local.date()
        if today.isoformat() in set(schedule.skip_dates or []):
            logger.info(f"Schedule {schedule.tag_name}: {today} is a skip date")
            return False

        last = self.to_local(schedule.last_notified_at)
        if last and last.date() == today and (last.hour, last.minute) == (local.hour, local.minute):
            return False

        return matches_frequency(schedule, today)

    def compute_next_run(self, schedule: TagSchedule, from_dt: Optional[datetime] = None) -> Optional[datetime]:
        local = self.to_local(from_dt or self.clock())
        slot = parse_time_of_day(schedule.time_of_day)

        day = local.date() + timedelta(days=1)
        for _ in range(MAX_LOOKAHEAD_DAYS):
            if matches_frequency(schedule, day):
                return datetime.combine(day, slot, tzinfo=self.tz)
            day += timedelta(days=1)

        logger.warning(f"Schedule {schedule.tag_name}: no run found within {MAX_LOOKAHEAD_DAYS} days")
        return None

    # --- Firing ---

    async def tick(self, now: Optional[datetime] = None) -> List[FiringResult]:
        now = now or self.clock()
        results = []

        schedules = await self.schedule_store.list(enabled_only=True)
        for schedule in schedules:
            try:
                if not self.is_due(schedule, now):
                    continue
            except Exception as e:
                logging.error(f"Error checking schedule {schedule.tag_name}: {e}")
                continue

            logger.info(f"Schedule {schedule.tag_name} is due, firing")
            results.append(await self.fire(schedule, now))

        return results

    async def fire(self, schedule: TagSchedule, now: datetime, manual: bool = False) -> FiringResult:
        tag = FrequencyTag.for_schedule(schedule.tag_name, schedule.frequency_type)
        period = resolve_period(tag, now, self.tz)
        summary = FiringResult(tag=schedule.tag_name, period=period, started_at=now, manual=manual)

        await self._generate_groups(schedule, summary)
        await self._generate_listings(schedule, summary)

        try:
            notification = await self.emitter.emit(schedule, summary)
            summary.notification_id = notification.id
        except Exception as e:
            logging.error(f"Failed to record notification for {schedule.tag_name}: {e}")

        if not manual:
            await self._advance(schedule, now)

        self.last_results[schedule.tag_name.upper()] = summary
        logger.info(
            f"Schedule {schedule.tag_name} finished: {summary.generated} generated, "
            f"{summary.skipped} skipped, {summary.failed} failed"
        )
        return summary

    async def _generate_groups(self, schedule: TagSchedule, summary: FiringResult):
        try:
            groups = await self.group_store.get_groups_by_tag(schedule.tag_name)
        except Exception as e:
            logging.error(f"Failed to load groups for {schedule.tag_name}: {e}")
            summary.groups_failed += 1
            summary.failures.append(f"group lookup: {e}")
            return

        for group in groups:
            label = f"group {group.name}"
            try:
                result = await self.generator.generate_group_statement(
                    group, summary.period.start, summary.period.end, schedule.calculation_type
                )
            except Exception as e:
                logging.error(f"Error generating statement for {label}: {e}")
                summary.groups_failed += 1
                summary.failures.append(f"{label}: {e}")
                continue

            if result.skipped:
                summary.groups_skipped += 1
            else:
                summary.groups_generated += 1
            self._record_flags(summary, label, result)

    async def _generate_listings(self, schedule: TagSchedule, summary: FiringResult):
        try:
            listings = await self.listing_store.get_by_tag(schedule.tag_name)
        except Exception as e:
            logging.error(f"Failed to load listings for {schedule.tag_name}: {e}")
            summary.listings_failed += 1
            summary.failures.append(f"listing lookup: {e}")
            return

        active = [listing for listing in listings if listing.is_active]
        summary.listing_count = len(active)

        for listing in active:
            # Grouped listings are billed on their group's statement
            if listing.group_id is not None:
                continue

            label = f"listing {listing.display_name} ({listing.id})"
            try:
                result = await self.generator.generate_individual_statement(
                    listing.id, summary.period.start, summary.period.end, schedule.calculation_type
                )
            except Exception as e:
                logging.error(f"Error generating statement for {label}: {e}")
                summary.listings_failed += 1
                summary.failures.append(f"{label}: {e}")
                continue

            if result.skipped:
                summary.listings_skipped += 1
            else:
                summary.listings_generated += 1
            self._record_flags(summary, label, result)

    @staticmethod
    def _record_flags(summary: FiringResult, label: str, result: GenerationResult):
        for warning in result.warnings:
            summary.flagged.append(f"{label}: {warning}")

    async def _advance(self, schedule: TagSchedule, now: datetime):
        values = {
            "last_notified_at": self.to_local(now),
            "next_scheduled_at": self.compute_next_run(schedule, now),
        }
        try:
            await self.schedule_store.update(schedule.id, values)
        except Exception as e:
            logging.error(f"Failed to advance schedule {schedule.tag_name}: {e}")
            return

        schedule.last_notified_at = values["last_notified_at"]
        schedule.next_scheduled_at = values["next_scheduled_at"]

    async def trigger_manual(self, tag: str, now: Optional[datetime] = None) -> FiringResult:
        """Run a tag now, ignoring its due rules; the schedule's timestamps are left alone."""
        schedule = await self.schedule_store.get_by_tag(tag)
        if schedule is None:
            raise ScheduleNotFoundError(f"No schedule for tag {tag!r}")
        return await self.fire(schedule, now or self.clock(), manual=True)

    async def get_status(self, now: Optional[datetime] = None) -> List[ScheduleStatus]:
        now = now or self.clock()
        schedules = await self.schedule_store.list(enabled_only=True)
        return [
            ScheduleStatus(
                tag_name=schedule.tag_name,
                frequency_type=schedule.frequency_type,
                time_of_day=schedule.time_of_day,
                is_enabled=schedule.is_enabled,
                last_notified_at=self.to_local(schedule.last_notified_at),
                next_run=self.compute_next_run(schedule, now),
                last_result=self.last_results.get(schedule.tag_name.upper()),
            )
            for schedule in schedules
        ]

    # --- Schedule management ---

    async def list_schedules(self) -> List[TagSchedule]:
        return await self.schedule_store.list()

    async def get_schedule(self, tag: str) -> TagSchedule:
        schedule = await self.schedule_store.get_by_tag(tag)
        if schedule is None:
            raise ScheduleNotFoundError(f"No schedule for tag {tag!r}")
        return schedule

    async def upsert_schedule(self, tag: str, model: ScheduleModel) -> TagSchedule:
        values = model.to_values()
        draft = TagSchedule(tag_name=tag, **values)
        values["next_scheduled_at"] = self.compute_next_run(draft) if model.is_enabled else None
        schedule = await self.schedule_store.upsert(tag, values)
        logger.info(f"Schedule {tag} saved ({model.frequency_type.value} at {model.time_of_day})")
        return schedule

    async def delete_schedule(self, tag: str) -> bool:
        return await self.schedule_store.delete(tag)

    async def set_skip_dates(self, tag: str, days: Iterable[date]) -> TagSchedule:
        schedule = await self.get_schedule(tag)
        skip_dates = sorted({d.isoformat() for d in days})
        updated = await self.schedule_store.update(schedule.id, {"skip_dates": skip_dates})
        return updated

    async def add_skip_date(self, tag: str, day: date) -> TagSchedule:
        schedule = await self.get_schedule(tag)
        days = {date.fromisoformat(d) for d in (schedule.skip_dates or [])}
        days.add(day)
        return await self.set_skip_dates(tag, days)

    async def remove_skip_date(self, tag: str, day: date) -> TagSchedule:
        schedule = await self.get_schedule(tag)
        days = {date.fromisoformat(d) for d in (schedule.skip_dates or [])}
        days.discard(day)
        return await self.set_skip_dates(tag, days)
