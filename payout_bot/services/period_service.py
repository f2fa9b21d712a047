import enum
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from payout_bot.database.models import FrequencyType
from payout_bot.services.errors import UnknownFrequencyTagError

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = ZoneInfo("America/New_York")


class FrequencyTag(str, enum.Enum):
    WEEKLY = "WEEKLY"
    BI_WEEKLY_A = "BI-WEEKLY A"
    BI_WEEKLY_B = "BI-WEEKLY B"
    MONTHLY = "MONTHLY"

    @property
    def is_biweekly(self) -> bool:
        return self in (FrequencyTag.BI_WEEKLY_A, FrequencyTag.BI_WEEKLY_B)

    @classmethod
    def parse(cls, tag: str) -> "FrequencyTag":
        """Case- and whitespace-insensitive; 'BIWEEKLY A' is accepted too."""
        normalized = " ".join((tag or "").upper().split())
        normalized = normalized.replace("BIWEEKLY", "BI-WEEKLY")
        for member in cls:
            if member.value == normalized:
                return member
        raise UnknownFrequencyTagError(f"Unknown frequency tag: {tag!r}")

    @classmethod
    def for_schedule(cls, tag_name: str, frequency_type: str) -> "FrequencyTag":
        try:
            return cls.parse(tag_name)
        except UnknownFrequencyTagError:
            pass

        mapping = {
            FrequencyType.weekly.value: cls.WEEKLY,
            FrequencyType.biweekly.value: cls.BI_WEEKLY_A,
            FrequencyType.monthly.value: cls.MONTHLY,
        }
        return mapping[FrequencyType(frequency_type).value]


@dataclass(frozen=True)
class Period:
    """Inclusive date window"""
    start: date
    end: date

    def __str__(self) -> str:
        return f"{self.start.isoformat()} to {self.end.isoformat()}"


def local_today(now: datetime, tz: Optional[ZoneInfo] = None) -> date:
    """Calendar date of `now` in the statement timezone."""
    tz = tz or DEFAULT_TIMEZONE
    if now.tzinfo is None:
        return now.date()
    return now.astimezone(tz).date()


def last_completed_sunday(today: date) -> date:
    # weekday(): Monday=0 .. Sunday=6
    days_back = (today.weekday() + 1) % 7 or 7
    return today - timedelta(days=days_back)


def resolve_period(tag: FrequencyTag, now: datetime, tz: Optional[ZoneInfo] = None) -> Period:
    today = local_today(now, tz)

    if tag == FrequencyTag.WEEKLY:
        end = last_completed_sunday(today)
        return Period(end - timedelta(days=6), end)

    if tag.is_biweekly:
        end = last_completed_sunday(today)
        return Period(end - timedelta(days=13), end)

    # MONTHLY
    end = today.replace(day=1) - timedelta(days=1)
    return Period(end.replace(day=1), end)


def resolve_period_for_tag(tag: str, now: datetime, tz: Optional[ZoneInfo] = None) -> Period:
    """Like resolve_period, but an unrecognised tag falls back to MONTHLY."""
    try:
        parsed = FrequencyTag.parse(tag)
    except UnknownFrequencyTagError:
        logger.warning(f"Unrecognised frequency tag {tag!r}, using MONTHLY period")
        parsed = FrequencyTag.MONTHLY
    return resolve_period(parsed, now, tz)
