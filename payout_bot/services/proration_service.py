from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from payout_bot.services.period_service import DEFAULT_TIMEZONE
from payout_bot.services.providers.base import Reservation

# Reservation fields that scale with the nights stayed
PRORATED_FIELDS = (
    "base_rate",
    "cleaning_and_other_fees",
    "platform_fees",
    "client_revenue",
    "luxury_lodging_fee",
    "client_tax_responsibility",
    "client_payout",
    "gross_amount",
)


@dataclass(frozen=True)
class Proration:
    factor: float
    nights_in_period: int
    total_nights: int


def _midday(day: date, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, time(12, 0), tzinfo=tz)


def nights_between(start: date, end: date, tz: Optional[ZoneInfo] = None) -> int:
    """Nights from start to end, anchored at local midday so DST shifts cannot change the count."""
    tz = tz or DEFAULT_TIMEZONE
    seconds = (_midday(end, tz) - _midday(start, tz)).total_seconds()
    return round(seconds / 86400)


def calculate_proration(
    check_in: date,
    check_out: date,
    period_start: date,
    period_end: date,
    tz: Optional[ZoneInfo] = None
) -> Proration:
    total_nights = max(0, nights_between(check_in, check_out, tz))

    # Period end is inclusive of its last night
    overlap_start = max(check_in, period_start)
    overlap_end = min(check_out, period_end + timedelta(days=1))
    nights_in_period = max(0, nights_between(overlap_start, overlap_end, tz))
    nights_in_period = min(nights_in_period, total_nights)

    factor = nights_in_period / max(1, total_nights)
    return Proration(factor=factor, nights_in_period=nights_in_period, total_nights=total_nights)


def prorate_reservation(
    reservation: Reservation,
    period_start: date,
    period_end: date,
    tz: Optional[ZoneInfo] = None
) -> Reservation:
    """Copy of the reservation with night-scaled amounts multiplied by the overlap factor."""
    proration = calculate_proration(
        reservation.check_in_date, reservation.check_out_date, period_start, period_end, tz
    )

    originals = {name: getattr(reservation, name) for name in PRORATED_FIELDS}
    scaled = {
        name: (value * proration.factor if value is not None else None)
        for name, value in originals.items()
    }

    note = None
    if proration.factor < 1:
        note = (
            f"Prorated: {proration.nights_in_period} of {proration.total_nights} nights "
            f"in period {period_start.isoformat()} to {period_end.isoformat()}"
        )

    return replace(
        reservation,
        **scaled,
        proration_factor=proration.factor,
        nights_in_period=proration.nights_in_period,
        total_nights=proration.total_nights,
        proration_note=note,
        original_amounts=originals,
    )
