import pytest
from datetime import date, timedelta

from payout_bot.services.proration_service import calculate_proration, nights_between, prorate_reservation
from tests.conftest import make_reservation

PERIOD = (date(2024, 6, 3), date(2024, 6, 9))


def test_stay_fully_inside_period():
    p = calculate_proration(date(2024, 6, 4), date(2024, 6, 7), *PERIOD)
    assert p.factor == 1
    assert p.nights_in_period == 3
    assert p.total_nights == 3


def test_checkout_day_after_period_end_counts_all_nights():
    # Nights of the 8th and 9th both belong to the period
    p = calculate_proration(date(2024, 6, 8), date(2024, 6, 10), *PERIOD)
    assert p.factor == 1
    assert p.nights_in_period == 2


def test_stay_crossing_period_end():
    p = calculate_proration(date(2024, 6, 7), date(2024, 6, 12), *PERIOD)
    assert p.total_nights == 5
    assert p.nights_in_period == 3
    assert p.factor == pytest.approx(0.6)


def test_stay_crossing_period_start():
    p = calculate_proration(date(2024, 6, 1), date(2024, 6, 5), *PERIOD)
    assert p.nights_in_period == 2
    assert p.factor == pytest.approx(0.5)


def test_no_overlap_before_period():
    p = calculate_proration(date(2024, 5, 28), date(2024, 6, 1), *PERIOD)
    assert p.factor == 0
    assert p.nights_in_period == 0


def test_checkout_on_period_start_has_no_nights_in_period():
    p = calculate_proration(date(2024, 6, 1), date(2024, 6, 3), *PERIOD)
    assert p.factor == 0


def test_no_overlap_after_period():
    p = calculate_proration(date(2024, 6, 10), date(2024, 6, 12), *PERIOD)
    assert p.factor == 0


def test_nights_across_dst_changes():
    # Spring forward (March 10) and fall back (November 3)
    assert nights_between(date(2024, 3, 9), date(2024, 3, 11)) == 2
    assert nights_between(date(2024, 11, 2), date(2024, 11, 4)) == 2


def test_bounds_hold_for_many_stays():
    start, end = PERIOD
    base = date(2024, 5, 25)
    for offset in range(0, 25):
        for length in range(1, 12):
            check_in = base + timedelta(days=offset)
            p = calculate_proration(check_in, check_in + timedelta(days=length), start, end)
            assert 0 <= p.factor <= 1
            assert p.nights_in_period <= p.total_nights


def test_prorate_reservation_scales_amounts_and_keeps_originals():
    res = make_reservation(
        check_in=date(2024, 6, 7),
        check_out=date(2024, 6, 12),
        gross=1000.0,
        has_detailed_finance=True,
        client_revenue=1000.0,
        base_rate=800.0,
        client_tax_responsibility=100.0,
        cleaning_fee=120.0,
    )

    prorated = prorate_reservation(res, *PERIOD)

    assert prorated.client_revenue == pytest.approx(600.0)
    assert prorated.base_rate == pytest.approx(480.0)
    assert prorated.client_tax_responsibility == pytest.approx(60.0)
    assert prorated.gross_amount == pytest.approx(600.0)
    # Cleaning is charged once per stay, not per night
    assert prorated.cleaning_fee == 120.0
    assert prorated.original_amounts["client_revenue"] == 1000.0
    assert prorated.nights_in_period == 3
    assert prorated.total_nights == 5
    assert "3 of 5 nights" in prorated.proration_note
    # Source reservation untouched
    assert res.client_revenue == 1000.0
    assert res.proration_factor is None


def test_prorate_reservation_inside_period_has_no_note():
    prorated = prorate_reservation(make_reservation(), *PERIOD)
    assert prorated.proration_factor == 1
    assert prorated.proration_note is None
    assert prorated.gross_amount == 1000.0
