import pytest
from datetime import date, datetime

from payout_bot.services.providers.hostaway import HostawayReservationProvider, map_status, parse_finance_report
from tests.conftest import make_reservation

COLUMNS = [
    {"name": "id"}, {"name": "listingMapId"}, {"name": "arrivalDate"}, {"name": "departureDate"},
    {"name": "status"}, {"name": "channelName"}, {"name": "guestName"}, {"name": "ClientRevenue"},
    {"name": "ClientTaxResponsibility"}, {"name": "ClientPayout"}, {"name": "cleaningFee"},
    {"name": "reservationDate"},
]


def test_parse_finance_report_rows():
    result = {
        "columns": COLUMNS,
        "rows": [
            [5501, 101, "2024-06-04", "2024-06-07", "confirmed", "airbnbOfficial", "Jane Doe",
             "1000.00", "85.5", 900, "120", "2024-05-01 10:15:00"],
            [5502, 101, None, "2024-06-07", "confirmed", "VRBO", "", 0, 0, 0, None, None],
        ],
    }

    [res] = parse_finance_report(result)

    assert res.id == "5501"
    assert res.property_id == 101
    assert res.check_in_date == date(2024, 6, 4)
    assert res.check_out_date == date(2024, 6, 7)
    assert res.is_airbnb
    assert res.has_detailed_finance
    assert res.gross_amount == 1000
    assert res.client_tax_responsibility == 85.5
    assert res.client_payout == 900
    assert res.cleaning_fee == 120
    assert res.created_at == datetime(2024, 5, 1, 10, 15)


def test_missing_cleaning_column_leaves_fee_unset():
    columns = [c for c in COLUMNS if c["name"] != "cleaningFee"]
    row = [1, 101, "2024-06-04", "2024-06-07", "new", "Direct", "", 500, 0, 400, None]
    [res] = parse_finance_report({"columns": columns, "rows": [row]})
    assert res.cleaning_fee is None
    assert res.source == "Direct"


def test_status_mapping():
    assert map_status("cancelled_by_guest") == "cancelled"
    assert map_status("request") == "inquiry"
    assert map_status("somethingNew") == "unknown"
    assert map_status(None) == "unknown"


@pytest.mark.asyncio
async def test_overlapping_reservations_are_deduplicated(monkeypatch):
    provider = HostawayReservationProvider("acc", "key")
    long_stay = make_reservation("LONG", check_in=date(2024, 5, 20), check_out=date(2024, 6, 20))
    arriving = make_reservation("ARR", check_in=date(2024, 6, 8), check_out=date(2024, 6, 12))
    left_before = make_reservation("OLD", check_in=date(2024, 5, 1), check_out=date(2024, 6, 3))
    batches = {
        "arrivalDate": [[arriving], [long_stay, left_before]],
        "departureDate": [[arriving]],
    }
    calls = []

    async def fake_fetch(property_id, from_date, to_date, date_type):
        calls.append(date_type)
        return batches[date_type].pop(0)

    monkeypatch.setattr(provider, "_fetch_report", fake_fetch)

    result = await provider.get_overlapping_reservations(date(2024, 6, 3), date(2024, 6, 9), 101)

    assert sorted(r.id for r in result) == ["ARR", "LONG"]
    assert calls == ["arrivalDate", "departureDate", "arrivalDate"]
