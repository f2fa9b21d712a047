"""
Hostaway reservation provider

Reservations are read from the consolidated finance report, which carries
the per-reservation finance breakdown (client revenue, tax responsibility,
platform fees, payout).

API Documentation: https://api.hostaway.com/documentation
"""

from typing import Dict, List, Optional
import aiohttp
import logging
from datetime import date, datetime, timedelta

from payout_bot.services.errors import ReservationProviderError
from payout_bot.services.providers.base import Reservation, ReservationProvider

logger = logging.getLogger(__name__)

# API Configuration
HOSTAWAY_API_BASE = "https://api.hostaway.com/v1"
DEFAULT_TIMEOUT = 30  # seconds
TOKEN_REFRESH_BUFFER = timedelta(minutes=5)
OVERLAP_LOOKBACK_DAYS = 365

STATUS_MAP = {
    "new": "new",
    "modified": "modified",
    "confirmed": "confirmed",
    "accepted": "accepted",
    "completed": "completed",
    "cancelled": "cancelled",
    "cancelled_by_guest": "cancelled",
    "cancelled_by_host": "cancelled",
    # Never billable
    "inquiry": "inquiry",
    "expired": "expired",
    "declined": "declined",
    "request": "inquiry",
    "inquiryNotPossible": "inquiry",
}


def map_status(hostaway_status: Optional[str]) -> str:
    status = STATUS_MAP.get(hostaway_status or "")
    if status is None:
        logger.warning(f"Unknown Hostaway status {hostaway_status!r}, mapping to 'unknown'")
        return "unknown"
    return status


def _to_float(value) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _to_date(value) -> Optional[date]:
    if not value:
        return None
    return date.fromisoformat(str(value)[:10])


def _to_datetime(value) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace(" ", "T"))
    except ValueError:
        return None


def parse_finance_report(result: Dict) -> List[Reservation]:
    """Turn the column/row report payload into reservations."""
    columns = {col.get("name"): index for index, col in enumerate(result.get("columns", []))}
    reservations = []

    def cell(row, name):
        index = columns.get(name)
        if index is None or index >= len(row):
            return None
        return row[index]

    for row in result.get("rows", []):
        check_in = _to_date(cell(row, "arrivalDate"))
        check_out = _to_date(cell(row, "departureDate"))
        if check_in is None or check_out is None:
            logger.warning(f"Skipping report row without stay dates: id={cell(row, 'id')}")
            continue

        client_revenue = _to_float(cell(row, "ClientRevenue"))
        client_payout = _to_float(cell(row, "ClientPayout"))
        cleaning_fee = cell(row, "cleaningFee")

        reservations.append(Reservation(
            id=str(cell(row, "id")),
            property_id=int(cell(row, "listingMapId")),
            check_in_date=check_in,
            check_out_date=check_out,
            status=map_status(cell(row, "status")),
            source=cell(row, "channelName") or "Unknown",
            guest_name=cell(row, "guestName") or "",
            created_at=_to_datetime(cell(row, "reservationDate")),
            # Legacy report fields are only a fallback
            gross_amount=client_revenue or _to_float(cell(row, "rentalRevenue")),
            cleaning_fee=_to_float(cleaning_fee) if cleaning_fee is not None else None,
            has_detailed_finance=True,
            base_rate=_to_float(cell(row, "baseRate")),
            cleaning_and_other_fees=_to_float(cell(row, "CleaningAndOtherFees")),
            platform_fees=_to_float(cell(row, "PlatformFees")),
            client_revenue=client_revenue,
            luxury_lodging_fee=_to_float(cell(row, "LuxuryLodgingFee")),
            client_tax_responsibility=_to_float(cell(row, "ClientTaxResponsibility")),
            client_payout=client_payout or _to_float(cell(row, "ownerPayout")),
        ))

    return reservations


class HostawayReservationProvider(ReservationProvider):
    def __init__(
        self,
        account_id: str,
        api_key: str,
        base_url: str = HOSTAWAY_API_BASE,
        timeout: int = DEFAULT_TIMEOUT
    ):
        self.account_id = account_id
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._token: Optional[str] = None
        self._token_expires_at: Optional[datetime] = None

    async def _get_token(self, session: aiohttp.ClientSession) -> str:
        now = datetime.now()
        if self._token and self._token_expires_at and now < self._token_expires_at:
            return self._token

        form = {
            "grant_type": "client_credentials",
            "client_id": self.account_id,
            "client_secret": self.api_key,
            "scope": "general",
        }
        async with session.post(
            f"{self.base_url}/accessTokens",
            data=form,
            timeout=aiohttp.ClientTimeout(total=self.timeout)
        ) as response:
            if response.status != 200:
                error_text = await response.text()
                raise ReservationProviderError(
                    f"Hostaway auth returned status {response.status}: {error_text}"
                )
            data = await response.json()

        self._token = data["access_token"]
        expires_in = int(data.get("expires_in", 3600))
        self._token_expires_at = now + timedelta(seconds=expires_in) - TOKEN_REFRESH_BUFFER
        logger.info("Hostaway access token refreshed")
        return self._token

    async def _fetch_report(
        self,
        property_id: int,
        from_date: date,
        to_date: date,
        date_type: str
    ) -> List[Reservation]:
        payload = {
            "listingMapIds": [property_id],
            "fromDate": from_date.isoformat(),
            "toDate": to_date.isoformat(),
            "dateType": date_type,
            "format": "json",
        }

        try:
            async with aiohttp.ClientSession() as session:
                token = await self._get_token(session)
                async with session.post(
                    f"{self.base_url}/finance/report/consolidated",
                    json=payload,
                    headers={"Authorization": f"Bearer {token}"},
                    timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        raise ReservationProviderError(
                            f"Finance report returned status {response.status}: {error_text}"
                        )
                    data = await response.json()
        except aiohttp.ClientError as e:
            raise ReservationProviderError(f"Network error fetching finance report: {str(e)}") from e

        result = data.get("result") if isinstance(data, dict) else None
        if not result:
            logger.info(f"No finance report rows for listing {property_id} ({from_date}..{to_date})")
            return []

        reservations = parse_finance_report(result)
        logger.info(f"Got {len(reservations)} reservations for listing {property_id} ({date_type})")
        return reservations

    async def get_reservations(
        self,
        start_date: date,
        end_date: date,
        property_id: int,
        calculation_type: str = "checkout"
    ) -> List[Reservation]:
        date_type = "arrivalDate" if calculation_type == "calendar" else "departureDate"
        return await self._fetch_report(property_id, start_date, end_date, date_type)

    async def get_overlapping_reservations(
        self,
        start_date: date,
        end_date: date,
        property_id: int
    ) -> List[Reservation]:
        """
        Union of arrivals in the period, departures in the period, and long stays
        that arrived up to a year before and are still running.
        """
        batches = [
            await self._fetch_report(property_id, start_date, end_date, "arrivalDate"),
            await self._fetch_report(property_id, start_date, end_date, "departureDate"),
            await self._fetch_report(
                property_id, start_date - timedelta(days=OVERLAP_LOOKBACK_DAYS), start_date, "arrivalDate"
            ),
        ]

        unique: Dict[str, Reservation] = {}
        for batch in batches:
            for res in batch:
                if res.check_in_date <= end_date and res.check_out_date > start_date:
                    unique.setdefault(res.id, res)

        return list(unique.values())
