"""
Statement financials.

Turns the reservations and expenses of one statement scope (a single listing
or a listing group) into revenue, expense, commission and owner payout totals.
Amounts are carried unrounded through every step and rounded half-up to
cents once, when StatementFinancials is built.
"""

import enum
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Sequence

from payout_bot.database.models import CalculationType, Listing, StatementStatus
from payout_bot.services.proration_service import prorate_reservation
from payout_bot.services.providers.base import Expense, Reservation

logger = logging.getLogger(__name__)

BILLABLE_STATUSES = {"new", "modified", "confirmed", "accepted", "completed"}
CLEANING_KEYWORD = "cleaning"
SUPPLIES_KEYWORD = "supplies"
LL_COVER_KEYWORDS = ("ll cover", "llcover")
UPSELL_KEYWORD = "upsell"


class ExpenseKind(str, enum.Enum):
    EXPENSE = "expense"
    UPSELL = "upsell"


@dataclass
class ListingSettings:
    """Billing settings of one listing, captured at generation time"""
    listing_id: int
    name: str = ""
    pm_fee_percentage: float = 15.0
    is_cohost_on_airbnb: bool = False
    airbnb_pass_through_tax: bool = False
    disregard_tax: bool = False
    cleaning_fee_pass_through: bool = False
    cleaning_fee: float = 0.0
    waive_commission: bool = False
    waive_commission_until: Optional[date] = None
    new_pm_fee_enabled: bool = False
    new_pm_fee_percentage: Optional[float] = None
    new_pm_fee_start_date: Optional[date] = None

    @classmethod
    def from_listing(cls, listing: Listing) -> "ListingSettings":
        return cls(
            listing_id=listing.id,
            name=listing.display_name,
            pm_fee_percentage=float(listing.pm_fee_percentage if listing.pm_fee_percentage is not None else 15),
            is_cohost_on_airbnb=bool(listing.is_cohost_on_airbnb),
            airbnb_pass_through_tax=bool(listing.airbnb_pass_through_tax),
            disregard_tax=bool(listing.disregard_tax),
            cleaning_fee_pass_through=bool(listing.cleaning_fee_pass_through),
            cleaning_fee=float(listing.cleaning_fee or 0),
            waive_commission=bool(listing.waive_commission),
            waive_commission_until=listing.waive_commission_until,
            new_pm_fee_enabled=bool(listing.new_pm_fee_enabled),
            new_pm_fee_percentage=(
                float(listing.new_pm_fee_percentage) if listing.new_pm_fee_percentage is not None else None
            ),
            new_pm_fee_start_date=listing.new_pm_fee_start_date,
        )

    def to_snapshot(self) -> dict:
        return {
            "name": self.name,
            "pmFeePercentage": self.pm_fee_percentage,
            "isCohostOnAirbnb": self.is_cohost_on_airbnb,
            "airbnbPassThroughTax": self.airbnb_pass_through_tax,
            "disregardTax": self.disregard_tax,
            "cleaningFeePassThrough": self.cleaning_fee_pass_through,
            "cleaningFee": self.cleaning_fee,
            "waiveCommission": self.waive_commission,
            "waiveCommissionUntil": (
                self.waive_commission_until.isoformat() if self.waive_commission_until else None
            ),
            "newPmFeeEnabled": self.new_pm_fee_enabled,
            "newPmFeePercentage": self.new_pm_fee_percentage,
            "newPmFeeStartDate": (
                self.new_pm_fee_start_date.isoformat() if self.new_pm_fee_start_date else None
            ),
        }


@dataclass(frozen=True)
class CleaningMismatch:
    """Uploaded cleaning lines do not line up with pass-through stays"""
    reservation_count: int
    cleaning_expense_count: int

    @property
    def difference(self) -> int:
        return self.reservation_count - self.cleaning_expense_count

    @property
    def message(self) -> str:
        return (
            f"Cleaning expense count ({self.cleaning_expense_count}) does not match "
            f"reservation count ({self.reservation_count})"
        )

    def to_json(self) -> dict:
        return {
            "type": "cleaning_mismatch",
            "message": self.message,
            "reservationCount": self.reservation_count,
            "cleaningExpenseCount": self.cleaning_expense_count,
            "difference": self.difference,
        }


@dataclass
class StatementFinancials:
    total_revenue: float
    total_expenses: float
    total_upsells: float
    pm_commission: float
    pm_percentage: float
    total_cleaning_fee: float
    owner_payout: float
    reservations: List[Reservation] = field(default_factory=list)
    expenses: List[Expense] = field(default_factory=list)
    reservation_payouts: Dict[str, float] = field(default_factory=dict)
    ll_cover_expenses: List[Expense] = field(default_factory=list)
    cleaning_mismatch: Optional[CleaningMismatch] = None


@dataclass(frozen=True)
class GuardrailResult:
    can_send: bool
    status: StatementStatus
    reason: Optional[str] = None


def round_money(value) -> float:
    """Round half-up to cents."""
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


# --- Classification ---

def classify_expense(expense: Expense) -> ExpenseKind:
    if expense.amount > 0:
        return ExpenseKind.UPSELL
    if (expense.type or "").strip().lower() == UPSELL_KEYWORD:
        return ExpenseKind.UPSELL
    if (expense.category or "").strip().lower() == UPSELL_KEYWORD:
        return ExpenseKind.UPSELL
    return ExpenseKind.EXPENSE


def _expense_text(expense: Expense) -> str:
    return " ".join([expense.category or "", expense.type or "", expense.description or ""]).lower()


def is_cleaning_expense(expense: Expense) -> bool:
    return CLEANING_KEYWORD in _expense_text(expense)


def is_cleaning_or_supplies_expense(expense: Expense) -> bool:
    text = _expense_text(expense)
    return CLEANING_KEYWORD in text or SUPPLIES_KEYWORD in text


def is_ll_cover_expense(expense: Expense) -> bool:
    """LL Cover charges are reported on their own, outside the statement totals."""
    fields = [expense.description or "", expense.vendor or "", expense.category or ""]
    return any(keyword in value.lower() for value in fields for keyword in LL_COVER_KEYWORDS)


def check_cleaning_mismatch(
    reservations: Sequence[Reservation],
    expenses: Iterable[Expense],
    pass_through_ids: Iterable[int]
) -> Optional[CleaningMismatch]:
    """
    Compare uploaded cleaning lines with stays on pass-through listings.
    Each such stay is expected to come with one uploaded cleaning expense.
    """
    pass_through_ids = set(pass_through_ids)
    if not pass_through_ids:
        return None

    reservation_count = sum(1 for res in reservations if res.property_id in pass_through_ids)
    cleaning_count = sum(
        1 for exp in expenses
        if exp.property_id in pass_through_ids and not exp.is_synthetic and is_cleaning_expense(exp)
    )
    if reservation_count and reservation_count != cleaning_count:
        return CleaningMismatch(reservation_count, cleaning_count)
    return None


def is_commission_waived(settings: ListingSettings, period_end: date) -> bool:
    """Waiver holds through the whole of its last day."""
    if not settings.waive_commission:
        return False
    if settings.waive_commission_until is None:
        return True
    return period_end <= settings.waive_commission_until


def effective_pm_fee(settings: ListingSettings, reservation: Reservation) -> float:
    """New PM fee applies to reservations created on or after its start date."""
    if (
        settings.new_pm_fee_enabled
        and settings.new_pm_fee_percentage is not None
        and settings.new_pm_fee_start_date is not None
        and reservation.created_at is not None
        and reservation.created_at.date() >= settings.new_pm_fee_start_date
    ):
        return settings.new_pm_fee_percentage
    return settings.pm_fee_percentage


def is_airbnb_cohost(reservation: Reservation, settings: ListingSettings) -> bool:
    return settings.is_cohost_on_airbnb and reservation.is_airbnb


def cleaning_pass_through_amount(reservation: Reservation, settings: ListingSettings) -> float:
    if not settings.cleaning_fee_pass_through:
        return 0.0
    fee = reservation.cleaning_fee if reservation.cleaning_fee is not None else settings.cleaning_fee
    return abs(float(fee or 0))


def calculate_reservation_payout(
    reservation: Reservation,
    settings: ListingSettings,
    waiver_active: bool,
    charge_cleaning: bool = True
) -> float:
    """Gross owner payout for a single reservation, unrounded."""
    client_revenue = reservation.revenue
    luxury_fee = 0.0 if waiver_active else client_revenue * effective_pm_fee(settings, reservation) / 100

    tax_responsibility = 0.0
    if reservation.has_detailed_finance and reservation.client_tax_responsibility is not None:
        tax_responsibility = float(reservation.client_tax_responsibility)

    cleaning = cleaning_pass_through_amount(reservation, settings) if charge_cleaning else 0.0

    if is_airbnb_cohost(reservation, settings):
        # Airbnb already paid the owner; only commission and pass-through costs are billed
        return -luxury_fee - cleaning

    add_tax = not settings.disregard_tax and (not reservation.is_airbnb or settings.airbnb_pass_through_tax)
    if add_tax:
        return client_revenue - luxury_fee + tax_responsibility - cleaning

    return client_revenue - luxury_fee - cleaning


# --- Filters ---

def filter_reservations(
    reservations: Iterable[Reservation],
    property_ids: Sequence[int],
    start: date,
    end: date,
    calculation_type: CalculationType
) -> List[Reservation]:
    scope = set(property_ids)
    result = []
    for res in reservations:
        if res.property_id not in scope:
            continue
        if (res.status or "").lower() not in BILLABLE_STATUSES:
            continue
        if calculation_type == CalculationType.checkout:
            if not (start <= res.check_out_date <= end):
                continue
        else:
            # Stay must overlap at least one night of the period
            if not (res.check_in_date <= end and res.check_out_date > start):
                continue
        result.append(res)
    return result


def filter_expenses(
    expenses: Iterable[Expense],
    property_ids: Sequence[int],
    start: date,
    end: date
) -> List[Expense]:
    scope = set(property_ids)
    return [
        exp for exp in expenses
        if (exp.property_id is None or exp.property_id in scope) and start <= exp.date <= end
    ]


# --- Aggregation ---

def calculate_statement_financials(
    reservations: Iterable[Reservation],
    expenses: Iterable[Expense],
    listings: Sequence[ListingSettings],
    property_ids: Sequence[int],
    start: date,
    end: date,
    calculation_type=CalculationType.checkout,
    tz=None
) -> StatementFinancials:
    calculation_type = CalculationType(calculation_type)
    settings_by_id = {s.listing_id: s for s in listings}
    property_ids = [pid for pid in property_ids if pid in settings_by_id]

    included = filter_reservations(reservations, property_ids, start, end, calculation_type)
    if calculation_type == CalculationType.calendar:
        included = [
            res if res.proration_factor is not None else prorate_reservation(res, start, end, tz)
            for res in included
        ]

    total_revenue = 0.0
    pm_commission = 0.0
    gross_payout = 0.0
    reservation_payouts = {}
    cleaning_lines = []

    for res in included:
        settings = settings_by_id[res.property_id]
        waiver = is_commission_waived(settings, end)
        cohost = is_airbnb_cohost(res, settings)

        # 1. Revenue
        revenue = 0.0 if cohost else res.revenue
        total_revenue += revenue

        # 4. Commission
        if not waiver:
            pm_commission += revenue * effective_pm_fee(settings, res) / 100

        # Under calendar basis cleaning is billed once, in the period holding the checkout
        charge_cleaning = calculation_type == CalculationType.checkout or start <= res.check_out_date <= end

        # 5. Per-reservation gross payout
        payout = calculate_reservation_payout(res, settings, waiver, charge_cleaning)
        reservation_payouts[res.id] = payout
        gross_payout += payout

        # 2. Synthetic cleaning lines, already deducted inside the gross payout
        cleaning = cleaning_pass_through_amount(res, settings) if charge_cleaning else 0.0
        if cleaning > 0:
            cleaning_lines.append(Expense(
                property_id=res.property_id,
                date=res.check_out_date,
                amount=-cleaning,
                category="Cleaning",
                type="cleaning",
                description=f"Cleaning fee pass-through for {res.guest_name or 'reservation'} ({res.id})",
                is_synthetic=True,
            ))

    # 2-3. Expenses and upsells
    pass_through_ids = {s.listing_id for s in listings if s.cleaning_fee_pass_through} & set(property_ids)
    total_expenses = 0.0
    total_upsells = 0.0
    kept_expenses = []
    ll_cover_expenses = []
    in_window = filter_expenses(expenses, property_ids, start, end)

    for exp in in_window:
        if is_ll_cover_expense(exp):
            ll_cover_expenses.append(exp)
            continue

        # Lines without a listing cannot be matched to a pass-through setting
        if exp.property_id in pass_through_ids and is_cleaning_or_supplies_expense(exp):
            logger.debug(f"Excluding cleaning expense {exp.id} under pass-through")
            continue

        kept_expenses.append(exp)
        if classify_expense(exp) == ExpenseKind.UPSELL:
            # Signed: a negative upsell is a reversal
            total_upsells += exp.amount
        else:
            total_expenses += abs(exp.amount)

    cleaning_mismatch = check_cleaning_mismatch(included, in_window, pass_through_ids)

    # 6. Owner payout
    owner_payout = gross_payout + total_upsells - total_expenses
    total_cleaning_fee = sum(abs(line.amount) for line in cleaning_lines)

    if total_revenue:
        pm_percentage = pm_commission / total_revenue * 100
    elif listings:
        pm_percentage = listings[0].pm_fee_percentage
    else:
        pm_percentage = 0.0

    return StatementFinancials(
        total_revenue=round_money(total_revenue),
        total_expenses=round_money(total_expenses),
        total_upsells=round_money(total_upsells),
        pm_commission=round_money(pm_commission),
        pm_percentage=round_money(pm_percentage),
        total_cleaning_fee=round_money(total_cleaning_fee),
        owner_payout=round_money(owner_payout),
        reservations=included,
        expenses=kept_expenses + cleaning_lines,
        reservation_payouts={key: round_money(value) for key, value in reservation_payouts.items()},
        ll_cover_expenses=ll_cover_expenses,
        cleaning_mismatch=cleaning_mismatch,
    )


def check_send_guardrail(total_revenue: float, owner_payout: float) -> GuardrailResult:
    """Statements with no activity or a negative balance must not be sent automatically."""
    if round_money(total_revenue) == 0 and round_money(owner_payout) == 0:
        return GuardrailResult(False, StatementStatus.flagged_zero_activity, "ZERO_ACTIVITY")
    if round_money(owner_payout) < 0:
        return GuardrailResult(False, StatementStatus.flagged_negative_balance, "NEGATIVE_BALANCE")
    return GuardrailResult(True, StatementStatus.draft)
