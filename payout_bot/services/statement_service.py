import logging
from datetime import date
from typing import Dict, List, Optional

from payout_bot.database.models import CalculationType, ListingGroup
from payout_bot.database.stores import StatementStore, ListingStore
from payout_bot.services.duplicate_guard import DuplicateGuard, GenerationResult, StatementScope
from payout_bot.services.errors import DuplicateStatementError
from payout_bot.services.financial_service import (
    ListingSettings, calculate_statement_financials, check_send_guardrail
)
from payout_bot.services.providers.base import Expense, ExpenseProvider, Reservation, ReservationProvider

logger = logging.getLogger(__name__)


class StatementGenerator:
    """Builds and saves owner statements for a single listing or a listing group."""

    def __init__(
        self,
        statement_store: StatementStore,
        listing_store: ListingStore,
        reservation_provider: ReservationProvider,
        expense_provider: ExpenseProvider,
        guard: Optional[DuplicateGuard] = None,
        tz=None
    ):
        self.statement_store = statement_store
        self.listing_store = listing_store
        self.reservation_provider = reservation_provider
        self.expense_provider = expense_provider
        self.guard = guard or DuplicateGuard(statement_store)
        self.tz = tz

    async def generate_group_statement(
        self,
        group: ListingGroup,
        start: date,
        end: date,
        calculation_type: Optional[str] = None
    ) -> GenerationResult:
        """Combined statement for every member of the group; the group's own basis wins."""
        scope = StatementScope.for_group(group.id, group.listing_ids)
        if not scope.property_ids:
            raise ValueError(f"Group {group.id} ({group.name}) has no listings")

        basis = group.calculation_type or calculation_type or CalculationType.checkout.value
        return await self._generate(scope, start, end, basis, group_name=group.name)

    async def generate_individual_statement(
        self,
        listing_id: int,
        start: date,
        end: date,
        calculation_type: Optional[str] = None
    ) -> GenerationResult:
        scope = StatementScope.for_listing(listing_id)
        basis = calculation_type or CalculationType.checkout.value
        return await self._generate(scope, start, end, basis)

    async def _generate(
        self,
        scope: StatementScope,
        start: date,
        end: date,
        calculation_type: str,
        group_name: Optional[str] = None
    ) -> GenerationResult:
        calculation_type = CalculationType(calculation_type)

        duplicate = await self.guard.check(scope, start, end)
        if duplicate:
            return duplicate

        listings = await self.listing_store.get_with_settings(scope.property_ids)
        if not listings:
            raise LookupError(f"No listings found for {scope.key}")
        settings = [ListingSettings.from_listing(listing) for listing in listings]
        property_ids = [s.listing_id for s in settings]

        reservations = await self._collect_reservations(property_ids, start, end, calculation_type)
        expenses = await self._collect_expenses(property_ids, start, end)

        financials = calculate_statement_financials(
            reservations, expenses, settings, property_ids, start, end, calculation_type, self.tz
        )
        guardrail = check_send_guardrail(financials.total_revenue, financials.owner_payout)

        if scope.is_group:
            property_name = group_name
        else:
            property_name = settings[0].name

        values = {
            "scope_key": scope.key,
            "property_id": scope.property_id,
            "property_ids": property_ids,
            "property_name": property_name,
            "group_id": scope.group_id,
            "group_name": group_name,
            "is_combined_statement": scope.is_group,
            "week_start_date": start,
            "week_end_date": end,
            "calculation_type": calculation_type.value,
            "total_revenue": financials.total_revenue,
            "total_expenses": financials.total_expenses,
            "total_upsells": financials.total_upsells,
            "pm_commission": financials.pm_commission,
            "pm_percentage": financials.pm_percentage,
            "total_cleaning_fee": financials.total_cleaning_fee,
            "owner_payout": financials.owner_payout,
            "status": guardrail.status.value,
            "listing_settings_snapshot": {str(s.listing_id): s.to_snapshot() for s in settings},
            "reservations": [
                dict(res.to_json(), grossPayout=financials.reservation_payouts.get(res.id))
                for res in financials.reservations
            ],
            "expenses": [exp.to_json() for exp in financials.expenses],
            "ll_cover_expenses": [exp.to_json() for exp in financials.ll_cover_expenses],
            "cleaning_mismatch_warning": (
                financials.cleaning_mismatch.to_json() if financials.cleaning_mismatch else None
            ),
        }

        try:
            statement = await self.statement_store.create(values)
        except DuplicateStatementError as e:
            return await self.guard.resolve_conflict(scope, start, end, e)

        warnings = []
        if not guardrail.can_send:
            warnings.append(guardrail.reason)
            logger.warning(f"Statement {statement.id} for {scope.key} flagged: {guardrail.reason}")
        if financials.cleaning_mismatch:
            warnings.append(f"CLEANING_MISMATCH: {financials.cleaning_mismatch.message}")
            logger.warning(f"Statement {statement.id} for {scope.key}: {financials.cleaning_mismatch.message}")

        logger.info(
            f"Generated statement {statement.id} for {scope.key} {start}..{end} "
            f"(payout {financials.owner_payout:.2f}, status {guardrail.status.value})"
        )
        return GenerationResult(
            scope=scope,
            start=start,
            end=end,
            statement_id=statement.id,
            status=guardrail.status.value,
            owner_payout=financials.owner_payout,
            warnings=warnings,
        )

    async def _collect_reservations(
        self,
        property_ids: List[int],
        start: date,
        end: date,
        calculation_type: CalculationType
    ) -> List[Reservation]:
        reservations = []
        for property_id in property_ids:
            if calculation_type == CalculationType.calendar:
                batch = await self.reservation_provider.get_overlapping_reservations(start, end, property_id)
            else:
                batch = await self.reservation_provider.get_reservations(
                    start, end, property_id, calculation_type.value
                )
            reservations.extend(batch)
        return reservations

    async def _collect_expenses(self, property_ids: List[int], start: date, end: date) -> List[Expense]:
        # Expenses without a listing come back once per listing
        seen: Dict[int, Expense] = {}
        expenses = []
        for property_id in property_ids:
            for exp in await self.expense_provider.get_expenses(start, end, property_id):
                if exp.id is not None:
                    if exp.id in seen:
                        continue
                    seen[exp.id] = exp
                expenses.append(exp)
        return expenses
