from datetime import date
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payout_bot.database.models import UploadedExpense
from payout_bot.services.providers.base import Expense, ExpenseProvider


class DatabaseExpenseProvider(ExpenseProvider):
    """Expenses and upsells uploaded by staff; rows without a listing apply to every listing."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_expenses(self, start_date: date, end_date: date, property_id: int) -> List[Expense]:
        async with self.session_factory() as session:
            stmt = (
                select(UploadedExpense)
                .where(
                    UploadedExpense.expense_date >= start_date,
                    UploadedExpense.expense_date <= end_date,
                    (UploadedExpense.property_id == property_id) | (UploadedExpense.property_id.is_(None))
                )
                .order_by(UploadedExpense.expense_date, UploadedExpense.id)
            )
            result = await session.execute(stmt)
            rows = result.scalars().all()

        return [
            Expense(
                id=row.id,
                property_id=row.property_id,
                date=row.expense_date,
                amount=float(row.amount or 0),
                category=row.category or "",
                type=row.type or "",
                description=row.description or "",
                vendor=row.vendor or "",
            )
            for row in rows
        ]
