import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from payout_bot.database.models import Statement
from payout_bot.database.stores import StatementStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatementScope:
    """A single listing, or a group billed on one combined statement"""
    property_ids: tuple
    property_id: Optional[int] = None
    group_id: Optional[int] = None

    @classmethod
    def for_listing(cls, listing_id: int) -> "StatementScope":
        return cls(property_ids=(listing_id,), property_id=listing_id)

    @classmethod
    def for_group(cls, group_id: int, member_ids) -> "StatementScope":
        return cls(property_ids=tuple(member_ids), group_id=group_id)

    @property
    def is_group(self) -> bool:
        return self.group_id is not None

    @property
    def key(self) -> str:
        if self.is_group:
            return f"group:{self.group_id}"
        return f"listing:{self.property_id}"


@dataclass
class GenerationResult:
    """Outcome of generating one statement"""
    scope: StatementScope
    start: date
    end: date
    statement_id: Optional[int] = None
    skipped: bool = False
    reason: Optional[str] = None
    status: Optional[str] = None
    owner_payout: Optional[float] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def generated(self) -> bool:
        return self.statement_id is not None and not self.skipped


class DuplicateGuard:
    def __init__(self, store: StatementStore):
        self.store = store

    async def find_existing(self, scope: StatementScope, start: date, end: date) -> Optional[Statement]:
        return await self.store.find(scope.key, start, end)

    async def check(self, scope: StatementScope, start: date, end: date) -> Optional[GenerationResult]:
        """Skip result if a statement already covers this scope and period, else None."""
        existing = await self.find_existing(scope, start, end)
        if existing is None:
            return None

        logger.info(f"Statement {existing.id} already exists for {scope.key} {start}..{end}, skipping")
        return GenerationResult(
            scope=scope,
            start=start,
            end=end,
            statement_id=existing.id,
            skipped=True,
            reason="duplicate",
            status=existing.status,
        )

    async def resolve_conflict(
        self,
        scope: StatementScope,
        start: date,
        end: date,
        error: Exception
    ) -> GenerationResult:
        """A concurrent writer won the insert race; report its statement instead."""
        logger.warning(f"Uniqueness conflict saving {scope.key} {start}..{end}: {error}")
        result = await self.check(scope, start, end)
        if result is None:
            raise error
        return result
