"""
Persistence interfaces used by the statement and schedule services,
with their SQLAlchemy implementations.
"""

import logging
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import List, Optional, Sequence

from sqlalchemy import select, func, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from payout_bot.database.models import (
    Listing, ListingGroup, Statement, StatementStatus,
    TagSchedule, TagNotification, NotificationStatus
)
from payout_bot.services.errors import DuplicateStatementError, StatementSaveError

logger = logging.getLogger(__name__)

MAX_SAVE_ATTEMPTS = 3


def _normalize_tag(tag: str) -> str:
    return (tag or "").strip().upper()


def _has_tag(tags, tag: str) -> bool:
    wanted = _normalize_tag(tag)
    return any(_normalize_tag(t) == wanted for t in (tags or []))


# --- Interfaces ---

class StatementStore(ABC):
    @abstractmethod
    async def find(self, scope_key: str, start: date, end: date) -> Optional[Statement]:
        pass

    @abstractmethod
    async def create(self, values: dict) -> Statement:
        """Insert a statement. Raises DuplicateStatementError on a period conflict."""
        pass

    @abstractmethod
    async def list_ready_to_send(self) -> List[Statement]:
        pass


class ListingStore(ABC):
    @abstractmethod
    async def get_with_settings(self, ids: Sequence[int]) -> List[Listing]:
        pass

    @abstractmethod
    async def get_by_tag(self, tag: str) -> List[Listing]:
        pass


class ListingGroupStore(ABC):
    @abstractmethod
    async def get_groups_by_tag(self, tag: str) -> List[ListingGroup]:
        pass


class NotificationStore(ABC):
    @abstractmethod
    async def create(self, values: dict) -> TagNotification:
        pass

    @abstractmethod
    async def list(self, status: Optional[str] = None, limit: int = 20) -> List[TagNotification]:
        pass

    @abstractmethod
    async def count(self, status: Optional[str] = None) -> int:
        pass

    @abstractmethod
    async def update_status(self, notification_id: int, status: str, now: datetime) -> Optional[TagNotification]:
        pass


class ScheduleStore(ABC):
    @abstractmethod
    async def list(self, enabled_only: bool = False) -> List[TagSchedule]:
        pass

    @abstractmethod
    async def get_by_tag(self, tag: str) -> Optional[TagSchedule]:
        pass

    @abstractmethod
    async def upsert(self, tag: str, values: dict) -> TagSchedule:
        pass

    @abstractmethod
    async def update(self, schedule_id: int, values: dict) -> Optional[TagSchedule]:
        pass

    @abstractmethod
    async def delete(self, tag: str) -> bool:
        pass


# --- SQLAlchemy implementations ---

class SqlStatementStore(StatementStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def find(self, scope_key: str, start: date, end: date) -> Optional[Statement]:
        async with self.session_factory() as session:
            stmt = select(Statement).where(
                Statement.scope_key == scope_key,
                Statement.week_start_date == start,
                Statement.week_end_date == end
            )
            result = await session.execute(stmt)
            return result.scalars().first()

    async def create(self, values: dict) -> Statement:
        values = dict(values)
        last_error = None

        for attempt in range(1, MAX_SAVE_ATTEMPTS + 1):
            async with self.session_factory() as session:
                statement = Statement(**values)
                session.add(statement)
                try:
                    await session.commit()
                    return statement
                except IntegrityError as e:
                    await session.rollback()
                    last_error = e
                    message = str(e.orig) if e.orig is not None else str(e)

                    if "uq_statement_scope_period" in message or "scope_key" in message:
                        raise DuplicateStatementError(
                            f"Statement already exists for {values.get('scope_key')} "
                            f"{values.get('week_start_date')}..{values.get('week_end_date')}"
                        ) from e

                    if "statements_pkey" in message or "statements.id" in message:
                        logger.warning(
                            f"Statement id collision (attempt {attempt}/{MAX_SAVE_ATTEMPTS}), resyncing sequence"
                        )
                        await self._resync_id_sequence(session)
                        values.pop("id", None)
                        continue

                    raise StatementSaveError(f"Failed to save statement: {message}") from e

        raise StatementSaveError(
            f"Failed to save statement after {MAX_SAVE_ATTEMPTS} attempts"
        ) from last_error

    async def _resync_id_sequence(self, session: AsyncSession):
        if session.bind.dialect.name != "postgresql":
            return
        await session.execute(text(
            "SELECT setval(pg_get_serial_sequence('statements', 'id'), "
            "COALESCE((SELECT MAX(id) FROM statements), 0) + 1, false)"
        ))
        await session.commit()

    async def list_ready_to_send(self) -> List[Statement]:
        async with self.session_factory() as session:
            stmt = (
                select(Statement)
                .where(Statement.status == StatementStatus.draft.value)
                .order_by(Statement.week_end_date, Statement.id)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())


class SqlListingStore(ListingStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_with_settings(self, ids: Sequence[int]) -> List[Listing]:
        if not ids:
            return []
        async with self.session_factory() as session:
            stmt = select(Listing).where(Listing.id.in_(list(ids))).order_by(Listing.id)
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def get_by_tag(self, tag: str) -> List[Listing]:
        # Tags live in a JSON column; matching is done here to stay dialect-neutral
        async with self.session_factory() as session:
            result = await session.execute(select(Listing).order_by(Listing.id))
            return [listing for listing in result.scalars().all() if _has_tag(listing.tags, tag)]

    async def update_settings(self, listing_id: int, values: dict) -> Optional[Listing]:
        async with self.session_factory() as session:
            listing = await session.get(Listing, listing_id)
            if not listing:
                return None
            for key, value in values.items():
                setattr(listing, key, value)
            await session.commit()
            return listing


class SqlListingGroupStore(ListingGroupStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_groups_by_tag(self, tag: str) -> List[ListingGroup]:
        async with self.session_factory() as session:
            stmt = (
                select(ListingGroup)
                .options(selectinload(ListingGroup.listings))
                .order_by(ListingGroup.id)
            )
            result = await session.execute(stmt)
            return [group for group in result.scalars().all() if _has_tag(group.tags, tag)]


class SqlNotificationStore(NotificationStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create(self, values: dict) -> TagNotification:
        async with self.session_factory() as session:
            notification = TagNotification(**values)
            session.add(notification)
            await session.commit()
            return notification

    async def list(self, status: Optional[str] = None, limit: int = 20) -> List[TagNotification]:
        async with self.session_factory() as session:
            stmt = select(TagNotification)
            if status:
                stmt = stmt.where(TagNotification.status == status)
            stmt = stmt.order_by(TagNotification.scheduled_for.desc(), TagNotification.id.desc()).limit(limit)
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def count(self, status: Optional[str] = None) -> int:
        async with self.session_factory() as session:
            stmt = select(func.count(TagNotification.id))
            if status:
                stmt = stmt.where(TagNotification.status == status)
            result = await session.execute(stmt)
            return result.scalar() or 0

    async def update_status(self, notification_id: int, status: str, now: datetime) -> Optional[TagNotification]:
        async with self.session_factory() as session:
            notification = await session.get(TagNotification, notification_id)
            if not notification:
                return None

            notification.status = status
            if status == NotificationStatus.read.value and notification.read_at is None:
                notification.read_at = now
            elif status == NotificationStatus.actioned.value:
                notification.actioned_at = now
                if notification.read_at is None:
                    notification.read_at = now

            await session.commit()
            return notification


class SqlScheduleStore(ScheduleStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def list(self, enabled_only: bool = False) -> List[TagSchedule]:
        async with self.session_factory() as session:
            stmt = select(TagSchedule).order_by(TagSchedule.tag_name)
            if enabled_only:
                stmt = stmt.where(TagSchedule.is_enabled == True)
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def get_by_tag(self, tag: str) -> Optional[TagSchedule]:
        async with self.session_factory() as session:
            stmt = select(TagSchedule).where(func.upper(TagSchedule.tag_name) == _normalize_tag(tag))
            result = await session.execute(stmt)
            return result.scalars().first()

    async def upsert(self, tag: str, values: dict) -> TagSchedule:
        async with self.session_factory() as session:
            stmt = select(TagSchedule).where(func.upper(TagSchedule.tag_name) == _normalize_tag(tag))
            result = await session.execute(stmt)
            schedule = result.scalars().first()

            if schedule is None:
                schedule = TagSchedule(tag_name=tag.strip())
                session.add(schedule)

            for key, value in values.items():
                setattr(schedule, key, value)

            await session.commit()
            return schedule

    async def update(self, schedule_id: int, values: dict) -> Optional[TagSchedule]:
        async with self.session_factory() as session:
            schedule = await session.get(TagSchedule, schedule_id)
            if not schedule:
                return None
            for key, value in values.items():
                setattr(schedule, key, value)
            await session.commit()
            return schedule

    async def delete(self, tag: str) -> bool:
        async with self.session_factory() as session:
            stmt = select(TagSchedule).where(func.upper(TagSchedule.tag_name) == _normalize_tag(tag))
            result = await session.execute(stmt)
            schedule = result.scalars().first()
            if not schedule:
                return False
            await session.delete(schedule)
            await session.commit()
            return True
