import html
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from aiogram import Bot

from payout_bot.database.models import NotificationStatus, TagNotification, TagSchedule
from payout_bot.database.stores import NotificationStore
from payout_bot.services.period_service import Period
from payout_bot.utils.ui import UIEmojis, UIKeyboards

logger = logging.getLogger(__name__)


@dataclass
class FiringResult:
    """Summary of one scheduled (or manual) run for a tag"""
    tag: str
    period: Period
    started_at: datetime
    manual: bool = False
    groups_generated: int = 0
    groups_skipped: int = 0
    groups_failed: int = 0
    listings_generated: int = 0
    listings_skipped: int = 0
    listings_failed: int = 0
    listing_count: int = 0
    failures: List[str] = field(default_factory=list)
    flagged: List[str] = field(default_factory=list)
    notification_id: Optional[int] = None

    @property
    def generated(self) -> int:
        return self.groups_generated + self.listings_generated

    @property
    def skipped(self) -> int:
        return self.groups_skipped + self.listings_skipped

    @property
    def failed(self) -> int:
        return self.groups_failed + self.listings_failed

    @property
    def has_failures(self) -> bool:
        return self.failed > 0


def compose_message(summary: FiringResult) -> str:
    kind = "Manual run" if summary.manual else "Reminder"
    lines = [
        f'{kind}: statements for "{summary.tag}" ({summary.listing_count} listings), '
        f"period {summary.period}",
        f"Groups: {summary.groups_generated} generated, {summary.groups_skipped} skipped, "
        f"{summary.groups_failed} failed",
        f"Listings: {summary.listings_generated} generated, {summary.listings_skipped} skipped, "
        f"{summary.listings_failed} failed",
    ]
    if summary.flagged:
        lines.append("Flagged: " + "; ".join(summary.flagged))
    if summary.failures:
        lines.append("Failed: " + "; ".join(summary.failures))
    return "\n".join(lines)


class NotificationEmitter:
    def __init__(
        self,
        store: NotificationStore,
        bot: Optional[Bot] = None,
        admin_ids: Sequence[int] = (),
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.store = store
        self.bot = bot
        self.admin_ids = list(admin_ids)
        self.clock = clock or datetime.now

    async def emit(self, schedule: Optional[TagSchedule], summary: FiringResult) -> TagNotification:
        """Persist the run summary as an unread notification, then push it to admins."""
        message = compose_message(summary)
        notification = await self.store.create({
            "tag_name": summary.tag,
            "schedule_id": schedule.id if schedule else None,
            "message": message,
            "status": NotificationStatus.unread.value,
            "listing_count": summary.listing_count,
            "scheduled_for": summary.started_at,
        })
        logger.info(f"Notification {notification.id} recorded for tag {summary.tag}")

        await self.notify_admins(notification.id, summary, message)
        return notification

    async def notify_admins(self, notification_id: int, summary: FiringResult, message: str):
        """Best effort; the notification row is already saved."""
        if not self.bot or not self.admin_ids:
            return

        emoji = UIEmojis.WARNING if summary.has_failures else UIEmojis.BELL
        text = f"{emoji} <b>{html.escape(summary.tag)}</b>\n{html.escape(message)}"
        for admin_id in self.admin_ids:
            try:
                await self.bot.send_message(
                    admin_id, text, parse_mode="HTML",
                    reply_markup=UIKeyboards.notification_actions(notification_id)
                )
            except Exception as e:
                logging.warning(f"Failed to notify admin {admin_id}: {e}")

    async def list_notifications(self, status: Optional[str] = None, limit: int = 20) -> List[TagNotification]:
        if status:
            status = NotificationStatus(status).value
        return await self.store.list(status, limit)

    async def unread_count(self) -> int:
        return await self.store.count(NotificationStatus.unread.value)

    async def mark_read(self, notification_id: int) -> Optional[TagNotification]:
        return await self.store.update_status(notification_id, NotificationStatus.read.value, self.clock())

    async def mark_actioned(self, notification_id: int) -> Optional[TagNotification]:
        return await self.store.update_status(notification_id, NotificationStatus.actioned.value, self.clock())

    async def dismiss(self, notification_id: int) -> Optional[TagNotification]:
        return await self.store.update_status(notification_id, NotificationStatus.dismissed.value, self.clock())
