import html
import logging
from datetime import date
from typing import List, Optional, Tuple

from aiogram import Router, F
from aiogram.filters import Filter, Command, CommandObject
from aiogram.types import Message, CallbackQuery
from pydantic import ValidationError

from payout_bot.config import config
from payout_bot.database.stores import StatementStore
from payout_bot.schemas.validation import SkipDateModel
from payout_bot.services.errors import ScheduleNotFoundError
from payout_bot.services.notification_service import FiringResult, NotificationEmitter
from payout_bot.services.schedule_service import ScheduleEngine, ScheduleStatus
from payout_bot.utils.ui import UIEmojis, UIMessages, format_money, format_period, get_status_badge


class AdminFilter(Filter):
    async def __call__(self, event) -> bool:
        # Works for both Message and CallbackQuery
        if hasattr(event, 'from_user') and event.from_user:
            return event.from_user.id in config.ADMIN_IDS
        return False


router = Router()
router.message.filter(AdminFilter())
router.callback_query.filter(AdminFilter())


# --- Formatting ---

def format_firing(result: FiringResult) -> str:
    text = UIMessages.header(f"Run: {html.escape(result.tag)}", UIEmojis.CHART)
    text += UIMessages.field("Period", str(result.period), UIEmojis.CALENDAR)
    text += UIMessages.field(
        "Groups",
        f"{result.groups_generated} generated, {result.groups_skipped} skipped, {result.groups_failed} failed",
        UIEmojis.GROUP
    )
    text += UIMessages.field(
        "Listings",
        f"{result.listings_generated} generated, {result.listings_skipped} skipped, {result.listings_failed} failed",
        UIEmojis.HOME
    )
    if result.flagged:
        text += UIMessages.section("Flagged")
        text += "".join(f"• {html.escape(item)}\n" for item in result.flagged)
    if result.failures:
        text += UIMessages.section("Failed")
        text += "".join(f"• {html.escape(item)}\n" for item in result.failures)
    return text


def format_status(statuses: List[ScheduleStatus]) -> str:
    text = UIMessages.header("Schedule status", UIEmojis.CLOCK)
    if not statuses:
        return text + "No enabled schedules.\n"

    for status in statuses:
        text += UIMessages.section(html.escape(status.tag_name))
        text += UIMessages.field("Frequency", f"{status.frequency_type} at {status.time_of_day}")
        last = status.last_notified_at.strftime("%Y-%m-%d %H:%M") if status.last_notified_at else "never"
        text += UIMessages.field("Last run", last)
        nxt = status.next_run.strftime("%Y-%m-%d %H:%M") if status.next_run else "none within a year"
        text += UIMessages.field("Next run", nxt)
        if status.last_result:
            r = status.last_result
            text += UIMessages.field("Last result", f"{r.generated} generated, {r.skipped} skipped, {r.failed} failed")
    return text


def parse_tag_and_date(args: Optional[str]) -> Tuple[str, date]:
    """'BI-WEEKLY A 2026-07-04' -> ('BI-WEEKLY A', date(2026, 7, 4))"""
    if not args or " " not in args.strip():
        raise ValueError("Usage: TAG YYYY-MM-DD")
    tag, raw_date = args.strip().rsplit(" ", 1)
    return tag.strip(), SkipDateModel(day=raw_date).day


# --- Commands ---

@router.message(Command("start", "help"))
async def admin_help(message: Message):
    text = UIMessages.header("Owner payout statements", UIEmojis.DOCUMENT)
    text += (
        "/schedules - all tag schedules\n"
        "/status - enabled schedules, last and next runs\n"
        "/trigger TAG - generate statements for a tag now\n"
        "/ready - statements ready to send\n"
        "/notifications [status] - recent run notifications\n"
        "/read ID, /done ID, /dismiss ID - update a notification\n"
        "/skip TAG YYYY-MM-DD, /unskip TAG YYYY-MM-DD - manage skip dates\n"
    )
    await message.answer(text)


@router.message(Command("schedules"))
async def list_schedules(message: Message, schedule_engine: ScheduleEngine):
    schedules = await schedule_engine.list_schedules()
    text = UIMessages.header("Tag schedules", UIEmojis.CALENDAR)
    if not schedules:
        text += "No schedules configured.\n"
    for schedule in schedules:
        state = UIEmojis.SUCCESS if schedule.is_enabled else UIEmojis.PENDING
        text += f"{state} <b>{html.escape(schedule.tag_name)}</b>: {schedule.frequency_type} at {schedule.time_of_day}"
        if schedule.skip_dates:
            text += f" (skips: {', '.join(schedule.skip_dates)})"
        text += "\n"
    await message.answer(text)


@router.message(Command("status"))
async def schedule_status(message: Message, schedule_engine: ScheduleEngine):
    statuses = await schedule_engine.get_status()
    await message.answer(format_status(statuses))


@router.message(Command("trigger"))
async def trigger_tag(message: Message, command: CommandObject, schedule_engine: ScheduleEngine):
    if not command.args:
        await message.answer(UIMessages.error("Usage: /trigger TAG"))
        return

    tag = command.args.strip()
    await message.answer(f"{UIEmojis.PENDING} Generating statements for <b>{html.escape(tag)}</b>...")
    try:
        result = await schedule_engine.trigger_manual(tag)
    except ScheduleNotFoundError:
        await message.answer(UIMessages.error(f"No schedule for tag {html.escape(tag)}"))
        return

    logging.info(f"Admin {message.from_user.id} triggered tag {tag}")
    await message.answer(format_firing(result))


@router.message(Command("ready"))
async def ready_to_send(message: Message, statement_store: StatementStore):
    statements = await statement_store.list_ready_to_send()
    text = UIMessages.header("Ready to send", UIEmojis.MONEY)
    if not statements:
        text += "Nothing waiting.\n"
    for statement in statements[:30]:
        text += (
            f"#{statement.id} {html.escape(statement.property_name or statement.scope_key)}: "
            f"{format_period(statement.week_start_date, statement.week_end_date)}, "
            f"{format_money(statement.owner_payout)}\n"
        )
    await message.answer(text)


@router.message(Command("notifications"))
async def list_notifications(message: Message, command: CommandObject, emitter: NotificationEmitter):
    status = command.args.strip().lower() if command.args else None
    try:
        notifications = await emitter.list_notifications(status, limit=10)
    except ValueError:
        await message.answer(UIMessages.error("Status must be unread, read, actioned or dismissed"))
        return

    unread = await emitter.unread_count()
    text = UIMessages.header(f"Notifications ({unread} unread)", UIEmojis.BELL)
    if not notifications:
        text += "No notifications.\n"
    for n in notifications:
        text += f"{get_status_badge(n.status)} <b>#{n.id}</b> {html.escape(n.tag_name)}\n{html.escape(n.message)}\n\n"
    await message.answer(text)


async def _update_notification(message: Message, command: CommandObject, action, label: str):
    if not command.args or not command.args.strip().isdigit():
        await message.answer(UIMessages.error("Usage: /read ID"))
        return
    notification = await action(int(command.args.strip()))
    if notification is None:
        await message.answer(UIMessages.error("Notification not found"))
        return
    await message.answer(UIMessages.success(f"Notification #{notification.id} {label}"))


@router.message(Command("read"))
async def read_notification(message: Message, command: CommandObject, emitter: NotificationEmitter):
    await _update_notification(message, command, emitter.mark_read, "marked read")


@router.message(Command("done"))
async def action_notification(message: Message, command: CommandObject, emitter: NotificationEmitter):
    await _update_notification(message, command, emitter.mark_actioned, "marked actioned")


@router.message(Command("dismiss"))
async def dismiss_notification(message: Message, command: CommandObject, emitter: NotificationEmitter):
    await _update_notification(message, command, emitter.dismiss, "dismissed")


@router.callback_query(F.data.startswith("notif_read_"))
async def read_notification_callback(call: CallbackQuery, emitter: NotificationEmitter):
    notification_id = int(call.data.split("_")[-1])
    await emitter.mark_read(notification_id)
    await call.answer("Marked read")


@router.callback_query(F.data.startswith("notif_dismiss_"))
async def dismiss_notification_callback(call: CallbackQuery, emitter: NotificationEmitter):
    notification_id = int(call.data.split("_")[-1])
    await emitter.dismiss(notification_id)
    await call.answer("Dismissed")


# --- Skip dates ---

@router.message(Command("skip", "unskip"))
async def manage_skip_date(message: Message, command: CommandObject, schedule_engine: ScheduleEngine):
    try:
        tag, day = parse_tag_and_date(command.args)
    except (ValueError, ValidationError):
        await message.answer(UIMessages.error(f"Usage: /{command.command} TAG YYYY-MM-DD"))
        return

    try:
        if command.command == "skip":
            schedule = await schedule_engine.add_skip_date(tag, day)
        else:
            schedule = await schedule_engine.remove_skip_date(tag, day)
    except ScheduleNotFoundError:
        await message.answer(UIMessages.error(f"No schedule for tag {html.escape(tag)}"))
        return

    logging.info(f"Admin {message.from_user.id} {command.command} {tag} {day}")
    skips = ", ".join(schedule.skip_dates) if schedule.skip_dates else "none"
    await message.answer(UIMessages.success(f"{html.escape(tag)} skip dates: {skips}"))
