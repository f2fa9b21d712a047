from aiogram.types import InlineKeyboardMarkup, InlineKeyboardButton

# ========== UI Constants ==========
class UIEmojis:
    # Status
    SUCCESS = "✅"
    ERROR = "❌"
    WARNING = "⚠️"
    PENDING = "⏳"
    SKIP = "⏭️"

    # Objects
    HOME = "🏠"
    GROUP = "🏘️"
    MONEY = "💰"
    DOCUMENT = "📄"
    BELL = "🔔"
    CALENDAR = "📅"
    CLOCK = "⏰"
    CHART = "📊"


class UIMessages:
    """Formatted message templates"""

    DIVIDER_FULL = "━" * 30

    @staticmethod
    def header(title: str, emoji: str = "") -> str:
        """Create a formatted header"""
        if emoji:
            return f"\n{emoji} <b>{title}</b>\n{UIMessages.DIVIDER_FULL}\n"
        return f"\n<b>{title}</b>\n{UIMessages.DIVIDER_FULL}\n"

    @staticmethod
    def section(title: str) -> str:
        return f"\n<b>▪️ {title}</b>\n"

    @staticmethod
    def field(name: str, value: str, emoji: str = "") -> str:
        prefix = f"{emoji} " if emoji else "• "
        return f"{prefix}<b>{name}:</b> {value}\n"

    @staticmethod
    def success(text: str) -> str:
        return f"✅ {text}"

    @staticmethod
    def error(text: str) -> str:
        return f"❌ {text}"

    @staticmethod
    def warning(text: str) -> str:
        return f"⚠️ {text}"


class UIKeyboards:
    @staticmethod
    def notification_actions(notification_id: int) -> InlineKeyboardMarkup:
        """Read / dismiss buttons under a scheduler notification"""
        return InlineKeyboardMarkup(inline_keyboard=[
            [
                InlineKeyboardButton(text=f"{UIEmojis.SUCCESS} Mark read", callback_data=f"notif_read_{notification_id}"),
                InlineKeyboardButton(text=f"{UIEmojis.ERROR} Dismiss", callback_data=f"notif_dismiss_{notification_id}")
            ]
        ])


# === Helper Functions ===

def format_money(amount) -> str:
    """Format amount as dollars, negatives with a leading minus"""
    if amount is None:
        return "—"
    amount = float(amount)
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"


def format_date(date_obj) -> str:
    if not date_obj:
        return "—"
    return date_obj.isoformat()


def format_period(start, end) -> str:
    return f"{format_date(start)} to {format_date(end)}"


def get_status_badge(status: str) -> str:
    """Get status badge emoji"""
    badges = {
        "draft": "📝",
        "sent": "✅",
        "flagged_negative_balance": "🔴",
        "flagged_zero_activity": "⚪",
        "unread": "🔵",
        "read": "⚪",
        "actioned": "✅",
        "dismissed": "🗑️",
    }
    return badges.get(status, "⚪")
