class PayoutBotError(Exception):
    """Base exception for statement generation and scheduling errors"""
    pass


class UnknownFrequencyTagError(PayoutBotError, ValueError):
    """Raised when a tag is not one of WEEKLY, BI-WEEKLY A/B, MONTHLY"""
    pass


class DuplicateStatementError(PayoutBotError):
    """Raised by the store when (scope, start, end) already has a statement"""
    pass


class StatementSaveError(PayoutBotError):
    """Raised when a statement insert still fails after identifier resync"""
    pass


class ReservationProviderError(PayoutBotError):
    """Raised when the booking platform API request fails"""
    pass


class ScheduleNotFoundError(PayoutBotError, LookupError):
    """Raised when no schedule exists for a tag"""
    pass
