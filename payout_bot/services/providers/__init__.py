"""Reservation and expense sources for statement generation"""

from .base import Reservation, Expense, ReservationProvider, ExpenseProvider
from .database import DatabaseExpenseProvider
from .hostaway import HostawayReservationProvider

__all__ = [
    'Reservation', 'Expense', 'ReservationProvider', 'ExpenseProvider',
    'DatabaseExpenseProvider', 'HostawayReservationProvider'
]
