"""Reservation and expense provider interfaces"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from typing import Optional, List, Dict


@dataclass
class Reservation:
    """Reservation as delivered by a booking platform, already normalized"""
    id: str
    property_id: int
    check_in_date: date
    check_out_date: date
    status: str
    source: str = "Unknown"
    guest_name: str = ""
    created_at: Optional[datetime] = None

    gross_amount: float = 0.0
    cleaning_fee: Optional[float] = None

    # Detailed finance fields (consolidated finance report)
    has_detailed_finance: bool = False
    base_rate: Optional[float] = None
    cleaning_and_other_fees: Optional[float] = None
    platform_fees: Optional[float] = None
    client_revenue: Optional[float] = None
    luxury_lodging_fee: Optional[float] = None
    client_tax_responsibility: Optional[float] = None
    client_payout: Optional[float] = None

    # Filled in by proration (calendar basis only)
    proration_factor: Optional[float] = None
    nights_in_period: Optional[int] = None
    total_nights: Optional[int] = None
    proration_note: Optional[str] = None
    original_amounts: Dict[str, Optional[float]] = field(default_factory=dict)

    @property
    def is_airbnb(self) -> bool:
        return "airbnb" in (self.source or "").lower()

    @property
    def revenue(self) -> float:
        """Client revenue when detailed finance exists, else gross amount"""
        if self.has_detailed_finance and self.client_revenue is not None:
            return float(self.client_revenue)
        return float(self.gross_amount or 0)

    def to_json(self) -> dict:
        data = asdict(self)
        data["check_in_date"] = self.check_in_date.isoformat()
        data["check_out_date"] = self.check_out_date.isoformat()
        data["created_at"] = self.created_at.isoformat() if self.created_at else None
        return data


@dataclass
class Expense:
    """Expense or upsell line; positive amount increases the owner payout"""
    property_id: Optional[int]
    date: date
    amount: float
    category: str = ""
    type: str = ""
    description: str = ""
    vendor: str = ""
    id: Optional[int] = None
    is_synthetic: bool = False

    def to_json(self) -> dict:
        data = asdict(self)
        data["date"] = self.date.isoformat()
        return data


class ReservationProvider(ABC):
    """Abstract booking platform interface"""

    @abstractmethod
    async def get_reservations(
        self,
        start_date: date,
        end_date: date,
        property_id: int,
        calculation_type: str
    ) -> List[Reservation]:
        """Reservations checking out within [start_date, end_date]"""
        pass

    @abstractmethod
    async def get_overlapping_reservations(
        self,
        start_date: date,
        end_date: date,
        property_id: int
    ) -> List[Reservation]:
        """Reservations whose stay intersects [start_date, end_date]"""
        pass


class ExpenseProvider(ABC):
    """Abstract expense source interface"""

    @abstractmethod
    async def get_expenses(
        self,
        start_date: date,
        end_date: date,
        property_id: int
    ) -> List[Expense]:
        pass
