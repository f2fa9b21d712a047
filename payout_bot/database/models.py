import enum
from datetime import datetime, date
from typing import Optional, List
from sqlalchemy import String, Boolean, ForeignKey, Integer, Numeric, DateTime, JSON, Text, DATE, UniqueConstraint, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from payout_bot.database.core import Base

# Enums
class FrequencyType(str, enum.Enum):
    weekly = "weekly"
    biweekly = "biweekly"
    monthly = "monthly"

class CalculationType(str, enum.Enum):
    checkout = "checkout"
    calendar = "calendar"

class StatementStatus(str, enum.Enum):
    draft = "draft"
    sent = "sent"
    flagged_negative_balance = "flagged_negative_balance"
    flagged_zero_activity = "flagged_zero_activity"

class NotificationStatus(str, enum.Enum):
    unread = "unread"
    read = "read"
    actioned = "actioned"
    dismissed = "dismissed"


DEFAULT_BIWEEKLY_ANCHOR = date(2026, 1, 19)


# 3.1 ListingGroup
class ListingGroup(Base):
    """Listings billed together on one combined statement"""
    __tablename__ = "listing_groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    tags: Mapped[List[str]] = mapped_column(JSON, default=list)
    calculation_type: Mapped[CalculationType] = mapped_column(String, default=CalculationType.checkout.value)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    listings: Mapped[List["Listing"]] = relationship(back_populates="group")

    @property
    def listing_ids(self) -> List[int]:
        return [listing.id for listing in self.listings]


# 3.2 Listing
class Listing(Base):
    __tablename__ = "listings"

    # Provider listing id (Hostaway listingMapId), not autoincremented
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String)
    nickname: Mapped[Optional[str]] = mapped_column(String)
    tags: Mapped[List[str]] = mapped_column(JSON, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    owner_email: Mapped[Optional[str]] = mapped_column(String)

    pm_fee_percentage: Mapped[float] = mapped_column(Numeric(5, 2), default=15.0)
    is_cohost_on_airbnb: Mapped[bool] = mapped_column(Boolean, default=False)
    airbnb_pass_through_tax: Mapped[bool] = mapped_column(Boolean, default=False)
    disregard_tax: Mapped[bool] = mapped_column(Boolean, default=False)
    cleaning_fee_pass_through: Mapped[bool] = mapped_column(Boolean, default=False)
    cleaning_fee: Mapped[float] = mapped_column(Numeric(12, 2), default=0.0)
    waive_commission: Mapped[bool] = mapped_column(Boolean, default=False)
    waive_commission_until: Mapped[Optional[date]] = mapped_column(DATE, nullable=True)

    # PM fee transition: reservations created on/after the start date use the new fee
    new_pm_fee_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    new_pm_fee_percentage: Mapped[Optional[float]] = mapped_column(Numeric(5, 2), nullable=True)
    new_pm_fee_start_date: Mapped[Optional[date]] = mapped_column(DATE, nullable=True)

    group_id: Mapped[Optional[int]] = mapped_column(ForeignKey("listing_groups.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    group: Mapped[Optional["ListingGroup"]] = relationship(back_populates="listings")

    __table_args__ = (
        CheckConstraint('pm_fee_percentage > 0 AND pm_fee_percentage <= 100', name='ck_listings_pm_fee_range'),
    )

    @property
    def display_name(self) -> str:
        return self.nickname or self.name or f"Listing {self.id}"


# 3.3 UploadedExpense
class UploadedExpense(Base):
    __tablename__ = "uploaded_expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # NULL property = applies to every listing in the statement scope
    property_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    expense_date: Mapped[date] = mapped_column("date", DATE, index=True)
    amount: Mapped[float] = mapped_column(Numeric(12, 2))  # signed: positive = upsell
    category: Mapped[Optional[str]] = mapped_column(String)
    type: Mapped[Optional[str]] = mapped_column(String)
    description: Mapped[Optional[str]] = mapped_column(Text)
    vendor: Mapped[Optional[str]] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


# 3.4 Statement
class Statement(Base):
    __tablename__ = "statements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # "listing:<id>" or "group:<id>"; NULL-free so the uniqueness constraint holds
    scope_key: Mapped[str] = mapped_column(String, nullable=False)

    property_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    property_ids: Mapped[List[int]] = mapped_column(JSON, default=list)
    property_name: Mapped[Optional[str]] = mapped_column(String)
    group_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    group_name: Mapped[Optional[str]] = mapped_column(String)
    is_combined_statement: Mapped[bool] = mapped_column(Boolean, default=False)

    week_start_date: Mapped[date] = mapped_column(DATE)
    week_end_date: Mapped[date] = mapped_column(DATE)
    calculation_type: Mapped[CalculationType] = mapped_column(String, default=CalculationType.checkout.value)

    total_revenue: Mapped[float] = mapped_column(Numeric(12, 2), default=0.0)
    total_expenses: Mapped[float] = mapped_column(Numeric(12, 2), default=0.0)
    total_upsells: Mapped[float] = mapped_column(Numeric(12, 2), default=0.0)
    pm_commission: Mapped[float] = mapped_column(Numeric(12, 2), default=0.0)
    pm_percentage: Mapped[float] = mapped_column(Numeric(5, 2), default=0.0)
    total_cleaning_fee: Mapped[float] = mapped_column(Numeric(12, 2), default=0.0)
    owner_payout: Mapped[float] = mapped_column(Numeric(12, 2), default=0.0)

    status: Mapped[StatementStatus] = mapped_column(String, default=StatementStatus.draft.value)
    listing_settings_snapshot: Mapped[Optional[dict]] = mapped_column(JSON)
    reservations: Mapped[Optional[list]] = mapped_column(JSON)
    expenses: Mapped[Optional[list]] = mapped_column(JSON)
    ll_cover_expenses: Mapped[Optional[list]] = mapped_column(JSON)
    cleaning_mismatch_warning: Mapped[Optional[dict]] = mapped_column(JSON)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint('scope_key', 'week_start_date', 'week_end_date', name='uq_statement_scope_period'),
        Index('ix_statements_status', 'status'),
    )


# 3.5 TagSchedule
class TagSchedule(Base):
    __tablename__ = "tag_schedules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tag_name: Mapped[str] = mapped_column(String, unique=True, index=True)
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    frequency_type: Mapped[FrequencyType] = mapped_column(String)

    day_of_week: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # 0=Sunday ... 6=Saturday
    day_of_month: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    biweekly_anchor_date: Mapped[Optional[date]] = mapped_column(DATE, nullable=True, default=DEFAULT_BIWEEKLY_ANCHOR)
    time_of_day: Mapped[str] = mapped_column(String(5), default="09:00")  # HH:MM, 24h
    skip_dates: Mapped[List[str]] = mapped_column(JSON, default=list)  # ISO dates
    calculation_type: Mapped[CalculationType] = mapped_column(String, default=CalculationType.checkout.value)

    last_notified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    next_scheduled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


# 3.6 TagNotification
class TagNotification(Base):
    __tablename__ = "tag_notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tag_name: Mapped[str] = mapped_column(String, index=True)
    schedule_id: Mapped[Optional[int]] = mapped_column(ForeignKey("tag_schedules.id", ondelete="SET NULL"), nullable=True)
    message: Mapped[str] = mapped_column(Text)
    status: Mapped[NotificationStatus] = mapped_column(String, default=NotificationStatus.unread.value, index=True)
    listing_count: Mapped[int] = mapped_column(Integer, default=0)
    scheduled_for: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    actioned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
