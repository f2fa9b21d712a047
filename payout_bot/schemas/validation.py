import re
from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from payout_bot.database.models import CalculationType, FrequencyType, DEFAULT_BIWEEKLY_ANCHOR

TIME_PATTERN = re.compile(r'^([01]\d|2[0-3]):([0-5]\d)$')


class ScheduleModel(BaseModel):
    """Schedule settings for one frequency tag"""
    frequency_type: FrequencyType
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6, description="0=Sunday ... 6=Saturday")
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    biweekly_anchor_date: Optional[date] = None
    time_of_day: str = "09:00"
    skip_dates: List[date] = Field(default_factory=list)
    calculation_type: CalculationType = CalculationType.checkout
    is_enabled: bool = True

    @field_validator('time_of_day', mode='before')
    def parse_time(cls, v):
        v = str(v).strip()
        # Accept "9:00" as well as "09:00"
        if re.match(r'^\d:\d\d$', v):
            v = f"0{v}"
        assert TIME_PATTERN.match(v), "Time must be HH:MM (24h)"
        return v

    @field_validator('skip_dates', mode='after')
    def dedupe_dates(cls, v):
        return sorted(set(v))

    @model_validator(mode='after')
    def check_frequency_fields(self):
        if self.frequency_type in (FrequencyType.weekly, FrequencyType.biweekly):
            if self.day_of_week is None:
                raise ValueError("day_of_week is required for weekly and biweekly schedules")
        if self.frequency_type == FrequencyType.biweekly and self.biweekly_anchor_date is None:
            self.biweekly_anchor_date = DEFAULT_BIWEEKLY_ANCHOR
        if self.frequency_type == FrequencyType.monthly and self.day_of_month is None:
            raise ValueError("day_of_month is required for monthly schedules")
        return self

    def to_values(self) -> dict:
        """Column values for TagSchedule"""
        return {
            "frequency_type": self.frequency_type.value,
            "day_of_week": self.day_of_week,
            "day_of_month": self.day_of_month,
            "biweekly_anchor_date": self.biweekly_anchor_date,
            "time_of_day": self.time_of_day,
            "skip_dates": [d.isoformat() for d in self.skip_dates],
            "calculation_type": self.calculation_type.value,
            "is_enabled": self.is_enabled,
        }


class SkipDateModel(BaseModel):
    day: date

    @field_validator('day', mode='before')
    def parse_date(cls, v):
        if isinstance(v, str):
            v = v.strip()
        return v


class ListingSettingsModel(BaseModel):
    """Validated billing settings for a listing"""
    pm_fee_percentage: float = Field(gt=0, le=100)
    is_cohost_on_airbnb: bool = False
    airbnb_pass_through_tax: bool = False
    disregard_tax: bool = False
    cleaning_fee_pass_through: bool = False
    cleaning_fee: float = Field(default=0, ge=0)
    waive_commission: bool = False
    waive_commission_until: Optional[date] = None
    new_pm_fee_enabled: bool = False
    new_pm_fee_percentage: Optional[float] = Field(default=None, gt=0, le=100)
    new_pm_fee_start_date: Optional[date] = None

    @field_validator('pm_fee_percentage', 'cleaning_fee', mode='before')
    def parse_float(cls, v):
        if isinstance(v, str):
            v = v.replace(',', '.').replace(' ', '').rstrip('%')
        return float(v)

    @model_validator(mode='after')
    def check_new_fee(self):
        if self.new_pm_fee_enabled and (self.new_pm_fee_percentage is None or self.new_pm_fee_start_date is None):
            raise ValueError("new PM fee needs both a percentage and a start date")
        return self
