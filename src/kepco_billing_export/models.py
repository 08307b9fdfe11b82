from __future__ import annotations

from datetime import date

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional


class UsageWindow(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: Optional[date] = None
    end: Optional[date] = None


class BillingRecord(BaseModel):
    """
    One utility bill. `period` is the billing month (always the 1st of the month).
    """

    model_config = ConfigDict(frozen=True)

    period: date
    usage_window: Optional[UsageWindow] = None

    # Absent source text defaults to zero.
    energy_usage: float = Field(default=0.0, ge=0)
    billed_amount: int = 0
    amount_paid: int = 0
    amount_unpaid: int = 0

    payment_method: Optional[str] = None
    payment_date: Optional[date] = None

    @field_validator("period")
    @classmethod
    def _first_of_month(cls, v: date) -> date:
        return v.replace(day=1)
