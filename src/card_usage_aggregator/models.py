from __future__ import annotations

import re
from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .errors import ConfigurationError


UNKNOWN_DATE = "unknown"
UNKNOWN_MERCHANT = "unknown"

_RECORD_DATE_RE = re.compile(r"^\d{4}/\d{2}/\d{2}$")


class DateRange(BaseModel):
    start: date
    end: date

    @model_validator(mode="after")
    def _check_order(self) -> "DateRange":
        if self.start > self.end:
            raise ValueError("start date must be on or before end date")
        return self

    @classmethod
    def from_iso(cls, start: Optional[str], end: Optional[str]) -> "DateRange":
        """
        Build a range from the `{startDate, endDate}` strings of an aggregate request.
        """
        s = (start or "").strip()
        e = (end or "").strip()
        if not s or not e:
            raise ConfigurationError("Both a start date and an end date are required.")
        try:
            start_d = date.fromisoformat(s)
            end_d = date.fromisoformat(e)
        except ValueError as err:
            raise ConfigurationError(f"Dates must be YYYY-MM-DD (got start={s!r}, end={e!r}).") from err
        if start_d > end_d:
            raise ConfigurationError("The start date must be on or before the end date.")
        return cls(start=start_d, end=end_d)


class TransactionRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    # "YYYY/MM/DD" (zero padded so string order is date order) or UNKNOWN_DATE.
    date: str = UNKNOWN_DATE
    merchant: str = UNKNOWN_MERCHANT
    amount: int = Field(gt=0)

    @field_validator("date")
    @classmethod
    def _check_date(cls, v: str) -> str:
        v = (v or "").strip() or UNKNOWN_DATE
        if v != UNKNOWN_DATE and not _RECORD_DATE_RE.match(v):
            raise ValueError(f"record date must be YYYY/MM/DD or {UNKNOWN_DATE!r} (got {v!r})")
        return v

    @field_validator("merchant")
    @classmethod
    def _check_merchant(cls, v: str) -> str:
        return (v or "").strip() or UNKNOWN_MERCHANT

    @property
    def has_date(self) -> bool:
        return self.date != UNKNOWN_DATE

    def dedup_key(self) -> str:
        # Two records with the same key are the same transaction.
        return "|".join([self.date, str(self.amount), self.merchant])


class AggregateResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_amount: int = Field(default=0, alias="totalAmount")
    count: int = 0
    details: list[TransactionRecord] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> "AggregateResult":
        return cls(total_amount=0, count=0, details=[])

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)
