from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable

CENT = Decimal("0.01")

# Due time used when a request's desired return date becomes a loan due date.
END_OF_DAY = time(23, 59)

def money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)

def end_of_day(d: date) -> datetime:
    return datetime.combine(d, END_OF_DAY)

def local_naive(dt: datetime) -> datetime:
    """Aware datetimes are converted to local wall time; the core compares naive values only."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone().replace(tzinfo=None)

@dataclass(frozen=True)
class LendingPolicy:
    """Tunables shared by every component, passed in explicitly."""

    fine_per_day: Decimal = Decimal("0.50")
    borrow_limit: int = 5
    default_loan_days: int = 14
    clock: Callable[[], datetime] = field(default=datetime.now, compare=False)

    def now(self) -> datetime:
        return self.clock()
