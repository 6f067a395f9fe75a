"""
Customer summary statistics

Counts customers for the current period and compares them with the period of
equal length right before it. The caller supplies "now", so the same inputs
always give the same snapshot.

"Previous period" counts use customerSince as a proxy for whether a customer
already existed back then; later status changes and deletions are not
reflected.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional

from dateutil.relativedelta import relativedelta
from pymongo.collection import Collection

from database import to_storage_datetime


class Timeframe(str, Enum):
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Timeframe":
        """Unknown or missing values fall back to a week."""
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.WEEK


LOOKBACK = {
    Timeframe.WEEK: relativedelta(days=7),
    Timeframe.MONTH: relativedelta(months=1),
    Timeframe.YEAR: relativedelta(years=1),
}


@dataclass(frozen=True)
class Period:
    start: datetime
    previous_start: datetime
    length_days: int


def resolve_period(timeframe: Timeframe, now: datetime) -> Period:
    start = now - LOOKBACK[timeframe]
    length_days = (now - start) // timedelta(days=1)
    return Period(
        start=start,
        previous_start=start - timedelta(days=length_days),
        length_days=length_days,
    )


def percent_change(current: int, previous: int) -> str:
    if previous == 0:
        return "+100%" if current > 0 else "0%"
    change = (current - previous) / previous * 100
    return f"{change:+.2f}%"


def _metric(value: int, change: Optional[str] = None) -> Dict[str, Any]:
    return {"value": value, "change": change}


def summarize_customers(customers: Collection, timeframe: Timeframe, now: datetime) -> Dict[str, Any]:
    period = resolve_period(timeframe, now)
    start = to_storage_datetime(period.start)
    previous_start = to_storage_datetime(period.previous_start)
    before_start = {"customerSince": {"$lt": start}}

    # Current period, over the whole collection
    all_customers = customers.count_documents({})
    active_customers = customers.count_documents({"status": "active"})
    inactive_customers = customers.count_documents({"status": "inactive"})
    new_customers = customers.count_documents({"customerSince": {"$gte": start}})
    purchasing_customers = customers.count_documents({"ordersCount": {"$gt": 0}})
    carts = next(
        iter(customers.aggregate([{"$group": {"_id": None, "total": {"$sum": "$abandonedCarts"}}}])),
        None,
    ) or {"total": 0}

    # Previous period
    prev_all = customers.count_documents(before_start)
    prev_active = customers.count_documents({"status": "active", **before_start})
    prev_inactive = customers.count_documents({"status": "inactive", **before_start})
    prev_new = customers.count_documents(
        {"customerSince": {"$gte": previous_start, "$lt": start}}
    )

    return {
        "timeframe": timeframe.value,
        "metrics": {
            "allCustomers": _metric(all_customers, percent_change(all_customers, prev_all)),
            "activeCustomers": _metric(active_customers, percent_change(active_customers, prev_active)),
            "inactiveCustomers": _metric(inactive_customers, percent_change(inactive_customers, prev_inactive)),
            "newCustomers": _metric(new_customers, percent_change(new_customers, prev_new)),
            "purchasingCustomers": _metric(purchasing_customers),
            "abandonedCarts": _metric(int(carts.get("total") or 0)),
        },
    }
