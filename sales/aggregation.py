"""Stateless folds over a materialised list of sales.

Callers fetch the whole window first and pass it in; nothing here queries the
database, so the same input always produces the same summary. Rankings keep
the first-seen key on ties because dicts preserve insertion order and ``max``
/ ``sorted`` are stable.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass
from datetime import timedelta
from decimal import Decimal

from django.utils import timezone

from common.utils import to_money

ZERO = Decimal("0")
HUNDRED = Decimal("100")
PERCENT_QUANT = Decimal("0.01")


@dataclass(frozen=True)
class SalesSummary:
    total_sales: Decimal
    total_volume: Decimal
    total_transactions: int
    average_ticket: Decimal
    today_sales: Decimal
    yesterday_sales: Decimal
    growth_percentage: Decimal
    top_product: object
    top_station: object
    top_pump: object
    cancelled_count: int
    voided_count: int

    def as_dict(self):
        return asdict(self)


def _value(sale, name, default=None):
    if isinstance(sale, Mapping):
        return sale.get(name, default)
    return getattr(sale, name, default)


def is_counted(sale) -> bool:
    return not _value(sale, "is_void", False) and _value(sale, "status") != "cancelled"


def _amount(sale):
    return Decimal(_value(sale, "total_amount") or 0)


def _volume(sale):
    return Decimal(_value(sale, "litres_sold") or 0)


def local_date(sale, tz):
    moment = _value(sale, "transaction_time")
    if moment is None:
        return None
    if timezone.is_naive(moment):
        return moment.date()
    return timezone.localtime(moment, tz).date()


def growth_percentage(current, previous):
    current = Decimal(current or 0)
    previous = Decimal(previous or 0)
    if previous > 0:
        return ((current - previous) / previous * HUNDRED).quantize(PERCENT_QUANT)
    if current > 0:
        return Decimal("100.00")
    return Decimal("0.00")


def _totals_by(sales, key):
    totals = {}
    for sale in sales:
        group = _value(sale, key)
        if group is None:
            continue
        group = str(group)
        totals[group] = totals.get(group, ZERO) + _amount(sale)
    return totals


def top_key(sales, key):
    best_key = None
    best_total = None
    for group, total in _totals_by(sales, key).items():
        if best_total is None or total > best_total:
            best_key, best_total = group, total
    return best_key


def summarize(sales, *, today=None, tz=None) -> SalesSummary:
    sales = list(sales)
    tz = tz or timezone.get_current_timezone()
    today = today or timezone.localdate(timezone=tz)
    yesterday = today - timedelta(days=1)

    counted = [sale for sale in sales if is_counted(sale)]
    total_sales = sum((_amount(sale) for sale in counted), ZERO)
    total_volume = sum((_volume(sale) for sale in counted), ZERO)
    total_transactions = len(counted)

    today_sales = ZERO
    yesterday_sales = ZERO
    for sale in counted:
        day = local_date(sale, tz)
        if day == today:
            today_sales += _amount(sale)
        elif day == yesterday:
            yesterday_sales += _amount(sale)

    return SalesSummary(
        total_sales=to_money(total_sales),
        total_volume=total_volume,
        total_transactions=total_transactions,
        average_ticket=to_money(total_sales / total_transactions) if total_transactions else to_money(ZERO),
        today_sales=to_money(today_sales),
        yesterday_sales=to_money(yesterday_sales),
        growth_percentage=growth_percentage(today_sales, yesterday_sales),
        top_product=top_key(counted, "product_id"),
        top_station=top_key(counted, "station_id"),
        top_pump=top_key(counted, "pump_id"),
        cancelled_count=sum(1 for sale in sales if _value(sale, "status") == "cancelled" and not _value(sale, "is_void", False)),
        voided_count=sum(1 for sale in sales if _value(sale, "is_void", False)),
    )


def rank(sales, key, limit=10):
    """Revenue ranking for ``key`` with each group's share of the counted total."""
    groups = {}
    for sale in sales:
        if not is_counted(sale):
            continue
        group = _value(sale, key)
        if group is None:
            continue
        row = groups.setdefault(
            str(group),
            {key: str(group), "total_sales": ZERO, "total_volume": ZERO, "transactions": 0},
        )
        row["total_sales"] += _amount(sale)
        row["total_volume"] += _volume(sale)
        row["transactions"] += 1

    grand_total = sum((row["total_sales"] for row in groups.values()), ZERO)
    rows = sorted(groups.values(), key=lambda row: row["total_sales"], reverse=True)[:limit]
    for row in rows:
        row["total_sales"] = to_money(row["total_sales"])
        row["percentage"] = (
            (row["total_sales"] / grand_total * HUNDRED).quantize(PERCENT_QUANT) if grand_total > 0 else Decimal("0.00")
        )
    return rows


def breakdown(sales, key):
    return {group: to_money(total) for group, total in _totals_by([s for s in sales if is_counted(s)], key).items()}


def daily_trends(sales, *, tz=None, days=30):
    tz = tz or timezone.get_current_timezone()
    buckets = {}
    for sale in sales:
        if not is_counted(sale):
            continue
        day = local_date(sale, tz)
        if day is None:
            continue
        bucket = buckets.setdefault(day, {"date": day.isoformat(), "sales": ZERO, "volume": ZERO, "transactions": 0})
        bucket["sales"] += _amount(sale)
        bucket["volume"] += _volume(sale)
        bucket["transactions"] += 1

    rows = [buckets[day] for day in sorted(buckets)][-days:]
    for row in rows:
        row["sales"] = to_money(row["sales"])
    return rows


def hourly_trends(sales, *, tz=None):
    tz = tz or timezone.get_current_timezone()
    hours = [{"hour": hour, "sales": ZERO, "transactions": 0} for hour in range(24)]
    for sale in sales:
        moment = _value(sale, "transaction_time")
        if moment is None or not is_counted(sale):
            continue
        hour = moment.hour if timezone.is_naive(moment) else timezone.localtime(moment, tz).hour
        hours[hour]["sales"] += _amount(sale)
        hours[hour]["transactions"] += 1

    for row in hours:
        row["sales"] = to_money(row["sales"])
    return hours
