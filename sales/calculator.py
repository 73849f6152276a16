"""Meter-reading arithmetic for fuel sales.

Pure functions only: nothing here touches the database. ``compute_sale`` is
re-run by the service layer whenever meters, product or price change, so the
stored litres, total and variance are always derived from the inputs.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import Decimal

from rest_framework.exceptions import ValidationError

from common.exceptions import InvalidRange, MissingProduct, MissingPump
from common.utils import to_decimal, to_money


@dataclass(frozen=True)
class SaleComputation:
    litres_sold: Decimal
    total_amount: Decimal
    cash_received: Decimal
    variance: Decimal

    def as_dict(self):
        return asdict(self)


def _meter(value, field):
    try:
        reading = to_decimal(value, field)
    except ValueError as exc:
        raise ValidationError({field: str(exc)})
    if reading < 0:
        raise ValidationError({field: "Meter readings cannot be negative."})
    return reading


def compute_sale(opening, closing, unit_price, cash_received=None) -> SaleComputation:
    opening = _meter(opening, "opening_meter")
    closing = _meter(closing, "closing_meter")
    if closing < opening:
        raise InvalidRange({"closing_meter": "Closing meter cannot be less than opening meter."})

    try:
        price = to_decimal(unit_price, "unit_price")
    except ValueError as exc:
        raise ValidationError({"unit_price": str(exc)})
    if price < 0:
        raise ValidationError({"unit_price": "Unit price cannot be negative."})

    litres_sold = closing - opening
    total_amount = to_money(litres_sold * price)

    if cash_received in (None, ""):
        cash = total_amount
    else:
        try:
            cash = to_money(cash_received)
        except ValueError:
            raise ValidationError({"cash_received": "cash_received must be a number."})
        if cash < 0:
            raise ValidationError({"cash_received": "Cash received cannot be negative."})

    return SaleComputation(
        litres_sold=litres_sold,
        total_amount=total_amount,
        cash_received=cash,
        variance=cash - total_amount,
    )


def resolve_product_for_pump(pump, products):
    """Match the pump's fuel type to exactly one product by name."""
    if pump is None:
        raise MissingPump()

    fuel_type = (getattr(pump, "fuel_type", "") or "").strip().lower()
    matches = [product for product in products if (product.name or "").strip().lower() == fuel_type]
    if not fuel_type or len(matches) != 1:
        raise MissingProduct({"product": f"No single product matches fuel type '{pump.fuel_type}'."})
    return matches[0]
