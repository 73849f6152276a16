import logging
from datetime import datetime, time

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.utils import timezone
from django.utils.dateparse import parse_date
from rest_framework.exceptions import NotFound, ValidationError

from common.exceptions import InconsistentWrite, InvalidTransition, MissingPump
from common.utils import to_decimal, to_json_compatible
from core.scoping import scope_for_user
from forecourt.models import Pump
from forecourt.services import active_products, resolve_unit_price
from sales.calculator import compute_sale, resolve_product_for_pump
from sales.models import Sale

logger = logging.getLogger(__name__)

SALE_FILTER_FIELDS = ("pump_id", "product_id", "payment_method", "customer_type", "status")
EDITABLE_FIELDS = (
    "opening_meter",
    "closing_meter",
    "unit_price",
    "cash_received",
    "payment_method",
    "customer_type",
    "status",
    "notes",
)


def _date_bounds(params, tz):
    date_from = parse_date(params.get("date_from") or "")
    date_to = parse_date(params.get("date_to") or "")
    if date_from and date_to and date_from > date_to:
        raise ValidationError({"date_range": "date_from must be before or equal to date_to."})
    start = datetime.combine(date_from, time.min).replace(tzinfo=tz) if date_from else None
    end = datetime.combine(date_to, time.max).replace(tzinfo=tz) if date_to else None
    return start, end


def scoped_sales(user, params=None, *, tz=None):
    """Sales the user may see, narrowed by request filters.

    An explicit ``station_id`` outside the caller's scope raises ``Forbidden``
    rather than returning an empty page.
    """
    params = params or {}
    scope = scope_for_user(user)
    queryset = scope.filter_records(Sale.objects.select_related("station", "pump", "product"))

    station_id = params.get("station_id")
    if station_id and station_id != "all":
        station = scope.require_station(station_id)
        queryset = queryset.filter(station=station)

    for field in SALE_FILTER_FIELDS:
        value = params.get(field)
        if value:
            queryset = queryset.filter(**{field: value})

    start, end = _date_bounds(params, tz or timezone.get_current_timezone())
    if start:
        queryset = queryset.filter(transaction_time__gte=start)
    if end:
        queryset = queryset.filter(transaction_time__lte=end)

    return queryset.order_by("-transaction_time", "-created_at")


def preview_sale(user, *, pump_id, closing_meter, opening_meter=None, unit_price=None, cash_received=None):
    """Run the calculation for the create form without writing anything."""
    pump = _scoped_pump(user, pump_id)
    product = resolve_product_for_pump(pump, active_products())
    price = resolve_unit_price(pump.station_id, product.id, override=unit_price)
    opening = pump.current_meter_reading if opening_meter is None else opening_meter
    computation = compute_sale(opening, closing_meter, price, cash_received)
    return {
        "pump": str(pump.id),
        "product": str(product.id),
        "opening_meter": opening,
        "closing_meter": closing_meter,
        "unit_price": price,
        **computation.as_dict(),
    }


def _scoped_pump(user, pump_id, *, for_update=False):
    if not pump_id:
        raise MissingPump()

    queryset = scope_for_user(user).filter_records(Pump.objects.select_related("station"))
    if for_update:
        queryset = queryset.select_for_update(of=("self",))
    try:
        pump = queryset.filter(id=pump_id).first()
    except (DjangoValidationError, ValueError, TypeError):
        pump = None
    if pump is None:
        raise NotFound("Pump was not found.")
    if not pump.is_active:
        raise ValidationError({"pump": "Pump is not active."})
    return pump


def record_sale(
    *,
    user,
    pump_id,
    closing_meter,
    opening_meter=None,
    product_id=None,
    unit_price=None,
    cash_received=None,
    payment_method=Sale.PaymentMethod.CASH,
    customer_type=Sale.CustomerType.RETAIL,
    status=Sale.Status.COMPLETED,
    notes=None,
    transaction_time=None,
):
    """Insert a sale and advance its pump meter as one unit.

    The pump row is locked for the whole transaction so two submissions on the
    same pump are serialised, and the opening value always comes from the
    locked reading.

    The conditional meter update is a guard for backends where the row lock is
    a no-op. If it ever matches nothing, ``InconsistentWrite`` is raised inside
    the transaction, so the sale is rolled back with it.
    """
    with transaction.atomic():
        pump = _scoped_pump(user, pump_id, for_update=True)
        product = resolve_product_for_pump(pump, active_products())
        if product_id and str(product_id) != str(product.id):
            raise ValidationError({"product": "Product does not match the pump fuel type."})

        opening = pump.current_meter_reading
        if opening_meter is not None and to_decimal(opening_meter) != opening:
            raise ValidationError(
                {"opening_meter": f"Opening meter must equal the pump's current reading ({opening})."},
                code="stale_meter_reading",
            )

        price = resolve_unit_price(pump.station_id, product.id, override=unit_price)
        computation = compute_sale(opening, closing_meter, price, cash_received)

        sale = Sale.objects.create(
            station_id=pump.station_id,
            pump=pump,
            pump_number=pump.number,
            product=product,
            opening_meter=opening,
            closing_meter=to_decimal(closing_meter),
            unit_price=price,
            payment_method=payment_method,
            customer_type=customer_type,
            status=status,
            notes=notes or None,
            transaction_time=transaction_time or timezone.now(),
            created_by=user,
            **computation.as_dict(),
        )

        updated = Pump.objects.filter(pk=pump.pk, current_meter_reading=opening).update(
            current_meter_reading=sale.closing_meter,
            updated_at=timezone.now(),
        )
        if updated != 1:
            payload = to_json_compatible(
                {
                    "sale_id": sale.id,
                    "pump_id": pump.id,
                    "opening_meter": opening,
                    "closing_meter": sale.closing_meter,
                    "total_amount": sale.total_amount,
                }
            )
            logger.error(
                "pump_meter_update_failed",
                extra={"station_id": pump.station_id, "entity": "pump", "entity_id": pump.id},
            )
            raise InconsistentWrite(sale_payload=payload)

    logger.info(
        "sale_recorded",
        extra={"station_id": sale.station_id, "entity": "sale", "entity_id": sale.id},
    )
    return sale


def _lock_sale(sale):
    return Sale.objects.select_for_update().get(pk=sale.pk)


def edit_sale(sale, changes):
    """Apply edits and re-derive litres, total and variance."""
    changes = {key: value for key, value in changes.items() if key in EDITABLE_FIELDS}

    with transaction.atomic():
        sale = _lock_sale(sale)
        if sale.status == Sale.Status.CANCELLED or sale.is_void:
            raise InvalidTransition("Cancelled or void sales cannot be edited.")

        old_closing = sale.closing_meter
        opening = changes.get("opening_meter", sale.opening_meter)
        closing = changes.get("closing_meter", sale.closing_meter)
        price = changes.get("unit_price", sale.unit_price)
        cash = changes.get("cash_received", sale.cash_received)
        computation = compute_sale(opening, closing, price, cash)

        sale.opening_meter = to_decimal(opening)
        sale.closing_meter = to_decimal(closing)
        sale.unit_price = to_decimal(price)
        for field in ("payment_method", "customer_type", "status", "notes"):
            if field in changes:
                setattr(sale, field, changes[field])
        for field, value in computation.as_dict().items():
            setattr(sale, field, value)
        sale.save()

        if sale.closing_meter != old_closing:
            # Only follow the edit when this sale is what set the pump's reading.
            Pump.objects.filter(pk=sale.pump_id, current_meter_reading=old_closing).update(
                current_meter_reading=sale.closing_meter,
                updated_at=timezone.now(),
            )

    logger.info("sale_updated", extra={"station_id": sale.station_id, "entity": "sale", "entity_id": sale.id})
    return sale


def cancel_sale(sale):
    with transaction.atomic():
        sale = _lock_sale(sale)
        if sale.status == Sale.Status.CANCELLED:
            raise InvalidTransition("Sale is already cancelled.")
        sale.status = Sale.Status.CANCELLED
        sale.save(update_fields=["status", "updated_at"])

    logger.info("sale_cancelled", extra={"station_id": sale.station_id, "entity": "sale", "entity_id": sale.id})
    return sale


def void_sale(sale):
    with transaction.atomic():
        sale = _lock_sale(sale)
        if sale.is_void:
            raise InvalidTransition("Sale is already void.")
        sale.is_void = True
        sale.status = Sale.Status.CANCELLED
        sale.save(update_fields=["is_void", "status", "updated_at"])

    logger.info("sale_voided", extra={"station_id": sale.station_id, "entity": "sale", "entity_id": sale.id})
    return sale


def find_meter_drift(station_ids=None):
    """Pumps whose running reading disagrees with the highest closing meter sold through them.

    Voided and cancelled sales count: the counter still moved when they were
    dispensed. Each row carries ``behind`` when the pump reads lower than its
    sales, the only case that can be realigned safely.
    """
    pumps = Pump.objects.select_related("station").order_by("station__code", "number")
    if station_ids:
        pumps = pumps.filter(station_id__in=station_ids)

    rows = []
    for pump in pumps:
        highest = (
            Sale.objects.filter(pump=pump)
            .order_by("-closing_meter", "-created_at")
            .values("id", "closing_meter")
            .first()
        )
        if highest is None or highest["closing_meter"] == pump.current_meter_reading:
            continue
        rows.append(
            {
                "station_code": pump.station.code,
                "pump_id": pump.id,
                "pump_number": pump.number,
                "current_meter_reading": pump.current_meter_reading,
                "latest_sale_id": highest["id"],
                "latest_closing_meter": highest["closing_meter"],
                "behind": highest["closing_meter"] > pump.current_meter_reading,
            }
        )
    return rows
