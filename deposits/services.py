import logging
from datetime import timedelta
from decimal import Decimal

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.db.models import Sum
from django.utils import timezone
from django.utils.dateparse import parse_date
from rest_framework.exceptions import ValidationError

from common.exceptions import Forbidden, InvalidTransition
from common.permissions import role_has_capability
from common.utils import to_money
from core.scoping import Identity, scope_filter
from deposits import lifecycle
from deposits.models import BankDeposit
from reports.services import local_day_start
from sales.models import Sale

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    "amount",
    "bank_name",
    "account_number",
    "reference_number",
    "depositor_name",
    "deposit_date",
    "notes",
)
ZERO = Decimal("0")


def _scope(user):
    identity = Identity.from_user(user)
    return identity, scope_filter(identity.role, identity)


def active_deposits():
    return BankDeposit.objects.filter(is_deleted=False).select_related("station")


def _apply_date_filters(queryset, params, field):
    date_from = parse_date(params.get("date_from") or "")
    date_to = parse_date(params.get("date_to") or "")
    if date_from and date_to and date_from > date_to:
        raise ValidationError({"date_range": "date_from must be before or equal to date_to."})
    if date_from:
        queryset = queryset.filter(**{f"{field}__gte": date_from})
    if date_to:
        queryset = queryset.filter(**{f"{field}__lte": date_to})
    return queryset


def _local_time_filters(sales, station, params):
    date_from = parse_date(params.get("date_from") or "")
    date_to = parse_date(params.get("date_to") or "")
    if date_from and date_to and date_from > date_to:
        raise ValidationError({"date_range": "date_from must be before or equal to date_to."})
    if date_from:
        sales = sales.filter(transaction_time__gte=local_day_start(station, date_from))
    if date_to:
        sales = sales.filter(transaction_time__lt=local_day_start(station, date_to + timedelta(days=1)))
    return sales


def scoped_deposits(user, params=None):
    params = params or {}
    _, scope = _scope(user)
    queryset = scope.filter_records(active_deposits())

    station_id = params.get("station_id")
    if station_id and station_id != "all":
        queryset = queryset.filter(station=scope.require_station(station_id))

    status = params.get("status")
    if status:
        queryset = queryset.filter(status=status)
    bank_name = params.get("bank_name")
    if bank_name:
        queryset = queryset.filter(bank_name__icontains=bank_name)
    reference = params.get("reference_number")
    if reference:
        queryset = queryset.filter(reference_number__icontains=reference)

    queryset = _apply_date_filters(queryset, params, "deposit_date")
    return queryset.order_by("-deposit_date", "-created_at")


def get_deposit(user, deposit_id):
    """A deposit in the caller's scope; anything else is ``Forbidden``."""
    _, scope = _scope(user)
    try:
        deposit = scope.filter_records(active_deposits()).filter(id=deposit_id).first()
    except (DjangoValidationError, ValueError, TypeError):
        deposit = None
    if deposit is None:
        raise Forbidden()
    return deposit


def _check_reference_unique(reference_number, exclude_id=None):
    if not reference_number:
        return
    queryset = BankDeposit.objects.filter(reference_number=reference_number, is_deleted=False)
    if exclude_id:
        queryset = queryset.exclude(id=exclude_id)
    if queryset.exists():
        raise ValidationError({"reference_number": "A deposit with this reference number already exists."})


def create_deposit(user, *, station_id, amount, bank_name, account_number, deposit_date, **extra):
    identity, scope = _scope(user)
    if not role_has_capability(identity.role, "deposit.create"):
        raise Forbidden()
    station = scope.require_station(station_id)

    errors = lifecycle.validate_deposit_fields(amount=amount, account_number=account_number)
    if errors:
        raise ValidationError(errors)
    reference_number = (extra.get("reference_number") or "").strip() or None
    _check_reference_unique(reference_number)

    try:
        with transaction.atomic():
            deposit = BankDeposit.objects.create(
                station=station,
                amount=to_money(amount),
                bank_name=bank_name,
                account_number=account_number.strip(),
                reference_number=reference_number,
                depositor_name=extra.get("depositor_name") or "",
                deposit_date=deposit_date,
                notes=extra.get("notes") or None,
                status=lifecycle.PENDING,
                created_by=user,
            )
    except IntegrityError:
        raise ValidationError({"reference_number": "A deposit with this reference number already exists."})

    logger.info("deposit_created", extra={"station_id": station.id, "entity": "deposit", "entity_id": deposit.id})
    return deposit


def update_deposit(user, deposit, changes):
    identity, _ = _scope(user)
    lifecycle.ensure_modifiable(deposit.status, identity.role)

    changes = {key: value for key, value in changes.items() if key in EDITABLE_FIELDS}
    errors = lifecycle.validate_deposit_fields(
        amount=changes.get("amount"),
        account_number=changes.get("account_number"),
    )
    if errors:
        raise ValidationError(errors)
    if "amount" in changes:
        changes["amount"] = to_money(changes["amount"])
    if "account_number" in changes:
        changes["account_number"] = changes["account_number"].strip()
    if "reference_number" in changes:
        changes["reference_number"] = (changes["reference_number"] or "").strip() or None
        _check_reference_unique(changes["reference_number"], exclude_id=deposit.id)

    # Conditional on the status read above so a concurrent transition wins.
    updated = BankDeposit.objects.filter(pk=deposit.pk, status=deposit.status, is_deleted=False).update(
        **changes, updated_at=timezone.now()
    )
    if updated != 1:
        raise InvalidTransition("Deposit was changed by someone else; reload and try again.")

    deposit.refresh_from_db()
    logger.info("deposit_updated", extra={"station_id": deposit.station_id, "entity": "deposit", "entity_id": deposit.id})
    return deposit


def delete_deposit(user, deposit):
    identity, _ = _scope(user)
    lifecycle.ensure_modifiable(deposit.status, identity.role)

    now = timezone.now()
    updated = BankDeposit.objects.filter(pk=deposit.pk, status=deposit.status, is_deleted=False).update(
        is_deleted=True, deleted_at=now, updated_at=now
    )
    if updated != 1:
        raise InvalidTransition("Deposit was changed by someone else; reload and try again.")

    deposit.refresh_from_db()
    logger.info("deposit_deleted", extra={"station_id": deposit.station_id, "entity": "deposit", "entity_id": deposit.id})
    return deposit


def transition_deposit(user, deposit_id, action, expected_status):
    """Move a deposit forward if, and only if, it is still ``expected_status``."""
    identity, _ = _scope(user)
    if not role_has_capability(identity.role, "deposit.manage"):
        raise Forbidden()

    deposit = get_deposit(user, deposit_id)
    fields = lifecycle.transition_fields(expected_status, action, actor_id=identity.user_id, now=timezone.now())

    updated = BankDeposit.objects.filter(pk=deposit.pk, status=expected_status, is_deleted=False).update(**fields)
    if updated != 1:
        logger.warning(
            "deposit_transition_conflict",
            extra={"station_id": deposit.station_id, "entity": "deposit", "entity_id": deposit.id},
        )
        raise InvalidTransition(f"Deposit is no longer {expected_status}; it could not be moved to {fields['status']}.")

    deposit.refresh_from_db()
    logger.info(
        "deposit_transition",
        extra={"station_id": deposit.station_id, "entity": "deposit", "entity_id": deposit.id},
    )
    return deposit


def deposit_stats(deposits, today=None):
    """Totals over a materialised list of deposits."""
    deposits = list(deposits)
    today = today or timezone.localdate()

    totals = {status: ZERO for status in lifecycle.STATUS_ORDER}
    counts = {status: 0 for status in lifecycle.STATUS_ORDER}
    by_bank = {}
    today_amount = ZERO
    today_count = 0
    month_amount = ZERO
    month_count = 0

    for deposit in deposits:
        amount = Decimal(deposit.amount)
        totals[deposit.status] += amount
        counts[deposit.status] += 1

        bank = by_bank.setdefault(deposit.bank_name, {"count": 0, "amount": ZERO})
        bank["count"] += 1
        bank["amount"] += amount

        if deposit.deposit_date == today:
            today_amount += amount
            today_count += 1
        if (deposit.deposit_date.year, deposit.deposit_date.month) == (today.year, today.month):
            month_amount += amount
            month_count += 1

    total_amount = sum(totals.values(), ZERO)
    return {
        "total_deposits": len(deposits),
        "total_amount": to_money(total_amount),
        "pending_amount": to_money(totals[lifecycle.PENDING]),
        "confirmed_amount": to_money(totals[lifecycle.CONFIRMED]),
        "reconciled_amount": to_money(totals[lifecycle.RECONCILED]),
        "today_amount": to_money(today_amount),
        "today_count": today_count,
        "month_amount": to_money(month_amount),
        "month_count": month_count,
        "average_deposit": to_money(total_amount / len(deposits)) if deposits else to_money(ZERO),
        "by_status": counts,
        "by_bank": {name: {**row, "amount": to_money(row["amount"])} for name, row in by_bank.items()},
    }


def cash_position(user, params):
    """Cash collected on counted sales against what has been banked for one station."""
    _, scope = _scope(user)
    station_id = params.get("station_id")
    if not station_id:
        raise ValidationError({"station_id": "This query parameter is required."})
    station = scope.require_station(station_id)

    sales = Sale.objects.filter(station=station, is_void=False).exclude(status=Sale.Status.CANCELLED)
    sales = sales.filter(payment_method=Sale.PaymentMethod.CASH)
    sales = _local_time_filters(sales, station, params)
    deposits = _apply_date_filters(active_deposits().filter(station=station), params, "deposit_date")

    cash_collected = sales.aggregate(total=Sum("cash_received"))["total"] or ZERO
    deposited = deposits.aggregate(total=Sum("amount"))["total"] or ZERO
    reconciled = deposits.filter(status=lifecycle.RECONCILED).aggregate(total=Sum("amount"))["total"] or ZERO

    return {
        "station": str(station.id),
        "cash_collected": to_money(cash_collected),
        "deposited": to_money(deposited),
        "reconciled": to_money(reconciled),
        "undeposited": to_money(cash_collected - deposited),
    }
