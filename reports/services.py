import logging
from datetime import datetime, time, timedelta
from decimal import Decimal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone

from rest_framework.exceptions import ValidationError

from common.exceptions import Forbidden, TamperedOrInvalid
from common.permissions import role_has_capability
from common.utils import to_money
from core.scoping import Identity, scope_filter
from reports.integrity import verify
from reports.models import DailyReport
from sales.aggregation import is_counted
from sales.models import Sale

logger = logging.getLogger(__name__)


def _station_timezone(station):
    try:
        return ZoneInfo(station.timezone or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.get_current_timezone()


def local_day_start(station, day):
    """Aware midnight of ``day`` on the station's wall clock."""
    return datetime.combine(day, time.min).replace(tzinfo=_station_timezone(station))


def day_totals(station, report_date):
    """Counted sales total and cash taken for one local calendar day."""
    start = local_day_start(station, report_date)
    end = start + timedelta(days=1)
    sales = Sale.objects.filter(station=station, transaction_time__gte=start, transaction_time__lt=end)

    total_sales = Decimal("0")
    cash_collected = Decimal("0")
    for sale in sales:
        if not is_counted(sale):
            continue
        total_sales += sale.total_amount
        if sale.payment_method == Sale.PaymentMethod.CASH:
            cash_collected += sale.cash_received
    return to_money(total_sales), to_money(cash_collected)


def create_daily_report(user, *, station_id, report_date, status=DailyReport.Status.DRAFT, notes=None):
    identity = Identity.from_user(user)
    if not role_has_capability(identity.role, "report.submit"):
        raise Forbidden()
    station = scope_filter(identity.role, identity).require_station(station_id)

    total_sales, cash_collected = day_totals(station, report_date)
    try:
        with transaction.atomic():
            report = DailyReport.objects.create(
                station=station,
                report_date=report_date,
                total_sales=total_sales,
                cash_collected=cash_collected,
                status=status,
                submitted_by=user if status != DailyReport.Status.DRAFT else None,
                notes=notes or None,
            )
    except IntegrityError:
        raise ValidationError({"report_date": "A report already exists for this station and date."})

    logger.info("daily_report_created", extra={"station_id": station.id, "entity": "daily_report", "entity_id": report.id})
    return report


def verify_report(report_id, supplied_hash):
    """Look up a report by id and check a shared fingerprint against it."""
    try:
        report = DailyReport.objects.select_related("station").filter(id=report_id).first() if report_id else None
    except (DjangoValidationError, ValueError, TypeError):
        report = None

    try:
        expected = verify(report, supplied_hash)
    except TamperedOrInvalid:
        logger.warning("report_verification_failed", extra={"entity": "daily_report", "entity_id": report_id})
        raise
    return report, expected
