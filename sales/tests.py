from datetime import date, datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from io import StringIO
from types import SimpleNamespace
from unittest.mock import patch
from zoneinfo import ZoneInfo

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.test import SimpleTestCase, TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from common.exceptions import InconsistentWrite, InvalidRange, MissingProduct, MissingPump
from core.models import Station
from forecourt.models import Product, Pump, StationPrice
from sales.aggregation import breakdown, daily_trends, growth_percentage, hourly_trends, rank, summarize
from sales.calculator import compute_sale, resolve_product_for_pump
from sales.models import Sale
from sales.services import record_sale, void_sale


class ComputeSaleTests(SimpleTestCase):
    def test_litres_and_total_from_meters(self):
        result = compute_sale("1000.00", "1250.50", "14.50")

        self.assertEqual(result.litres_sold, Decimal("250.50"))
        self.assertEqual(result.total_amount, Decimal("3632.25"))
        self.assertEqual(result.cash_received, Decimal("3632.25"))
        self.assertEqual(result.variance, Decimal("0.00"))

    def test_closing_below_opening_is_invalid_range(self):
        with self.assertRaises(InvalidRange) as ctx:
            compute_sale("1000.00", "999.99", "14.50")

        self.assertIn("closing_meter", ctx.exception.detail)

    def test_equal_meters_give_zero_sale(self):
        result = compute_sale("500", "500", "14.50")

        self.assertEqual(result.litres_sold, Decimal("0"))
        self.assertEqual(result.total_amount, Decimal("0.00"))

    def test_cash_shortfall_is_negative_variance(self):
        result = compute_sale("0", "10", "14.50", cash_received="140.00")

        self.assertEqual(result.total_amount, Decimal("145.00"))
        self.assertEqual(result.variance, Decimal("-5.00"))

    def test_total_rounds_half_up(self):
        result = compute_sale("0", "0.005", "1.00")

        self.assertEqual(result.total_amount, Decimal("0.01"))


class ResolveProductTests(SimpleTestCase):
    def setUp(self):
        self.diesel = SimpleNamespace(id=1, name="Diesel")
        self.petrol = SimpleNamespace(id=2, name="Petrol")

    def test_match_is_case_insensitive(self):
        pump = SimpleNamespace(fuel_type=" DIESEL ")

        self.assertIs(resolve_product_for_pump(pump, [self.petrol, self.diesel]), self.diesel)

    def test_no_pump_is_missing_pump(self):
        with self.assertRaises(MissingPump):
            resolve_product_for_pump(None, [self.diesel])

    def test_no_match_is_missing_product(self):
        with self.assertRaises(MissingProduct):
            resolve_product_for_pump(SimpleNamespace(fuel_type="kerosene"), [self.diesel, self.petrol])

    def test_ambiguous_match_is_missing_product(self):
        duplicate = SimpleNamespace(id=3, name="diesel")

        with self.assertRaises(MissingProduct):
            resolve_product_for_pump(SimpleNamespace(fuel_type="diesel"), [self.diesel, duplicate])


def _sale(amount, *, day, product="p1", station="s1", pump="u1", status="completed", is_void=False, litres="1"):
    return {
        "total_amount": Decimal(amount),
        "litres_sold": Decimal(litres),
        "transaction_time": datetime.combine(day, datetime.min.time()).replace(hour=12, tzinfo=dt_timezone.utc),
        "product_id": product,
        "station_id": station,
        "pump_id": pump,
        "status": status,
        "is_void": is_void,
    }


class AggregationTests(SimpleTestCase):
    today = date(2024, 3, 15)
    yesterday = date(2024, 3, 14)

    def test_growth_percentage_edges(self):
        self.assertEqual(growth_percentage(Decimal("150"), Decimal("100")), Decimal("50.00"))
        self.assertEqual(growth_percentage(Decimal("10"), Decimal("0")), Decimal("100.00"))
        self.assertEqual(growth_percentage(Decimal("0"), Decimal("0")), Decimal("0.00"))
        self.assertEqual(growth_percentage(Decimal("50"), Decimal("100")), Decimal("-50.00"))

    def test_empty_input_has_zero_average(self):
        summary = summarize([], today=self.today, tz=dt_timezone.utc)

        self.assertEqual(summary.total_transactions, 0)
        self.assertEqual(summary.average_ticket, Decimal("0.00"))
        self.assertIsNone(summary.top_product)

    def test_cancelled_and_void_excluded_but_counted(self):
        sales = [
            _sale("100.00", day=self.today),
            _sale("50.00", day=self.yesterday),
            _sale("999.00", day=self.today, status="cancelled"),
            _sale("888.00", day=self.today, status="cancelled", is_void=True),
        ]

        summary = summarize(sales, today=self.today, tz=dt_timezone.utc)

        self.assertEqual(summary.total_sales, Decimal("150.00"))
        self.assertEqual(summary.total_transactions, 2)
        self.assertEqual(summary.average_ticket, Decimal("75.00"))
        self.assertEqual(summary.today_sales, Decimal("100.00"))
        self.assertEqual(summary.yesterday_sales, Decimal("50.00"))
        self.assertEqual(summary.growth_percentage, Decimal("100.00"))
        self.assertEqual(summary.cancelled_count, 1)
        self.assertEqual(summary.voided_count, 1)

    def test_ties_keep_first_key_seen(self):
        sales = [
            _sale("40.00", day=self.today, product="first", pump="pump-1"),
            _sale("40.00", day=self.today, product="second", pump="pump-2"),
        ]

        summary = summarize(sales, today=self.today, tz=dt_timezone.utc)

        self.assertEqual(summary.top_product, "first")
        self.assertEqual(summary.top_pump, "pump-1")

    def test_same_input_gives_same_summary(self):
        sales = [
            _sale("10.00", day=self.today, product="a"),
            _sale("30.00", day=self.yesterday, product="b"),
            _sale("20.00", day=self.today, product="a", station="s2"),
        ]

        first = summarize(sales, today=self.today, tz=dt_timezone.utc)
        second = summarize(list(sales), today=self.today, tz=dt_timezone.utc)

        self.assertEqual(first, second)
        self.assertEqual(first.top_product, "a")

    def test_rank_reports_share_of_total(self):
        sales = [
            _sale("75.00", day=self.today, product="a"),
            _sale("25.00", day=self.today, product="b"),
        ]

        rows = rank(sales, "product_id")

        self.assertEqual([row["product_id"] for row in rows], ["a", "b"])
        self.assertEqual(rows[0]["percentage"], Decimal("75.00"))
        self.assertEqual(rows[1]["percentage"], Decimal("25.00"))


class TrendFoldTests(SimpleTestCase):
    def _at(self, moment, amount="10.00"):
        return {**_sale(amount, day=moment.date()), "transaction_time": moment}

    def test_daily_buckets_follow_local_day(self):
        sales = [
            self._at(datetime(2024, 3, 15, 12, 0, tzinfo=dt_timezone.utc)),
            self._at(datetime(2024, 3, 15, 15, 30, tzinfo=dt_timezone.utc), amount="5.00"),
        ]

        utc_rows = daily_trends(sales, tz=dt_timezone.utc)
        tokyo_rows = daily_trends(sales, tz=ZoneInfo("Asia/Tokyo"))

        self.assertEqual([(row["date"], row["sales"]) for row in utc_rows], [("2024-03-15", Decimal("15.00"))])
        self.assertEqual(
            [(row["date"], row["sales"]) for row in tokyo_rows],
            [("2024-03-15", Decimal("10.00")), ("2024-03-16", Decimal("5.00"))],
        )

    def test_daily_trends_keep_most_recent_days(self):
        sales = [_sale("10.00", day=date(2024, 3, day)) for day in (13, 15, 14)]

        rows = daily_trends(sales, tz=dt_timezone.utc, days=2)

        self.assertEqual([row["date"] for row in rows], ["2024-03-14", "2024-03-15"])

    def test_trends_skip_cancelled_and_void(self):
        sales = [
            _sale("10.00", day=date(2024, 3, 15)),
            _sale("99.00", day=date(2024, 3, 15), status="cancelled"),
            _sale("88.00", day=date(2024, 3, 16), status="cancelled", is_void=True),
        ]

        daily = daily_trends(sales, tz=dt_timezone.utc)
        hourly = hourly_trends(sales, tz=dt_timezone.utc)

        self.assertEqual([(row["date"], row["transactions"]) for row in daily], [("2024-03-15", 1)])
        self.assertEqual(hourly[12]["sales"], Decimal("10.00"))
        self.assertEqual(hourly[12]["transactions"], 1)

    def test_hourly_trends_fill_every_hour(self):
        sales = [self._at(datetime(2024, 3, 15, 23, 30, tzinfo=dt_timezone.utc))]

        rows = hourly_trends(sales, tz=ZoneInfo("Africa/Lagos"))

        self.assertEqual([row["hour"] for row in rows], list(range(24)))
        self.assertEqual(rows[0]["sales"], Decimal("10.00"))
        self.assertEqual(sum(row["transactions"] for row in rows), 1)
        self.assertEqual(rows[23]["sales"], Decimal("0.00"))

    def test_breakdown_by_payment_method_and_customer_type(self):
        day = date(2024, 3, 15)
        sales = [
            {**_sale("10.00", day=day), "payment_method": "cash", "customer_type": "retail"},
            {**_sale("20.00", day=day), "payment_method": "card", "customer_type": "fleet"},
            {**_sale("5.00", day=day), "payment_method": "cash", "customer_type": "fleet"},
            {**_sale("70.00", day=day, status="cancelled"), "payment_method": "card", "customer_type": "retail"},
        ]

        self.assertEqual(breakdown(sales, "payment_method"), {"cash": Decimal("15.00"), "card": Decimal("20.00")})
        self.assertEqual(breakdown(sales, "customer_type"), {"retail": Decimal("10.00"), "fleet": Decimal("25.00")})


class SalesFixtureMixin:
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()

        self.station = Station.objects.create(code="S1", name="Station One")
        self.other_station = Station.objects.create(code="S2", name="Station Two")
        self.diesel = Product.objects.create(name="Diesel")
        StationPrice.objects.create(station=self.station, product=self.diesel, unit_price=Decimal("14.50"))
        self.pump = Pump.objects.create(
            station=self.station,
            number=1,
            name="Pump 1",
            fuel_type="diesel",
            current_meter_reading=Decimal("1000.00"),
        )
        self.other_pump = Pump.objects.create(
            station=self.other_station,
            number=1,
            name="Pump 1",
            fuel_type="diesel",
            current_meter_reading=Decimal("0"),
        )

        self.attendant = self.user_model.objects.create_user(
            username="attendant", password="pass1234", role="attendant", station=self.station
        )
        self.manager = self.user_model.objects.create_user(
            username="manager", password="pass1234", role="station_manager", station=self.station
        )
        self.dealer_user = self.user_model.objects.create_user(username="dealer", password="pass1234", role="dealer")

    def _create_sale(self, user=None, **overrides):
        self.client.force_authenticate(user=user or self.attendant)
        payload = {"pump": str(self.pump.id), "closing_meter": "1250.50", **overrides}
        return self.client.post("/api/v1/sales/", payload, format="json")


class SaleRecordingApiTests(SalesFixtureMixin, TestCase):
    def test_create_sale_computes_and_advances_pump(self):
        response = self._create_sale()

        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertEqual(Decimal(payload["litres_sold"]), Decimal("250.50"))
        self.assertEqual(payload["total_amount"], "3632.25")
        self.assertEqual(payload["variance"], "0.00")
        self.assertEqual(payload["product"], str(self.diesel.id))
        self.assertEqual(payload["station"], str(self.station.id))

        self.pump.refresh_from_db()
        self.assertEqual(self.pump.current_meter_reading, Decimal("1250.50"))

    def test_next_sale_opens_at_previous_closing(self):
        self._create_sale()
        response = self._create_sale(closing_meter="1300.50")

        self.assertEqual(response.status_code, 201)
        self.assertEqual(Decimal(response.json()["opening_meter"]), Decimal("1250.50"))
        self.assertEqual(Decimal(response.json()["litres_sold"]), Decimal("50"))

    def test_closing_below_opening_is_rejected_without_writing(self):
        response = self._create_sale(closing_meter="900")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "invalid_range")
        self.assertEqual(response.json()["message"], "Closing meter cannot be less than opening meter.")
        self.assertFalse(Sale.objects.exists())
        self.pump.refresh_from_db()
        self.assertEqual(self.pump.current_meter_reading, Decimal("1000.00"))

    def test_stale_opening_meter_is_rejected(self):
        response = self._create_sale(opening_meter="990.00")

        self.assertEqual(response.status_code, 400)
        self.assertIn("opening_meter", response.json()["errors"])

    def test_missing_price_is_reported(self):
        StationPrice.objects.all().delete()

        response = self._create_sale()

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "price_unavailable")

    def test_manual_price_overrides_station_price(self):
        StationPrice.objects.all().delete()

        response = self._create_sale(unit_price="15.00")

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["total_amount"], "3757.50")

    def test_pump_at_other_station_is_not_found(self):
        response = self._create_sale(pump=str(self.other_pump.id))

        self.assertEqual(response.status_code, 404)
        self.assertFalse(Sale.objects.exists())

    def test_dealer_cannot_record_sales(self):
        response = self._create_sale(user=self.dealer_user)

        self.assertEqual(response.status_code, 403)

    def test_failed_pump_update_rolls_back_sale(self):
        with patch.object(Pump.objects, "filter") as pump_filter:
            pump_filter.return_value.update.return_value = 0
            with self.assertRaises(InconsistentWrite) as ctx:
                record_sale(user=self.attendant, pump_id=self.pump.id, closing_meter="1250.50")

        self.assertEqual(ctx.exception.sale_payload["pump_id"], str(self.pump.id))
        self.assertEqual(ctx.exception.sale_payload["total_amount"], "3632.25")
        self.assertFalse(Sale.objects.exists())

    def test_preview_does_not_write(self):
        self.client.force_authenticate(user=self.attendant)

        response = self.client.post(
            "/api/v1/sales/preview/",
            {"pump": str(self.pump.id), "closing_meter": "1010.00", "cash_received": "140.00"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["total_amount"], "145.00")
        self.assertEqual(response.json()["variance"], "-5.00")
        self.assertFalse(Sale.objects.exists())
        self.pump.refresh_from_db()
        self.assertEqual(self.pump.current_meter_reading, Decimal("1000.00"))


class SaleLifecycleApiTests(SalesFixtureMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.sale_id = self._create_sale().json()["id"]

    def test_manager_edit_recomputes_and_moves_pump(self):
        self.client.force_authenticate(user=self.manager)

        response = self.client.patch(f"/api/v1/sales/{self.sale_id}/", {"closing_meter": "1300.00"}, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(Decimal(response.json()["litres_sold"]), Decimal("300"))
        self.assertEqual(response.json()["total_amount"], "4350.00")
        self.pump.refresh_from_db()
        self.assertEqual(self.pump.current_meter_reading, Decimal("1300.00"))

    def test_attendant_cannot_edit(self):
        self.client.force_authenticate(user=self.attendant)

        response = self.client.patch(f"/api/v1/sales/{self.sale_id}/", {"notes": "changed"}, format="json")

        self.assertEqual(response.status_code, 403)

    def test_cancel_then_edit_is_invalid_transition(self):
        self.client.force_authenticate(user=self.manager)

        cancelled = self.client.delete(f"/api/v1/sales/{self.sale_id}/")
        edit = self.client.patch(f"/api/v1/sales/{self.sale_id}/", {"notes": "late"}, format="json")
        again = self.client.delete(f"/api/v1/sales/{self.sale_id}/")

        self.assertEqual(cancelled.status_code, 200)
        self.assertEqual(cancelled.json()["status"], "cancelled")
        self.assertEqual(edit.status_code, 409)
        self.assertEqual(edit.json()["code"], "invalid_transition")
        self.assertEqual(again.status_code, 409)

    def test_void_is_irreversible(self):
        self.client.force_authenticate(user=self.manager)

        first = self.client.post(f"/api/v1/sales/{self.sale_id}/void/")
        second = self.client.post(f"/api/v1/sales/{self.sale_id}/void/")

        self.assertEqual(first.status_code, 200)
        self.assertTrue(first.json()["is_void"])
        self.assertEqual(first.json()["status"], "cancelled")
        self.assertEqual(second.status_code, 409)

    def test_list_filters_by_status(self):
        self.client.force_authenticate(user=self.manager)
        self.client.delete(f"/api/v1/sales/{self.sale_id}/")
        self._create_sale(user=self.manager, closing_meter="1260.50")

        response = self.client.get("/api/v1/sales/", {"status": "completed"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()["results"]), 1)

    def test_summary_report_excludes_cancelled(self):
        self._create_sale(closing_meter="1260.50")
        self.client.force_authenticate(user=self.manager)
        self.client.delete(f"/api/v1/sales/{self.sale_id}/")

        response = self.client.get("/api/v1/reports/sales-summary/")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["total_transactions"], 1)
        self.assertEqual(payload["total_sales"], "145.00")
        self.assertEqual(payload["cancelled_count"], 1)
        self.assertEqual(payload["top_pump"], str(self.pump.id))

    def test_stats_report_as_csv(self):
        self.client.force_authenticate(user=self.manager)

        response = self.client.get("/api/v1/reports/sales-stats/", {"format": "csv"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response["Content-Type"], "text/csv")
        self.assertIn("product_id", response.content.decode())

    def test_daily_trends_report(self):
        self.client.force_authenticate(user=self.manager)

        response = self.client.get("/api/v1/reports/daily-trends/", {"timezone": "UTC"})
        csv_response = self.client.get("/api/v1/reports/daily-trends/", {"timezone": "UTC", "format": "csv"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["timezone"], "UTC")
        rows = response.json()["results"]
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["date"], timezone.now().date().isoformat())
        self.assertEqual(rows[0]["sales"], "3632.25")
        self.assertEqual(rows[0]["transactions"], 1)
        self.assertEqual(csv_response.status_code, 200)
        self.assertEqual(csv_response["Content-Type"], "text/csv")
        self.assertTrue(csv_response.content.decode().startswith("date,sales,volume,transactions"))


class ReconcilePumpMetersCommandTests(SalesFixtureMixin, TestCase):
    def test_fix_realigns_drifted_pump(self):
        record_sale(
            user=self.attendant,
            pump_id=self.pump.id,
            closing_meter="1100.00",
            transaction_time=timezone.now() - timedelta(minutes=5),
        )
        Pump.objects.filter(pk=self.pump.pk).update(current_meter_reading=Decimal("1050.00"))

        out = StringIO()
        call_command("reconcile_pump_meters", "--fix", stdout=out)

        self.pump.refresh_from_db()
        self.assertEqual(self.pump.current_meter_reading, Decimal("1100.00"))
        self.assertIn("Realigned 1 of 1", out.getvalue())

    def test_clean_ledger_reports_no_drift(self):
        record_sale(user=self.attendant, pump_id=self.pump.id, closing_meter="1100.00")

        out = StringIO()
        call_command("reconcile_pump_meters", stdout=out)

        self.assertIn("No pump meter drift detected.", out.getvalue())

    def test_backdated_sale_does_not_rewind_pump(self):
        record_sale(user=self.attendant, pump_id=self.pump.id, closing_meter="1250.00")
        record_sale(
            user=self.attendant,
            pump_id=self.pump.id,
            closing_meter="1300.00",
            transaction_time=timezone.now() - timedelta(days=1),
        )

        out = StringIO()
        call_command("reconcile_pump_meters", "--fix", stdout=out)

        self.pump.refresh_from_db()
        self.assertEqual(self.pump.current_meter_reading, Decimal("1300.00"))
        self.assertIn("No pump meter drift detected.", out.getvalue())

    def test_voided_sale_still_counts_towards_meter(self):
        record_sale(
            user=self.attendant,
            pump_id=self.pump.id,
            closing_meter="1250.00",
            transaction_time=timezone.now() - timedelta(minutes=5),
        )
        void_sale(record_sale(user=self.attendant, pump_id=self.pump.id, closing_meter="1300.00"))

        out = StringIO()
        call_command("reconcile_pump_meters", "--fix", stdout=out)

        self.pump.refresh_from_db()
        self.assertEqual(self.pump.current_meter_reading, Decimal("1300.00"))
        self.assertIn("No pump meter drift detected.", out.getvalue())

    def test_pump_ahead_of_sales_is_reported_not_lowered(self):
        record_sale(user=self.attendant, pump_id=self.pump.id, closing_meter="1100.00")
        Pump.objects.filter(pk=self.pump.pk).update(current_meter_reading=Decimal("1200.00"))

        out = StringIO()
        call_command("reconcile_pump_meters", "--fix", stdout=out)

        self.pump.refresh_from_db()
        self.assertEqual(self.pump.current_meter_reading, Decimal("1200.00"))
        self.assertIn("review manually", out.getvalue())
        self.assertIn("Realigned 0 of 0", out.getvalue())
        self.assertIn("1 pump(s) read ahead of their sales and were left unchanged.", out.getvalue())
