import uuid
from datetime import date, datetime, timezone as dt_timezone
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TestCase
from rest_framework.test import APIClient

from common.exceptions import TamperedOrInvalid
from core.models import Station
from forecourt.models import Product, Pump, StationPrice
from reports.integrity import _rolling_hash, canonical_payload, fingerprint, verify
from reports.models import DailyReport
from sales.services import record_sale


class FingerprintTests(SimpleTestCase):
    def setUp(self):
        self.report = {
            "id": "7c1f9a2e-0000-4000-8000-000000000001",
            "report_date": date(2024, 1, 15),
            "station_id": "station-1",
            "total_sales": Decimal("1500.00"),
            "status": "approved",
            "cash_collected": Decimal("1499.50"),
        }

    def test_canonical_payload_is_compact_and_ordered(self):
        self.assertEqual(
            canonical_payload(self.report),
            '{"id":"7c1f9a2e-0000-4000-8000-000000000001","report_date":"2024-01-15",'
            '"station_id":"station-1","total_sales":1500,"status":"approved","cash_collected":1499.5}',
        )

    def test_rolling_hash_over_utf16_units(self):
        self.assertEqual(_rolling_hash("a"), 97)
        self.assertEqual(_rolling_hash("ab"), 97 * 31 + 98)
        self.assertEqual(_rolling_hash("\U0001F600"), 0xD83D * 31 + 0xDE00)

    def test_short_digest_is_left_padded(self):
        self.assertEqual(format(abs(_rolling_hash("a")), "x").rjust(8, "0").upper(), "00000061")

    def test_fingerprint_is_stable_uppercase_hex(self):
        first = fingerprint(self.report)

        self.assertEqual(first, fingerprint(dict(self.report)))
        self.assertEqual(len(first), 8)
        self.assertEqual(first, first.upper())
        int(first, 16)

    def test_changing_any_hashed_field_changes_fingerprint(self):
        original = fingerprint(self.report)
        changes = {
            "id": "7c1f9a2e-0000-4000-8000-000000000002",
            "report_date": date(2024, 1, 16),
            "station_id": "station-2",
            "total_sales": Decimal("1500.01"),
            "status": "submitted",
            "cash_collected": Decimal("1499.00"),
        }

        for field, value in changes.items():
            with self.subTest(field=field):
                self.assertNotEqual(fingerprint({**self.report, field: value}), original)

    def test_other_fields_are_ignored(self):
        self.assertEqual(fingerprint({**self.report, "notes": "edited"}), fingerprint(self.report))

    def test_verify_is_case_insensitive(self):
        expected = fingerprint(self.report)

        self.assertEqual(verify(self.report, expected.lower()), expected)

    def test_verify_rejects_mismatch_and_blank(self):
        for supplied in ("00000000", "", None):
            with self.subTest(supplied=supplied):
                with self.assertRaises(TamperedOrInvalid):
                    verify(self.report, supplied)

        with self.assertRaises(TamperedOrInvalid):
            verify(None, fingerprint(self.report))


class DailyReportApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()

        self.station = Station.objects.create(code="S1", name="Station One")
        self.other_station = Station.objects.create(code="S2", name="Station Two")
        product = Product.objects.create(name="Petrol")
        StationPrice.objects.create(station=self.station, product=product, unit_price=Decimal("10.00"))
        self.pump = Pump.objects.create(station=self.station, number=1, name="P1", fuel_type="Petrol")

        self.manager = self.user_model.objects.create_user(
            username="manager", password="pass1234", role="station_manager", station=self.station
        )
        self.attendant = self.user_model.objects.create_user(
            username="attendant", password="pass1234", role="attendant", station=self.station
        )

        record_sale(
            user=self.attendant,
            pump_id=self.pump.id,
            closing_meter="120.00",
            transaction_time=datetime(2024, 3, 15, 10, 0, tzinfo=dt_timezone.utc),
        )
        record_sale(
            user=self.attendant,
            pump_id=self.pump.id,
            closing_meter="130.00",
            payment_method="card",
            transaction_time=datetime(2024, 3, 16, 10, 0, tzinfo=dt_timezone.utc),
        )

    def _create_report(self, user=None, **overrides):
        self.client.force_authenticate(user=user or self.manager)
        payload = {"station": str(self.station.id), "report_date": "2024-03-15", "status": "submitted", **overrides}
        return self.client.post("/api/v1/daily-reports/", payload, format="json")

    def test_create_totals_the_day(self):
        response = self._create_report()

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["total_sales"], "1200.00")
        self.assertEqual(response.json()["cash_collected"], "1200.00")
        self.assertEqual(response.json()["submitted_by"], str(self.manager.id))

    def test_second_report_for_same_day_is_rejected(self):
        self._create_report()

        response = self._create_report()

        self.assertEqual(response.status_code, 400)

    def test_attendant_cannot_submit(self):
        response = self._create_report(user=self.attendant)

        self.assertEqual(response.status_code, 403)

    def test_other_station_is_forbidden(self):
        response = self._create_report(station=str(self.other_station.id))

        self.assertEqual(response.status_code, 403)

    def test_fingerprint_endpoint_matches_record(self):
        report_id = self._create_report().json()["id"]

        response = self.client.get(f"/api/v1/daily-reports/{report_id}/fingerprint/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["fingerprint"], fingerprint(DailyReport.objects.get(id=report_id)))

    def test_public_verification(self):
        report_id = self._create_report().json()["id"]
        expected = fingerprint(DailyReport.objects.get(id=report_id))
        self.client.force_authenticate(user=None)

        response = self.client.get("/api/v1/daily-reports/verify/", {"id": report_id, "hash": expected.lower()})

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["valid"])
        self.assertEqual(response.json()["report"]["station_code"], "S1")

    def test_tampered_record_fails_verification(self):
        report_id = self._create_report().json()["id"]
        expected = fingerprint(DailyReport.objects.get(id=report_id))
        DailyReport.objects.filter(id=report_id).update(cash_collected=Decimal("1100.00"))
        self.client.force_authenticate(user=None)

        tampered = self.client.get("/api/v1/daily-reports/verify/", {"id": report_id, "hash": expected})
        missing = self.client.get("/api/v1/daily-reports/verify/", {"id": str(uuid.uuid4()), "hash": expected})

        self.assertEqual(tampered.status_code, 400)
        self.assertEqual(tampered.json()["code"], "tampered_or_invalid")
        self.assertEqual(missing.status_code, 400)
        self.assertEqual(missing.json()["code"], "tampered_or_invalid")
