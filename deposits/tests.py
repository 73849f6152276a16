import uuid
from datetime import date, datetime, timezone as dt_timezone
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from common.exceptions import InvalidTransition
from core.models import Dealer, Station
from deposits import lifecycle
from deposits.models import BankDeposit
from deposits.services import deposit_stats
from forecourt.models import Product, Pump, StationPrice
from sales.services import record_sale


class LifecycleRuleTests(SimpleTestCase):
    def test_forward_path(self):
        status = lifecycle.next_status(lifecycle.PENDING, "confirm")
        status = lifecycle.next_status(status, "reconcile")

        self.assertEqual(status, lifecycle.RECONCILED)

    def test_reconcile_may_skip_confirm(self):
        self.assertEqual(lifecycle.next_status(lifecycle.PENDING, "reconcile"), lifecycle.RECONCILED)

    def test_backward_moves_are_rejected(self):
        with self.assertRaises(InvalidTransition):
            lifecycle.next_status(lifecycle.RECONCILED, "confirm")
        with self.assertRaises(InvalidTransition):
            lifecycle.next_status(lifecycle.CONFIRMED, "confirm")
        with self.assertRaises(InvalidTransition):
            lifecycle.next_status(lifecycle.RECONCILED, "reconcile")

    def test_unknown_action_is_rejected(self):
        with self.assertRaises(InvalidTransition):
            lifecycle.next_status(lifecycle.PENDING, "reopen")

    def test_transition_fields_stamp_actor(self):
        now = timezone.now()
        actor = uuid.uuid4()

        fields = lifecycle.transition_fields(lifecycle.CONFIRMED, "reconcile", actor_id=actor, now=now)

        self.assertEqual(fields["status"], lifecycle.RECONCILED)
        self.assertEqual(fields["reconciliation_date"], now)
        self.assertEqual(fields["reconciled_by_id"], actor)

    def test_only_admin_modifies_after_pending(self):
        self.assertTrue(lifecycle.can_modify(lifecycle.PENDING, "dealer"))
        self.assertFalse(lifecycle.can_modify(lifecycle.CONFIRMED, "dealer"))
        self.assertFalse(lifecycle.can_modify(lifecycle.RECONCILED, "omc"))
        self.assertTrue(lifecycle.can_modify(lifecycle.RECONCILED, "admin"))

    def test_field_validation(self):
        errors = lifecycle.validate_deposit_fields(amount=Decimal("0"), account_number="1234567")

        self.assertEqual(set(errors), {"amount", "account_number"})
        self.assertEqual(lifecycle.validate_deposit_fields(amount=Decimal("1"), account_number="12345678"), {})


class DepositStatsTests(SimpleTestCase):
    def test_totals_by_status_and_bank(self):
        today = date(2024, 3, 15)
        deposits = [
            BankDeposit(amount=Decimal("100.00"), status="pending", bank_name="GCB", deposit_date=today),
            BankDeposit(amount=Decimal("200.00"), status="reconciled", bank_name="GCB", deposit_date=date(2024, 3, 1)),
            BankDeposit(amount=Decimal("50.00"), status="confirmed", bank_name="Ecobank", deposit_date=date(2024, 2, 28)),
        ]

        stats = deposit_stats(deposits, today=today)

        self.assertEqual(stats["total_amount"], Decimal("350.00"))
        self.assertEqual(stats["pending_amount"], Decimal("100.00"))
        self.assertEqual(stats["reconciled_amount"], Decimal("200.00"))
        self.assertEqual(stats["today_count"], 1)
        self.assertEqual(stats["month_amount"], Decimal("300.00"))
        self.assertEqual(stats["average_deposit"], Decimal("116.67"))
        self.assertEqual(stats["by_status"], {"pending": 1, "confirmed": 1, "reconciled": 1})
        self.assertEqual(stats["by_bank"]["GCB"]["count"], 2)

    def test_empty_ledger(self):
        stats = deposit_stats([], today=date(2024, 3, 15))

        self.assertEqual(stats["total_deposits"], 0)
        self.assertEqual(stats["average_deposit"], Decimal("0.00"))


class DepositApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()

        self.dealer = Dealer.objects.create(code="D1", name="Dealer One")
        self.other_dealer = Dealer.objects.create(code="D2", name="Dealer Two")
        self.station = Station.objects.create(code="S1", name="Station One", dealer=self.dealer)
        self.other_station = Station.objects.create(code="S2", name="Station Two", dealer=self.other_dealer)

        self.admin = self.user_model.objects.create_user(username="admin", password="pass1234", role="admin")
        self.dealer_user = self.user_model.objects.create_user(
            username="dealer", password="pass1234", role="dealer", dealer=self.dealer
        )
        self.other_dealer_user = self.user_model.objects.create_user(
            username="dealer-2", password="pass1234", role="dealer", dealer=self.other_dealer
        )
        self.manager = self.user_model.objects.create_user(
            username="manager", password="pass1234", role="station_manager", station=self.station
        )
        self.attendant = self.user_model.objects.create_user(
            username="attendant", password="pass1234", role="attendant", station=self.station
        )

    def _payload(self, **overrides):
        return {
            "station": str(self.station.id),
            "amount": "500.00",
            "bank_name": "GCB",
            "account_number": "1234567890",
            "reference_number": "REF-001",
            "deposit_date": "2024-03-15",
            **overrides,
        }

    def _create(self, user=None, **overrides):
        self.client.force_authenticate(user=user or self.manager)
        return self.client.post("/api/v1/deposits/", self._payload(**overrides), format="json")

    def _transition(self, deposit_id, action, expected_status, user=None):
        self.client.force_authenticate(user=user or self.dealer_user)
        return self.client.post(
            f"/api/v1/deposits/{deposit_id}/{action}/",
            {"expected_status": expected_status},
            format="json",
        )

    def test_create_starts_pending(self):
        response = self._create()

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["status"], "pending")
        self.assertEqual(response.json()["amount"], "500.00")

    def test_create_validation(self):
        zero = self._create(amount="0")
        short = self._create(account_number="1234567", reference_number="REF-002")

        self.assertEqual(zero.status_code, 400)
        self.assertIn("amount", zero.json()["errors"])
        self.assertEqual(short.status_code, 400)
        self.assertIn("account_number", short.json()["errors"])

    def test_duplicate_reference_is_rejected(self):
        self._create()

        response = self._create(amount="10.00")

        self.assertEqual(response.status_code, 400)
        self.assertIn("reference_number", response.json()["errors"])

    def test_attendant_cannot_create(self):
        response = self._create(user=self.attendant)

        self.assertEqual(response.status_code, 403)

    def test_create_for_out_of_scope_station_is_forbidden(self):
        response = self._create(station=str(self.other_station.id))

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["code"], "forbidden")

    def test_confirm_then_reconcile(self):
        deposit_id = self._create().json()["id"]

        confirmed = self._transition(deposit_id, "confirm", "pending")
        reconciled = self._transition(deposit_id, "reconcile", "confirmed")

        self.assertEqual(confirmed.status_code, 200)
        self.assertEqual(confirmed.json()["status"], "confirmed")
        self.assertEqual(confirmed.json()["confirmed_by"], str(self.dealer_user.id))
        self.assertEqual(reconciled.status_code, 200)
        self.assertEqual(reconciled.json()["status"], "reconciled")
        self.assertIsNotNone(reconciled.json()["reconciliation_date"])

    def test_confirm_after_reconcile_is_invalid(self):
        deposit_id = self._create().json()["id"]

        self._transition(deposit_id, "reconcile", "pending")
        response = self._transition(deposit_id, "confirm", "reconciled")

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "invalid_transition")
        self.assertEqual(BankDeposit.objects.get(id=deposit_id).status, "reconciled")

    def test_stale_expected_status_leaves_deposit_untouched(self):
        deposit_id = self._create().json()["id"]
        # Another actor confirms first.
        BankDeposit.objects.filter(id=deposit_id).update(status="confirmed")

        response = self._transition(deposit_id, "confirm", "pending")

        self.assertEqual(response.status_code, 409)
        deposit = BankDeposit.objects.get(id=deposit_id)
        self.assertEqual(deposit.status, "confirmed")
        self.assertIsNone(deposit.confirmed_at)

    def test_manager_cannot_confirm_and_denial_is_logged(self):
        deposit_id = self._create().json()["id"]

        with self.assertLogs("security.authorization", level="WARNING") as logs:
            response = self._transition(deposit_id, "confirm", "pending", user=self.manager)

        self.assertEqual(response.status_code, 403)
        self.assertIn("capability=deposit.manage", logs.output[0])

    def test_out_of_scope_or_missing_deposit_is_forbidden(self):
        deposit_id = self._create().json()["id"]

        foreign = self._transition(deposit_id, "confirm", "pending", user=self.other_dealer_user)
        missing = self._transition(uuid.uuid4(), "confirm", "pending")

        self.assertEqual(foreign.status_code, 403)
        self.assertEqual(missing.status_code, 403)
        self.assertEqual(foreign.json()["message"], missing.json()["message"])
        self.assertEqual(BankDeposit.objects.get(id=deposit_id).status, "pending")

    def test_edit_after_reconcile_needs_admin(self):
        deposit_id = self._create().json()["id"]
        self._transition(deposit_id, "reconcile", "pending")

        self.client.force_authenticate(user=self.dealer_user)
        dealer_edit = self.client.patch(f"/api/v1/deposits/{deposit_id}/", {"notes": "late"}, format="json")
        self.client.force_authenticate(user=self.admin)
        admin_edit = self.client.patch(f"/api/v1/deposits/{deposit_id}/", {"notes": "late"}, format="json")

        self.assertEqual(dealer_edit.status_code, 409)
        self.assertEqual(admin_edit.status_code, 200)
        self.assertEqual(admin_edit.json()["notes"], "late")
        self.assertEqual(admin_edit.json()["status"], "reconciled")

    def test_edit_cannot_change_status(self):
        deposit_id = self._create().json()["id"]
        self.client.force_authenticate(user=self.dealer_user)

        response = self.client.patch(f"/api/v1/deposits/{deposit_id}/", {"status": "reconciled"}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(BankDeposit.objects.get(id=deposit_id).status, "pending")

    def test_delete_is_logical_and_pending_only(self):
        pending_id = self._create().json()["id"]
        reconciled_id = self._create(reference_number="REF-009").json()["id"]
        self._transition(reconciled_id, "reconcile", "pending")

        self.client.force_authenticate(user=self.dealer_user)
        deleted = self.client.delete(f"/api/v1/deposits/{pending_id}/")
        refused = self.client.delete(f"/api/v1/deposits/{reconciled_id}/")
        listing = self.client.get("/api/v1/deposits/")

        self.assertEqual(deleted.status_code, 204)
        self.assertTrue(BankDeposit.objects.get(id=pending_id).is_deleted)
        self.assertEqual(refused.status_code, 409)
        self.assertEqual([row["id"] for row in listing.json()["results"]], [reconciled_id])

    def test_stats_endpoint(self):
        self._create()
        self._create(amount="250.00", reference_number="REF-002")
        self.client.force_authenticate(user=self.dealer_user)

        response = self.client.get("/api/v1/deposits/stats/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["total_deposits"], 2)
        self.assertEqual(response.json()["total_amount"], "750.00")
        self.assertEqual(response.json()["by_status"]["pending"], 2)

    def test_cash_position_requires_station(self):
        self.client.force_authenticate(user=self.manager)

        missing = self.client.get("/api/v1/deposits/cash-position/")
        response = self.client.get("/api/v1/deposits/cash-position/", {"station_id": str(self.station.id)})

        self.assertEqual(missing.status_code, 400)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["undeposited"], "0.00")

    def _cash_fixture(self):
        product = Product.objects.create(name="Petrol")
        StationPrice.objects.create(station=self.station, product=product, unit_price=Decimal("10.00"))
        pump = Pump.objects.create(station=self.station, number=1, name="P1", fuel_type="Petrol")
        record_sale(
            user=self.attendant,
            pump_id=pump.id,
            closing_meter="100.00",
            transaction_time=datetime(2024, 3, 15, 16, 0, tzinfo=dt_timezone.utc),
        )
        record_sale(
            user=self.attendant,
            pump_id=pump.id,
            closing_meter="150.00",
            payment_method="card",
            transaction_time=datetime(2024, 3, 15, 10, 0, tzinfo=dt_timezone.utc),
        )

    def test_cash_position_totals(self):
        self._cash_fixture()
        self._create()
        reconciled_id = self._create(amount="200.00", reference_number="REF-002").json()["id"]
        deleted_id = self._create(amount="300.00", reference_number="REF-003").json()["id"]
        self._transition(reconciled_id, "reconcile", "pending")
        self.client.delete(f"/api/v1/deposits/{deleted_id}/")

        self.client.force_authenticate(user=self.manager)
        response = self.client.get(
            "/api/v1/deposits/cash-position/",
            {"station_id": str(self.station.id), "date_from": "2024-03-15", "date_to": "2024-03-15"},
        )

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["cash_collected"], "1000.00")
        self.assertEqual(payload["deposited"], "700.00")
        self.assertEqual(payload["reconciled"], "200.00")
        self.assertEqual(payload["undeposited"], "300.00")

    def test_cash_position_uses_station_local_day(self):
        self._cash_fixture()
        Station.objects.filter(pk=self.station.pk).update(timezone="Asia/Tokyo")
        self.client.force_authenticate(user=self.manager)

        def cash_on(day):
            response = self.client.get(
                "/api/v1/deposits/cash-position/",
                {"station_id": str(self.station.id), "date_from": day, "date_to": day},
            )
            return response.json()["cash_collected"]

        self.assertEqual(cash_on("2024-03-15"), "0.00")
        self.assertEqual(cash_on("2024-03-16"), "1000.00")

    def test_deleted_deposit_reference_can_be_reused(self):
        deposit_id = self._create().json()["id"]
        self.client.force_authenticate(user=self.dealer_user)
        self.client.delete(f"/api/v1/deposits/{deposit_id}/")

        response = self._create()

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["reference_number"], "REF-001")
