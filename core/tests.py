import json
import logging
import uuid
from types import SimpleNamespace

from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TestCase
from rest_framework.test import APIClient

from common.exceptions import Forbidden
from common.logging import JsonFormatter
from core.models import Dealer, Omc, Station
from core.scoping import Identity, StationScope, scope_filter


class ScopeFilterTests(SimpleTestCase):
    def test_admin_is_unrestricted(self):
        scope = scope_filter("admin", Identity(role="admin"))

        self.assertTrue(scope.unrestricted)
        self.assertTrue(scope.allows(SimpleNamespace(id=uuid.uuid4())))

    def test_dealer_scope_walks_station_dealer_edge(self):
        dealer_id = uuid.uuid4()
        scope = scope_filter("dealer", Identity(role="dealer", dealer_id=dealer_id))

        self.assertEqual(scope, StationScope(station_attr="dealer_id", value=dealer_id))
        self.assertTrue(scope.allows(SimpleNamespace(id=uuid.uuid4(), dealer_id=dealer_id)))
        self.assertFalse(scope.allows(SimpleNamespace(id=uuid.uuid4(), dealer_id=uuid.uuid4())))

    def test_station_roles_are_pinned_to_their_station(self):
        station_id = uuid.uuid4()
        for role in ("station_manager", "attendant"):
            scope = scope_filter(role, Identity(role=role, station_id=station_id))

            self.assertTrue(scope.allows(SimpleNamespace(id=station_id)))
            self.assertFalse(scope.allows(SimpleNamespace(id=uuid.uuid4())))

    def test_missing_identity_attribute_is_forbidden(self):
        with self.assertRaises(Forbidden):
            scope_filter("omc", Identity(role="omc"))

    def test_unknown_role_is_forbidden(self):
        with self.assertRaises(Forbidden):
            scope_filter("auditor", Identity(role="auditor", station_id=uuid.uuid4()))

    def test_allows_rejects_missing_station(self):
        scope = scope_filter("attendant", Identity(role="attendant", station_id=uuid.uuid4()))

        self.assertFalse(scope.allows(None))


class JsonFormatterTests(SimpleTestCase):
    def test_extra_fields_are_rendered_as_json(self):
        station_id = uuid.uuid4()
        record = logging.LogRecord("sales.services", logging.INFO, __file__, 1, "sale_recorded", None, None)
        record.station_id = station_id
        record.entity = "sale"

        payload = json.loads(JsonFormatter().format(record))

        self.assertEqual(payload["message"], "sale_recorded")
        self.assertEqual(payload["station_id"], str(station_id))
        self.assertEqual(payload["entity"], "sale")


class StationScopeApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()

        self.omc = Omc.objects.create(code="OMC1", name="First OMC")
        self.other_omc = Omc.objects.create(code="OMC2", name="Second OMC")
        self.dealer = Dealer.objects.create(code="D1", name="Dealer One", omc=self.omc)

        self.station_a = Station.objects.create(code="STA", name="Station A", dealer=self.dealer, omc=self.omc)
        self.station_b = Station.objects.create(code="STB", name="Station B", omc=self.omc)
        self.station_c = Station.objects.create(code="STC", name="Station C", omc=self.other_omc)

        self.admin = self.user_model.objects.create_user(username="admin", password="pass1234", role="admin")
        self.omc_user = self.user_model.objects.create_user(
            username="omc-user", password="pass1234", role="omc", omc=self.omc
        )
        self.dealer_user = self.user_model.objects.create_user(
            username="dealer-user", password="pass1234", role="dealer", dealer=self.dealer
        )
        self.manager_a = self.user_model.objects.create_user(
            username="manager-a", password="pass1234", role="station_manager", station=self.station_a
        )
        self.orphan = self.user_model.objects.create_user(
            username="orphan", password="pass1234", role="station_manager"
        )

    def _station_codes(self, user):
        self.client.force_authenticate(user=user)
        response = self.client.get("/api/v1/stations/")
        self.assertEqual(response.status_code, 200)
        return {item["code"] for item in response.json()["results"]}

    def test_admin_sees_every_station(self):
        self.assertEqual(self._station_codes(self.admin), {"STA", "STB", "STC"})

    def test_omc_sees_only_its_network(self):
        self.assertEqual(self._station_codes(self.omc_user), {"STA", "STB"})

    def test_dealer_sees_only_its_stations(self):
        self.assertEqual(self._station_codes(self.dealer_user), {"STA"})

    def test_manager_sees_only_own_station(self):
        self.assertEqual(self._station_codes(self.manager_a), {"STA"})

    def test_other_station_detail_is_not_found_for_manager(self):
        self.client.force_authenticate(user=self.manager_a)

        response = self.client.get(f"/api/v1/stations/{self.station_b.id}/")

        self.assertEqual(response.status_code, 404)

    def test_unlinked_account_is_forbidden_with_envelope(self):
        self.client.force_authenticate(user=self.orphan)

        response = self.client.get("/api/v1/stations/")

        self.assertEqual(response.status_code, 403)
        payload = response.json()
        self.assertEqual(payload["code"], "forbidden")
        self.assertEqual(payload["status"], 403)
        self.assertEqual(payload["message"], "Your account is not linked to any station scope.")

    def test_manager_filtering_other_station_sales_is_forbidden(self):
        self.client.force_authenticate(user=self.manager_a)

        response = self.client.get("/api/v1/sales/", {"station_id": str(self.station_b.id)})

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["code"], "forbidden")

    def test_unknown_station_filter_is_indistinguishable_from_out_of_scope(self):
        self.client.force_authenticate(user=self.manager_a)

        missing = self.client.get("/api/v1/sales/", {"station_id": str(uuid.uuid4())})
        malformed = self.client.get("/api/v1/sales/", {"station_id": "not-a-uuid"})

        self.assertEqual(missing.status_code, 403)
        self.assertEqual(malformed.status_code, 403)
        self.assertEqual(missing.json()["message"], malformed.json()["message"])

    def test_authorised_query_without_rows_is_empty_list(self):
        self.client.force_authenticate(user=self.manager_a)

        response = self.client.get("/api/v1/sales/", {"station_id": str(self.station_a.id)})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["results"], [])

    def test_unauthenticated_request_is_rejected(self):
        response = self.client.get("/api/v1/stations/")

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "not_authenticated")


class TokenTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.station = Station.objects.create(code="TK", name="Token Station")
        self.user = get_user_model().objects.create_user(
            username="token-user",
            email="Token.User@Example.com",
            password="pass1234",
            role="attendant",
            station=self.station,
        )

    def test_login_with_email_returns_token_pair(self):
        response = self.client.post(
            "/api/v1/token/",
            {"username": "token.user@example.com", "password": "pass1234"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertIn("access", response.json())
        self.assertIn("refresh", response.json())

    def test_me_reports_role_and_station(self):
        self.client.force_authenticate(user=self.user)

        response = self.client.get("/api/v1/me/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["role"], "attendant")
        self.assertEqual(response.json()["station"], str(self.station.id))

    def test_health_endpoint_is_public(self):
        response = self.client.get("/api/v1/healthz/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")
