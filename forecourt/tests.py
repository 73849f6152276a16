from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIClient

from common.exceptions import PriceUnavailable
from core.models import Station
from forecourt.models import Product, Pump, StationPrice
from forecourt.services import get_station_price, resolve_unit_price


class PriceResolutionTests(TestCase):
    def setUp(self):
        self.station = Station.objects.create(code="S1", name="Station One")
        self.product = Product.objects.create(name="Diesel")

    def test_missing_price_is_none(self):
        self.assertIsNone(get_station_price(self.station.id, self.product.id))

    def test_inactive_price_is_ignored(self):
        StationPrice.objects.create(station=self.station, product=self.product, unit_price="14.50", is_active=False)

        with self.assertRaises(PriceUnavailable):
            resolve_unit_price(self.station.id, self.product.id)

    def test_override_wins(self):
        StationPrice.objects.create(station=self.station, product=self.product, unit_price="14.50")

        self.assertEqual(resolve_unit_price(self.station.id, self.product.id), Decimal("14.50"))
        self.assertEqual(resolve_unit_price(self.station.id, self.product.id, override="15.005"), Decimal("15.01"))


class PumpApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.station = Station.objects.create(code="S1", name="Station One")
        self.other_station = Station.objects.create(code="S2", name="Station Two")
        self.product = Product.objects.create(name="Diesel")
        StationPrice.objects.create(station=self.station, product=self.product, unit_price="14.50")

        self.pump = Pump.objects.create(
            station=self.station, number=1, name="P1", fuel_type="Diesel", current_meter_reading="1000.000"
        )
        self.other_pump = Pump.objects.create(station=self.other_station, number=1, name="P1", fuel_type="Diesel")
        self.attendant = get_user_model().objects.create_user(
            username="attendant", password="pass1234", role="attendant", station=self.station
        )
        self.client.force_authenticate(user=self.attendant)

    def test_pumps_are_scoped_to_station(self):
        response = self.client.get("/api/v1/pumps/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["id"] for row in response.json()["results"]], [str(self.pump.id)])

    def test_price_lookup_returns_opening_reading(self):
        response = self.client.get(f"/api/v1/pumps/{self.pump.id}/price/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["unit_price"], "14.50")
        self.assertEqual(response.json()["product_name"], "Diesel")
        self.assertEqual(Decimal(response.json()["current_meter_reading"]), Decimal("1000"))

    def test_other_station_pump_price_is_not_found(self):
        response = self.client.get(f"/api/v1/pumps/{self.other_pump.id}/price/")

        self.assertEqual(response.status_code, 404)

    def test_products_list(self):
        response = self.client.get("/api/v1/products/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["name"] for row in response.json()], ["Diesel"])
