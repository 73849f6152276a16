from common.exceptions import PriceUnavailable
from common.utils import to_money
from forecourt.models import Product, StationPrice


def get_station_price(station_id, product_id):
    """Return the active unit price for a product at a station, or None."""
    price = (
        StationPrice.objects.filter(station_id=station_id, product_id=product_id, is_active=True)
        .values_list("unit_price", flat=True)
        .first()
    )
    return price


def resolve_unit_price(station_id, product_id, override=None):
    """A manual override wins over the station price; no price at all blocks the sale."""
    if override not in (None, ""):
        return to_money(override)

    price = get_station_price(station_id, product_id)
    if price is None:
        raise PriceUnavailable()
    return to_money(price)


def active_products():
    return list(Product.objects.filter(is_active=True).order_by("name"))
