"""Role-based station scoping.

Every sale, pump, deposit and daily report belongs to exactly one station, and
what a caller may see is decided by walking the station's ownership edges
(station -> dealer, station -> OMC) against the caller's identity. The rules
live in ``SCOPE_RULES`` so authorization stays in one table instead of being
re-derived per endpoint.
"""

from __future__ import annotations

from dataclasses import dataclass

from django.core.exceptions import ValidationError as DjangoValidationError

from common.exceptions import Forbidden
from common.permissions import get_user_role
from core.models import Station, User

# role -> (station attribute, identity attribute); None means unrestricted.
SCOPE_RULES: dict[str, tuple[str, str] | None] = {
    User.Role.ADMIN: None,
    User.Role.OMC: ("omc_id", "omc_id"),
    User.Role.DEALER: ("dealer_id", "dealer_id"),
    User.Role.STATION_MANAGER: ("id", "station_id"),
    User.Role.ATTENDANT: ("id", "station_id"),
}


@dataclass(frozen=True)
class Identity:
    role: str
    station_id: object = None
    dealer_id: object = None
    omc_id: object = None
    user_id: object = None

    @classmethod
    def from_user(cls, user) -> "Identity":
        if not user or not user.is_authenticated:
            raise Forbidden()
        return cls(
            role=get_user_role(user),
            station_id=getattr(user, "station_id", None),
            dealer_id=getattr(user, "dealer_id", None),
            omc_id=getattr(user, "omc_id", None),
            user_id=user.pk,
        )

    @property
    def is_admin(self) -> bool:
        return self.role == User.Role.ADMIN


@dataclass(frozen=True)
class StationScope:
    """The set of stations an identity may see or act on."""

    station_attr: str | None = None
    value: object = None

    @property
    def unrestricted(self) -> bool:
        return self.station_attr is None

    def allows(self, station) -> bool:
        if self.unrestricted:
            return True
        if station is None:
            return False
        return str(getattr(station, self.station_attr, None)) == str(self.value)

    def filter_stations(self, queryset):
        if self.unrestricted:
            return queryset
        return queryset.filter(**{self.station_attr: self.value})

    def filter_records(self, queryset, station_field: str = "station"):
        if self.unrestricted:
            return queryset
        return queryset.filter(**{f"{station_field}__{self.station_attr}": self.value})

    def require_station(self, station_id) -> Station:
        """Return the station when in scope.

        Unknown and out-of-scope stations raise the same ``Forbidden`` so a
        caller cannot probe for stations it does not own.
        """
        try:
            station = self.filter_stations(Station.objects.all()).filter(id=station_id).first()
        except (DjangoValidationError, ValueError, TypeError):
            station = None
        if station is None:
            raise Forbidden()
        return station

    def require(self, record, station_attr: str = "station") -> None:
        if not self.allows(getattr(record, station_attr, None)):
            raise Forbidden()


def scope_filter(role, identity: Identity) -> StationScope:
    if role not in SCOPE_RULES:
        raise Forbidden()

    rule = SCOPE_RULES[role]
    if rule is None:
        return StationScope()

    station_attr, identity_attr = rule
    value = getattr(identity, identity_attr, None)
    if value in (None, ""):
        raise Forbidden("Your account is not linked to any station scope.")
    return StationScope(station_attr=station_attr, value=value)


def scope_for_user(user) -> StationScope:
    identity = Identity.from_user(user)
    return scope_filter(identity.role, identity)
