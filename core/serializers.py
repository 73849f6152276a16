from django.contrib.auth import get_user_model
from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from common.permissions import get_user_role
from core.models import AuditLog, Station

User = get_user_model()


class EmailOrUsernameTokenObtainPairSerializer(TokenObtainPairSerializer):
    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token["role"] = get_user_role(user)
        token["station_id"] = str(user.station_id) if user.station_id else None
        token["dealer_id"] = str(user.dealer_id) if user.dealer_id else None
        token["omc_id"] = str(user.omc_id) if user.omc_id else None
        token["is_superuser"] = user.is_superuser
        return token

    def validate(self, attrs):
        username = attrs.get("username", "")
        if username and "@" in username:
            try:
                user = User.objects.get(email__iexact=username)
                attrs["username"] = user.get_username()
            except User.DoesNotExist:
                pass
        return super().validate(attrs)


class StationSerializer(serializers.ModelSerializer):
    dealer_name = serializers.CharField(source="dealer.name", read_only=True, default=None)
    omc_name = serializers.CharField(source="omc.name", read_only=True, default=None)

    class Meta:
        model = Station
        fields = [
            "id",
            "code",
            "name",
            "dealer",
            "dealer_name",
            "omc",
            "omc_name",
            "timezone",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class MeSerializer(serializers.ModelSerializer):
    role = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ["id", "username", "email", "first_name", "last_name", "role", "station", "dealer", "omc"]
        read_only_fields = fields

    def get_role(self, obj):
        return get_user_role(obj)


class AuditLogSerializer(serializers.ModelSerializer):
    actor_username = serializers.CharField(source="actor.username", read_only=True, default=None)
    station_name = serializers.CharField(source="station.name", read_only=True, default=None)

    class Meta:
        model = AuditLog
        fields = [
            "id",
            "actor",
            "actor_username",
            "station",
            "station_name",
            "action",
            "entity",
            "entity_id",
            "before_snapshot",
            "after_snapshot",
            "request_id",
            "created_at",
        ]
        read_only_fields = fields
