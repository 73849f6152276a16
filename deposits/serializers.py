from rest_framework import serializers

from deposits.models import BankDeposit


class BankDepositSerializer(serializers.ModelSerializer):
    station_name = serializers.CharField(source="station.name", read_only=True)

    class Meta:
        model = BankDeposit
        fields = [
            "id",
            "station",
            "station_name",
            "amount",
            "bank_name",
            "account_number",
            "reference_number",
            "depositor_name",
            "deposit_date",
            "status",
            "notes",
            "confirmed_at",
            "confirmed_by",
            "reconciliation_date",
            "reconciled_by",
            "created_by",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class BankDepositCreateSerializer(serializers.Serializer):
    station = serializers.UUIDField()
    amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    bank_name = serializers.CharField(max_length=128)
    account_number = serializers.CharField(max_length=64)
    reference_number = serializers.CharField(max_length=64, required=False, allow_blank=True, allow_null=True)
    depositor_name = serializers.CharField(max_length=255, required=False, allow_blank=True)
    deposit_date = serializers.DateField()
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class BankDepositUpdateSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=14, decimal_places=2, required=False)
    bank_name = serializers.CharField(max_length=128, required=False)
    account_number = serializers.CharField(max_length=64, required=False)
    reference_number = serializers.CharField(max_length=64, required=False, allow_blank=True, allow_null=True)
    depositor_name = serializers.CharField(max_length=255, required=False, allow_blank=True)
    deposit_date = serializers.DateField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def validate(self, attrs):
        if "status" in self.initial_data:
            raise serializers.ValidationError({"status": "Use the confirm or reconcile actions to change status."})
        if not attrs:
            raise serializers.ValidationError("At least one field must be provided.")
        return attrs


class DepositTransitionSerializer(serializers.Serializer):
    expected_status = serializers.ChoiceField(choices=BankDeposit.Status.choices)
