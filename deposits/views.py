from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from common.audit import create_audit_log_from_request
from common.permissions import RoleCapabilityPermission
from common.utils import to_json_compatible
from deposits.models import BankDeposit
from deposits.serializers import (
    BankDepositCreateSerializer,
    BankDepositSerializer,
    BankDepositUpdateSerializer,
    DepositTransitionSerializer,
)
from deposits.services import (
    cash_position,
    create_deposit,
    delete_deposit,
    deposit_stats,
    get_deposit,
    scoped_deposits,
    transition_deposit,
    update_deposit,
)


class BankDepositViewSet(viewsets.ModelViewSet):
    queryset = BankDeposit.objects.all()
    serializer_class = BankDepositSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "deposit.view",
        "retrieve": "deposit.view",
        "stats": "deposit.view",
        "cash_position": "deposit.view",
        "create": "deposit.create",
        "partial_update": "deposit.manage",
        "destroy": "deposit.manage",
        "confirm": "deposit.manage",
        "reconcile": "deposit.manage",
    }
    http_method_names = ["get", "post", "patch", "delete", "head", "options"]

    def get_queryset(self):
        return scoped_deposits(self.request.user, self.request.query_params)

    def get_object(self):
        return get_deposit(self.request.user, self.kwargs[self.lookup_field])

    def _audit(self, *, action, deposit, before_snapshot=None, after_snapshot=None):
        create_audit_log_from_request(
            self.request,
            action=action,
            entity="deposit",
            entity_id=deposit.id,
            before_snapshot=before_snapshot,
            after_snapshot=after_snapshot,
            station=deposit.station,
        )

    def create(self, request, *args, **kwargs):
        serializer = BankDepositCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)

        deposit = create_deposit(request.user, station_id=data.pop("station"), **data)
        payload = BankDepositSerializer(deposit).data
        self._audit(action="deposit.create", deposit=deposit, after_snapshot=payload)
        return Response(payload, status=status.HTTP_201_CREATED)

    def partial_update(self, request, *args, **kwargs):
        deposit = self.get_object()
        serializer = BankDepositUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        before_snapshot = BankDepositSerializer(deposit).data
        deposit = update_deposit(request.user, deposit, serializer.validated_data)
        payload = BankDepositSerializer(deposit).data
        self._audit(action="deposit.update", deposit=deposit, before_snapshot=before_snapshot, after_snapshot=payload)
        return Response(payload)

    def destroy(self, request, *args, **kwargs):
        deposit = self.get_object()
        before_snapshot = BankDepositSerializer(deposit).data
        deposit = delete_deposit(request.user, deposit)
        self._audit(action="deposit.delete", deposit=deposit, before_snapshot=before_snapshot)
        return Response(status=status.HTTP_204_NO_CONTENT)

    def _transition(self, request, pk, action_name):
        serializer = DepositTransitionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        expected_status = serializer.validated_data["expected_status"]

        deposit = transition_deposit(request.user, pk, action_name, expected_status)
        payload = BankDepositSerializer(deposit).data
        self._audit(
            action=f"deposit.{action_name}",
            deposit=deposit,
            before_snapshot={"status": expected_status},
            after_snapshot=payload,
        )
        return Response(payload)

    @action(detail=True, methods=["post"], url_path="confirm")
    def confirm(self, request, pk=None):
        return self._transition(request, pk, "confirm")

    @action(detail=True, methods=["post"], url_path="reconcile")
    def reconcile(self, request, pk=None):
        return self._transition(request, pk, "reconcile")

    @action(detail=False, methods=["get"], url_path="stats", pagination_class=None)
    def stats(self, request):
        return Response(to_json_compatible(deposit_stats(self.get_queryset())))

    @action(detail=False, methods=["get"], url_path="cash-position", pagination_class=None)
    def cash_position(self, request):
        return Response(to_json_compatible(cash_position(request.user, request.query_params)))
