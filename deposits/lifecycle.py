"""Forward-only deposit lifecycle: pending -> confirmed -> reconciled.

Pure rules; ``deposits.services`` applies them with a conditional update so a
transition only lands if the row is still in the status the caller saw.
"""

from __future__ import annotations

from common.exceptions import InvalidTransition
from common.permissions import role_has_capability

PENDING = "pending"
CONFIRMED = "confirmed"
RECONCILED = "reconciled"

STATUS_ORDER = {PENDING: 0, CONFIRMED: 1, RECONCILED: 2}

# action -> (statuses it may start from, resulting status)
TRANSITIONS = {
    "confirm": ({PENDING}, CONFIRMED),
    "reconcile": ({PENDING, CONFIRMED}, RECONCILED),
}

MIN_ACCOUNT_NUMBER_LENGTH = 8


def next_status(current: str, action: str) -> str:
    if action not in TRANSITIONS:
        raise InvalidTransition(f"Unknown deposit action '{action}'.")
    sources, target = TRANSITIONS[action]
    if current not in sources:
        raise InvalidTransition(f"Cannot {action} a deposit that is {current}.")
    return target


def transition_fields(current: str, action: str, *, actor_id, now) -> dict:
    """Column values written by a successful transition."""
    target = next_status(current, action)
    fields = {"status": target, "updated_at": now}
    if target == CONFIRMED:
        fields.update(confirmed_at=now, confirmed_by_id=actor_id)
    elif target == RECONCILED:
        fields.update(reconciliation_date=now, reconciled_by_id=actor_id)
    return fields


def can_modify(status: str, role) -> bool:
    """Edits and deletes are allowed while pending, or at any status for admins."""
    return status == PENDING or role_has_capability(role, "deposit.modify.any_status")


def ensure_modifiable(status: str, role) -> None:
    if not can_modify(status, role):
        raise InvalidTransition(f"A {status} deposit can no longer be changed.")


def validate_deposit_fields(*, amount=None, account_number=None) -> dict:
    errors = {}
    if amount is not None and amount <= 0:
        errors["amount"] = "Deposit amount must be greater than zero."
    if account_number is not None and len(account_number.strip()) < MIN_ACCOUNT_NUMBER_LENGTH:
        errors["account_number"] = f"Account number must be at least {MIN_ACCOUNT_NUMBER_LENGTH} characters."
    return errors
