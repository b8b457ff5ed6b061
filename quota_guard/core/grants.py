"""
Grant ingest.

Normalizes the two external grant triggers into a single ledger grant:

1. Payment completed - a checkout event carrying a customer email; the
   email is resolved to an account id and granted a fixed 100 units
2. Direct grant - an administrative request naming the account id and
   an optional amount

Malformed triggers are rejected before the ledger is touched.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from .identity import resolve_account_id
from .ledger import DEFAULT_GRANT_AMOUNT, QuotaLedger
from quota_guard.storage.models import QuotaRecord


PAYMENT_EVENT_TYPES = ("checkout.session.completed", "payment-completed")
DIRECT_GRANT_ACTIONS = ("extend_quota", "extend-quota")
PAYMENT_GRANT_AMOUNT = 100


class GrantRejected(ValueError):
    """Raised when a grant trigger is missing or has an invalid field."""
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


@dataclass(frozen=True)
class PaymentCompleted:
    """Completed payment for a customer email."""
    email: str


@dataclass(frozen=True)
class DirectGrant:
    """Administrative grant for an explicit account id."""
    account_id: str
    amount: int = DEFAULT_GRANT_AMOUNT


GrantTrigger = Union[PaymentCompleted, DirectGrant]


@dataclass(frozen=True)
class GrantOutcome:
    """Result of applying a grant trigger."""
    account_id: str
    amount: int
    record: QuotaRecord
    message: str


def _payment_email(payload: Dict[str, Any]) -> Any:
    if "email" in payload:
        return payload["email"]
    data = payload.get("data")
    obj = data.get("object") if isinstance(data, dict) else None
    details = obj.get("customer_details") if isinstance(obj, dict) else None
    return details.get("email") if isinstance(details, dict) else None


def parse_grant_trigger(payload: Any) -> GrantTrigger:
    """Turn an inbound webhook or admin payload into a grant trigger.

    Accepts the Stripe ``checkout.session.completed`` event (email under
    ``data.object.customer_details.email``), a flat
    ``{"type": "payment-completed", "email": ...}`` event, and
    ``{"action": "extend_quota", "userId": ..., "additionalRequests": ...}``.

    Raises:
        GrantRejected: If the payload has no usable shape or lacks the
            identifying field
    """
    if not isinstance(payload, dict):
        raise GrantRejected("Grant payload must be a JSON object")

    if payload.get("type") in PAYMENT_EVENT_TYPES:
        email = _payment_email(payload)
        if not isinstance(email, str) or not email.strip():
            raise GrantRejected("No customer email", field="email")
        return PaymentCompleted(email=email)

    if payload.get("action") in DIRECT_GRANT_ACTIONS:
        user_id = payload.get("userId")
        if user_id is None or str(user_id) == "":
            raise GrantRejected("Missing userId", field="userId")
        amount = payload.get("additionalRequests")
        if amount is None:
            amount = DEFAULT_GRANT_AMOUNT
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise GrantRejected(
                f"additionalRequests must be a positive integer, got {amount!r}",
                field="additionalRequests"
            )
        return DirectGrant(account_id=str(user_id), amount=amount)

    raise GrantRejected("Unsupported grant payload")


def ingest_grant(
    ledger: QuotaLedger,
    trigger: GrantTrigger,
    now: Optional[int] = None
) -> GrantOutcome:
    """Apply a parsed trigger to the ledger.

    Args:
        ledger: Quota ledger to extend
        trigger: Payment or direct grant
        now: Override for the current time in ms

    Returns:
        GrantOutcome with the resolved account and persisted record
    """
    if isinstance(trigger, PaymentCompleted):
        account_id = resolve_account_id(trigger.email)
        amount = PAYMENT_GRANT_AMOUNT
        message = "Payment processed successfully"
    elif isinstance(trigger, DirectGrant):
        if not trigger.account_id:
            raise GrantRejected("Missing userId", field="userId")
        account_id = trigger.account_id
        amount = trigger.amount
        message = f"Extended quota for user {account_id}: +{amount} requests"
    else:
        raise GrantRejected(f"Unsupported grant trigger: {type(trigger).__name__}")

    try:
        record = ledger.grant(account_id, amount, now=now)
    except ValueError as e:
        raise GrantRejected(str(e), field="amount") from e
    return GrantOutcome(account_id=account_id, amount=amount, record=record, message=message)


def handle_grant_payload(
    ledger: QuotaLedger,
    payload: Any,
    now: Optional[int] = None
) -> GrantOutcome:
    """Parse and apply a raw grant payload in one step."""
    return ingest_grant(ledger, parse_grant_trigger(payload), now=now)
