import enum
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set


class OrderStatus(str, enum.Enum):
    WAITING_PAYMENT = "waiting_payment"
    PENDING = "pending"
    PAID = "paid"
    EXPIRED = "expired"
    REFUNDED = "refunded"
    NOT_FOUND_OR_EXPIRED = "not_found_or_expired"


# Statuses the gateway uses for a settled payment
COMPLETED_STATUSES = frozenset({OrderStatus.PAID.value})


def is_completed(status: Optional[str]) -> bool:
    return status in COMPLETED_STATUSES


def round_half_up(value: float) -> int:
    """Round halves toward positive infinity: 512.5 -> 513, -0.5 -> 0."""
    return int(math.floor(value + 0.5))


def coerce_cents(value: Any) -> Optional[int]:
    """Return ``value`` as integer cents, or None when it is not a usable number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if not isinstance(value, (int, float)):
        return None
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return round_half_up(value)
    return value


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Order:
    order_id: str
    total_amount: int
    created_at: datetime = field(default_factory=utcnow)
    status: str = OrderStatus.PENDING.value
    gateway_transaction_id: Optional[str] = None
    gateway_fee: int = 0
    customer: Dict[str, Any] = field(default_factory=dict)
    product: Optional[Dict[str, Any]] = None
    offer: Optional[Dict[str, Any]] = None
    tracking: Dict[str, Any] = field(default_factory=dict)
    notified_statuses: Set[str] = field(default_factory=set)

    def age_at(self, now: datetime):
        return now - self.created_at
