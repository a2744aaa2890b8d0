"""
Webhook reconciliation.

Maps gateway status notifications onto ledger orders and decides when an
attribution event goes out. Identity is resolved by ``resolve_order_id``:
the gateway transaction id first, then the order id we embedded in the
transaction (``tracking.ref``, ``tracking.utm_id``, ``external_id``).
"""
import enum
from dataclasses import dataclass
from typing import List, Optional

import structlog

from pixrelay.attribution import AttributionForwarder
from pixrelay.ledger import TransactionLedger
from pixrelay.models import Order, is_completed
from pixrelay.schemas import WebhookData, WebhookNotification

logger = structlog.get_logger(__name__)


class Outcome(str, enum.Enum):
    UNIDENTIFIED = "unidentified"
    MISS_FORWARDED = "miss_forwarded"
    MISS_DROPPED = "miss_dropped"
    STATUS_CHANGED = "status_changed"
    RESENT = "resent"
    DUPLICATE = "duplicate"
    NO_STATUS = "no_status"


@dataclass
class ReconciliationResult:
    outcome: Outcome
    order_id: Optional[str] = None
    status: Optional[str] = None
    forwarded: bool = False


def embedded_order_ids(data: WebhookData) -> List[str]:
    tracking = data.tracking or {}
    candidates = (tracking.get("ref"), tracking.get("utm_id"), data.external_id)
    return [str(c) for c in candidates if c]


def resolve_order_id(ledger: TransactionLedger, data: WebhookData) -> Optional[str]:
    order_id = ledger.resolve_by_gateway_id(data.id)
    if order_id is not None:
        return order_id
    for candidate in embedded_order_ids(data):
        if candidate in ledger:
            return candidate
    return None


def order_from_notification(order_id: str, data: WebhookData) -> Order:
    """Build a throwaway order from webhook data alone, for events with no ledger entry."""
    return Order(
        order_id=order_id,
        total_amount=data.declared_total or 0,
        gateway_fee=data.declared_fee or 0,
        status=data.status or "",
        gateway_transaction_id=data.id,
        customer=data.buyer or {},
        product=data.product or None,
        offer=data.offer or None,
        tracking=data.tracking or {},
    )


class ReconciliationEngine:
    def __init__(self, ledger: TransactionLedger, forwarder: AttributionForwarder):
        self.ledger = ledger
        self.forwarder = forwarder

    async def handle(self, notification: WebhookNotification) -> ReconciliationResult:
        data = notification.data
        status = data.status
        order_id = resolve_order_id(self.ledger, data)

        logger.info(
            "webhook_received",
            webhook_event=notification.event,
            status=status,
            gateway_transaction_id=data.id,
            order_id=order_id,
        )

        if order_id is None:
            return await self._handle_miss(data)
        return await self._handle_hit(order_id, data)

    async def _handle_miss(self, data: WebhookData) -> ReconciliationResult:
        own_ids = embedded_order_ids(data)
        key = own_ids[0] if own_ids else data.id
        status = data.status

        if not key:
            logger.warning("webhook_unidentified", status=status)
            return ReconciliationResult(Outcome.UNIDENTIFIED, status=status)

        logger.warning("webhook_order_not_in_ledger", order_id=key, status=status)
        if not is_completed(status):
            return ReconciliationResult(Outcome.MISS_DROPPED, order_id=key, status=status)

        # Keep the conversion even without ledger context
        sent = await self.forwarder.forward(key, status, order_from_notification(key, data))
        return ReconciliationResult(
            Outcome.MISS_FORWARDED, order_id=key, status=status, forwarded=sent
        )

    async def _handle_hit(self, order_id: str, data: WebhookData) -> ReconciliationResult:
        order = self.ledger.get(order_id)
        self._merge(order, data)

        status = data.status
        if not status:
            logger.warning("webhook_without_status", order_id=order_id)
            return ReconciliationResult(Outcome.NO_STATUS, order_id=order_id)

        if order.status != status:
            logger.info(
                "order_status_changed",
                order_id=order_id,
                previous_status=order.status,
                status=status,
            )
            order.status = status
            outcome = Outcome.STATUS_CHANGED
        elif is_completed(status) and status not in order.notified_statuses:
            logger.warning("order_status_unconfirmed_resending", order_id=order_id, status=status)
            outcome = Outcome.RESENT
        else:
            logger.info("order_status_unchanged", order_id=order_id, status=status)
            return ReconciliationResult(Outcome.DUPLICATE, order_id=order_id, status=status)

        sent = await self.forwarder.forward(order_id, status, order)
        if sent:
            order.notified_statuses.add(status)
        return ReconciliationResult(outcome, order_id=order_id, status=status, forwarded=sent)

    def _merge(self, order: Order, data: WebhookData) -> None:
        if data.id:
            self.ledger.bind_gateway_id(order.order_id, data.id)

        fee = data.declared_fee
        if fee is not None:
            order.gateway_fee = fee
        total = data.declared_total
        if total is not None:
            order.total_amount = total

        if data.buyer:
            order.customer = data.buyer
        if data.product:
            order.product = data.product
        if data.offer:
            order.offer = data.offer

        logger.info(
            "order_merged",
            order_id=order.order_id,
            total_amount=order.total_amount,
            gateway_fee=order.gateway_fee,
        )
