import math
import random
import time
from typing import Any, Dict, Optional

import structlog

from pixrelay.attribution import AttributionForwarder
from pixrelay.documents import normalize_document, normalize_phone
from pixrelay.gateway import GatewayClient
from pixrelay.ledger import TransactionLedger
from pixrelay.models import Order, OrderStatus, round_half_up
from pixrelay.schemas import PaymentCreate, PaymentCreated, PixCode

logger = structlog.get_logger(__name__)

MINIMUM_AMOUNT_CENTS = 500


class InvalidOrderError(Exception):
    """The checkout request is missing data or carries an unusable amount."""


def new_order_id() -> str:
    return f"order_{int(time.time() * 1000)}_{random.randint(0, 99999)}"


def parse_amount_cents(amount: Any) -> int:
    try:
        value = float(amount)
    except (TypeError, ValueError):
        raise InvalidOrderError("Invalid payment amount or below the R$5.00 minimum.")
    if not math.isfinite(value):
        raise InvalidOrderError("Invalid payment amount or below the R$5.00 minimum.")

    cents = round_half_up(value * 100)
    if cents < MINIMUM_AMOUNT_CENTS:
        raise InvalidOrderError("Invalid payment amount or below the R$5.00 minimum.")
    return cents


def build_offer(request: PaymentCreate) -> Optional[Dict[str, Any]]:
    if not (request.offer_id or request.offer_name or request.discount_price is not None):
        return None

    discount = 0
    if request.discount_price is not None:
        try:
            discount = round_half_up(float(request.discount_price) * 100)
        except (TypeError, ValueError, OverflowError):
            discount = 0
    return {
        "id": request.offer_id or "default_offer_id",
        "name": request.offer_name or "Oferta Padrão",
        "discount_price": discount,
        "quantity": request.quantity or 1,
    }


def build_product(request: PaymentCreate) -> Optional[Dict[str, Any]]:
    if request.product_id and request.product_name:
        return {"id": request.product_id, "name": request.product_name}
    return None


def build_gateway_tracking(tracking: Dict[str, Any], order_id: str) -> Dict[str, Any]:
    source = tracking.get("utm_source") or "direct"
    return {
        "utm_source": source,
        "utm_medium": tracking.get("utm_medium") or "website",
        "utm_campaign": tracking.get("utm_campaign") or "no_campaign",
        "src": source,
        "utm_id": tracking.get("xcod") or tracking.get("cid") or order_id,
        "ref": tracking.get("cid") or order_id,
        "sck": tracking.get("sck") or "no_sck_value",
        "utm_term": tracking.get("utm_term") or "",
        "utm_content": tracking.get("utm_content") or "",
    }


class CheckoutService:
    def __init__(
        self,
        ledger: TransactionLedger,
        gateway: GatewayClient,
        forwarder: AttributionForwarder,
    ):
        self.ledger = ledger
        self.gateway = gateway
        self.forwarder = forwarder

    async def create_payment(self, request: PaymentCreate) -> PaymentCreated:
        if not request.amount or not request.email or not request.name:
            raise InvalidOrderError("Required fields (amount, email, name) are missing.")

        order_id = new_order_id()
        logger.info("payment_requested", order_id=order_id, email=request.email)
        amount_in_cents = parse_amount_cents(request.amount)

        tracking = request.tracking or {}
        customer = {
            "name": request.name,
            "email": request.email,
            "document": normalize_document(request.document),
            "phone": normalize_phone(request.phone),
        }
        product = build_product(request)
        offer = build_offer(request)

        payload = {
            "external_id": order_id,
            "payment_method": "pix",
            "amount": amount_in_cents,
            "buyer": customer,
            "product": product,
            "offer": offer,
            "tracking": build_gateway_tracking(tracking, order_id),
        }
        data = await self.gateway.create_transaction(payload)

        gateway_id = data.get("id")
        order = Order(
            order_id=order_id,
            total_amount=amount_in_cents,
            gateway_transaction_id=str(gateway_id) if gateway_id else None,
            customer=customer,
            product=product,
            offer=offer,
            tracking=tracking,
        )
        self.ledger.put(order_id, order)
        logger.info("order_registered", order_id=order_id, gateway_transaction_id=gateway_id)

        status = OrderStatus.WAITING_PAYMENT.value
        if await self.forwarder.forward(order_id, status, order):
            order.notified_statuses.add(status)

        pix = data["pix"]
        return PaymentCreated(
            pix=PixCode(code=pix.get("code"), qrcode_base64=pix["qrcode_base64"]),
            transactionId=order_id,
        )
