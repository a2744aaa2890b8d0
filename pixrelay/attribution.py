"""
Attribution forwarder.

Turns a ledger order (or a transient order built from webhook data) into the
attribution service's order event and posts it. Failures never raise: they
are logged and reported as ``False`` so the caller leaves the status
un-notified and a later webhook can try again.
"""
from datetime import datetime
from typing import Any, Dict, Optional

import httpx
import structlog

from pixrelay.models import Order, is_completed, utcnow

logger = structlog.get_logger(__name__)

UTM_KEYS = ("utm_campaign", "utm_content", "utm_medium", "utm_source", "utm_term")


def format_timestamp(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%d %H:%M:%S")


def compute_commission(total_amount: int, gateway_fee: int, status: str) -> int:
    commission = total_amount - gateway_fee
    # A paid order never reports a zero or negative commission
    if is_completed(status) and total_amount > 0 and commission <= 0:
        return 1
    return commission


def build_tracking(tracking: Optional[Dict[str, Any]], order_id: str) -> Dict[str, str]:
    tracking = tracking or {}
    params = {key: tracking.get(key) or "" for key in UTM_KEYS}
    params["cid"] = tracking.get("cid") or tracking.get("utm_id") or order_id
    return params


def build_order_event(
    order_id: str,
    status: str,
    order: Order,
    platform: str,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    now = now or utcnow()
    total_amount = order.total_amount or 0
    gateway_fee = order.gateway_fee or 0
    customer = order.customer or {}
    product = order.product or {}
    offer = order.offer or {}

    commission = compute_commission(total_amount, gateway_fee, status)
    if commission != total_amount - gateway_fee:
        logger.warning(
            "commission_floored",
            order_id=order_id,
            computed=total_amount - gateway_fee,
        )

    return {
        "orderId": order_id,
        "platform": platform,
        "paymentMethod": "pix",
        "status": status,
        "createdAt": format_timestamp(now),
        "approvedDate": format_timestamp(now) if is_completed(status) else None,
        "refundedAt": None,
        "customer": {
            "name": customer.get("name") or "Cliente",
            "email": customer.get("email") or "cliente@teste.com",
            "phone": customer.get("phone") or "",
            "document": customer.get("document") or "",
            "country": "BR",
        },
        "products": [
            {
                "id": product.get("id") or "recarga-ff",
                "name": product.get("name") or "Recarga Free Fire",
                "planId": offer.get("id") or "basic",
                "planName": offer.get("name") or "Plano Básico",
                "quantity": offer.get("quantity") or 1,
                "priceInCents": total_amount,
            }
        ],
        "commission": {
            "totalPriceInCents": total_amount,
            "gatewayFeeInCents": gateway_fee,
            "userCommissionInCents": commission,
        },
        "trackingParameters": build_tracking(order.tracking, order_id),
        "isTest": False,
    }


class AttributionForwarder:
    def __init__(
        self,
        url: str,
        token: Optional[str],
        platform: str = "FreeFireCheckout",
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.token = token
        self.platform = platform
        self._client = client

        if not token:
            logger.warning("attribution_token_missing")

    async def forward(self, order_id: str, status: str, order: Order) -> bool:
        if not self.token:
            logger.warning("attribution_skipped_no_token", order_id=order_id, status=status)
            return False

        body = build_order_event(order_id, status, order, self.platform)
        logger.info("attribution_sending", order_id=order_id, status=status, payload=body)

        try:
            response = await self._post(body)
        except httpx.HTTPError as e:
            logger.error("attribution_request_failed", order_id=order_id, status=status, error=str(e))
            return False

        if not response.is_success:
            logger.error(
                "attribution_rejected",
                order_id=order_id,
                status=status,
                http_status=response.status_code,
                body=response.text,
            )
            return False

        logger.info("attribution_accepted", order_id=order_id, status=status, body=response.text)
        return True

    async def _post(self, body: Dict[str, Any]) -> httpx.Response:
        headers = {"Content-Type": "application/json", "x-api-token": self.token}
        if self._client is not None:
            return await self._client.post(self.url, json=body, headers=headers)
        async with httpx.AsyncClient() as client:
            return await client.post(self.url, json=body, headers=headers)
