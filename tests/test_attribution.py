import json
from datetime import datetime, timezone

import httpx
import pytest

from pixrelay.attribution import (
    AttributionForwarder,
    build_order_event,
    build_tracking,
    compute_commission,
)
from pixrelay.models import Order

NOW = datetime(2026, 10, 19, 14, 30, 5, tzinfo=timezone.utc)


def make_order(**kwargs):
    defaults = dict(order_id="order_1", total_amount=1000, gateway_fee=200)
    defaults.update(kwargs)
    return Order(**defaults)


def test_commission_is_total_minus_fee():
    assert compute_commission(1000, 200, "paid") == 800
    assert compute_commission(1000, 0, "waiting_payment") == 1000


def test_commission_floor_for_paid_orders():
    """
    Test case: total 500 with fee 500 on a paid order reports 1 cent, never zero.
    """
    assert compute_commission(500, 500, "paid") == 1
    assert compute_commission(500, 700, "paid") == 1
    # No floor for other statuses or free orders
    assert compute_commission(500, 500, "refunded") == 0
    assert compute_commission(0, 0, "paid") == 0


def test_tracking_defaults_to_empty_strings():
    params = build_tracking(None, "order_1")

    assert params == {
        "utm_campaign": "",
        "utm_content": "",
        "utm_medium": "",
        "utm_source": "",
        "utm_term": "",
        "cid": "order_1",
    }
    assert build_tracking({"utm_id": "u1"}, "order_1")["cid"] == "u1"
    assert build_tracking({"cid": "c1", "utm_id": "u1"}, "order_1")["cid"] == "c1"


def test_event_for_paid_order():
    order = make_order(
        customer={"name": "Jane", "email": "a@b.com", "phone": "5511999999999"},
        product={"id": "diamonds", "name": "Diamonds"},
        offer={"id": "offer_1", "name": "Promo", "quantity": 2},
        tracking={"utm_source": "facebook", "utm_campaign": "launch"},
    )

    event = build_order_event("order_1", "paid", order, "FreeFireCheckout", now=NOW)

    assert event["orderId"] == "order_1"
    assert event["platform"] == "FreeFireCheckout"
    assert event["paymentMethod"] == "pix"
    assert event["createdAt"] == "2026-10-19 14:30:05"
    assert event["approvedDate"] == "2026-10-19 14:30:05"
    assert event["customer"]["country"] == "BR"
    assert event["customer"]["document"] == ""
    assert event["products"] == [{
        "id": "diamonds",
        "name": "Diamonds",
        "planId": "offer_1",
        "planName": "Promo",
        "quantity": 2,
        "priceInCents": 1000,
    }]
    assert event["commission"] == {
        "totalPriceInCents": 1000,
        "gatewayFeeInCents": 200,
        "userCommissionInCents": 800,
    }
    assert event["trackingParameters"]["utm_source"] == "facebook"
    assert event["trackingParameters"]["utm_term"] == ""
    assert event["isTest"] is False


def test_event_fallbacks_for_missing_data():
    order = make_order(total_amount=500, gateway_fee=0)

    event = build_order_event("order_1", "waiting_payment", order, "FreeFireCheckout", now=NOW)

    assert event["approvedDate"] is None
    assert event["customer"]["name"] == "Cliente"
    assert event["customer"]["email"] == "cliente@teste.com"
    assert event["products"][0]["id"] == "recarga-ff"
    assert event["products"][0]["planId"] == "basic"
    assert event["products"][0]["quantity"] == 1


@pytest.mark.asyncio
async def test_forward_posts_event_with_token():
    captured = {}

    def handler(request: httpx.Request):
        captured["headers"] = request.headers
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"ok": True})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        forwarder = AttributionForwarder("https://utmify.test/orders", "tok", client=client)
        sent = await forwarder.forward("order_1", "paid", make_order())

    assert sent is True
    assert captured["headers"]["x-api-token"] == "tok"
    assert captured["body"]["status"] == "paid"
    assert captured["body"]["commission"]["userCommissionInCents"] == 800


@pytest.mark.asyncio
async def test_forward_reports_rejection_as_false():
    transport = httpx.MockTransport(lambda request: httpx.Response(422, json={"error": "bad"}))

    async with httpx.AsyncClient(transport=transport) as client:
        forwarder = AttributionForwarder("https://utmify.test/orders", "tok", client=client)
        assert await forwarder.forward("order_1", "paid", make_order()) is False


@pytest.mark.asyncio
async def test_forward_reports_network_error_as_false():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        forwarder = AttributionForwarder("https://utmify.test/orders", "tok", client=client)
        assert await forwarder.forward("order_1", "paid", make_order()) is False


@pytest.mark.asyncio
async def test_forward_without_token_is_a_no_op():
    calls = []
    transport = httpx.MockTransport(lambda request: calls.append(request) or httpx.Response(200))

    async with httpx.AsyncClient(transport=transport) as client:
        forwarder = AttributionForwarder("https://utmify.test/orders", None, client=client)
        assert await forwarder.forward("order_1", "paid", make_order()) is False

    assert calls == []
