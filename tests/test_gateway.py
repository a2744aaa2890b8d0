import json

import httpx
import pytest

from pixrelay.gateway import GatewayClient, GatewayError


def gateway_with(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client, GatewayClient("https://gateway.test/v1/transactions", "key", client=client)


@pytest.mark.asyncio
async def test_create_transaction_sends_bearer_token():
    captured = {}

    def handler(request: httpx.Request):
        captured["headers"] = request.headers
        captured["body"] = json.loads(request.content)
        return httpx.Response(201, json={"data": {"id": "gw_1", "pix": {"code": "000201", "qrcode_base64": "iVBO"}}})

    client, gateway = gateway_with(handler)
    async with client:
        data = await gateway.create_transaction({"external_id": "order_1", "amount": 1000})

    assert captured["headers"]["authorization"] == "Bearer key"
    assert captured["body"]["external_id"] == "order_1"
    assert data["id"] == "gw_1"
    assert data["pix"] == {"code": "000201", "qrcode_base64": "iVBO"}


@pytest.mark.asyncio
async def test_create_transaction_stringifies_pix_fields():
    """
    Test case: a numeric pix code comes back as a string before anything is recorded.
    """
    client, gateway = gateway_with(
        lambda request: httpx.Response(200, json={"data": {"id": 77, "pix": {"code": 123, "qrcode_base64": "x"}}})
    )
    async with client:
        data = await gateway.create_transaction({"external_id": "order_1"})

    assert data["pix"] == {"code": "123", "qrcode_base64": "x"}


@pytest.mark.asyncio
async def test_create_transaction_relays_rejection():
    client, gateway = gateway_with(lambda request: httpx.Response(401, text="unauthorized"))
    async with client:
        with pytest.raises(GatewayError) as exc_info:
            await gateway.create_transaction({"external_id": "order_1"})

    assert exc_info.value.http_status == 401
    assert exc_info.value.details == "unauthorized"


@pytest.mark.asyncio
async def test_create_transaction_without_pix():
    client, gateway = gateway_with(lambda request: httpx.Response(200, json={"data": {"id": "gw_1"}}))
    async with client:
        with pytest.raises(GatewayError) as exc_info:
            await gateway.create_transaction({"external_id": "order_1"})

    assert exc_info.value.http_status == 500
    assert exc_info.value.details is None
