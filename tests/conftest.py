import pytest
import pytest_asyncio
import httpx
from datetime import timedelta
from unittest.mock import AsyncMock

from pixrelay.attribution import AttributionForwarder
from pixrelay.config import Settings
from pixrelay.gateway import GatewayClient
from pixrelay.ledger import TransactionLedger
from pixrelay.main import create_app


@pytest.fixture
def settings():
    return Settings(
        gateway_api_key="test-gateway-key",
        attribution_token="test-utmify-token",
        transaction_lifetime=timedelta(minutes=35),
        status_expiry=timedelta(minutes=30),
        cleanup_interval=timedelta(minutes=5),
    )


@pytest.fixture
def ledger():
    return TransactionLedger()


@pytest.fixture
def mock_forwarder():
    """Forwarder whose sends always succeed unless a test says otherwise"""
    forwarder = AsyncMock(spec=AttributionForwarder)
    forwarder.forward.return_value = True
    return forwarder


@pytest.fixture
def mock_gateway():
    gateway = AsyncMock(spec=GatewayClient)
    gateway.create_transaction.return_value = {
        "id": "gw_1",
        "pix": {"code": "00020126pix-copy-paste", "qrcode_base64": "iVBORw0KGgo="},
    }
    return gateway


@pytest.fixture
def app(settings, ledger, mock_gateway, mock_forwarder):
    return create_app(settings, ledger=ledger, gateway=mock_gateway, forwarder=mock_forwarder)


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
