import sys
from typing import Optional

import httpx
import structlog
import uvicorn
from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from pixrelay.attribution import AttributionForwarder
from pixrelay.checkout import CheckoutService, InvalidOrderError
from pixrelay.config import ConfigError, Settings
from pixrelay.expiry import ExpirySweeper, check_order_status
from pixrelay.gateway import GatewayClient, GatewayError
from pixrelay.ledger import TransactionLedger
from pixrelay.logging_config import configure_logging
from pixrelay.reconciliation import Outcome, ReconciliationEngine
from pixrelay.schemas import (
    ErrorEnvelope,
    OrderStatusRead,
    PaymentCreate,
    PaymentCreated,
    WebhookNotification,
)

logger = structlog.get_logger(__name__)

IP_ECHO_URL = "https://api.ipify.org?format=json"

WEBHOOK_REPLIES = {
    Outcome.UNIDENTIFIED: "Webhook received (order id not found).",
    Outcome.MISS_FORWARDED: "Webhook received (order not found in memory).",
    Outcome.MISS_DROPPED: "Webhook received (order not found in memory).",
}


def error_response(status_code: int, error: str, details: Optional[str] = None,
                   http_status: Optional[int] = None) -> JSONResponse:
    envelope = ErrorEnvelope(error=error, details=details, http_status=http_status)
    return JSONResponse(status_code=status_code, content=envelope.model_dump(exclude_none=True))


def get_checkout(request: Request) -> CheckoutService:
    return request.app.state.checkout


def get_engine(request: Request) -> ReconciliationEngine:
    return request.app.state.engine


def get_ledger(request: Request) -> TransactionLedger:
    return request.app.state.ledger


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def create_app(
    settings: Settings,
    ledger: Optional[TransactionLedger] = None,
    gateway: Optional[GatewayClient] = None,
    forwarder: Optional[AttributionForwarder] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    app = FastAPI(title="PIX Relay")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.allowed_origin],
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization"],
    )

    http_client = http_client or httpx.AsyncClient()
    ledger = ledger if ledger is not None else TransactionLedger()
    gateway = gateway or GatewayClient(settings.gateway_url, settings.gateway_api_key, client=http_client)
    forwarder = forwarder or AttributionForwarder(
        settings.attribution_url,
        settings.attribution_token,
        platform=settings.attribution_platform,
        client=http_client,
    )

    app.state.settings = settings
    app.state.http_client = http_client
    app.state.ledger = ledger
    app.state.checkout = CheckoutService(ledger, gateway, forwarder)
    app.state.engine = ReconciliationEngine(ledger, forwarder)
    app.state.sweeper = ExpirySweeper(ledger, settings.transaction_lifetime, settings.cleanup_interval)

    @app.on_event("startup")
    async def startup_event():
        app.state.sweeper.start()

    @app.on_event("shutdown")
    async def shutdown_event():
        await app.state.sweeper.stop()
        await app.state.http_client.aclose()

    @app.exception_handler(InvalidOrderError)
    async def invalid_order_handler(request: Request, exc: InvalidOrderError):
        return error_response(400, str(exc))

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        http_status = exc.http_status if exc.details is not None else None
        return error_response(exc.http_status, exc.message, exc.details, http_status)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning("request_invalid", path=request.url.path, errors=str(exc.errors()))
        return error_response(400, "Invalid request body.", str(exc.errors()))

    @app.get("/", response_class=PlainTextResponse)
    async def root():
        return "PIX Relay server is online!"

    @app.get("/my-server-ip")
    async def my_server_ip(request: Request):
        try:
            response = await request.app.state.http_client.get(IP_ECHO_URL)
            response.raise_for_status()
            return {"ip": response.json()["ip"]}
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.error("server_ip_lookup_failed", error=str(e))
            return JSONResponse(status_code=500, content={"error": "Error fetching server IP"})

    @app.post("/create-payment", response_model=PaymentCreated)
    async def create_payment(payment: PaymentCreate, checkout: CheckoutService = Depends(get_checkout)):
        return await checkout.create_payment(payment)

    @app.post("/webhook/buckpay", response_class=PlainTextResponse)
    async def buckpay_webhook(notification: WebhookNotification,
                              engine: ReconciliationEngine = Depends(get_engine)):
        result = await engine.handle(notification)
        return WEBHOOK_REPLIES.get(result.outcome, "Webhook received successfully!")

    @app.get("/check-order-status", response_model=OrderStatusRead)
    async def order_status(id: Optional[str] = Query(None),
                           ledger: TransactionLedger = Depends(get_ledger),
                           settings: Settings = Depends(get_settings)):
        if not id:
            return error_response(400, "Order id not provided.")
        status = check_order_status(ledger, id, settings.status_expiry)
        return OrderStatusRead(status=status)

    return app


def main():
    try:
        settings = Settings.from_env()
    except ConfigError as e:
        configure_logging()
        logger.error("startup_failed", error=str(e))
        sys.exit(1)

    configure_logging(settings.log_level)
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
