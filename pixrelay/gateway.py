from typing import Any, Dict, Optional

import httpx
import structlog

logger = structlog.get_logger(__name__)


class GatewayError(Exception):
    """The payment gateway refused or could not complete a transaction request."""

    def __init__(self, message: str, http_status: int = 500, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.http_status = http_status
        self.details = details


class GatewayClient:
    def __init__(self, url: str, api_key: str, client: Optional[httpx.AsyncClient] = None):
        self.url = url
        self.api_key = api_key
        self._client = client

    async def create_transaction(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST ``payload`` and return the gateway's ``data`` object (id and pix block)."""
        external_id = payload.get("external_id")
        logger.info("gateway_transaction_requested", external_id=external_id, payload=payload)

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
            "User-Agent": "Buckpay API",
        }
        try:
            response = await self._post(payload, headers)
        except httpx.HTTPError as e:
            logger.error("gateway_request_failed", external_id=external_id, error=str(e))
            raise GatewayError("Internal error while creating payment.") from e

        if not response.is_success:
            logger.error(
                "gateway_rejected",
                external_id=external_id,
                http_status=response.status_code,
                body=response.text,
            )
            raise GatewayError(
                "Error creating payment with the gateway.",
                http_status=response.status_code,
                details=response.text,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise GatewayError("Unexpected gateway response (invalid JSON).") from e
        logger.info("gateway_transaction_created", external_id=external_id, body=body)

        data = body.get("data") if isinstance(body, dict) else None
        pix = data.get("pix") if isinstance(data, dict) else None
        if not isinstance(pix, dict) or not pix.get("qrcode_base64"):
            logger.error("gateway_response_without_pix", external_id=external_id, body=body)
            raise GatewayError("Unexpected gateway response (PIX not generated).")

        code = pix.get("code")
        data["pix"] = {
            "code": str(code) if code is not None else None,
            "qrcode_base64": str(pix["qrcode_base64"]),
        }
        return data

    async def _post(self, payload: Dict[str, Any], headers: Dict[str, str]) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(self.url, json=payload, headers=headers)
        async with httpx.AsyncClient() as client:
            return await client.post(self.url, json=payload, headers=headers)
