from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, Optional

from pixrelay.models import coerce_cents


class PaymentCreate(BaseModel):
    amount: Optional[Any] = Field(None, example="10.00")
    email: Optional[str] = Field(None, example="jane@example.com")
    name: Optional[str] = Field(None, example="Jane")
    document: Optional[str] = None
    phone: Optional[str] = None
    product_id: Optional[str] = None
    product_name: Optional[str] = None
    offer_id: Optional[str] = None
    offer_name: Optional[str] = None
    discount_price: Optional[Any] = None
    quantity: Optional[int] = None
    tracking: Optional[Dict[str, Any]] = None

    class Config:
        coerce_numbers_to_str = True


class PixCode(BaseModel):
    code: Optional[str] = None
    qrcode_base64: str

    class Config:
        coerce_numbers_to_str = True


class PaymentCreated(BaseModel):
    pix: PixCode
    transactionId: str


class ErrorEnvelope(BaseModel):
    success: bool = False
    error: str
    details: Optional[str] = None
    http_status: Optional[int] = None


class OrderStatusRead(BaseModel):
    success: bool = True
    status: str


class WebhookFees(BaseModel):
    gateway_fee: Optional[int] = None

    @field_validator("gateway_fee", mode="before")
    @classmethod
    def parse_fee(cls, v: Any) -> Optional[int]:
        return coerce_cents(v)


class WebhookData(BaseModel):
    id: Optional[str] = None
    status: Optional[str] = None
    external_id: Optional[str] = None
    amount: Optional[int] = None
    total_amount: Optional[int] = None
    fees: Optional[WebhookFees] = None
    buyer: Optional[Dict[str, Any]] = None
    product: Optional[Dict[str, Any]] = None
    offer: Optional[Dict[str, Any]] = None
    tracking: Optional[Dict[str, Any]] = None

    class Config:
        coerce_numbers_to_str = True
        extra = "allow"

    @field_validator("fees", "buyer", "product", "offer", "tracking", mode="before")
    @classmethod
    def drop_non_objects(cls, v: Any) -> Any:
        # Gateways send [] or scalars for empty objects
        return v if isinstance(v, dict) else None

    @field_validator("id", "status", "external_id", mode="before")
    @classmethod
    def drop_non_scalars(cls, v: Any) -> Any:
        return v if isinstance(v, (str, int, float)) and not isinstance(v, bool) else None

    @field_validator("amount", "total_amount", mode="before")
    @classmethod
    def parse_amount(cls, v: Any) -> Optional[int]:
        return coerce_cents(v)

    @property
    def declared_total(self) -> Optional[int]:
        if self.total_amount is not None:
            return self.total_amount
        return self.amount

    @property
    def declared_fee(self) -> Optional[int]:
        return self.fees.gateway_fee if self.fees else None


class WebhookNotification(BaseModel):
    event: Optional[str] = None
    data: WebhookData = Field(default_factory=WebhookData)

    @field_validator("event", mode="before")
    @classmethod
    def parse_event(cls, v: Any) -> Any:
        return v if isinstance(v, str) else None

    @field_validator("data", mode="before")
    @classmethod
    def parse_data(cls, v: Any) -> Any:
        return v if isinstance(v, dict) else {}
