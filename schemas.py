"""
Database Schemas for the shop checkout service

Each document model represents a MongoDB collection. The collection name is
the lowercased class name (e.g., Order -> "order"). Documents are stored with
snake_case keys; the API speaks camelCase, so every model accepts and emits
camelCase aliases as well.
"""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Annotated, List, Optional

from bson import Decimal128, ObjectId
from pydantic import (
    AfterValidator,
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
    model_validator,
)
from pydantic.alias_generators import to_camel

CENT = Decimal("0.01")


def quantize(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def format_amount(amount: Decimal) -> str:
    """Two-decimal string as payment providers expect it ("20.00")."""
    return str(quantize(Decimal(amount)))


def _coerce_decimal(value):
    if isinstance(value, Decimal128):
        return value.to_decimal()
    if isinstance(value, float):
        return Decimal(str(value))
    return value


def _coerce_id(value):
    if isinstance(value, ObjectId):
        return str(value)
    return value


# Exact Decimal in Python and MongoDB, a plain number on the wire
Money = Annotated[
    Decimal,
    Field(ge=0),
    BeforeValidator(_coerce_decimal),
    AfterValidator(quantize),
    PlainSerializer(float, return_type=float, when_used="json"),
]
PositiveMoney = Annotated[
    Decimal,
    Field(gt=0),
    BeforeValidator(_coerce_decimal),
    AfterValidator(quantize),
    PlainSerializer(float, return_type=float, when_used="json"),
]
DocumentId = Annotated[str, BeforeValidator(_coerce_id)]


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        validate_default=True,
    )


class CartItem(CamelModel):
    product_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    price: Money = Field(..., description="Unit price")
    quantity: int = Field(1, ge=1)

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


class AddressInfo(CamelModel):
    address_id: Optional[str] = None
    address: str = Field(..., min_length=1)
    city: Optional[str] = None
    pincode: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None


class Product(CamelModel):
    """Products collection schema"""
    id: Optional[DocumentId] = Field(None, alias="_id")
    title: str = Field(..., description="Product name")
    description: Optional[str] = None
    price: Money = Decimal("0.00")
    total_stock: int = Field(0, ge=0, description="Units in stock")


class Cart(CamelModel):
    id: Optional[DocumentId] = Field(None, alias="_id")
    user_id: str
    items: List[CartItem] = []


class Order(CamelModel):
    """Orders collection schema"""
    id: Optional[DocumentId] = Field(None, alias="_id")
    user_id: str
    cart_id: str
    cart_items: List[CartItem]
    address_info: AddressInfo
    order_status: OrderStatus = OrderStatus.PENDING
    payment_method: str = "paypal"
    payment_status: PaymentStatus = PaymentStatus.PENDING
    total_amount: Money
    order_date: Optional[datetime] = None
    order_update_date: Optional[datetime] = None
    payment_id: Optional[str] = None
    payer_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @model_validator(mode="after")
    def check_paid_is_confirmed(self) -> "Order":
        if self.payment_status == PaymentStatus.PAID:
            if self.order_status != OrderStatus.CONFIRMED:
                raise ValueError("A paid order must be confirmed")
            if not self.payment_id or not self.payer_id:
                raise ValueError("A paid order needs payment and payer references")
        return self


# Request bodies

class CheckoutRequest(CamelModel):
    user_id: str = Field(..., min_length=1)
    cart_id: str = Field(..., min_length=1)
    cart_items: List[CartItem] = Field(..., min_length=1)
    address_info: AddressInfo
    total_amount: PositiveMoney
    payment_method: str = "paypal"
    order_date: Optional[datetime] = None

    @model_validator(mode="after")
    def check_total(self) -> "CheckoutRequest":
        items_total = quantize(sum((item.line_total for item in self.cart_items), Decimal("0")))
        if items_total != self.total_amount:
            raise ValueError(
                f"totalAmount {self.total_amount} does not match cart items total {items_total}"
            )
        return self


class CaptureRequest(CamelModel):
    order_id: str = Field(..., min_length=1)
    # PayPal appends ?token=<order id>&PayerID=<payer> to the return URL
    payment_token: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("token", "paymentId", "paymentToken")
    )
    payer_id: Optional[str] = Field(None, validation_alias=AliasChoices("payerId", "PayerID"))


# Response bodies

class CheckoutSession(CamelModel):
    success: bool = True
    approval_url: str = Field(..., alias="approvalURL")
    order_id: str


class OrderResponse(CamelModel):
    success: bool = True
    message: Optional[str] = None
    data: Order


class OrderListResponse(CamelModel):
    success: bool = True
    data: List[Order]


class ErrorResponse(CamelModel):
    success: bool = False
    message: str
