# storefront/domain/schemas.py
from datetime import datetime
from decimal import Decimal
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from storefront.domain.order_status import OrderStatus, PaymentStatus

T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    """Success envelope returned by every endpoint."""

    success: bool = True
    data: T


# =====================================================
# AUTH / USERS
# =====================================================
class RegisterIn(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=32)


class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class RefreshIn(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class ChangePasswordIn(BaseModel):
    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=8, max_length=128)


class UpdateProfileIn(BaseModel):
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=32)


class UserOut(BaseModel):
    """Public user view, never carries the password hash."""

    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    role: str
    is_email_verified: bool
    oauth_provider: Optional[str] = None
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class UserListOut(BaseModel):
    users: List[UserOut]
    total: int


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int


class AuthResult(BaseModel):
    user: UserOut
    tokens: TokenPair


# =====================================================
# CART
# =====================================================
class ItemIn(BaseModel):
    product_id: str = Field(..., min_length=1, max_length=64)
    variant_sku: Optional[str] = Field(None, max_length=64)
    quantity: int = Field(..., gt=0, le=1000)


class UpdateItemIn(ItemIn):
    pass


class RemoveItemIn(BaseModel):
    product_id: str = Field(..., min_length=1, max_length=64)
    variant_sku: Optional[str] = Field(None, max_length=64)


class CartItemOut(BaseModel):
    product_id: str
    variant_sku: Optional[str] = None
    product_name: Optional[str] = None
    quantity: int
    unit_price: Decimal
    line_total: Decimal


class CartOut(BaseModel):
    id: str
    user_id: str
    items: List[CartItemOut]
    subtotal: Decimal
    expires_at: Optional[datetime] = None


class CartValidationOut(BaseModel):
    valid: bool
    errors: List[str]


# =====================================================
# ORDERS
# =====================================================
class AddressIn(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=200)
    address_line1: str = Field(..., min_length=1, max_length=255)
    address_line2: Optional[str] = Field(None, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    postal_code: str = Field(..., min_length=1, max_length=20)
    country: str = Field(..., min_length=2, max_length=100)
    phone: str = Field(..., min_length=3, max_length=32)


class OrderCreateIn(BaseModel):
    shipping_address: AddressIn
    billing_address: Optional[AddressIn] = None
    payment_method: Optional[str] = Field(None, max_length=50)
    customer_notes: Optional[str] = Field(None, max_length=1000)


class StatusUpdateIn(BaseModel):
    status: OrderStatus
    tracking_number: Optional[str] = Field(None, max_length=100)
    carrier: Optional[str] = Field(None, max_length=100)
    internal_notes: Optional[str] = Field(None, max_length=1000)


class PaymentUpdateIn(BaseModel):
    payment_status: PaymentStatus
    payment_transaction_id: Optional[str] = Field(None, max_length=255)


class OrderItemOut(BaseModel):
    product_id: str
    product_name: Optional[str] = None
    variant_sku: Optional[str] = None
    quantity: int
    unit_price: Decimal
    subtotal: Decimal
    discount: Decimal
    total: Decimal

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    id: str
    order_number: str
    user_id: str
    status: str
    payment_status: str
    subtotal: Decimal
    tax: Decimal
    shipping_cost: Decimal
    discount: Decimal
    total: Decimal
    shipping_address: dict
    billing_address: dict
    payment_method: Optional[str] = None
    payment_transaction_id: Optional[str] = None
    customer_notes: Optional[str] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    order_date: datetime
    confirmed_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    items: List[OrderItemOut]

    model_config = ConfigDict(from_attributes=True)


class OrderListOut(BaseModel):
    orders: List[OrderOut]
    total: int
