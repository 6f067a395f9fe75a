"""
Database Schemas

Pydantic models for the MongoDB collections and the request bodies that
write to them. Field names are camelCase because they are stored as-is and
returned as-is.

Collections:
- Customer -> "customer" collection
- Order -> "order" collection
"""

import re
import secrets
import string
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

EMAIL_PATTERN = re.compile(r"^\w+(?:[.-]\w+)*@\w+(?:[.-]\w+)*\.\w{2,3}$", re.ASCII)

_BASE36 = string.digits + string.ascii_lowercase


def normalize_email(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = value.strip().lower()
    if not EMAIL_PATTERN.match(value):
        raise ValueError("Please add a valid email")
    return value


def _base36(number: int) -> str:
    digits = []
    while True:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
        if not number:
            break
    return "".join(reversed(digits))


def generate_tracking_id(now: datetime) -> str:
    """ORD-{millisecond timestamp}-{random suffix}, both base 36, uppercased."""
    timestamp = _base36(int(now.timestamp() * 1000))
    suffix = "".join(secrets.choice(_BASE36) for _ in range(5))
    return f"ORD-{timestamp}-{suffix}".upper()


# -----------------------------
# Enumerations
# -----------------------------

class CustomerStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class OrderType(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    PHONE = "phone"
    EMAIL = "email"


class OrderAction(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"


class OrderStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    COMPLETED = "completed"


class RecordModel(BaseModel):
    model_config = ConfigDict(
        str_strip_whitespace=True,
        use_enum_values=True,
        validate_default=True,
        populate_by_name=True,
    )


# -----------------------------
# Customers
# -----------------------------

class CustomerCreate(RecordModel):
    """
    Customers collection schema
    Collection: "customer"
    """
    customerName: str = Field(
        ...,
        min_length=1,
        max_length=100,
        validation_alias=AliasChoices("customerName", "name"),
        description="Full name",
    )
    email: str = Field(..., description="Unique, stored lowercase")
    phone: str = Field(..., min_length=1)
    ordersCount: int = Field(0, ge=0)
    orderTotal: float = Field(0, ge=0)
    customerSince: Optional[datetime] = Field(None, description="Defaults to the creation time")
    status: CustomerStatus = CustomerStatus.ACTIVE
    abandonedCarts: int = Field(0, ge=0, description="Started but unfinished checkouts")

    @field_validator("email")
    @classmethod
    def check_email(cls, v: Optional[str]) -> Optional[str]:
        return normalize_email(v)


class CustomerUpdate(RecordModel):
    """Partial update: only the fields present in the request are written."""
    customerName: Optional[str] = Field(
        None,
        min_length=1,
        max_length=100,
        validation_alias=AliasChoices("customerName", "name"),
    )
    email: Optional[str] = None
    phone: Optional[str] = Field(None, min_length=1)
    ordersCount: Optional[int] = Field(None, ge=0)
    orderTotal: Optional[float] = Field(None, ge=0)
    customerSince: Optional[datetime] = None
    status: Optional[CustomerStatus] = None
    abandonedCarts: Optional[int] = Field(None, ge=0)

    @field_validator("email")
    @classmethod
    def check_email(cls, v: Optional[str]) -> Optional[str]:
        return normalize_email(v)


class CustomerStatusUpdate(RecordModel):
    status: CustomerStatus


CUSTOMER_SORT_FIELDS = {
    "customerName", "email", "phone", "ordersCount", "orderTotal",
    "customerSince", "status", "abandonedCarts", "createdAt", "updatedAt",
}


# -----------------------------
# Orders
# -----------------------------

class ShippingAddress(RecordModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zipCode: Optional[str] = None
    country: Optional[str] = None


class OrderCreate(RecordModel):
    """
    Orders collection schema
    Collection: "order"
    """
    customerName: str = Field(..., min_length=1, max_length=100)
    orderDate: Optional[datetime] = Field(None, description="Defaults to the creation time")
    orderType: OrderType = OrderType.ONLINE
    trackingId: Optional[str] = Field(None, description="Generated when absent, stored uppercase")
    orderTotal: float = Field(..., ge=0)
    action: OrderAction = OrderAction.PENDING
    status: OrderStatus = OrderStatus.ACTIVE
    description: Optional[str] = Field(None, max_length=500)
    customerEmail: Optional[str] = None
    customerPhone: Optional[str] = None
    shippingAddress: Optional[ShippingAddress] = None

    @field_validator("customerEmail")
    @classmethod
    def check_email(cls, v: Optional[str]) -> Optional[str]:
        return normalize_email(v)

    @field_validator("trackingId")
    @classmethod
    def uppercase_tracking_id(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else None


class OrderUpdate(RecordModel):
    customerName: Optional[str] = Field(None, min_length=1, max_length=100)
    orderDate: Optional[datetime] = None
    orderType: Optional[OrderType] = None
    trackingId: Optional[str] = Field(None, min_length=1)
    orderTotal: Optional[float] = Field(None, ge=0)
    action: Optional[OrderAction] = None
    status: Optional[OrderStatus] = None
    description: Optional[str] = Field(None, max_length=500)
    customerEmail: Optional[str] = None
    customerPhone: Optional[str] = None
    shippingAddress: Optional[ShippingAddress] = None

    @field_validator("customerEmail")
    @classmethod
    def check_email(cls, v: Optional[str]) -> Optional[str]:
        return normalize_email(v)

    @field_validator("trackingId")
    @classmethod
    def uppercase_tracking_id(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v


ORDER_SORT_FIELDS = {
    "customerName", "orderDate", "orderType", "trackingId", "orderTotal",
    "action", "status", "createdAt", "updatedAt",
}
