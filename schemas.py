"""
Request and response schemas for the storefront API

Request models are the single command object for each write. They are filled
from either a JSON body or a multipart/urlencoded form, so validation runs the
same way for both. Field names are snake_case in Python and camelCase on the
wire.

Entities:
- product (with an ordered list of features)
- order
- banner
- review
- admin login (in-process session tokens)
"""

import json
import re
from datetime import datetime
from decimal import Decimal
from typing import Annotated, List, Literal, Optional, get_args

from pydantic import (
    AfterValidator,
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    EmailStr,
    Field,
    StringConstraints,
)
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

OrderStatus = Literal["Pending", "Processing", "Shipped", "Delivered", "Cancelled"]
ORDER_STATUSES = get_args(OrderStatus)

PHONE_RE = re.compile(r"^(\+8801|8801|01)[3-9]\d{8}$")


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


def _parse_features(value):
    # multipart forms carry the feature list as a JSON encoded string
    if isinstance(value, str):
        try:
            value = json.loads(value or "[]")
        except ValueError:
            raise PydanticCustomError("features_format", "Features must be a JSON encoded list")
    return value


def _check_phone(value: str) -> str:
    phone = re.sub(r"\s+", "", value)
    if not PHONE_RE.match(phone):
        raise PydanticCustomError("phone_format", "Invalid phone number format")
    return phone


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _id_to_str(value):
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


Features = Annotated[List[str], BeforeValidator(_parse_features)]
Phone = Annotated[str, AfterValidator(_check_phone)]
Email = Annotated[Optional[EmailStr], BeforeValidator(_blank_to_none)]
EntityRef = Annotated[str, BeforeValidator(_id_to_str), StringConstraints(min_length=1)]


# -------------------------
# Products
# -------------------------

class ProductCreate(ApiModel):
    title: str = Field(..., min_length=1, description="Product title")
    description: Optional[str] = Field(None, description="Product description")
    price: Decimal = Field(..., ge=0, description="Unit price before discount")
    discount: int = Field(0, ge=0, le=100, description="Discount in whole percent")
    features: Features = Field(default_factory=list, description="Ordered bullet points")
    image_url: Optional[str] = Field(None, description="Image URL, used when no file is uploaded")


class ProductUpdate(ApiModel):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0)
    discount: Optional[int] = Field(None, ge=0, le=100)
    features: Optional[Features] = None
    image_url: Optional[str] = None


class ProductOut(ApiModel):
    id: str
    title: str
    description: Optional[str] = None
    price: float
    discount: int
    features: List[str] = []
    image: Optional[str] = None
    image_url: Optional[str] = None
    created_at: datetime


# -------------------------
# Orders
# -------------------------

class OrderCreate(ApiModel):
    customer_name: str = Field(..., min_length=1)
    email: Email = None
    phone: Phone
    address: str = Field(..., min_length=1)
    product_id: EntityRef
    quantity: int = Field(..., ge=1)


class OrderUpdate(ApiModel):
    customer_name: Optional[str] = Field(None, min_length=1)
    email: Email = None
    phone: Optional[Phone] = None
    address: Optional[str] = Field(None, min_length=1)
    product_id: Optional[EntityRef] = None
    quantity: Optional[int] = Field(None, ge=1)
    status: Optional[OrderStatus] = None


class OrderStatusUpdate(ApiModel):
    status: OrderStatus


class OrderOut(ApiModel):
    id: str
    customer_name: str
    email: Optional[str] = None
    phone: str
    address: str
    product_id: str
    product_title: Optional[str] = None
    quantity: int
    total_price: float
    status: OrderStatus
    created_at: datetime


# -------------------------
# Banners
# -------------------------

class BannerCreate(ApiModel):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    price: Decimal = Field(Decimal(0), ge=0)
    discount: int = Field(0, ge=0, le=100)
    link: Optional[str] = Field(None, description="Optional external page")
    image_url: Optional[str] = Field(None, description="Image URL, used when no file is uploaded")


class BannerUpdate(ApiModel):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, min_length=1)
    price: Optional[Decimal] = Field(None, ge=0)
    discount: Optional[int] = Field(None, ge=0, le=100)
    link: Optional[str] = None
    image_url: Optional[str] = None


class BannerOut(ApiModel):
    id: str
    title: str
    description: Optional[str] = None
    price: float = 0
    discount: int = 0
    link: Optional[str] = None
    image: Optional[str] = None
    image_url: Optional[str] = None
    created_at: datetime


# -------------------------
# Reviews
# -------------------------

class ReviewIn(ApiModel):
    customer_name: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("name", "customerName", "customer_name")
    )
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1)


class ReviewOut(ApiModel):
    id: str
    customer_name: str
    rating: int
    comment: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


# -------------------------
# Admin
# -------------------------

class LoginInput(ApiModel):
    model_config = ConfigDict(str_strip_whitespace=False)

    username: str
    password: str


class LoginResponse(ApiModel):
    token: str
    expires_at: datetime
