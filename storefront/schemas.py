from datetime import datetime
from decimal import Decimal
from typing import Annotated, Generic, Optional, TypeVar

from pydantic import BaseModel, EmailStr, Field, NonNegativeInt, PlainSerializer, PositiveInt
from pydantic.alias_generators import to_camel
from pydantic.config import ConfigDict

T = TypeVar("T")

# Decimal in Python, a JSON number on the wire
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class APIModel(BaseModel):
    # camelCase on the wire, snake_case in Python; either is accepted on input
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class Envelope(BaseModel, Generic[T]):
    """The one response shape every route returns."""

    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None
    error: Optional[str] = None


# -------------------- Categories --------------------

class CategoryCreate(APIModel):
    name: str = Field(..., min_length=1, max_length=100)
    icon: Optional[str] = None
    color: Optional[str] = None


class CategoryUpdate(APIModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    icon: Optional[str] = None
    color: Optional[str] = None


class CategoryRead(CategoryCreate):
    id: int


# -------------------- Products --------------------

class ProductFields(APIModel):
    """Product fields supplied by a client; the image arrives separately as an upload."""

    name: str = Field(..., min_length=1)
    description: str = ""
    rich_description: str = ""
    brand: str = ""
    price: Decimal = Field(default=Decimal("0"), ge=0)
    category: int
    count_in_stock: NonNegativeInt = 0
    rating: Decimal = Field(default=Decimal("0"), ge=0)
    num_reviews: NonNegativeInt = 0
    is_featured: bool = False


class ProductRead(APIModel):
    id: int
    name: str
    description: str
    rich_description: str
    image: str
    images: list[str] = []
    brand: str
    price: Money
    category: Optional[int] = Field(default=None, validation_alias="category_id", serialization_alias="category")
    count_in_stock: int
    rating: Money
    num_reviews: int
    is_featured: bool
    date_created: datetime


class ProductDetail(ProductRead):
    category: Optional[CategoryRead] = Field(default=None, validation_alias="category", serialization_alias="category")


class ProductCount(APIModel):
    product_count: int


# -------------------- Orders --------------------

class OrderItemCreate(APIModel):
    product: PositiveInt
    quantity: PositiveInt


class OrderCreate(APIModel):
    order_items: list[OrderItemCreate] = Field(..., min_length=1)
    shipping_address1: str = Field(..., min_length=1)
    shipping_address2: Optional[str] = None
    city: str = Field(..., min_length=1)
    zip: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    status: str = "Pending"
    user: PositiveInt


class OrderStatusUpdate(APIModel):
    status: str = Field(..., min_length=1, max_length=50)


class UserSummary(APIModel):
    id: int
    name: str


class OrderSummary(APIModel):
    id: int
    order_items: list[int] = Field(default=[], validation_alias="order_item_ids", serialization_alias="orderItems")
    shipping_address1: str
    shipping_address2: Optional[str] = None
    city: str
    zip: str
    country: str
    phone: str
    status: str
    total_price: Money
    user: Optional[UserSummary] = None
    date_ordered: datetime


class OrderItemRead(APIModel):
    id: int
    quantity: int
    product: Optional[ProductDetail] = None


class OrderDetail(OrderSummary):
    order_items: list[OrderItemRead] = Field(default=[], validation_alias="order_items", serialization_alias="orderItems")


class TotalSales(APIModel):
    totalsales: Money


class OrderCount(APIModel):
    order_count: int


# -------------------- Users --------------------

class UserCreate(APIModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=1)
    phone: Optional[str] = None
    is_admin: bool = False
    street: Optional[str] = None
    apartment: Optional[str] = None
    zip: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None


class UserUpdate(APIModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    # omitted password keeps the stored hash
    password: Optional[str] = Field(default=None, min_length=1)
    phone: Optional[str] = None
    is_admin: Optional[bool] = None
    street: Optional[str] = None
    apartment: Optional[str] = None
    zip: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None


class UserRead(APIModel):
    id: int
    name: str
    email: str
    phone: Optional[str] = None
    is_admin: bool = False
    street: Optional[str] = None
    apartment: Optional[str] = None
    zip: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None


class UserCount(APIModel):
    user_count: int


class LoginRequest(APIModel):
    email: EmailStr
    password: str


class LoginResult(APIModel):
    user: str
    token: str
