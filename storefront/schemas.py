from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, PositiveInt, field_validator
from pydantic.alias_generators import to_camel
from pydantic.config import ConfigDict


# largest value an INTEGER column holds on every supported backend
MAX_QUANTITY = 2**31 - 1


class CamelModel(BaseModel):
    """Wire models use camelCase keys; snake_case is still accepted on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# -------------------- Roles --------------------

class RoleCreate(CamelModel):
    name: str = Field(..., max_length=100)


class RoleRead(CamelModel):
    id: int
    name: str


# -------------------- Users --------------------

class UserCreate(CamelModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1)
    role_id: Optional[PositiveInt] = None


class UserUpdate(CamelModel):
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[str] = Field(default=None, min_length=3, max_length=255)
    password: Optional[str] = Field(default=None, min_length=1)
    role_id: Optional[PositiveInt] = None


class UserSummary(CamelModel):
    id: int
    first_name: str
    last_name: str
    email: str


class UserRead(UserSummary):
    role_id: int
    role: Optional[RoleRead] = None


class LoginRequest(CamelModel):
    email: str
    password: str


class IdentityRead(UserSummary):
    role: str
    role_id: int


class LoginResponse(CamelModel):
    token: str
    token_type: str = "bearer"
    user: IdentityRead


# -------------------- Catalog --------------------

class CategoryCreate(CamelModel):
    name: str = Field(..., max_length=100)


class CategoryRead(CamelModel):
    id: int
    name: str


class ProductSummary(CamelModel):
    id: int
    name: str
    price: Decimal
    image_url: Optional[str] = None


class CategoryDetail(CategoryRead):
    # None when the caller did not ask for the products
    products: Optional[List[ProductSummary]] = None


class CategoryList(CamelModel):
    categories: List[CategoryDetail]
    total_count: int


class ProductCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    price: Decimal = Field(..., ge=Decimal("0"))
    image_url: Optional[str] = None
    category_ids: List[PositiveInt]


class ProductUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=Decimal("0"))
    image_url: Optional[str] = None
    category_ids: Optional[List[PositiveInt]] = None

    @field_validator("name", "price")
    def not_null(cls, v):
        # name and price are mandatory columns: they may be omitted but not cleared
        if v is None:
            raise ValueError("may not be null")
        return v


class ProductRead(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    price: Decimal
    image_url: Optional[str] = None
    created_at: datetime
    categories: List[CategoryRead] = []


class ProductFilters(CamelModel):
    search: Optional[str] = None
    category: Optional[str] = None
    limit: Optional[int] = None
    offset: int = 0


class ProductList(CamelModel):
    products: List[ProductRead]
    total_count: int
    filters: ProductFilters


# -------------------- Orders --------------------

class OrderLineCreate(CamelModel):
    product_id: PositiveInt
    quantity: Optional[PositiveInt] = Field(default=None, le=MAX_QUANTITY)
    unit_price: Optional[Decimal] = Field(default=None, ge=Decimal("0"), max_digits=16, decimal_places=6)


class OrderCreate(CamelModel):
    lines: List[OrderLineCreate]


class OrderLineRead(CamelModel):
    id: int
    product_id: int
    quantity: int
    unit_price: Decimal
    product: Optional[ProductSummary] = None


class OrderRead(CamelModel):
    id: int
    created_at: datetime
    user_id: int
    user: Optional[UserSummary] = None
    lines: List[OrderLineRead] = []
    total: Decimal


class OrderFilters(CamelModel):
    user_id: Optional[int] = None
    limit: Optional[int] = None
    offset: int = 0


class OrderList(CamelModel):
    orders: List[OrderRead]
    total_count: int
    filters: OrderFilters
