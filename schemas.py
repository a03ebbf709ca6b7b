"""
Database Schemas

MongoDB collection schemas and request bodies, as Pydantic models.
Documents are stored with camelCase keys; the models use snake_case
attributes and camelCase aliases, and accept either form on input.

Collections:
- User -> "users"
- Product -> "products"
- Category -> "categories"
- CartItem -> "cart"
- Order -> "orders"
- OrderItem -> "order_items"
- Address -> "addresses"
"""

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class Schema(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------- Users ----------

Role = Literal["user", "admin"]


class RegisterRequest(Schema):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: EmailStr
    phone: Optional[str] = None
    password: str = Field(..., min_length=1)


class LoginRequest(Schema):
    email: EmailStr
    password: str


class ProfileUpdate(Schema):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None


class AdminUserCreate(RegisterRequest):
    role: Role = "user"


class AdminUserUpdate(Schema):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    password: Optional[str] = None
    role: Role = "user"


class IdentityProfile(Schema):
    """A user profile as reported by an external identity provider."""
    provider_id: str
    email: EmailStr
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    picture: Optional[str] = None


# ---------- Catalog ----------

class ColorLink(BaseModel):
    """Variant link to another product, stored on both ends."""
    id: str = Field(..., description="Linked product _id as string")
    name: str = ""
    image: str = ""
    hex: str = "#000000"


class Product(Schema):
    """
    Products collection schema
    Collection name: "products"
    """
    name: str
    category: str
    price: int = Field(..., ge=0, description="Price in the store currency unit")
    description: str = ""
    stock: int = Field(0, description="Legacy aggregate stock")
    sizes: Dict[str, int] = Field(default_factory=dict, description="Size label -> quantity")
    image: str = Field("", description="Primary image, same as images[0]")
    images: List[str] = Field(default_factory=list)
    colors: List[ColorLink] = Field(default_factory=list)
    collections: List[str] = Field(default_factory=list)


class Category(Schema):
    name: str = Field(..., min_length=1)
    description: str = ""


class StockUpdateRequest(Schema):
    stock_update: Optional[Dict[str, object]] = None


class ProductIdsRequest(Schema):
    product_ids: List[str] = Field(default_factory=list)


# ---------- Cart ----------

class CartItemCreate(Schema):
    product_name: Optional[str] = None
    product_id: Optional[str] = None
    price: int = Field(0, ge=0)
    quantity: int = Field(1, ge=1)
    size: Optional[str] = None


class CartQuantityUpdate(Schema):
    quantity: Optional[int] = None


# ---------- Orders ----------

class OrderItemRequest(Schema):
    product_id: Optional[str] = None
    id: Optional[str] = None
    name: Optional[str] = None
    price: Optional[int] = None
    quantity: int = 1
    size: Optional[str] = None

    @property
    def ref(self) -> Optional[str]:
        return self.product_id or self.id


class PlaceOrderRequest(Schema):
    items: List[OrderItemRequest] = Field(default_factory=list)
    total_amount: Optional[float] = None
    shipping_address_id: Optional[str] = None
    payment_method: Optional[str] = None
    utr_number: Optional[str] = None


class OrderUpdateRequest(Schema):
    status: Optional[str] = None
    payment_status: Optional[str] = None


# ---------- Addresses ----------

class Address(Schema):
    type: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    house: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None
    is_default: bool = False


class SeedRequest(BaseModel):
    force: bool = False
