"""
Database Schemas for the storefront

Each document model maps to a MongoDB collection (plural, lowercase):
User -> "users", Product -> "products", Category -> "categories",
Cart -> "carts", Order -> "orders".

Attributes are snake_case in Python and camelCase on the wire and in
the database, so `model_dump(by_alias=True)` gives the stored shape.
"""
import re
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

Role = Literal["USER", "ADMIN", "MODERATOR", "SELLER"]
OrderStatus = Literal["PENDING", "CONFIRMED", "PROCESSING", "SHIPPED", "DELIVERED", "CANCELLED"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------- Documents ----------

class Address(CamelModel):
    street: str = Field(..., min_length=1, max_length=200)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    zip_code: str = Field(..., pattern=r"^\d{5}(-\d{4})?$", description="12345 or 12345-6789")
    country: str = Field(..., min_length=1, max_length=100)
    address_line2: Optional[str] = None
    phone_number: Optional[str] = None
    is_default: bool = False
    address_type: Optional[str] = Field(None, description="HOME, WORK, BILLING or SHIPPING")


class User(CamelModel):
    email: EmailStr = Field(..., description="Unique login email")
    username: str = Field(..., min_length=3, description="Unique handle")
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    password: str = Field(..., description="bcrypt hash")
    roles: List[Role] = Field(default_factory=lambda: ["USER"])
    phone: Optional[str] = None
    image_url: Optional[str] = None
    addresses: List[Address] = Field(default_factory=list)
    is_active: bool = True


class Category(CamelModel):
    id: Optional[str] = None
    name: str = Field(..., min_length=2, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    parent_category_id: Optional[str] = None
    image_url: Optional[str] = None
    sort_order: int = 0
    is_active: bool = True


class Product(CamelModel):
    id: Optional[str] = None
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    price: float = Field(..., ge=0)
    discount_price: Optional[float] = Field(None, ge=0)
    category: str = Field(..., min_length=1, description="Category name")
    subcategory: Optional[str] = None
    brand: Optional[str] = None
    sku: Optional[str] = Field(None, description="Unique stock keeping unit")
    images: List[str] = Field(default_factory=list)
    stock: int = Field(0, ge=0)
    rating: float = Field(0.0, ge=0, le=5)
    review_count: int = Field(0, ge=0)
    is_active: bool = True


class ProductPage(CamelModel):
    content: List[Product] = Field(default_factory=list)
    total_elements: int = 0
    total_pages: int = 0
    size: int = 0
    number: int = 0


class CartItem(CamelModel):
    product_id: str
    quantity: int = Field(..., ge=1)
    name: str
    price: float = Field(..., ge=0)
    image: str = ""
    stock: int = Field(0, ge=0)


class CartState(CamelModel):
    items: List[CartItem] = Field(default_factory=list)
    total_items: int = 0
    total_amount: float = 0.0


class Cart(CartState):
    user_id: str


class WishlistState(CamelModel):
    items: List[Product] = Field(default_factory=list)


class OrderItem(CamelModel):
    product_id: str
    name: str
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    image: Optional[str] = None


class ShippingAddress(CamelModel):
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    street: str = Field(..., min_length=1, max_length=200)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    zip_code: str = Field(..., pattern=r"^\d{5}(-\d{4})?$")
    country: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = None


class Order(CamelModel):
    user_id: Optional[str] = None
    order_number: str = Field(..., pattern=r"^ORD-[A-Z0-9]{8}$")
    items: List[OrderItem] = Field(..., min_length=1)
    status: OrderStatus = "PENDING"
    subtotal: float = Field(..., ge=0)
    tax_amount: float = Field(0.0, ge=0)
    shipping_amount: float = Field(0.0, ge=0)
    total_amount: float = Field(..., ge=0)
    shipping_address: ShippingAddress
    notes: Optional[str] = Field(None, max_length=500)


# ---------- Auth payloads ----------

PASSWORD_SPECIALS = "@$!%*?&"
NAME_PATTERN = r"^[A-Za-z\s]+$"
PHONE_PATTERN = r"^[+]?[1-9]\d{1,14}$"


class RegisterRequest(CamelModel):
    email: EmailStr
    username: str = Field(..., min_length=3)
    password: str = Field(..., min_length=8)
    first_name: str = Field(..., min_length=2, max_length=50, pattern=NAME_PATTERN)
    last_name: str = Field(..., min_length=2, max_length=50, pattern=NAME_PATTERN)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        if not re.fullmatch(r"[A-Za-z\d" + re.escape(PASSWORD_SPECIALS) + r"]+", value):
            raise ValueError(f"Password may only contain letters, digits and {PASSWORD_SPECIALS}")
        if not (
            re.search(r"[a-z]", value)
            and re.search(r"[A-Z]", value)
            and re.search(r"\d", value)
            and any(c in PASSWORD_SPECIALS for c in value)
        ):
            raise ValueError(
                "Password must contain at least one uppercase letter, one lowercase letter, "
                "one digit and one special character"
            )
        return value


class LoginRequest(CamelModel):
    email: EmailStr
    password: str


class RefreshTokenRequest(CamelModel):
    refresh_token: str


class AuthUser(CamelModel):
    id: str
    email: EmailStr
    roles: List[Role] = Field(default_factory=lambda: ["USER"])


class AuthResponse(CamelModel):
    access_token: str
    refresh_token: str
    expires_in: int = Field(..., description="Access token lifetime in seconds")
    user: AuthUser


class UserOut(CamelModel):
    id: str
    email: EmailStr
    username: str
    first_name: str
    last_name: str
    roles: List[Role]
    phone: Optional[str] = None
    image_url: Optional[str] = None
    is_active: bool = True


class TokenData(CamelModel):
    """What the client session keeps after login or refresh."""
    access_token: str
    refresh_token: str
    expires_at: float = Field(..., description="Epoch seconds")
    user: AuthUser
