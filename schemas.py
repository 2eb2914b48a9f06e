"""
Database Schemas for the Storefront API

Each Pydantic model represents a collection in your MongoDB database.
Collection name is the lowercase of the class name (e.g., Product -> "product",
OrderItem -> "order_item"). References to other collections are stored as
ObjectIds and travel through the API as their hex string.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field, EmailStr, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Category(BaseModel):
    """
    Product categories
    Collection: "category"
    """
    name: str = Field(..., description="Category name")
    icon: str = Field("", description="Icon identifier for the front-end")
    color: str = Field("", description="Display color, e.g. '#ff0000'")


class Product(BaseModel):
    """
    Product catalog schema
    Collection: "product"
    """
    name: str = Field(..., description="Product name")
    description: str = Field(..., description="Short description")
    long_description: str = Field("", description="Long description")
    image: str = Field("", description="Thumbnail image URL")
    images: List[str] = Field(default_factory=list, description="Gallery image URLs")
    brand: str = Field("", description="Brand name")
    price: float = Field(0, ge=0, description="Unit price")
    category: str = Field(..., description="Referenced category _id string")
    stock: int = Field(..., ge=0, le=255, description="Quantity in stock")
    rating: float = Field(0, ge=0, description="Average rating")
    number_reviews: int = Field(0, ge=0, description="Number of reviews")
    featured: bool = Field(False, description="Show in featured section")
    date_created: datetime = Field(default_factory=_utcnow)


class User(BaseModel):
    """
    Customers placing orders
    Collection: "user"
    """
    name: str
    email: EmailStr
    phone: str = ""
    street: str = ""
    apartment: str = ""
    city: str = ""
    zip: str = ""
    country: str = ""
    is_admin: bool = False


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class OrderItem(BaseModel):
    """
    One line of an order, owned by the order that lists it
    Collection: "order_item"
    """
    product: str = Field(..., description="Referenced product _id string")
    quantity: int = Field(..., ge=1, description="Quantity ordered")
    price: float = Field(..., ge=0, description="Unit price at purchase time")
    name: str = Field("", description="Snapshot of the product name at purchase time")


class Order(BaseModel):
    """
    Orders schema
    Collection: "order"
    """
    model_config = ConfigDict(use_enum_values=True)

    order_items: List[str] = Field(..., description="OrderItem ids in submission order")
    street: str = ""
    number: str = ""
    division: str = ""
    city: str = ""
    zip: str = ""
    country: str = ""
    phone: str = ""
    observations: str = ""
    status: OrderStatus = OrderStatus.PENDING.value
    total_price: float = Field(..., ge=0, description="Computed server-side from product prices")
    user: str = Field(..., description="Referenced user _id string")
    date_ordered: datetime = Field(default_factory=_utcnow)


# Request bodies

class OrderLine(BaseModel):
    product: str = Field(..., description="Product _id string")
    quantity: int = Field(..., ge=1)


class OrderCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    order_items: List[OrderLine]
    street: str = ""
    number: str = ""
    division: str = ""
    city: str = ""
    zip: str = ""
    country: str = ""
    phone: str = ""
    observations: str = ""
    status: OrderStatus = OrderStatus.PENDING.value
    user: str
    date_ordered: Optional[datetime] = None
    # Accepted for front-end compatibility, never stored
    total_price: Optional[float] = None


class OrderStatusUpdate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    status: OrderStatus


class PartialUpdate(BaseModel):
    """Fields may be left out, but a field that is sent must carry a value."""

    @field_validator("*")
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("may be omitted but not set to null")
        return value


class ProductUpdate(PartialUpdate):
    name: Optional[str] = None
    description: Optional[str] = None
    long_description: Optional[str] = None
    image: Optional[str] = None
    images: Optional[List[str]] = None
    brand: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0, le=255)
    rating: Optional[float] = Field(None, ge=0)
    number_reviews: Optional[int] = Field(None, ge=0)
    featured: Optional[bool] = None


class CategoryUpdate(PartialUpdate):
    name: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
