"""Typed records returned by the API, validated from ORM rows."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from bookstore.models import OrderStatus


class AuthorOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    document_id: str
    name: str


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    document_id: str
    name: str


class BookOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    document_id: str
    name: str
    sale_price: int
    quantity: int
    rating: Optional[float] = None
    tags: List[str] = Field(default_factory=list)
    categories: List[CategoryOut] = Field(default_factory=list)
    authors: List[AuthorOut] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def _tags_default(cls, value):
        return value or []


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str


class OrderItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    quantity: int
    unit_price: int
    total_price: int
    book: BookOut


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    document_id: str
    status: OrderStatus
    total_amount: int
    shipping_address: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    order_items: List[OrderItemOut] = Field(default_factory=list)
    user: Optional[UserOut] = None


class OrderSummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    document_id: str
    status: OrderStatus
    total_amount: int
    created_at: datetime
