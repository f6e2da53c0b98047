from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

NotificationCategory = Literal["order", "stock", "price", "message", "system", "promotion"]
ReferenceType = Literal["order", "product", "message", "user"]


# --- Envelope ---

class Envelope(BaseModel):
    success: bool = True
    message: str = ""
    data: Any = None


# --- Review ---

class ReviewCreate(BaseModel):
    # Range and presence rules are domain rules, checked by review_service.
    order_id: int
    product_id: int
    producer_id: int | None = None  # looked up from the product when omitted
    rating: int
    comment: str | None = Field(None, max_length=2000)


class ReviewUpdate(BaseModel):
    rating: int | None = None
    comment: str | None = Field(None, max_length=2000)


class ReviewResponse(BaseModel):
    id: int
    order_id: int
    product_id: int
    consumer_id: int
    producer_id: int
    rating: int
    comment: str | None
    created_at: datetime | None
    model_config = ConfigDict(from_attributes=True)


class RatingSummary(BaseModel):
    average: float
    count: int


# --- Notification ---

class NotificationCreate(BaseModel):
    user_id: int
    title: str = Field(max_length=200)
    body: str
    category: NotificationCategory = "system"
    reference_id: int | None = None
    reference_type: ReferenceType | None = None


class NotificationResponse(BaseModel):
    id: int
    user_id: int
    title: str
    body: str
    category: NotificationCategory
    reference_id: int | None
    reference_type: ReferenceType | None
    is_read: bool
    created_at: datetime | None
    read_at: datetime | None
    model_config = ConfigDict(from_attributes=True)


# --- Wishlist ---

class WishlistAdd(BaseModel):
    product_id: int


# --- Metrics ---

class MetricsResponse(BaseModel):
    total_reviews: int
    total_notifications: int
    unread_notifications: int
    total_wishlist_entries: int
    avg_rating: float
