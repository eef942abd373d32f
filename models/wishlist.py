"""Wishlist item, reservation and view models."""

import math
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import pydantic
from pydantic import BaseModel, Field

from models.dynamodb import (ACTIVE_RESERVATION_SK, PriceHistoryItem,
                             ReservationItem, WishlistEntryItem,
                             parse_timestamp, wishlist_item_key)


class Priority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class ReservationStatus(str, Enum):
    RESERVED = "RESERVED"
    PURCHASED = "PURCHASED"
    CANCELLED = "CANCELLED"


ACTIVE_RESERVATION_STATUSES = (ReservationStatus.RESERVED, ReservationStatus.PURCHASED)


class ItemStatus(str, Enum):
    AVAILABLE = "available"
    RESERVED = "reserved"
    PURCHASED = "purchased"


def _http_url(v: Optional[str]) -> Optional[str]:
    if v is None or v == "":
        return None
    parsed = urlparse(v)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("Invalid URL format")
    return v


class WishlistItem(BaseModel):
    """An item a family member wants."""

    item_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    family_id: str
    category_id: str
    owner_user_id: str
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    price: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    product_url: Optional[str] = None
    image_url: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    notes: Optional[str] = Field(None, max_length=500)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dynamodb_item(self) -> WishlistEntryItem:
        created = self.created_at.isoformat()
        return WishlistEntryItem(
            **wishlist_item_key(self.family_id, self.item_id),
            item_id=self.item_id,
            family_id=self.family_id,
            category_id=self.category_id,
            owner_user_id=self.owner_user_id,
            title=self.title,
            description=self.description,
            price=str(self.price) if self.price is not None else None,
            product_url=self.product_url,
            image_url=self.image_url,
            priority=self.priority.value,
            notes=self.notes,
            created_at=created,
            updated_at=self.updated_at.isoformat(),
            GSI1PK=f"USER#{self.owner_user_id}",
            GSI1SK=f"ITEM#{created}#{self.item_id}",
        )

    @classmethod
    def from_dynamodb_item(cls, item: Dict[str, Any]) -> "WishlistItem":
        if not item:
            return None

        return cls(
            item_id=item["item_id"],
            family_id=item["family_id"],
            category_id=item["category_id"],
            owner_user_id=item["owner_user_id"],
            title=item["title"],
            description=item.get("description"),
            price=Decimal(item["price"]) if item.get("price") is not None else None,
            product_url=item.get("product_url"),
            image_url=item.get("image_url"),
            priority=item.get("priority", Priority.MEDIUM.value),
            notes=item.get("notes"),
            created_at=parse_timestamp(item.get("created_at")),
            updated_at=parse_timestamp(item.get("updated_at")),
        )


class Reservation(BaseModel):
    """A family member's claim on someone else's wishlist item."""

    reservation_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    item_id: str
    family_id: str
    user_id: str
    status: ReservationStatus = ReservationStatus.RESERVED
    reserved_at: datetime
    purchased_at: Optional[datetime] = None
    purchase_notes: Optional[str] = Field(None, max_length=500)
    cancelled_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_RESERVATION_STATUSES

    def to_dynamodb_item(self) -> ReservationItem:
        reserved = self.reserved_at.isoformat()
        return ReservationItem(
            PK=f"ITEM#{self.item_id}",
            SK=(
                ACTIVE_RESERVATION_SK
                if self.is_active
                else f"RESERVATION#{self.reservation_id}"
            ),
            reservation_id=self.reservation_id,
            item_id=self.item_id,
            family_id=self.family_id,
            user_id=self.user_id,
            status=self.status.value,
            reserved_at=reserved,
            purchased_at=self.purchased_at.isoformat() if self.purchased_at else None,
            purchase_notes=self.purchase_notes,
            cancelled_at=self.cancelled_at.isoformat() if self.cancelled_at else None,
            GSI1PK=f"USER#{self.user_id}",
            GSI1SK=f"RESERVATION#{reserved}#{self.reservation_id}",
        )

    @classmethod
    def from_dynamodb_item(cls, item: Dict[str, Any]) -> "Reservation":
        if not item:
            return None

        return cls(
            reservation_id=item["reservation_id"],
            item_id=item["item_id"],
            family_id=item["family_id"],
            user_id=item["user_id"],
            status=item["status"],
            reserved_at=parse_timestamp(item["reserved_at"]),
            purchased_at=parse_timestamp(item.get("purchased_at")),
            purchase_notes=item.get("purchase_notes"),
            cancelled_at=parse_timestamp(item.get("cancelled_at")),
        )


class PriceSnapshot(BaseModel):
    item_id: str
    price: Decimal
    recorded_at: datetime

    def to_dynamodb_item(self) -> PriceHistoryItem:
        recorded = self.recorded_at.isoformat()
        return PriceHistoryItem(
            PK=f"ITEM#{self.item_id}",
            SK=f"PRICE#{recorded}#{uuid.uuid4().hex[:8]}",
            item_id=self.item_id,
            price=str(self.price),
            recorded_at=recorded,
        )

    @classmethod
    def from_dynamodb_item(cls, item: Dict[str, Any]) -> "PriceSnapshot":
        return cls(
            item_id=item["item_id"],
            price=Decimal(item["price"]),
            recorded_at=parse_timestamp(item["recorded_at"]),
        )


# Request models


class WishlistItemCreate(BaseModel):
    """Model for creating new items - excludes owner and generated fields."""

    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    price: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    product_url: Optional[str] = None
    image_url: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    notes: Optional[str] = Field(None, max_length=500)
    category_id: str = Field(..., min_length=1)

    @pydantic.field_validator("product_url", "image_url")
    def validate_urls(cls, v):
        return _http_url(v)


class WishlistItemUpdate(BaseModel):
    """Partial update; only fields the caller sent are applied."""

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    price: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    product_url: Optional[str] = None
    image_url: Optional[str] = None
    priority: Optional[Priority] = None
    notes: Optional[str] = Field(None, max_length=500)
    category_id: Optional[str] = Field(None, min_length=1)

    @pydantic.field_validator("product_url", "image_url")
    def validate_urls(cls, v):
        return _http_url(v)

    @pydantic.field_validator("title", "priority", "category_id")
    def not_null(cls, v, info):
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v


class PurchaseRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=500)


class WishlistQuery(BaseModel):
    """Filters and pagination shared by the wishlist listings."""

    user_id: Optional[str] = None
    category_id: Optional[str] = None
    priority: Optional[Priority] = None
    min_price: Optional[Decimal] = Field(None, ge=0)
    max_price: Optional[Decimal] = Field(None, ge=0)
    search: Optional[str] = Field(None, max_length=100)
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)

    def matches(self, item: WishlistItem) -> bool:
        if self.user_id and item.owner_user_id != self.user_id:
            return False
        if self.category_id and item.category_id != self.category_id:
            return False
        if self.priority and item.priority != self.priority:
            return False
        if self.min_price is not None and (
            item.price is None or item.price < self.min_price
        ):
            return False
        if self.max_price is not None and (
            item.price is None or item.price > self.max_price
        ):
            return False
        if self.search:
            needle = self.search.lower()
            haystacks = [item.title, item.description or ""]
            if not any(needle in h.lower() for h in haystacks):
                return False
        return True


# Views


class ReservationDetails(BaseModel):
    """Who claimed an item. Never shown to the item's owner."""

    reservation_id: str
    reserved_by: str
    reserved_at: datetime
    purchased_at: Optional[datetime] = None
    purchase_notes: Optional[str] = None


class ItemView(BaseModel):
    """An item as seen by one particular viewer."""

    id: str
    title: str
    description: Optional[str] = None
    price: Optional[Decimal] = None
    product_url: Optional[str] = None
    image_url: Optional[str] = None
    priority: Priority
    notes: Optional[str] = None
    owner_user_id: str
    owner_name: Optional[str] = None
    category_id: str
    family_id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    status: ItemStatus
    reservation_details: Optional[ReservationDetails] = None
    is_reserved_by_me: bool = False


class Pagination(BaseModel):
    page: int
    limit: int
    total_count: int
    total_pages: int

    @classmethod
    def of(cls, page: int, limit: int, total_count: int) -> "Pagination":
        return cls(
            page=page,
            limit=limit,
            total_count=total_count,
            total_pages=math.ceil(total_count / limit),
        )


class ItemPage(BaseModel):
    items: List[ItemView]
    pagination: Pagination


class ReservationView(BaseModel):
    id: str
    item_id: str
    status: ReservationStatus
    reserved_at: datetime
    purchased_at: Optional[datetime] = None
    purchase_notes: Optional[str] = None
    item: Optional[ItemView] = None


class ReservationPage(BaseModel):
    reservations: List[ReservationView]
    pagination: Pagination


class WishlistStats(BaseModel):
    total_items: int = 0
    reserved_items: int = 0
    purchased_items: int = 0
    priority_breakdown: Dict[Priority, int] = Field(default_factory=dict)
