"""DynamoDB data models for the family wishlist single-table design."""

from datetime import datetime, timezone
from typing import Dict, Optional

from pydantic import BaseModel

ACTIVE_RESERVATION_SK = "RESERVATION#ACTIVE"


class DynamoDBItem(BaseModel):
    """Base class for all DynamoDB items."""

    PK: str
    SK: str

    def to_item(self) -> dict:
        """Attribute map for put_item; unset GSI keys must be omitted, not NULL."""
        return self.model_dump(exclude_none=True)


class UserItem(DynamoDBItem):
    """Represents a user profile in DynamoDB."""

    PK: str  # USER#{user_id}
    SK: str = "PROFILE"
    user_id: str
    email: str
    name: str
    password_hash: str
    is_admin: bool = False
    failed_login_attempts: int = 0
    lockout_until: str | None = None
    created_at: str
    updated_at: str


class EmailGuardItem(DynamoDBItem):
    """Reserves an email address for exactly one user."""

    PK: str  # EMAIL#{email}
    SK: str = "EMAIL"
    user_id: str


class FirstUserGuardItem(DynamoDBItem):
    """Claimed by the first account ever registered; it becomes a site admin."""

    PK: str = "SITE"
    SK: str = "FIRST_USER"
    user_id: str


class RefreshTokenItem(DynamoDBItem):
    """A refresh token issued to a user; only its hash is stored."""

    PK: str  # USER#{user_id}
    SK: str  # REFRESH#{token_id}
    token_id: str
    user_id: str
    token_hash: str
    is_revoked: bool = False
    expires_at: str
    created_at: str
    GSI1PK: str  # USER#{user_id}
    GSI1SK: str  # REFRESH#{created_at}#{token_id}


class FamilyItem(DynamoDBItem):
    """Represents a family in DynamoDB."""

    PK: str  # FAMILY#{family_id}
    SK: str = "METADATA"
    family_id: str
    name: str
    description: str | None = None
    invite_code: str
    currency: str = "USD"
    active_member_count: int = 0
    created_at: str
    updated_at: str


class InviteCodeItem(DynamoDBItem):
    """Maps an invite code to its family; one item per live code."""

    PK: str  # INVITE#{code}
    SK: str = "INVITE"
    family_id: str


class MemberItem(DynamoDBItem):
    """Represents a (user, family) membership in DynamoDB."""

    PK: str  # FAMILY#{family_id}
    SK: str  # MEMBER#{user_id}
    family_id: str
    user_id: str
    role: str
    status: str
    joined_at: str
    GSI1PK: str  # USER#{user_id}
    GSI1SK: str  # FAMILY#{family_id}


class CategoryItem(DynamoDBItem):
    """Represents a wishlist category in DynamoDB."""

    PK: str  # FAMILY#{family_id}
    SK: str  # CATEGORY#{category_id}
    category_id: str
    family_id: str
    name: str
    description: str | None = None
    is_default: bool = False
    created_at: str
    updated_at: str


class EntityPointerItem(DynamoDBItem):
    """Maps an item or category id to the family partition that holds it."""

    PK: str  # ITEM#{item_id} or CATEGORY#{category_id}
    SK: str = "META"
    family_id: str


class CategoryNameItem(DynamoDBItem):
    """Reserves a category name (case-insensitive) within a family."""

    PK: str  # FAMILY#{family_id}
    SK: str  # CATEGORYNAME#{lowercased name}
    category_id: str


class WishlistEntryItem(DynamoDBItem):
    """Represents a wishlist item in DynamoDB."""

    PK: str  # FAMILY#{family_id}
    SK: str  # ITEM#{item_id}
    item_id: str
    family_id: str
    category_id: str
    owner_user_id: str
    title: str
    description: str | None = None
    price: str | None = None  # Stored as string to preserve precision
    product_url: str | None = None
    image_url: str | None = None
    priority: str
    notes: str | None = None
    created_at: str
    updated_at: str
    GSI1PK: str  # USER#{owner_user_id}
    GSI1SK: str  # ITEM#{created_at}#{item_id}


class ReservationItem(DynamoDBItem):
    """Represents an item reservation in DynamoDB."""

    PK: str  # ITEM#{item_id}
    SK: str  # RESERVATION#ACTIVE or RESERVATION#{reservation_id} once cancelled
    reservation_id: str
    item_id: str
    family_id: str
    user_id: str
    status: str
    reserved_at: str
    purchased_at: str | None = None
    purchase_notes: str | None = None
    cancelled_at: str | None = None
    GSI1PK: str  # USER#{user_id}
    GSI1SK: str  # RESERVATION#{reserved_at}#{reservation_id}


class PriceHistoryItem(DynamoDBItem):
    """Append-only price snapshot for a wishlist item."""

    PK: str  # ITEM#{item_id}
    SK: str  # PRICE#{recorded_at}#{snapshot_id}
    item_id: str
    price: str
    recorded_at: str


def user_key(user_id: str) -> Dict[str, str]:
    return {"PK": f"USER#{user_id}", "SK": "PROFILE"}


def email_key(email: str) -> Dict[str, str]:
    return {"PK": f"EMAIL#{email}", "SK": "EMAIL"}


def first_user_key() -> Dict[str, str]:
    return {"PK": "SITE", "SK": "FIRST_USER"}


def refresh_token_key(user_id: str, token_id: str) -> Dict[str, str]:
    return {"PK": f"USER#{user_id}", "SK": f"REFRESH#{token_id}"}


def family_key(family_id: str) -> Dict[str, str]:
    return {"PK": f"FAMILY#{family_id}", "SK": "METADATA"}


def invite_key(code: str) -> Dict[str, str]:
    return {"PK": f"INVITE#{code}", "SK": "INVITE"}


def member_key(family_id: str, user_id: str) -> Dict[str, str]:
    return {"PK": f"FAMILY#{family_id}", "SK": f"MEMBER#{user_id}"}


def category_key(family_id: str, category_id: str) -> Dict[str, str]:
    return {"PK": f"FAMILY#{family_id}", "SK": f"CATEGORY#{category_id}"}


def category_name_key(family_id: str, name: str) -> Dict[str, str]:
    return {"PK": f"FAMILY#{family_id}", "SK": f"CATEGORYNAME#{name.strip().lower()}"}


def wishlist_item_key(family_id: str, item_id: str) -> Dict[str, str]:
    return {"PK": f"FAMILY#{family_id}", "SK": f"ITEM#{item_id}"}


def item_pointer_key(item_id: str) -> Dict[str, str]:
    return {"PK": f"ITEM#{item_id}", "SK": "META"}


def category_pointer_key(category_id: str) -> Dict[str, str]:
    return {"PK": f"CATEGORY#{category_id}", "SK": "META"}


def active_reservation_key(item_id: str) -> Dict[str, str]:
    return {"PK": f"ITEM#{item_id}", "SK": ACTIVE_RESERVATION_SK}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 attribute; missing or empty values stay None."""
    return datetime.fromisoformat(value) if value else None
