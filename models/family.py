"""Family, membership and category models for the wishlist system."""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field

from models.dynamodb import (CategoryItem, FamilyItem, MemberItem,
                             category_key, family_key, member_key,
                             parse_timestamp)


class FamilyRole(str, Enum):
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


class MemberStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    PENDING = "PENDING"


class Currency(str, Enum):
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"


CURRENCY_SYMBOLS = {Currency.USD: "$", Currency.EUR: "€", Currency.GBP: "£"}

DEFAULT_CATEGORIES = [
    ("Electronics", "Gadgets, devices, and tech accessories"),
    ("Books", "Books, e-books, and reading materials"),
    ("Games", "Video games, board games, and toys"),
    ("Home & Garden", "Home decor, furniture, and garden items"),
    ("Fashion", "Clothing, shoes, and accessories"),
    ("Sports & Outdoors", "Sports equipment and outdoor gear"),
    ("Health & Beauty", "Skincare, makeup, and health products"),
    ("Other", "Everything else"),
]


class Family(BaseModel):
    """A family group sharing wishlists."""

    family_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    invite_code: str
    currency: Currency = Currency.USD
    active_member_count: int = Field(0, ge=0)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dynamodb_item(self) -> FamilyItem:
        return FamilyItem(
            **family_key(self.family_id),
            family_id=self.family_id,
            name=self.name,
            description=self.description,
            invite_code=self.invite_code,
            currency=self.currency.value,
            active_member_count=self.active_member_count,
            created_at=self.created_at.isoformat(),
            updated_at=self.updated_at.isoformat(),
        )

    @classmethod
    def from_dynamodb_item(cls, item: Dict[str, Any]) -> "Family":
        if not item:
            return None

        return cls(
            family_id=item["family_id"],
            name=item["name"],
            description=item.get("description"),
            invite_code=item["invite_code"],
            currency=item.get("currency", Currency.USD.value),
            active_member_count=int(item.get("active_member_count", 0)),
            created_at=parse_timestamp(item.get("created_at")),
            updated_at=parse_timestamp(item.get("updated_at")),
        )


class FamilyMember(BaseModel):
    """The (user, family) membership record."""

    family_id: str
    user_id: str
    role: FamilyRole = FamilyRole.MEMBER
    status: MemberStatus = MemberStatus.ACTIVE
    joined_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == MemberStatus.ACTIVE

    @property
    def is_admin(self) -> bool:
        return self.role == FamilyRole.ADMIN

    def to_dynamodb_item(self) -> MemberItem:
        return MemberItem(
            **member_key(self.family_id, self.user_id),
            family_id=self.family_id,
            user_id=self.user_id,
            role=self.role.value,
            status=self.status.value,
            joined_at=self.joined_at.isoformat(),
            GSI1PK=f"USER#{self.user_id}",
            GSI1SK=f"FAMILY#{self.family_id}",
        )

    @classmethod
    def from_dynamodb_item(cls, item: Dict[str, Any]) -> "FamilyMember":
        if not item:
            return None

        return cls(
            family_id=item["family_id"],
            user_id=item["user_id"],
            role=item["role"],
            status=item["status"],
            joined_at=parse_timestamp(item.get("joined_at")),
        )


class Membership(BaseModel):
    """
    Result of a successful family access check.

    Carries the membership together with the family so callers do not need
    a second lookup.
    """

    member: FamilyMember
    family: Family

    @property
    def role(self) -> FamilyRole:
        return self.member.role

    @property
    def status(self) -> MemberStatus:
        return self.member.status

    @property
    def joined_at(self) -> Optional[datetime]:
        return self.member.joined_at


class Category(BaseModel):
    """A wishlist category scoped to one family."""

    category_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    family_id: str
    name: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=200)
    is_default: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dynamodb_item(self) -> CategoryItem:
        return CategoryItem(
            **category_key(self.family_id, self.category_id),
            category_id=self.category_id,
            family_id=self.family_id,
            name=self.name,
            description=self.description,
            is_default=self.is_default,
            created_at=self.created_at.isoformat(),
            updated_at=self.updated_at.isoformat(),
        )

    @classmethod
    def from_dynamodb_item(cls, item: Dict[str, Any]) -> "Category":
        if not item:
            return None

        return cls(
            category_id=item["category_id"],
            family_id=item["family_id"],
            name=item["name"],
            description=item.get("description"),
            is_default=item.get("is_default", False),
            created_at=parse_timestamp(item.get("created_at")),
            updated_at=parse_timestamp(item.get("updated_at")),
        )


# Request models


class FamilyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)


class FamilyUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    currency: Optional[Currency] = None


class JoinFamilyRequest(BaseModel):
    invite_code: str = Field(..., min_length=1)


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=200)


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=200)


class CreateMemberRequest(BaseModel):
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1)


# Result models


class MemberView(BaseModel):
    user_id: str
    name: str
    email: str
    role: FamilyRole
    status: MemberStatus
    joined_at: Optional[datetime] = None


class FamilyDetails(BaseModel):
    """
    A family as returned to callers.

    members and categories are only populated when requested; None means
    "not loaded", an empty list means "loaded, none exist".
    """

    id: str
    name: str
    description: Optional[str] = None
    invite_code: Optional[str] = None
    currency: Currency
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    membership_role: Optional[FamilyRole] = None
    membership_status: Optional[MemberStatus] = None
    joined_at: Optional[datetime] = None
    members: Optional[List[MemberView]] = None
    categories: Optional[List[Category]] = None

    @classmethod
    def build(
        cls,
        family: Family,
        member: Optional[FamilyMember] = None,
        members: Optional[List[MemberView]] = None,
        categories: Optional[List[Category]] = None,
    ) -> "FamilyDetails":
        return cls(
            id=family.family_id,
            name=family.name,
            description=family.description,
            invite_code=family.invite_code,
            currency=family.currency,
            created_at=family.created_at,
            updated_at=family.updated_at,
            membership_role=member.role if member else None,
            membership_status=member.status if member else None,
            joined_at=member.joined_at if member else None,
            members=members,
            categories=categories,
        )


class FamilyStats(BaseModel):
    total_members: int = 0
    admin_count: int = 0
    member_count: int = 0


class InviteInfo(BaseModel):
    family_id: str
    name: str
    description: Optional[str] = None
    invite_code: str
    invite_link: str
    member_count: int
    is_at_member_limit: bool


class InvitePreview(BaseModel):
    family_id: str
    name: str
    description: Optional[str] = None
    member_count: int


class JoinResult(BaseModel):
    family: FamilyDetails
    rejoined: bool = False
    left_families: List[Dict[str, str]] = Field(default_factory=list)
