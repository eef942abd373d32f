"""Site administration views: every user and family, and system statistics."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field

from models.family import FamilyRole, MemberStatus


class SiteAdminEligibility(BaseModel):
    will_be_admin: bool
    reason: Optional[str] = None  # "first_user" or "admin_email"


class FamilyRef(BaseModel):
    id: str
    name: str


class UserMembershipView(BaseModel):
    role: FamilyRole
    status: MemberStatus
    joined_at: Optional[datetime] = None
    family: FamilyRef


class UserStatistics(BaseModel):
    wishlist_items: int = 0
    reservations: int = 0
    family_memberships: int = 0


class AdminUserView(BaseModel):
    id: str
    email: str
    name: str
    is_admin: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    account_locked: bool
    failed_login_attempts: int
    statistics: UserStatistics
    families: List[UserMembershipView] = Field(default_factory=list)


class AdminUserList(BaseModel):
    users: List[AdminUserView]
    total_count: int
    admin_count: int


class MemberRef(BaseModel):
    id: str
    name: str
    email: str


class AdminMemberView(BaseModel):
    role: FamilyRole
    joined_at: Optional[datetime] = None
    user: MemberRef


class AdminFamilyView(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    invite_code: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    member_count: int
    members: List[AdminMemberView] = Field(default_factory=list)


class AdminFamilyList(BaseModel):
    families: List[AdminFamilyView]
    total_count: int


class SystemOverview(BaseModel):
    total_users: int = 0
    total_families: int = 0
    total_wishlist_items: int = 0
    total_reservations: int = 0
    active_family_memberships: int = 0
    admin_users: int = 0
    locked_users: int = 0


class RecentActivity(BaseModel):
    new_users_last_30_days: int = 0
    new_families_last_30_days: int = 0


class FamilySizeStats(BaseModel):
    """Sizes count ACTIVE members: small is up to 2, medium 3 to 5, large above 5."""

    average_family_size: float = 0.0
    small_families: int = 0
    medium_families: int = 0
    large_families: int = 0


class TopFamily(BaseModel):
    id: str
    name: str
    member_count: int
    total_wishlist_items: int


class SystemHealth(BaseModel):
    total_users: int = 0
    active_users: int = 0
    locked_users: int = 0
    admin_users: int = 0
    health_score: int = 100


class SystemStats(BaseModel):
    overview: SystemOverview
    recent: RecentActivity
    family_stats: FamilySizeStats
    top_families: List[TopFamily]
    system_health: SystemHealth


class EligibilityQuery(BaseModel):
    email: EmailStr
