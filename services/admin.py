"""
Site administration: read-only views across every account and family.

Only site admins (the first account, and accounts registered with one of
the configured admin emails) get through. The admin flag is read from the
user record on each call, not from the access token.
"""

from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Callable, Dict, List

from models.admin import (AdminFamilyList, AdminFamilyView, AdminMemberView,
                          AdminUserList, AdminUserView, FamilyRef,
                          FamilySizeStats, MemberRef, RecentActivity,
                          SystemHealth, SystemOverview, SystemStats, TopFamily,
                          UserMembershipView, UserStatistics)
from models.dynamodb import utc_now
from models.family import FamilyMember
from models.users import UserBase
from models.wishlist import ReservationStatus
from services.dynamodb import WishlistTable
from utils.errors import InsufficientRole
from utils.logging import log_rejection, setup_logger

logger = setup_logger(__name__)

RECENT_WINDOW = timedelta(days=30)
TOP_FAMILY_COUNT = 5


class AdminService:
    def __init__(self, table: WishlistTable, clock: Callable[[], datetime] = utc_now):
        self.table = table
        self.clock = clock

    def require_site_admin(self, user_id: str) -> UserBase:
        user = self.table.get_user(user_id)
        if user is None or not user.is_admin:
            error = InsufficientRole()
            log_rejection(logger, error, {"user_id": user_id})
            raise error
        return user

    @staticmethod
    def _active_members_by_family(
        members: List[FamilyMember],
    ) -> Dict[str, List[FamilyMember]]:
        grouped = defaultdict(list)
        for member in members:
            if member.is_active:
                grouped[member.family_id].append(member)
        return grouped

    def list_users(self, user_id: str) -> AdminUserList:
        """Every account, newest first, with its ACTIVE memberships and counts."""
        self.require_site_admin(user_id)
        entities = self.table.scan_entities()
        families = {f.family_id: f for f in entities["families"]}

        items_by_owner = Counter(i.owner_user_id for i in entities["items"])
        reservations_by_user = Counter(
            r.user_id
            for r in entities["reservations"]
            if r.status != ReservationStatus.CANCELLED
        )
        memberships = defaultdict(list)
        for member in entities["members"]:
            if member.is_active and member.family_id in families:
                memberships[member.user_id].append(member)

        now = self.clock()
        views = []
        for user in sorted(entities["users"], key=lambda u: u.created_at, reverse=True):
            own = sorted(memberships[user.user_id], key=lambda m: m.joined_at, reverse=True)
            views.append(
                AdminUserView(
                    id=user.user_id,
                    email=user.email,
                    name=user.name,
                    is_admin=user.is_admin,
                    created_at=user.created_at,
                    updated_at=user.updated_at,
                    account_locked=user.is_locked(now),
                    failed_login_attempts=user.failed_login_attempts,
                    statistics=UserStatistics(
                        wishlist_items=items_by_owner[user.user_id],
                        reservations=reservations_by_user[user.user_id],
                        family_memberships=len(own),
                    ),
                    families=[
                        UserMembershipView(
                            role=m.role,
                            status=m.status,
                            joined_at=m.joined_at,
                            family=FamilyRef(
                                id=m.family_id, name=families[m.family_id].name
                            ),
                        )
                        for m in own
                    ],
                )
            )

        return AdminUserList(
            users=views,
            total_count=len(views),
            admin_count=sum(1 for v in views if v.is_admin),
        )

    def list_families(self, user_id: str) -> AdminFamilyList:
        """Every family, newest first, with its ACTIVE members oldest first."""
        self.require_site_admin(user_id)
        entities = self.table.scan_entities()
        users = {u.user_id: u for u in entities["users"]}
        members_by_family = self._active_members_by_family(entities["members"])

        views = []
        for family in sorted(
            entities["families"], key=lambda f: f.created_at, reverse=True
        ):
            members = sorted(
                (m for m in members_by_family[family.family_id] if m.user_id in users),
                key=lambda m: m.joined_at,
            )
            views.append(
                AdminFamilyView(
                    id=family.family_id,
                    name=family.name,
                    description=family.description,
                    invite_code=family.invite_code,
                    created_at=family.created_at,
                    updated_at=family.updated_at,
                    member_count=len(members),
                    members=[
                        AdminMemberView(
                            role=m.role,
                            joined_at=m.joined_at,
                            user=MemberRef(
                                id=m.user_id,
                                name=users[m.user_id].name,
                                email=users[m.user_id].email,
                            ),
                        )
                        for m in members
                    ],
                )
            )

        return AdminFamilyList(families=views, total_count=len(views))

    def get_system_stats(self, user_id: str) -> SystemStats:
        self.require_site_admin(user_id)
        entities = self.table.scan_entities()
        now = self.clock()
        since = now - RECENT_WINDOW

        users = entities["users"]
        families = entities["families"]
        members_by_family = self._active_members_by_family(entities["members"])
        items_by_family = Counter(i.family_id for i in entities["items"])
        reservations = [
            r for r in entities["reservations"] if r.status != ReservationStatus.CANCELLED
        ]

        admin_users = sum(1 for u in users if u.is_admin)
        locked_users = sum(1 for u in users if u.is_locked(now))
        sizes = [len(members_by_family[f.family_id]) for f in families]

        top_families = sorted(
            (
                TopFamily(
                    id=f.family_id,
                    name=f.name,
                    member_count=len(members_by_family[f.family_id]),
                    total_wishlist_items=items_by_family[f.family_id],
                )
                for f in families
            ),
            key=lambda t: t.total_wishlist_items,
            reverse=True,
        )[:TOP_FAMILY_COUNT]

        return SystemStats(
            overview=SystemOverview(
                total_users=len(users),
                total_families=len(families),
                total_wishlist_items=len(entities["items"]),
                total_reservations=len(reservations),
                active_family_memberships=sum(sizes),
                admin_users=admin_users,
                locked_users=locked_users,
            ),
            recent=RecentActivity(
                new_users_last_30_days=sum(1 for u in users if u.created_at >= since),
                new_families_last_30_days=sum(
                    1 for f in families if f.created_at >= since
                ),
            ),
            family_stats=FamilySizeStats(
                average_family_size=round(sum(sizes) / len(sizes), 2) if sizes else 0.0,
                small_families=sum(1 for s in sizes if s <= 2),
                medium_families=sum(1 for s in sizes if 2 < s <= 5),
                large_families=sum(1 for s in sizes if s > 5),
            ),
            top_families=top_families,
            system_health=SystemHealth(
                total_users=len(users),
                active_users=len(users) - locked_users,
                locked_users=locked_users,
                admin_users=admin_users,
                health_score=round((len(users) - locked_users) / max(len(users), 1) * 100),
            ),
        )
