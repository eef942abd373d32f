"""
Wishlist items and the viewer-dependent item view.

derive_item_view is the one place reservation state is turned into what a
particular user may see: owners get the status only, never who claimed
their item.
"""

from typing import Dict, List, Optional

from models.dynamodb import utc_now
from models.wishlist import (ItemPage, ItemStatus, ItemView, Pagination,
                             PriceSnapshot, Reservation, ReservationDetails,
                             ReservationStatus, WishlistItem,
                             WishlistItemCreate, WishlistItemUpdate,
                             WishlistQuery, WishlistStats)
from services.dynamodb import WishlistTable
from services.membership import MembershipAuthorizer
from utils.errors import (CrossFamilyCategory, NotAMember, NotFound,
                          NotItemOwner)
from utils.logging import log_rejection, setup_logger

logger = setup_logger(__name__)


def derive_item_status(reservation: Optional[Reservation]) -> ItemStatus:
    if reservation is None or not reservation.is_active:
        return ItemStatus.AVAILABLE
    if reservation.status == ReservationStatus.PURCHASED:
        return ItemStatus.PURCHASED
    return ItemStatus.RESERVED


def derive_item_view(
    item: WishlistItem,
    viewer_id: str,
    reservation: Optional[Reservation] = None,
    owner_name: Optional[str] = None,
) -> ItemView:
    """
    Build the view of an item for one viewer.

    Args:
        item: The wishlist item
        viewer_id: The user looking at it
        reservation: The item's active reservation, if any
        owner_name: Display name of the item's owner

    Returns:
        The item with its derived status. Reservation details are left out
        entirely for the owner; other family members see who reserved it and
        when, and only the reserving user sees their purchase notes.
    """
    status = derive_item_status(reservation)
    active = reservation if status != ItemStatus.AVAILABLE else None

    details = None
    if active is not None and viewer_id != item.owner_user_id:
        is_reserver = active.user_id == viewer_id
        details = ReservationDetails(
            reservation_id=active.reservation_id,
            reserved_by=active.user_id,
            reserved_at=active.reserved_at,
            purchased_at=active.purchased_at,
            purchase_notes=active.purchase_notes if is_reserver else None,
        )

    return ItemView(
        id=item.item_id,
        title=item.title,
        description=item.description,
        price=item.price,
        product_url=item.product_url,
        image_url=item.image_url,
        priority=item.priority,
        notes=item.notes,
        owner_user_id=item.owner_user_id,
        owner_name=owner_name,
        category_id=item.category_id,
        family_id=item.family_id,
        created_at=item.created_at,
        updated_at=item.updated_at,
        status=status,
        reservation_details=details,
        is_reserved_by_me=bool(
            active is not None
            and viewer_id != item.owner_user_id
            and active.user_id == viewer_id
        ),
    )


def paginate(items: list, page: int, limit: int) -> list:
    start = (page - 1) * limit
    return items[start : start + limit]


class WishlistService:
    """Item CRUD and listings, scoped by family membership."""

    def __init__(
        self, table: WishlistTable, authorizer: Optional[MembershipAuthorizer] = None
    ):
        self.table = table
        self.authorizer = authorizer or MembershipAuthorizer(table)

    def _get_item(self, item_id: str) -> WishlistItem:
        item = self.table.get_item(item_id)
        if item is None:
            raise NotFound("Wishlist item", item_id)
        return item

    def _get_owned_item(self, item_id: str, user_id: str) -> WishlistItem:
        item = self._get_item(item_id)
        if item.owner_user_id != user_id:
            error = NotItemOwner()
            log_rejection(logger, error, {"item_id": item_id, "user_id": user_id})
            raise error
        return item

    def item_views(self, items: List[WishlistItem], viewer_id: str) -> List[ItemView]:
        reservations = self.table.get_active_reservations(i.item_id for i in items)
        owners = self.table.get_users(i.owner_user_id for i in items)
        return [
            derive_item_view(
                item,
                viewer_id,
                reservations.get(item.item_id),
                owners[item.owner_user_id].name if item.owner_user_id in owners else None,
            )
            for item in items
        ]

    def view_item(self, item: WishlistItem, viewer_id: str) -> ItemView:
        return self.item_views([item], viewer_id)[0]

    # CRUD

    def create_item(self, user_id: str, data: WishlistItemCreate) -> ItemView:
        """Create an item in the family that owns the chosen category."""
        category = self.table.get_category(data.category_id)
        if category is None:
            raise NotFound("Category", data.category_id)
        self.authorizer.authorize_family_access(user_id, category.family_id)

        now = utc_now()
        item = WishlistItem(
            family_id=category.family_id,
            owner_user_id=user_id,
            created_at=now,
            updated_at=now,
            **data.model_dump(),
        )
        self.table.create_item(item)
        if item.price is not None:
            self.table.put_price_snapshot(
                PriceSnapshot(item_id=item.item_id, price=item.price, recorded_at=now)
            )

        logger.info(
            "Wishlist item created",
            extra={"item_id": item.item_id, "family_id": item.family_id, "user_id": user_id},
        )
        return self.view_item(item, user_id)

    def get_item(self, item_id: str, viewer_id: str) -> ItemView:
        item = self._get_item(item_id)
        self.authorizer.authorize_family_access(viewer_id, item.family_id)
        return self.view_item(item, viewer_id)

    def update_item(
        self, item_id: str, user_id: str, data: WishlistItemUpdate
    ) -> ItemView:
        """Owner-only partial update. A new category must be in the item's family."""
        item = self._get_owned_item(item_id, user_id)
        changes = data.model_dump(exclude_unset=True)

        new_category_id = changes.get("category_id")
        if new_category_id and new_category_id != item.category_id:
            category = self.table.get_category(new_category_id)
            if category is None:
                raise NotFound("Category", new_category_id)
            if category.family_id != item.family_id:
                error = CrossFamilyCategory()
                log_rejection(logger, error, {"item_id": item_id, "user_id": user_id})
                raise error

        old_price = item.price
        for field, value in changes.items():
            setattr(item, field, value)
        item.updated_at = utc_now()

        self.table.put_item(item)
        if "price" in changes and item.price is not None and item.price != old_price:
            self.table.put_price_snapshot(
                PriceSnapshot(
                    item_id=item.item_id, price=item.price, recorded_at=item.updated_at
                )
            )

        logger.info(
            "Wishlist item updated",
            extra={"item_id": item_id, "user_id": user_id, "fields": sorted(changes)},
        )
        return self.view_item(item, user_id)

    def delete_item(self, item_id: str, user_id: str) -> None:
        """Owner-only; reservations and price history go with the item."""
        item = self._get_owned_item(item_id, user_id)
        self.table.delete_item_cascade(item)
        logger.info("Wishlist item deleted", extra={"item_id": item_id, "user_id": user_id})

    # Listings

    def list_family_items(
        self, family_id: str, viewer_id: str, query: Optional[WishlistQuery] = None
    ) -> ItemPage:
        """Family items ordered by owner name, then newest first."""
        query = query or WishlistQuery()
        self.authorizer.authorize_family_access(viewer_id, family_id)

        items = [i for i in self.table.list_family_items(family_id) if query.matches(i)]
        owners = self.table.get_users(i.owner_user_id for i in items)

        def owner_name(item: WishlistItem) -> str:
            owner = owners.get(item.owner_user_id)
            return owner.name.lower() if owner else ""

        items.sort(key=lambda i: i.created_at, reverse=True)
        items.sort(key=owner_name)

        page_items = paginate(items, query.page, query.limit)
        return ItemPage(
            items=self.item_views(page_items, viewer_id),
            pagination=Pagination.of(query.page, query.limit, len(items)),
        )

    def list_user_items(
        self, owner_id: str, viewer_id: str, query: Optional[WishlistQuery] = None
    ) -> ItemPage:
        """
        A user's items, newest first. Other viewers only see the items that
        live in families they are an ACTIVE member of.
        """
        query = query or WishlistQuery()
        items = self.table.list_owner_items(owner_id)

        if owner_id != viewer_id and items:
            shared = {
                m.family_id
                for m in self.table.list_user_memberships(viewer_id)
                if m.is_active
            }
            items = [i for i in items if i.family_id in shared]
            if not items:
                error = NotAMember()
                log_rejection(logger, error, {"user_id": viewer_id, "owner_id": owner_id})
                raise error

        items = [i for i in items if query.matches(i)]
        page_items = paginate(items, query.page, query.limit)
        return ItemPage(
            items=self.item_views(page_items, viewer_id),
            pagination=Pagination.of(query.page, query.limit, len(items)),
        )

    def get_user_wishlist_stats(self, user_id: str) -> WishlistStats:
        items = self.table.list_owner_items(user_id)
        reservations = self.table.get_active_reservations(i.item_id for i in items)

        stats = WishlistStats(total_items=len(items))
        for item in items:
            stats.priority_breakdown[item.priority] = (
                stats.priority_breakdown.get(item.priority, 0) + 1
            )
            status = derive_item_status(reservations.get(item.item_id))
            if status == ItemStatus.RESERVED:
                stats.reserved_items += 1
            elif status == ItemStatus.PURCHASED:
                stats.purchased_items += 1
        return stats

    def get_price_history(self, item_id: str, viewer_id: str) -> List[PriceSnapshot]:
        item = self._get_item(item_id)
        self.authorizer.authorize_family_access(viewer_id, item.family_id)
        return sorted(self.table.list_price_history(item_id), key=lambda s: s.recorded_at)

    def item_lookup(self, item_ids) -> Dict[str, WishlistItem]:
        items = {}
        for item_id in set(item_ids):
            item = self.table.get_item(item_id)
            if item is not None:
                items[item_id] = item
        return items
