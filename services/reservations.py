"""
Reservation state machine for wishlist items.

    (none) --reserve--> RESERVED --mark_purchased--> PURCHASED (terminal)
                           |
                           +--cancel--> (none), or CANCELLED history when the
                                        policy retains cancelled reservations

At most one RESERVED/PURCHASED reservation exists per item. The table
enforces this with a conditional write to the item's single active slot, so
the pre-checks here only produce friendlier errors; losing a race still ends
in AlreadyReserved.
"""

from typing import Optional

from models.dynamodb import utc_now
from models.policy import WishlistPolicy
from models.wishlist import (ItemView, Pagination, Reservation,
                             ReservationPage, ReservationStatus,
                             ReservationView)
from services.dynamodb import WishlistTable
from services.membership import MembershipAuthorizer
from services.wishlist import WishlistService, paginate
from utils.errors import (AlreadyReserved, CannotReserveOwnItem, NotFound,
                          ReservationRequired, ValidationFailed)
from utils.logging import log_rejection, setup_logger

logger = setup_logger(__name__)


class ReservationService:
    def __init__(
        self,
        table: WishlistTable,
        policy: Optional[WishlistPolicy] = None,
        authorizer: Optional[MembershipAuthorizer] = None,
    ):
        self.table = table
        self.policy = policy or WishlistPolicy()
        self.authorizer = authorizer or MembershipAuthorizer(table)
        self.wishlist = WishlistService(table, self.authorizer)

    def _authorized_item(self, item_id: str, user_id: str):
        item = self.table.get_item(item_id)
        if item is None:
            raise NotFound("Wishlist item", item_id)
        self.authorizer.authorize_family_access(user_id, item.family_id)
        return item

    def reserve_item(self, item_id: str, user_id: str) -> ItemView:
        """
        Reserve someone else's item.

        Raises:
            NotFound: The item does not exist
            NotAMember, MembershipInactive: The user is not in the item's family
            CannotReserveOwnItem: The user owns the item
            AlreadyReserved: The item already has an active reservation
        """
        item = self._authorized_item(item_id, user_id)
        context = {"item_id": item_id, "user_id": user_id}

        if item.owner_user_id == user_id:
            error = CannotReserveOwnItem()
            log_rejection(logger, error, context)
            raise error

        if self.table.get_active_reservation(item_id) is not None:
            error = AlreadyReserved()
            log_rejection(logger, error, context)
            raise error

        reservation = Reservation(
            item_id=item_id,
            family_id=item.family_id,
            user_id=user_id,
            status=ReservationStatus.RESERVED,
            reserved_at=utc_now(),
        )
        try:
            self.table.create_reservation(reservation)
        except AlreadyReserved as error:
            # Another request claimed the slot between the check and the write
            log_rejection(logger, error, {**context, "lost_race": True})
            raise

        logger.info(
            "Item reserved",
            extra={**context, "reservation_id": reservation.reservation_id},
        )
        return self.wishlist.view_item(item, user_id)

    def _own_reservation(self, item_id: str, user_id: str) -> Reservation:
        reservation = self.table.get_active_reservation(item_id)
        if reservation is None or reservation.user_id != user_id:
            error = ReservationRequired("You have not reserved this item")
            log_rejection(logger, error, {"item_id": item_id, "user_id": user_id})
            raise error
        return reservation

    def cancel_reservation(self, item_id: str, user_id: str) -> ItemView:
        """
        Cancel the caller's RESERVED reservation. Purchased items cannot be
        cancelled.
        """
        item = self._authorized_item(item_id, user_id)
        reservation = self._own_reservation(item_id, user_id)
        if reservation.status == ReservationStatus.PURCHASED:
            raise ValidationFailed("Cannot cancel a purchased item")

        history = None
        if self.policy.retain_cancelled_reservations:
            history = reservation.model_copy(
                update={
                    "status": ReservationStatus.CANCELLED,
                    "cancelled_at": utc_now(),
                }
            )
        self.table.release_reservation(reservation, history)

        logger.info(
            "Reservation cancelled",
            extra={
                "item_id": item_id,
                "user_id": user_id,
                "reservation_id": reservation.reservation_id,
                "history_kept": history is not None,
            },
        )
        return self.wishlist.view_item(item, user_id)

    def mark_purchased(
        self, item_id: str, user_id: str, notes: Optional[str] = None
    ) -> ItemView:
        """Move the caller's RESERVED reservation to PURCHASED."""
        item = self._authorized_item(item_id, user_id)
        reservation = self._own_reservation(item_id, user_id)
        if reservation.status != ReservationStatus.RESERVED:
            raise ReservationRequired("Item is already marked as purchased")

        purchased = reservation.model_copy(
            update={
                "status": ReservationStatus.PURCHASED,
                "purchased_at": utc_now(),
                "purchase_notes": notes,
            }
        )
        self.table.save_purchase(purchased)

        logger.info(
            "Item purchased",
            extra={
                "item_id": item_id,
                "user_id": user_id,
                "reservation_id": reservation.reservation_id,
            },
        )
        return self.wishlist.view_item(item, user_id)

    def list_my_reservations(
        self,
        user_id: str,
        status: Optional[ReservationStatus] = None,
        page: int = 1,
        limit: int = 10,
    ) -> ReservationPage:
        """
        The caller's reservations, newest first, with the reserved items.

        Without a status filter only active (RESERVED or PURCHASED)
        reservations are listed.
        """
        if page < 1 or not 1 <= limit <= 100:
            raise ValidationFailed("page must be >= 1 and limit between 1 and 100")

        reservations = self.table.list_user_reservations(user_id)
        if status is None:
            reservations = [r for r in reservations if r.is_active]
        else:
            reservations = [r for r in reservations if r.status == status]

        page_reservations = paginate(reservations, page, limit)
        items = self.wishlist.item_lookup(r.item_id for r in page_reservations)
        item_views = {
            view.id: view
            for view in self.wishlist.item_views(list(items.values()), user_id)
        }

        return ReservationPage(
            reservations=[
                ReservationView(
                    id=r.reservation_id,
                    item_id=r.item_id,
                    status=r.status,
                    reserved_at=r.reserved_at,
                    purchased_at=r.purchased_at,
                    purchase_notes=r.purchase_notes,
                    item=item_views.get(r.item_id),
                )
                for r in page_reservations
            ],
            pagination=Pagination.of(page, limit, len(reservations)),
        )
