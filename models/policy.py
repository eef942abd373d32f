"""Product policy switches shared by the family and wishlist services."""

import re
from typing import List

from pydantic import BaseModel, Field


def parse_email_list(value: str) -> List[str]:
    """Split a list of emails separated by commas, semicolons or whitespace."""
    return [e.strip().lower() for e in re.split(r"[;,\s]+", value or "") if e.strip()]


class WishlistPolicy(BaseModel):
    """
    Product-level rules that the data model does not enforce by itself.

    single_family_mode: leave-and-join drops every other ACTIVE membership,
        so each user belongs to one family at a time.
    retain_cancelled_reservations: cancelling keeps a CANCELLED history
        record instead of deleting the reservation.
    admin_emails: accounts registered with one of these emails become site
        admins, as does the very first account.
    """

    max_family_members: int = Field(20, ge=1)
    single_family_mode: bool = True
    retain_cancelled_reservations: bool = False
    invite_base_url: str = "http://localhost:3000"
    admin_emails: List[str] = Field(default_factory=list)
