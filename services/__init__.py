"""
Services package for business logic and persistence.

This package contains the DynamoDB table layer, the membership authorizer
and the family, category, wishlist, reservation and user services built on
top of it.
"""

from .dynamodb import WishlistTable, get_table
from .membership import MembershipAuthorizer
from .families import FamilyService
from .categories import CategoryService
from .wishlist import WishlistService, derive_item_view
from .reservations import ReservationService
from .users import UserService
from .credentials import CredentialService

__all__ = [
    "WishlistTable",
    "get_table",
    "MembershipAuthorizer",
    "FamilyService",
    "CategoryService",
    "WishlistService",
    "derive_item_view",
    "ReservationService",
    "UserService",
    "CredentialService",
]
