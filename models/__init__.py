"""
Models package for data structures and database entities.

This package contains Pydantic models for data validation and
DynamoDB item representations.
"""

from .dynamodb import DynamoDBItem
from .family import Category, Family, FamilyMember, FamilyRole, MemberStatus
from .policy import WishlistPolicy
from .users import Principal, UserBase
from .wishlist import (ItemStatus, ItemView, Priority, Reservation,
                       ReservationStatus, WishlistItem)

__all__ = [
    "DynamoDBItem",
    "UserBase",
    "Principal",
    "Family",
    "FamilyMember",
    "FamilyRole",
    "MemberStatus",
    "Category",
    "WishlistItem",
    "Reservation",
    "Priority",
    "ReservationStatus",
    "ItemStatus",
    "ItemView",
    "WishlistPolicy",
]
