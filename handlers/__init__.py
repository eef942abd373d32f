"""
Handlers package for Lambda function handlers.

This package contains all the API endpoint handlers for authentication,
user accounts, families and their members, categories, wishlist items,
reservations and site administration.
"""

from . import (admin, auth, categories, families, members, reservations, users,
               wishlist)

__all__ = [
    "auth",
    "users",
    "families",
    "members",
    "categories",
    "wishlist",
    "reservations",
    "admin",
]
