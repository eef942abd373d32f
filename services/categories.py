"""Per-family wishlist categories."""

from typing import List, Optional

from models.dynamodb import utc_now
from models.family import Category, CategoryCreate, CategoryUpdate, FamilyRole
from services.dynamodb import WishlistTable
from services.membership import MembershipAuthorizer
from utils.errors import CategoryHasItems, NotFound
from utils.logging import setup_logger

logger = setup_logger(__name__)


class CategoryService:
    def __init__(
        self, table: WishlistTable, authorizer: Optional[MembershipAuthorizer] = None
    ):
        self.table = table
        self.authorizer = authorizer or MembershipAuthorizer(table)

    def _get_family_category(self, family_id: str, category_id: str) -> Category:
        category = self.table.get_category(category_id)
        if category is None or category.family_id != family_id:
            raise NotFound("Category", category_id)
        return category

    def list_categories(self, family_id: str, user_id: str) -> List[Category]:
        self.authorizer.authorize_family_access(user_id, family_id)
        return sorted(self.table.list_categories(family_id), key=lambda c: c.name.lower())

    def create_category(
        self, family_id: str, user_id: str, data: CategoryCreate
    ) -> Category:
        self.authorizer.authorize_family_access(user_id, family_id, FamilyRole.ADMIN)

        now = utc_now()
        category = Category(
            family_id=family_id,
            name=data.name.strip(),
            description=data.description,
            is_default=False,
            created_at=now,
            updated_at=now,
        )
        self.table.create_category(category)

        logger.info(
            "Category created",
            extra={"family_id": family_id, "category_id": category.category_id},
        )
        return category

    def update_category(
        self, family_id: str, user_id: str, category_id: str, data: CategoryUpdate
    ) -> Category:
        """Rename or re-describe a category. is_default and family never change."""
        self.authorizer.authorize_family_access(user_id, family_id, FamilyRole.ADMIN)
        category = self._get_family_category(family_id, category_id)
        old_name = category.name

        changes = data.model_dump(exclude_unset=True)
        if changes.get("name") is not None:
            category.name = changes["name"].strip()
        if "description" in changes:
            category.description = changes["description"]
        category.updated_at = utc_now()

        self.table.update_category(category, old_name)
        logger.info(
            "Category updated",
            extra={"family_id": family_id, "category_id": category_id},
        )
        return category

    def delete_category(self, family_id: str, user_id: str, category_id: str) -> None:
        self.authorizer.authorize_family_access(user_id, family_id, FamilyRole.ADMIN)
        category = self._get_family_category(family_id, category_id)

        in_use = sum(
            1
            for item in self.table.list_family_items(family_id)
            if item.category_id == category_id
        )
        if in_use:
            raise CategoryHasItems(details={"item_count": in_use})

        self.table.delete_category(category)
        logger.info(
            "Category deleted",
            extra={"family_id": family_id, "category_id": category_id},
        )
