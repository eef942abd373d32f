import pytest

from models.dynamodb import category_pointer_key
from models.family import CategoryCreate, CategoryUpdate, FamilyCreate
from models.wishlist import WishlistItemCreate
from utils.errors import (CategoryHasItems, CategoryNameTaken,
                          InsufficientRole, NotAMember, NotFound)


def test_members_list_categories_by_name(category_service, family, carol):
    names = [c.name for c in category_service.list_categories(family.id, carol)]
    assert names == sorted(names, key=str.lower)
    assert "Other" in names


def test_outsider_cannot_list(category_service, family, make_user):
    with pytest.raises(NotAMember):
        category_service.list_categories(family.id, make_user("Dave"))


def test_admin_creates_custom_category(category_service, family, alice):
    category = category_service.create_category(
        family.id, alice, CategoryCreate(name="  Baby  ", description="For the baby")
    )

    assert category.name == "Baby"
    assert category.is_default is False
    assert category.category_id in {
        c.category_id for c in category_service.list_categories(family.id, alice)
    }


def test_member_cannot_create(category_service, family, bob):
    with pytest.raises(InsufficientRole):
        category_service.create_category(family.id, bob, CategoryCreate(name="Baby"))


def test_names_are_unique_per_family_ignoring_case(
    category_service, family_service, family, alice
):
    with pytest.raises(CategoryNameTaken):
        category_service.create_category(family.id, alice, CategoryCreate(name="books"))

    # Another family may reuse the name
    other = family_service.create_family(alice, FamilyCreate(name="Work"))
    category_service.create_category(other.id, alice, CategoryCreate(name="Baby"))
    category_service.create_category(family.id, alice, CategoryCreate(name="Baby"))


def test_rename_moves_the_name(category_service, family, alice):
    category = category_service.create_category(
        family.id, alice, CategoryCreate(name="Baby")
    )

    renamed = category_service.update_category(
        family.id, alice, category.category_id, CategoryUpdate(name="Toddler")
    )
    assert renamed.name == "Toddler"

    # The old name is free again, the new one is taken
    category_service.create_category(family.id, alice, CategoryCreate(name="Baby"))
    with pytest.raises(CategoryNameTaken):
        category_service.update_category(
            family.id, alice, category.category_id, CategoryUpdate(name="Books")
        )


def test_description_only_update_keeps_name(category_service, family, alice, category_id):
    updated = category_service.update_category(
        family.id, alice, category_id, CategoryUpdate(description="Paper and ink")
    )
    assert updated.name == "Books"
    assert updated.description == "Paper and ink"
    assert updated.is_default is True


def test_category_must_belong_to_family(
    category_service, family_service, family, alice, category_id
):
    other = family_service.create_family(alice, FamilyCreate(name="Work"))
    with pytest.raises(NotFound):
        category_service.update_category(
            other.id, alice, category_id, CategoryUpdate(name="Mine")
        )
    with pytest.raises(NotFound):
        category_service.delete_category(other.id, alice, category_id)


def test_delete_unused_category(category_service, table, family, alice, category_id):
    category_service.delete_category(family.id, alice, category_id)

    assert table.get_category(category_id) is None
    # The name can be used again
    category_service.create_category(family.id, alice, CategoryCreate(name="Books"))


def test_category_with_items_cannot_be_deleted(
    category_service, wishlist_service, family, alice, bob, category_id
):
    wishlist_service.create_item(
        bob, WishlistItemCreate(title="Novel", category_id=category_id)
    )

    with pytest.raises(CategoryHasItems) as exc_info:
        category_service.delete_category(family.id, alice, category_id)
    assert exc_info.value.details == {"item_count": 1}


def test_category_pointers_are_removed_with_the_category(
    category_service, family_service, table, alice, category_id, family, bob, carol
):
    def pointer(category_id):
        return table.table.get_item(Key=category_pointer_key(category_id)).get("Item")

    assert pointer(category_id)["family_id"] == family.id
    category_service.delete_category(family.id, alice, category_id)
    assert pointer(category_id) is None

    remaining = [c.category_id for c in table.list_categories(family.id)]
    family_service.leave_family(family.id, bob)
    family_service.leave_family(family.id, carol)
    family_service.delete_family(family.id, alice)

    assert all(pointer(c) is None for c in remaining)
