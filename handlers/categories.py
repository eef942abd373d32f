"""Category handlers for the family wishlist API."""

from pydantic import ValidationError

from models.family import CategoryCreate, CategoryUpdate
from services.categories import CategoryService
from services.dynamodb import get_table
from utils.decorators import (extract_path_params, lambda_handler,
                              require_auth, validate_json_body)
from utils.responses import HTTPStatus, success_response, validation_error_response


@lambda_handler()
@require_auth
@extract_path_params("familyId")
def list_categories(event, context):
    """
    List a family's categories by name.

    GET /families/{familyId}/categories
    """
    categories = CategoryService(get_table()).list_categories(
        event["path_params"]["familyId"], event["principal"].id
    )
    return success_response(data={"categories": categories, "count": len(categories)})


@lambda_handler()
@require_auth
@extract_path_params("familyId")
@validate_json_body(required_fields=["name"])
def create_category(event, context):
    """
    Add a custom category. Admin only.

    POST /families/{familyId}/categories
    """
    try:
        data = CategoryCreate(**event["json_body"])
    except ValidationError as e:
        return validation_error_response(
            "Category validation failed",
            {"validation_errors": e.errors(include_url=False, include_context=False)},
        )

    category = CategoryService(get_table()).create_category(
        event["path_params"]["familyId"], event["principal"].id, data
    )
    return success_response(
        data=category,
        message=f"Category '{category.name}' created successfully",
        status_code=HTTPStatus.CREATED,
    )


@lambda_handler()
@require_auth
@extract_path_params("familyId", "categoryId")
@validate_json_body()
def update_category(event, context):
    """
    Rename or re-describe a category. Admin only.

    PUT /families/{familyId}/categories/{categoryId}
    """
    try:
        data = CategoryUpdate(**event["json_body"])
    except ValidationError as e:
        return validation_error_response(
            "Category validation failed",
            {"validation_errors": e.errors(include_url=False, include_context=False)},
        )

    params = event["path_params"]
    category = CategoryService(get_table()).update_category(
        params["familyId"], event["principal"].id, params["categoryId"], data
    )
    return success_response(data=category, message="Category updated successfully")


@lambda_handler()
@require_auth
@extract_path_params("familyId", "categoryId")
def delete_category(event, context):
    """
    Delete a category that no item uses. Admin only.

    DELETE /families/{familyId}/categories/{categoryId}
    """
    params = event["path_params"]
    CategoryService(get_table()).delete_category(
        params["familyId"], event["principal"].id, params["categoryId"]
    )
    return success_response(message="Category deleted successfully")
