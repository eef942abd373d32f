"""
Site administration handlers for the family wishlist API.

The authorizer's isAdmin claim is not trusted here; AdminService re-reads
the caller's account before answering.
"""

from services.admin import AdminService
from services.dynamodb import get_table
from utils.decorators import lambda_handler, require_auth
from utils.responses import success_response


@lambda_handler()
@require_auth
def list_users(event, context):
    """
    List every account with its families and activity counts.

    GET /admin/users
    """
    users = AdminService(get_table()).list_users(event["principal"].id)
    return success_response(data=users)


@lambda_handler()
@require_auth
def list_families(event, context):
    """
    List every family with its active members.

    GET /admin/families
    """
    families = AdminService(get_table()).list_families(event["principal"].id)
    return success_response(data=families)


@lambda_handler()
@require_auth
def get_stats(event, context):
    """GET /admin/stats"""
    stats = AdminService(get_table()).get_system_stats(event["principal"].id)
    return success_response(data=stats)
