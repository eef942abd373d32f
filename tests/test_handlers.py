"""End-to-end tests through the Lambda handlers."""

import pytest

import authorizer
import main
from handlers import (admin, auth, categories, families, members,
                      reservations, users, wishlist)
from helpers import PASSWORD, api_event, response_body
from utils.decorators import lambda_handler, require_auth, validate_json_body
from utils.errors import NotFound
from utils.rate_limit import FixedWindowRateLimiter
from utils.responses import success_response


def test_health_check():
    response = main.healthz({}, None)

    assert response["statusCode"] == 200
    body = response_body(response)
    assert body["status"] == "healthy"
    assert body["service"] == "family-wishlist-api"


class TestAuthHandlers:
    def test_register_and_login(self, table):
        response = auth.register(
            api_event(body={"email": "Eve@Example.com", "password": PASSWORD, "name": "Eve"}),
            None,
        )
        assert response["statusCode"] == 201
        body = response_body(response)
        assert body["user"]["email"] == "eve@example.com"
        assert body["token_type"] == "Bearer"
        assert "password_hash" not in body["user"]

        response = auth.login(
            api_event(body={"email": "eve@example.com", "password": PASSWORD}), None
        )
        assert response["statusCode"] == 200
        assert response_body(response)["access_token"]

    def test_bad_credentials(self, table, alice):
        response = auth.login(
            api_event(body={"email": "alice@example.com", "password": "Wrong1234"}), None
        )
        assert response["statusCode"] == 401
        assert response_body(response)["error_code"] == "AUTHENTICATION_ERROR"

    def test_missing_fields(self, table):
        response = auth.register(api_event(body={"email": "eve@example.com"}), None)

        assert response["statusCode"] == 400
        body = response_body(response)
        assert body["error_code"] == "VALIDATION_ERROR"
        assert body["details"]["missing_fields"] == ["password", "name"]

    def test_invalid_email(self, table):
        response = auth.register(
            api_event(body={"email": "not-an-email", "password": PASSWORD, "name": "Eve"}),
            None,
        )
        assert response["statusCode"] == 400
        assert "validation_errors" in response_body(response)["details"]

    def test_duplicate_email(self, table, alice):
        response = auth.register(
            api_event(body={"email": "alice@example.com", "password": PASSWORD, "name": "A"}),
            None,
        )
        assert response["statusCode"] == 409
        assert response_body(response)["error_code"] == "EMAIL_ALREADY_REGISTERED"


class TestAuthorizer:
    def _token(self):
        response = auth.login(
            api_event(body={"email": "alice@example.com", "password": PASSWORD}), None
        )
        return response_body(response)["access_token"]

    def test_valid_token(self, table, alice):
        event = {"headers": {"authorization": f"Bearer {self._token()}"}}

        result = authorizer.lambda_handler(event, None)

        assert result["isAuthorized"] is True
        assert result["context"]["userId"] == alice
        assert result["context"]["name"] == "Alice"

    def test_missing_or_bad_token(self, table):
        assert authorizer.lambda_handler({"headers": {}}, None) == {"isAuthorized": False}
        event = {"headers": {"authorization": "Bearer not-a-jwt"}}
        assert authorizer.lambda_handler(event, None) == {"isAuthorized": False}

    def test_deleted_user(self, table, alice, user_service):
        token = self._token()
        user_service.delete_user(alice)

        event = {"headers": {"authorization": f"Bearer {token}"}}
        assert authorizer.lambda_handler(event, None) == {"isAuthorized": False}


class TestDecorators:
    def test_require_auth(self):
        @require_auth
        def handler(event, context):
            return success_response(data={"id": event["principal"].id})

        assert handler(api_event(), None)["statusCode"] == 401
        assert response_body(handler(api_event("u1"), None)) == {"id": "u1"}

    def test_domain_errors_become_responses(self):
        @lambda_handler()
        def handler(event, context):
            raise NotFound("Wishlist item", "abc")

        response = handler(api_event(), None)
        assert response["statusCode"] == 404
        assert response_body(response) == {
            "error": "Wishlist item 'abc' not found",
            "error_code": "RESOURCE_NOT_FOUND",
        }

    def test_unexpected_errors_become_500(self):
        @lambda_handler()
        def handler(event, context):
            raise RuntimeError("boom")

        response = handler(api_event(), None)
        assert response["statusCode"] == 500
        assert response_body(response) == {"error": "Internal server error"}

    def test_invalid_json(self):
        @lambda_handler()
        @validate_json_body()
        def handler(event, context):
            return success_response()

        event = api_event()
        event["body"] = "{not json"
        assert handler(event, None)["statusCode"] == 400

        event["body"] = "[1, 2]"
        assert handler(event, None)["statusCode"] == 400

    def test_rate_limiter(self):
        limiter = FixedWindowRateLimiter(max_requests=2, window_seconds=60)

        @lambda_handler(rate_limiter=limiter)
        def handler(event, context):
            return success_response()

        for _ in range(2):
            assert handler(api_event(source_ip="1.2.3.4"), None)["statusCode"] == 200
        response = handler(api_event(source_ip="1.2.3.4"), None)
        assert response["statusCode"] == 429
        assert response_body(response)["error_code"] == "RATE_LIMIT_EXCEEDED"
        assert handler(api_event(source_ip="5.6.7.8"), None)["statusCode"] == 200


class TestFamilyFlow:
    def test_family_wishlist_and_reservation_flow(self, table, alice, bob, carol):
        response = families.create_family(
            api_event(alice, body={"name": "Smiths", "description": "Us"}), None
        )
        assert response["statusCode"] == 201
        family = response_body(response)
        family_id = family["id"]

        preview = families.preview_invite(
            api_event(path={"code": family["invite_code"].lower()}), None
        )
        assert response_body(preview)["name"] == "Smiths"

        for user_id in (bob, carol):
            response = families.join_family(
                api_event(user_id, body={"invite_code": family["invite_code"]}), None
            )
            assert response["statusCode"] == 201

        response = categories.list_categories(api_event(bob, path={"familyId": family_id}), None)
        category_id = response_body(response)["categories"][0]["category_id"]

        response = wishlist.create_item(
            api_event(
                bob,
                body={"title": "Headphones", "category_id": category_id, "price": "99.50"},
            ),
            None,
        )
        assert response["statusCode"] == 201
        item_id = response_body(response)["id"]

        response = reservations.reserve_item(api_event(carol, path={"itemId": item_id}), None)
        assert response["statusCode"] == 201
        assert response_body(response)["is_reserved_by_me"] is True

        owner_view = response_body(
            wishlist.get_item(api_event(bob, path={"itemId": item_id}), None)
        )
        assert owner_view["status"] == "reserved"
        assert owner_view["reservation_details"] is None

        response = reservations.reserve_item(api_event(alice, path={"itemId": item_id}), None)
        assert response["statusCode"] == 409

        response = reservations.mark_purchased(
            api_event(carol, path={"itemId": item_id}, body={"notes": "Hidden"}), None
        )
        assert response_body(response)["status"] == "purchased"

        response = reservations.list_my_reservations(
            api_event(carol, query={"status": "purchased"}), None
        )
        mine = response_body(response)
        assert [r["item_id"] for r in mine["reservations"]] == [item_id]

        response = wishlist.list_family_items(
            api_event(alice, path={"familyId": family_id}, query={"search": "head"}), None
        )
        listing = response_body(response)
        assert listing["pagination"]["total_count"] == 1
        assert listing["items"][0]["price"] == "99.50"

    def test_admin_only_endpoints(self, table, family, bob, carol):
        response = members.promote_member(
            api_event(bob, path={"familyId": family.id, "userId": carol}), None
        )
        assert response["statusCode"] == 403
        assert response_body(response)["error_code"] == "INSUFFICIENT_ROLE"

        response = families.get_invite_info(api_event(bob, path={"familyId": family.id}), None)
        assert response["statusCode"] == 403

    def test_member_management(self, table, family, alice, bob, carol):
        path = {"familyId": family.id, "userId": bob}

        response = members.promote_member(api_event(alice, path=path), None)
        assert response_body(response)["role"] == "ADMIN"

        response = members.remove_member(api_event(alice, path=path), None)
        assert response["statusCode"] == 403
        assert response_body(response)["error_code"] == "CANNOT_REMOVE_ADMIN"

        response = members.demote_member(api_event(alice, path=path), None)
        assert response_body(response)["role"] == "MEMBER"

        response = members.reset_member_password(
            api_event(alice, path=path, body={"new_password": "Fresh1234"}), None
        )
        assert response["statusCode"] == 200

        response = members.create_member(
            api_event(
                alice,
                path={"familyId": family.id},
                body={"email": "gran@example.com", "name": "Gran", "password": PASSWORD},
            ),
            None,
        )
        assert response["statusCode"] == 201

        response = members.list_members(api_event(carol, path={"familyId": family.id}), None)
        assert response_body(response)["count"] == 4

    def test_self_action_is_rejected(self, table, family, alice):
        response = members.demote_member(
            api_event(alice, path={"familyId": family.id, "userId": alice}), None
        )
        assert response["statusCode"] == 400
        assert response_body(response)["error_code"] == "SELF_ACTION_FORBIDDEN"

    def test_get_family_with_includes(self, table, family, bob):
        response = families.get_family(
            api_event(
                bob,
                path={"familyId": family.id},
                query={"include_members": "true"},
            ),
            None,
        )
        body = response_body(response)
        assert len(body["members"]) == 3
        assert body["categories"] is None

    def test_leave_and_join(self, table, family_service, family, bob, make_user):
        from models.family import FamilyCreate

        other = family_service.create_family(make_user("Dave"), FamilyCreate(name="Joneses"))

        response = families.leave_and_join(
            api_event(bob, body={"invite_code": other.invite_code}), None
        )
        assert response["statusCode"] == 201
        body = response_body(response)
        assert body["message"] == "Successfully left Smiths and joined Joneses"
        assert body["left_families"] == [{"id": family.id, "name": "Smiths"}]

    def test_bad_listing_query(self, table, family, bob):
        response = wishlist.list_family_items(
            api_event(bob, path={"familyId": family.id}, query={"limit": "500"}), None
        )
        assert response["statusCode"] == 400

    def test_missing_path_parameter(self, table, bob):
        response = wishlist.get_item(api_event(bob), None)
        assert response["statusCode"] == 400
        assert response_body(response)["details"]["missing_parameters"] == ["itemId"]


class TestUserHandlers:
    def test_profile_endpoints(self, table, alice):
        response = users.get_me(api_event(alice), None)
        assert response_body(response)["email"] == "alice@example.com"

        response = users.update_me(api_event(alice, body={"name": "Ally"}), None)
        assert response_body(response)["name"] == "Ally"

        response = users.change_password(
            api_event(
                alice,
                body={"current_password": PASSWORD, "new_password": "NewPassword1"},
            ),
            None,
        )
        assert response["statusCode"] == 200

        response = users.get_my_stats(api_event(alice), None)
        assert response_body(response)["total_items"] == 0

    def test_delete_me(self, table, alice):
        response = users.delete_me(api_event(alice), None)
        assert response["statusCode"] == 200
        assert table.get_user(alice) is None

    @pytest.mark.parametrize("name", ["", None])
    def test_update_me_validation(self, table, alice, name):
        response = users.update_me(api_event(alice, body={"name": name}), None)
        assert response["statusCode"] == 400


class TestSessionHandlers:
    def _login(self, **extra):
        response = auth.login(
            api_event(body={"email": "alice@example.com", "password": PASSWORD, **extra}),
            None,
        )
        return response_body(response)

    def test_refresh_then_logout(self, table, alice):
        refresh_token = self._login(remember_me=True)["refresh_token"]

        response = auth.refresh(api_event(body={"refresh_token": refresh_token}), None)
        assert response["statusCode"] == 200
        body = response_body(response)
        assert body["token_type"] == "Bearer"
        event = {"headers": {"authorization": f"Bearer {body['access_token']}"}}
        assert authorizer.lambda_handler(event, None)["isAuthorized"] is True

        response = auth.logout(api_event(body={"refresh_token": refresh_token}), None)
        assert response["statusCode"] == 200

        response = auth.refresh(api_event(body={"refresh_token": refresh_token}), None)
        assert response["statusCode"] == 401
        assert response_body(response)["error_code"] == "AUTHENTICATION_ERROR"

    def test_refresh_requires_token(self, table):
        response = auth.refresh(api_event(body={}), None)
        assert response["statusCode"] == 400
        assert response_body(response)["details"]["missing_fields"] == ["refresh_token"]

    def test_refresh_token_is_not_accepted_by_authorizer(self, table, alice):
        refresh_token = self._login()["refresh_token"]

        event = {"headers": {"authorization": f"Bearer {refresh_token}"}}
        assert authorizer.lambda_handler(event, None) == {"isAuthorized": False}

    @pytest.mark.parametrize("body", [None, {}, {"refresh_token": "not-a-jwt"}])
    def test_logout_always_succeeds(self, table, body):
        response = auth.logout(api_event(body=body), None)
        assert response["statusCode"] == 200

    def test_will_be_admin(self, table):
        response = auth.will_be_admin(api_event(query={"email": "eve@example.com"}), None)
        assert response_body(response) == {"will_be_admin": True, "reason": "first_user"}

        auth.register(
            api_event(body={"email": "eve@example.com", "password": PASSWORD, "name": "Eve"}),
            None,
        )
        response = auth.will_be_admin(api_event(query={"email": "dan@example.com"}), None)
        assert response_body(response) == {"will_be_admin": False, "reason": None}

    def test_will_be_admin_needs_valid_email(self, table):
        response = auth.will_be_admin(api_event(query={"email": "nope"}), None)
        assert response["statusCode"] == 400
        response = auth.will_be_admin(api_event(), None)
        assert response["statusCode"] == 400


class TestAdminHandlers:
    def test_site_admin_views(self, table, family, alice):
        response = admin.list_users(api_event(alice), None)
        assert response["statusCode"] == 200
        assert response_body(response)["total_count"] == 3

        response = admin.list_families(api_event(alice), None)
        assert response_body(response)["families"][0]["name"] == "Smiths"

        response = admin.get_stats(api_event(alice), None)
        assert response_body(response)["overview"]["total_families"] == 1

    @pytest.mark.parametrize("handler", ["list_users", "list_families", "get_stats"])
    def test_other_users_are_forbidden(self, table, family, bob, handler):
        response = getattr(admin, handler)(api_event(bob), None)

        assert response["statusCode"] == 403
        assert response_body(response)["error_code"] == "INSUFFICIENT_ROLE"

    def test_requires_authentication(self, table):
        assert admin.list_users(api_event(), None)["statusCode"] == 401
