"""
Pytest configuration and fixtures for the family wishlist tests.

Every test runs inside moto's mock_aws with a freshly created table, so
DynamoDB and Parameter Store calls never leave the process.
"""

import os

# Settings are read from the environment before Parameter Store; these must
# be in place before the handler modules are imported.
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
os.environ["AWS_SECURITY_TOKEN"] = "testing"
os.environ["AWS_SESSION_TOKEN"] = "testing"
os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
os.environ["TABLE_NAME"] = "FamilyWishlistTest"
os.environ["FAMILY_WISHLIST_AUTH_JWT_SECRET"] = "test-secret-key-for-signing-tokens"
os.environ["FAMILY_WISHLIST_RATE_LIMIT_REQUESTS"] = "1000"
os.environ["FAMILY_WISHLIST_RATE_LIMIT_WINDOW_SECONDS"] = "900"

import boto3
import pytest
from moto import mock_aws

import services.dynamodb as dynamodb_service
from models.family import FamilyCreate
from models.users import RegisterRequest
from services import parameter_store
from services.categories import CategoryService
from services.dynamodb import WishlistTable, create_table, set_table
from services.families import FamilyService
from services.reservations import ReservationService
from services.users import UserService
from services.wishlist import WishlistService
from utils.security import PasswordHasher

from helpers import PASSWORD

TABLE_NAME = os.environ["TABLE_NAME"]



@pytest.fixture(autouse=True)
def aws(monkeypatch):
    """Mocked AWS for every test, with fast password hashing."""
    monkeypatch.setattr(PasswordHasher, "ITERATIONS", 1_000)
    with mock_aws():
        monkeypatch.setattr(dynamodb_service, "_dynamodb_resource", None)
        parameter_store.clear_cache()
        yield
        set_table(None)
        parameter_store.clear_cache()


@pytest.fixture
def table():
    resource = boto3.resource("dynamodb", region_name="us-east-1")
    create_table(resource, TABLE_NAME)
    wishlist_table = WishlistTable(TABLE_NAME, resource)
    set_table(wishlist_table)
    return wishlist_table


@pytest.fixture
def user_service(table):
    return UserService(table)


@pytest.fixture
def family_service(table):
    return FamilyService(table)


@pytest.fixture
def category_service(table):
    return CategoryService(table)


@pytest.fixture
def wishlist_service(table):
    return WishlistService(table)


@pytest.fixture
def reservation_service(table):
    return ReservationService(table)


@pytest.fixture
def make_user(user_service):
    """Register a user and return their id."""

    def _make_user(name, email=None, password=PASSWORD):
        profile = user_service.register_user(
            RegisterRequest(
                email=email or f"{name.lower()}@example.com",
                name=name,
                password=password,
            )
        )
        return profile.id

    return _make_user


@pytest.fixture
def alice(make_user):
    return make_user("Alice")


@pytest.fixture
def bob(make_user):
    return make_user("Bob")


@pytest.fixture
def carol(make_user):
    return make_user("Carol")


@pytest.fixture
def family(family_service, alice, bob, carol):
    """Alice's family with Bob and Carol as MEMBERs."""
    details = family_service.create_family(alice, FamilyCreate(name="Smiths"))
    family_service.join_family(bob, details.invite_code)
    family_service.join_family(carol, details.invite_code)
    return details


@pytest.fixture
def category_id(table, family):
    categories = sorted(table.list_categories(family.id), key=lambda c: c.name)
    return categories[0].category_id

