import boto3
import pytest

from services.parameter_store import (ParameterStoreConfig, get_parameter,
                                      get_parameters_by_path)


@pytest.fixture
def ssm():
    return boto3.client("ssm", region_name="us-east-1")


@pytest.fixture
def store():
    return ParameterStoreConfig("/test-app")


def test_value_comes_from_parameter_store(ssm, store):
    ssm.put_parameter(Name="/test-app/app/base-url", Value="https://gifts.example", Type="String")

    assert store.get("app/base-url") == "https://gifts.example"


def test_environment_overrides_parameter_store(ssm, store, monkeypatch):
    ssm.put_parameter(Name="/test-app/auth/jwt-secret", Value="from-ssm", Type="SecureString")
    monkeypatch.setenv("TEST_APP_AUTH_JWT_SECRET", "from-env")

    assert store.get_required("auth/jwt-secret") == "from-env"


def test_missing_parameters(store):
    assert get_parameter("/test-app/nothing-here") is None
    assert store.get("nothing-here", "fallback") == "fallback"
    with pytest.raises(ValueError):
        store.get_required("auth/jwt-secret")


def test_typed_getters(ssm, store):
    ssm.put_parameter(Name="/test-app/a/number", Value="42", Type="String")
    ssm.put_parameter(Name="/test-app/a/garbage", Value="many", Type="String")
    ssm.put_parameter(Name="/test-app/a/flag", Value="Yes", Type="String")

    assert store.get_int("a/number", 1) == 42
    assert store.get_int("a/garbage", 7) == 7
    assert store.get_int("a/missing", 3) == 3
    assert store.get_bool("a/flag", False) is True
    assert store.get_bool("a/missing-flag", True) is True


def test_policy_defaults(store):
    policy = store.load_policy()

    assert policy.max_family_members == 20
    assert policy.single_family_mode is True
    assert policy.retain_cancelled_reservations is False
    assert policy.invite_base_url == "http://localhost:3000"
    assert policy.admin_emails == []


def test_policy_overrides(ssm, store):
    ssm.put_parameter(Name="/test-app/policy/max-family-members", Value="5", Type="String")
    ssm.put_parameter(Name="/test-app/policy/single-family-mode", Value="false", Type="String")
    ssm.put_parameter(
        Name="/test-app/policy/retain-cancelled-reservations", Value="true", Type="String"
    )

    policy = store.load_policy()

    assert policy.max_family_members == 5
    assert policy.single_family_mode is False
    assert policy.retain_cancelled_reservations is True


def test_admin_emails_accept_mixed_separators(ssm, store):
    ssm.put_parameter(
        Name="/test-app/policy/admin-emails",
        Value="Root@Example.com; ops@example.com,\nboss@example.com",
        Type="String",
    )

    assert store.load_policy().admin_emails == [
        "root@example.com",
        "ops@example.com",
        "boss@example.com",
    ]


def test_auth_and_rate_limit_config(ssm, store):
    ssm.put_parameter(Name="/test-app/auth/jwt-secret", Value="s3cret", Type="SecureString")
    ssm.put_parameter(Name="/test-app/rate-limit/requests", Value="10", Type="String")

    assert store.load_auth_config() == {
        "jwt_secret": "s3cret",
        "access_token_minutes": 240,
        "refresh_token_days": 7,
        "remember_me_days": 30,
    }
    assert store.load_rate_limit_config() == {"max_requests": 10, "window_seconds": 900}


def test_parameters_by_path(ssm):
    ssm.put_parameter(Name="/test-app/auth/jwt-secret", Value="s3cret", Type="SecureString")
    ssm.put_parameter(Name="/test-app/app/base-url", Value="https://x.example", Type="String")

    assert get_parameters_by_path("/test-app") == {
        "auth/jwt-secret": "s3cret",
        "app/base-url": "https://x.example",
    }
