import boto3
import pytest
from click.testing import CliRunner

from scripts.manage import cli, load_env_file


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def env_file(tmp_path):
    path = tmp_path / ".env"
    path.write_text(
        "JWT_SECRET=super-secret\n"
        "APP_BASE_URL=https://gifts.example\n"
        "MAX_FAMILY_MEMBERS=8\n"
        "ADMIN_EMAILS=boss@example.com,ops@example.com\n"
        "UNRELATED=ignored\n"
    )
    return str(path)


def test_create_table(runner):
    result = runner.invoke(cli, ["create-table", "--table-name", "CliTable"])

    assert result.exit_code == 0
    assert "Created table CliTable" in result.output
    client = boto3.client("dynamodb", region_name="us-east-1")
    assert "CliTable" in client.list_tables()["TableNames"]

    result = runner.invoke(cli, ["create-table", "--table-name", "CliTable"])
    assert result.exit_code == 0
    assert "already exists" in result.output


def test_load_env_file_keeps_known_settings(env_file):
    assert load_env_file(env_file) == {
        "auth/jwt-secret": "super-secret",
        "app/base-url": "https://gifts.example",
        "policy/max-family-members": "8",
        "policy/admin-emails": "boss@example.com,ops@example.com",
    }


def test_dry_run_masks_secrets(runner, env_file):
    result = runner.invoke(cli, ["upload-config", "--env-file", env_file, "--dry-run"])

    assert result.exit_code == 0
    assert "/family-wishlist/auth/jwt-secret (SecureString) = ********" in result.output
    assert "super-secret" not in result.output
    assert "/family-wishlist/app/base-url (String) = https://gifts.example" in result.output
    ssm = boto3.client("ssm", region_name="us-east-1")
    assert ssm.describe_parameters()["Parameters"] == []


def test_upload_and_show(runner, env_file):
    result = runner.invoke(
        cli, ["upload-config", "--env-file", env_file, "--prefix", "/cli-test"]
    )
    assert result.exit_code == 0

    ssm = boto3.client("ssm", region_name="us-east-1")
    secret = ssm.get_parameter(Name="/cli-test/auth/jwt-secret", WithDecryption=True)
    assert secret["Parameter"]["Type"] == "SecureString"
    assert secret["Parameter"]["Value"] == "super-secret"

    result = runner.invoke(cli, ["show-config", "--prefix", "/cli-test"])
    assert result.exit_code == 0
    assert "/cli-test/policy/max-family-members = 8" in result.output
    assert "/cli-test/auth/jwt-secret = ********" in result.output


def test_missing_env_file(runner, tmp_path):
    result = runner.invoke(
        cli, ["upload-config", "--env-file", str(tmp_path / "missing.env")]
    )

    assert result.exit_code == 1
    assert "file not found" in result.output
