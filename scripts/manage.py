#!/usr/bin/env python3
"""
Management commands for the family wishlist backend.

create-table builds the DynamoDB table from the shared definition;
upload-config reads settings from a .env file and stores them in AWS
Parameter Store, encrypting the sensitive ones; show-config lists what is
currently stored.
"""

import sys
from pathlib import Path

import boto3
import click
from botocore.exceptions import ClientError
from dotenv import dotenv_values

from services.dynamodb import DEFAULT_TABLE_NAME, create_table
from services.parameter_store import get_parameters_by_path

DEFAULT_PREFIX = "/family-wishlist"

# .env variable -> parameter key under the prefix
ENV_PARAMETERS = {
    "JWT_SECRET": "auth/jwt-secret",
    "ACCESS_TOKEN_MINUTES": "auth/access-token-minutes",
    "REFRESH_TOKEN_DAYS": "auth/refresh-token-days",
    "REMEMBER_ME_DAYS": "auth/remember-me-days",
    "APP_BASE_URL": "app/base-url",
    "MAX_FAMILY_MEMBERS": "policy/max-family-members",
    "SINGLE_FAMILY_MODE": "policy/single-family-mode",
    "RETAIN_CANCELLED_RESERVATIONS": "policy/retain-cancelled-reservations",
    "ADMIN_EMAILS": "policy/admin-emails",
    "RATE_LIMIT_REQUESTS": "rate-limit/requests",
    "RATE_LIMIT_WINDOW_SECONDS": "rate-limit/window-seconds",
}


def is_secret(param_name: str) -> bool:
    return "secret" in param_name.lower()


def load_env_file(env_file_path: str = ".env") -> dict:
    """
    Collect the known settings from a .env file.

    Args:
        env_file_path: Path to .env file

    Returns:
        Dictionary of parameter keys to values
    """
    if not Path(env_file_path).exists():
        raise click.ClickException(f"{env_file_path} file not found")

    values = dotenv_values(env_file_path)
    parameters = {
        key: values[env_name]
        for env_name, key in ENV_PARAMETERS.items()
        if values.get(env_name)
    }

    if not parameters:
        click.secho("Warning: No known settings found in .env file", fg="yellow")
        click.echo(f"Expected variables: {', '.join(ENV_PARAMETERS)}")

    return parameters


def upload_parameters(
    parameters: dict, parameter_prefix: str = DEFAULT_PREFIX, dry_run: bool = False
) -> int:
    """
    Upload parameters to AWS Parameter Store.

    Args:
        parameters: Dictionary of parameter keys to values
        parameter_prefix: Prefix for parameter names
        dry_run: If True, only print what would be uploaded

    Returns:
        Number of parameters that failed to upload
    """
    if dry_run:
        click.secho("DRY RUN - Would upload the following parameters:", fg="blue")
        for param_name, value in parameters.items():
            full_name = f"{parameter_prefix}/{param_name}"
            shown = "********" if is_secret(param_name) else value
            parameter_type = "SecureString" if is_secret(param_name) else "String"
            click.echo(f"  {full_name} ({parameter_type}) = {shown}")
        return 0

    ssm = boto3.client("ssm")
    failures = 0

    for param_name, value in parameters.items():
        full_name = f"{parameter_prefix}/{param_name}"

        try:
            response = ssm.put_parameter(
                Name=full_name,
                Value=value,
                Type="SecureString" if is_secret(param_name) else "String",
                Description=f"Family wishlist setting: {param_name}",
                Overwrite=True,
            )
            click.secho(
                f"Uploaded {full_name} (version {response['Version']})", fg="green"
            )

        except ClientError as e:
            failures += 1
            click.secho(f"Failed to upload {full_name}: {e}", fg="red", err=True)

    return failures


@click.group()
def cli():
    """Family wishlist management commands."""


@cli.command("create-table")
@click.option(
    "--table-name",
    envvar="TABLE_NAME",
    default=DEFAULT_TABLE_NAME,
    help="DynamoDB table name",
    show_default=True,
)
def create_table_command(table_name: str):
    """Create the DynamoDB table and its indexes."""
    try:
        table = create_table(table_name=table_name)
    except ClientError as e:
        if e.response["Error"]["Code"] == "ResourceInUseException":
            click.secho(f"Table {table_name} already exists", fg="yellow")
            return
        raise click.ClickException(f"Could not create {table_name}: {e}")

    click.secho(f"Created table {table.name}", fg="green")


@cli.command("upload-config")
@click.option("--env-file", default=".env", help="Path to .env file", show_default=True)
@click.option(
    "--prefix", default=DEFAULT_PREFIX, help="Parameter Store prefix", show_default=True
)
@click.option(
    "--dry-run", is_flag=True, help="Show what would be uploaded without uploading"
)
def upload_config(env_file: str, prefix: str, dry_run: bool):
    """Upload settings from a .env file to AWS Parameter Store."""
    parameters = load_env_file(env_file)
    if not parameters:
        raise click.ClickException("No parameters found to upload")

    click.secho(f"Found {len(parameters)} parameters", fg="green")
    failures = upload_parameters(parameters, prefix, dry_run)

    if failures:
        sys.exit(1)
    if dry_run:
        click.secho("Dry run complete.", fg="blue")
    else:
        click.secho(f"Parameter upload complete under {prefix}", fg="green")


@cli.command("show-config")
@click.option(
    "--prefix", default=DEFAULT_PREFIX, help="Parameter Store prefix", show_default=True
)
def show_config(prefix: str):
    """List the settings stored under the prefix, masking secrets."""
    parameters = get_parameters_by_path(prefix)
    if not parameters:
        click.secho(f"No parameters found under {prefix}", fg="yellow")
        return

    for param_name in sorted(parameters):
        value = "********" if is_secret(param_name) else parameters[param_name]
        click.echo(f"{prefix}/{param_name} = {value}")


if __name__ == "__main__":
    cli()
