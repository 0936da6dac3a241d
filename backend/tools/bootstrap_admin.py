"""Command line entry point for creating the first admin account.

Why:
    Only admins may provision accounts through the API, so a fresh deployment
    needs one admin created out of band. The CLI runs the same three steps as
    provisioning (identity account, profile, role assignment) with the same
    compensation on failure, using service credentials from the environment.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
import logging

import click

from backend.identity_access.admin_client import IdentityProviderProtocol
from backend.identity_access.stores import RoleStoreProtocol
from backend.provisioning.credentials import MIN_PASSWORD_LENGTH, generate_one_time_credential, mask_email
from backend.provisioning.models import Profile
from backend.provisioning.repo import DirectoryRepoProtocol
from backend.provisioning.saga import CompensationStack
from backend.shared.errors import InvalidArgument, PartialFailure, ProvisioningError


logger = logging.getLogger("webcapz.provisioning")


@dataclass
class BootstrapResult:
    account_id: str
    password: Optional[str]


def bootstrap_admin(
    *,
    identity: IdentityProviderProtocol,
    roles: RoleStoreProtocol,
    directory: DirectoryRepoProtocol,
    email: str,
    full_name: str,
    password: Optional[str] = None,
) -> BootstrapResult:
    """Create an admin account; undo completed steps if a later one fails.

    Returns the generated password when none was supplied.
    """
    email = (email or "").strip().lower()
    full_name = (full_name or "").strip()
    if "@" not in email:
        raise InvalidArgument("A valid email address is required")
    if not full_name:
        raise InvalidArgument("fullName is required")
    if password is not None and len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidArgument(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    generated = password is None
    credential = generate_one_time_credential() if generated else password

    stack = CompensationStack()
    try:
        account_id = identity.create_account(email=email, password=credential, display_name=full_name, email_verified=True)
        stack.push("delete_account", lambda: identity.delete_account(account_id))
        directory.insert_profile(Profile(id=account_id, email=email, full_name=full_name))
        stack.push("delete_profile", lambda: directory.delete_profile(account_id))
        # Self-granted: there is no admin yet to record as grantor.
        roles.assign_role(account_id=account_id, role="admin", created_by=None)
    except Exception as exc:
        failures = stack.run()
        if failures:
            raise PartialFailure(exc, failures) from exc
        raise
    logger.info("Bootstrapped admin %s", mask_email(email))
    return BootstrapResult(account_id=account_id, password=credential if generated else None)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--email", required=True, help="Email address of the first admin.")
@click.option("--full-name", required=True, help="Display name stored on the profile.")
@click.option("--db-dsn", default=None, help="Service-role DSN (defaults to PROVISIONING_DATABASE_URL / DATABASE_URL).")
@click.option(
    "--password-prompt",
    is_flag=True,
    default=False,
    help="Prompt for a password instead of generating a one-time credential.",
)
def cli(email: str, full_name: str, db_dsn: str | None, password_prompt: bool) -> None:
    """Create the first admin account in Keycloak and the portal database.

    Behaviour:
        - Prints the new account id.
        - Prints a generated one-time credential exactly once unless
          `--password-prompt` is used.
        - On failure, completed steps are rolled back and the command aborts.
    """
    from backend.identity_access.admin_client import KeycloakAdminClient
    from backend.identity_access.stores_db import DBRoleStore
    from backend.provisioning.repo_db import DBDirectoryRepo

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(name)s:%(message)s")
    password = None
    if password_prompt:
        password = click.prompt("Password", hide_input=True, confirmation_prompt=True)
    try:
        result = bootstrap_admin(
            identity=KeycloakAdminClient(),
            roles=DBRoleStore(dsn=db_dsn),
            directory=DBDirectoryRepo(dsn=db_dsn),
            email=email,
            full_name=full_name,
            password=password,
        )
    except ProvisioningError as exc:
        click.echo(f"Bootstrap failed: {exc.message}", err=True)
        raise click.Abort() from exc
    click.echo(f"Admin account created: {result.account_id}")
    if result.password:
        click.echo(f"One-time password (shown once): {result.password}")


if __name__ == "__main__":  # pragma: no cover
    cli()
