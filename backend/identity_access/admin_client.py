"""
Keycloak Admin client acting as the identity provider for provisioning.

Design:
- Framework-agnostic, callable from use cases and tools.
- Uses requests under the hood; HTTP and transport failures are translated into
  the shared error taxonomy (`Conflict`, `NotFound`, `InvalidArgument`,
  `Unavailable`) so workflows can decide on compensation without knowing HTTP.

Security:
- Do not log credentials, tokens or one-time passwords.
- Prefer the OAuth2 client_credentials grant with a confidential client. The
  password grant is a dev-only fallback and refused in prod-like environments.
"""

from __future__ import annotations

from typing import Dict, Optional, Protocol
import logging
import os

import requests

from backend.shared.errors import Conflict, InvalidArgument, NotFound, Unauthenticated, Unavailable

from .oidc import OIDCConfig, load_oidc_config
from .tokens import TokenVerificationError, verify_access_token


logger = logging.getLogger("webcapz.identity_access")


class IdentityProviderProtocol(Protocol):
    def create_account(self, *, email: str, password: str, display_name: Optional[str], email_verified: bool) -> str: ...

    def delete_account(self, account_id: str) -> None: ...

    def resolve_caller_from_token(self, token: str) -> str: ...


def _is_prod_like() -> bool:
    env = (os.getenv("WEBCAPZ_ENV", "dev") or "").lower()
    return env in {"prod", "production", "stage", "staging"}


def _verify_opt():
    # Honor CA bundle in production environments; default to system CAs
    ca = os.getenv("KEYCLOAK_CA_BUNDLE")
    return ca if ca else True


class KeycloakAdminClient:
    """Identity provider backed by the Keycloak Admin REST API."""

    def __init__(self, cfg: OIDCConfig | None = None, *, timeout: float = 10.0) -> None:
        self.cfg = cfg or load_oidc_config()
        self.timeout = timeout
        # Token realm for the admin client, typically 'master'
        self._admin_realm = os.getenv("KC_ADMIN_REALM", "master")
        self._admin_client_id = os.getenv("KC_ADMIN_CLIENT_ID", "webcapz-admin-cli")
        self._admin_client_secret = os.getenv("KC_ADMIN_CLIENT_SECRET")
        # Password grant fallback for local dev only
        self._admin_username = os.getenv("KC_ADMIN_USERNAME")
        self._admin_password = os.getenv("KC_ADMIN_PASSWORD")

    # --- Helpers -----------------------------------------------------------------

    def _token(self) -> str:
        """Obtain an admin bearer token (client_credentials preferred)."""
        url = f"{self.cfg.base_url}/realms/{self._admin_realm}/protocol/openid-connect/token"
        if self._admin_client_secret:
            data = {
                "grant_type": "client_credentials",
                "client_id": self._admin_client_id,
                "client_secret": self._admin_client_secret,
            }
        else:
            if _is_prod_like():
                raise Unavailable("password_grant_disabled_in_prod")
            if not self._admin_username or not self._admin_password:
                raise Unavailable("identity_admin_credentials_missing")
            data = {
                "grant_type": "password",
                "client_id": self._admin_client_id,
                "username": self._admin_username,
                "password": self._admin_password,
            }
        try:
            r = requests.post(url, data=data, timeout=self.timeout, verify=_verify_opt())
        except requests.RequestException as exc:
            raise Unavailable("identity_provider_unreachable") from exc
        if r.status_code != 200:
            logger.warning("Keycloak admin token request failed: status=%s", r.status_code)
            raise Unavailable("identity_provider_unavailable")
        tok = (r.json() or {}).get("access_token")
        if not tok:
            raise Unavailable("identity_provider_unavailable")
        return str(tok)

    def _hdr(self, token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}

    def _users_url(self) -> str:
        return f"{self.cfg.base_url}/admin/realms/{self.cfg.realm}/users"

    # --- Identity provider contract -------------------------------------------

    def create_account(self, *, email: str, password: str, display_name: Optional[str] = None, email_verified: bool = True) -> str:
        """Create an enabled account with a non-temporary password and return its id.

        Raises:
            Conflict: an account with this email already exists (HTTP 409).
            InvalidArgument: Keycloak rejected the representation (HTTP 400).
            Unavailable: transport failures or unexpected statuses.
        """
        token = self._token()
        payload = {
            "username": email,
            "email": email,
            "enabled": True,
            "emailVerified": bool(email_verified),
            "credentials": [{"type": "password", "value": password, "temporary": False}],
            **({"firstName": display_name, "attributes": {"display_name": [display_name]}} if display_name else {}),
        }
        try:
            r = requests.post(self._users_url(), headers=self._hdr(token), json=payload, timeout=self.timeout, verify=_verify_opt())
        except requests.RequestException as exc:
            raise Unavailable("identity_provider_unreachable") from exc
        if r.status_code == 409:
            raise Conflict("A user with this email address has already been registered")
        if r.status_code == 400:
            raise InvalidArgument("Identity provider rejected the account data")
        if r.status_code not in (201, 204):
            logger.warning("Keycloak user create failed: status=%s", r.status_code)
            raise Unavailable("identity_provider_unavailable")
        location = r.headers.get("Location") or r.headers.get("location")
        if location:
            return location.rstrip("/").split("/")[-1]
        # Fallback: query by exact email
        user_id = self.find_account_id(email, token=token)
        if not user_id:
            raise Unavailable("user_lookup_failed")
        return user_id

    def find_account_id(self, email: str, *, token: str | None = None) -> Optional[str]:
        token = token or self._token()
        try:
            q = requests.get(
                self._users_url(),
                headers=self._hdr(token),
                params={"email": email, "exact": "true"},
                timeout=self.timeout,
                verify=_verify_opt(),
            )
        except requests.RequestException as exc:
            raise Unavailable("identity_provider_unreachable") from exc
        if q.status_code != 200:
            raise Unavailable("identity_provider_unavailable")
        arr = q.json() or []
        if not arr:
            return None
        user_id = arr[0].get("id")
        return str(user_id) if user_id else None

    def delete_account(self, account_id: str) -> None:
        """Delete an account. Raises NotFound when Keycloak reports 404."""
        token = self._token()
        try:
            r = requests.delete(f"{self._users_url()}/{account_id}", headers=self._hdr(token), timeout=self.timeout, verify=_verify_opt())
        except requests.RequestException as exc:
            raise Unavailable("identity_provider_unreachable") from exc
        if r.status_code == 404:
            raise NotFound("User not found")
        if r.status_code not in (200, 204):
            logger.warning("Keycloak user delete failed: status=%s", r.status_code)
            raise Unavailable("identity_provider_unavailable")

    def resolve_caller_from_token(self, token: str) -> str:
        """Verify a bearer access token and return the caller's account id (`sub`)."""
        try:
            claims = verify_access_token(token=token, cfg=self.cfg)
        except TokenVerificationError as exc:
            if exc.code.startswith("jwks_"):
                raise Unavailable("identity_provider_unavailable") from exc
            logger.info("Bearer token rejected: %s", exc.code)
            raise Unauthenticated() from exc
        return str(claims["sub"])


__all__ = ["IdentityProviderProtocol", "KeycloakAdminClient"]
