"""
OIDC/Keycloak configuration for server-to-server calls.

Why: The admin client, the token verifier and the bootstrap tool all need the
same realm coordinates. Reading them in one place keeps env handling uniform.
"""

from __future__ import annotations

from dataclasses import dataclass
import os


@dataclass(frozen=True)
class OIDCConfig:
    base_url: str  # internal base URL (server-to-server), e.g., http://keycloak:8080
    realm: str  # e.g., webcapz
    client_id: str  # e.g., webcapz-web
    public_base_url: str | None = None  # browser-facing URL used as token issuer when set

    @property
    def issuer(self) -> str:
        base = self.public_base_url or self.base_url
        return f"{base}/realms/{self.realm}"

    @property
    def jwks_endpoint(self) -> str:
        return f"{self.base_url}/realms/{self.realm}/protocol/openid-connect/certs"


def load_oidc_config() -> OIDCConfig:
    base_url = os.getenv("KC_BASE_URL", "http://localhost:8080").rstrip("/")
    realm = os.getenv("KC_REALM", "webcapz")
    client_id = os.getenv("KC_CLIENT_ID", "webcapz-web")
    public_base = (os.getenv("KC_PUBLIC_BASE_URL") or "").rstrip("/") or None
    return OIDCConfig(base_url=base_url, realm=realm, client_id=client_id, public_base_url=public_base)


__all__ = ["OIDCConfig", "load_oidc_config"]
