"""
Bearer token verification for the identity_access bounded context.

Why: Admin endpoints receive a bearer access token and must resolve it to an
account id before any role lookup. Keeping the cryptographic checks here lets
us unit test them without the web adapter.

Security: Validates the token signature with the realm's JWKS and checks
issuer, optional audience and temporal claims. Tokens are never logged.
Keycloak rotates realm keys; an unknown `kid` triggers one forced JWKS
refresh before the token is rejected.
"""
from __future__ import annotations

from typing import Any, Dict, Optional, Tuple
import os
import time

import requests
from jose import jwt
from jose.exceptions import JOSEError

from .oidc import OIDCConfig


CLOCK_SKEW_SECONDS = 5
JWKS_TIMEOUT_SECONDS = 5


class TokenVerificationError(Exception):
    """Verification failed; `code` is a stable machine-readable reason."""

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


class JWKSCache:
    """Realm signing keys indexed by `kid`, refreshed after `ttl_seconds`."""

    def __init__(self, ttl_seconds: int = 300):
        self.ttl_seconds = ttl_seconds
        self._by_endpoint: Dict[str, Tuple[float, Dict[str, Any]]] = {}

    def get(self, cfg: OIDCConfig, *, force: bool = False) -> Dict[str, Any]:
        """Return the JWKS document for the realm of `cfg`."""
        url = cfg.jwks_endpoint
        cached = self._by_endpoint.get(url)
        if cached and not force and cached[0] > time.time():
            return cached[1]
        doc = _download_jwks(url)
        self._by_endpoint[url] = (time.time() + self.ttl_seconds, doc)
        return doc


def _download_jwks(url: str) -> Dict[str, Any]:
    try:
        resp = requests.get(url, timeout=JWKS_TIMEOUT_SECONDS)
    except requests.RequestException as exc:
        raise TokenVerificationError("jwks_fetch_failed") from exc
    if resp.status_code != 200:
        raise TokenVerificationError("jwks_fetch_failed")
    try:
        doc = resp.json()
    except ValueError as exc:
        raise TokenVerificationError("jwks_invalid") from exc
    if not isinstance(doc, dict) or not isinstance(doc.get("keys"), list):
        raise TokenVerificationError("jwks_invalid")
    return doc


JWKS_CACHE = JWKSCache()


def _signing_key(doc: Dict[str, Any], kid: str) -> Optional[Dict[str, Any]]:
    index = {k.get("kid"): k for k in doc.get("keys") or [] if isinstance(k, dict)}
    return index.get(kid)


def verify_access_token(
    *,
    token: str,
    cfg: OIDCConfig,
    cache: JWKSCache | None = None,
) -> Dict[str, Any]:
    """Validate a bearer access token using the realm JWKS and return its claims.

    Audience is only enforced when `KC_API_AUDIENCE` is set, because Keycloak
    access tokens carry `account` as audience unless a mapper is configured.

    Raises:
        TokenVerificationError: malformed_token, missing_kid, unknown_kid,
            invalid_token, token_expired, missing_sub, or jwks_* when the
            key set cannot be loaded.
    """
    if not token or token.count(".") != 2:
        raise TokenVerificationError("malformed_token")
    keys = cache or JWKS_CACHE
    doc = keys.get(cfg)
    try:
        kid = jwt.get_unverified_header(token).get("kid")
    except JOSEError as exc:
        raise TokenVerificationError("malformed_token") from exc
    if not kid:
        raise TokenVerificationError("missing_kid")
    key = _signing_key(doc, kid)
    if key is None:
        key = _signing_key(keys.get(cfg, force=True), kid)
    if key is None:
        raise TokenVerificationError("unknown_kid")

    audience = (os.getenv("KC_API_AUDIENCE") or "").strip() or None
    # Temporal claims are checked below with our own skew allowance.
    options = {"verify_signature": True, "verify_aud": audience is not None}
    options.update({f"verify_{c}": False for c in ("exp", "iat", "nbf", "at_hash")})
    try:
        claims = jwt.decode(
            token,
            key,
            algorithms=[key.get("alg") or "RS256"],
            audience=audience,
            issuer=cfg.issuer,
            options=options,
        )
    except JOSEError as exc:
        raise TokenVerificationError("invalid_token") from exc

    _check_time_window(claims, time.time())
    sub = claims.get("sub")
    if not isinstance(sub, str) or not sub:
        raise TokenVerificationError("missing_sub")
    return claims


def _check_time_window(claims: Dict[str, Any], now: float) -> None:
    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        raise TokenVerificationError("invalid_token")
    if now > exp + CLOCK_SKEW_SECONDS:
        raise TokenVerificationError("token_expired")
    for claim in ("iat", "nbf"):
        value = claims.get(claim)
        if isinstance(value, (int, float)) and value > now + CLOCK_SKEW_SECONDS:
            raise TokenVerificationError("invalid_token")


__all__ = ["TokenVerificationError", "JWKSCache", "JWKS_CACHE", "verify_access_token"]
