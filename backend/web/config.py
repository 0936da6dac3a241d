"""
Configuration and startup security checks for WEBCAPZ.

Why: The admin API creates and deletes accounts with service credentials. We
must prevent accidental insecure deployments without burdening local
development.

Permissions: The caller needs no special privileges. The function simply reads
environment variables and raises `SystemExit` on fatal misconfiguration.
"""
from __future__ import annotations

import os


def _is_prod_like(env: str) -> bool:
    env_l = (env or "").lower()
    return env_l in {"prod", "production", "stage", "staging"}


def is_prod_like() -> bool:
    return _is_prod_like(os.getenv("WEBCAPZ_ENV", "dev"))


def ensure_secure_config_on_startup() -> None:
    """Fail fast on insecure production configuration.

    Intent: Abort process startup when obviously insecure settings are detected
    in production/staging. Development remains permissive for convenience.

    Checks:
    - Supabase Service Role key must be set and not a known dummy placeholder.
    - Keycloak admin client secret must be set (no password grant in prod).
    - Database DSNs must not explicitly disable TLS.
    - Keycloak endpoints must use HTTPS.
    - RESEND_API_KEY must be set unless welcome email is disabled.
    """

    if not is_prod_like():
        return  # dev/test remain permissive

    # 1) Supabase Service Role key
    srole = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "").strip()
    if not srole or srole.upper() == "DUMMY_DO_NOT_USE":
        raise SystemExit(
            "Refusing to start: SUPABASE_SERVICE_ROLE_KEY is unset or a dummy placeholder in production."
        )

    # 2) Keycloak admin client secret must be configured
    kc_secret = (os.getenv("KC_ADMIN_CLIENT_SECRET", "") or "").strip()
    if not kc_secret or kc_secret.upper().startswith("CHANGE_ME"):
        raise SystemExit(
            "Refusing to start: KC_ADMIN_CLIENT_SECRET is unset or a placeholder in production."
        )

    # 3) Postgres TLS: basic guard to avoid explicit disable
    for key in ("DATABASE_URL", "PROVISIONING_DATABASE_URL", "ROLE_STORE_DATABASE_URL"):
        if "sslmode=disable" in os.getenv(key, ""):
            raise SystemExit(
                f"Refusing to start: {key} contains sslmode=disable in production. Use sslmode=require or verify TLS."
            )

    # 4) Keycloak endpoints must use HTTPS in production-like environments
    for var_name in ("KC_BASE_URL", "KC_PUBLIC_BASE_URL"):
        val = (os.getenv(var_name, "") or "").strip().lower()
        if val.startswith("http://"):
            raise SystemExit(f"Refusing to start: {var_name} must use https in production (got http).")

    # 5) Welcome email needs a provider key unless explicitly disabled
    email_enabled = (os.getenv("WELCOME_EMAIL_ENABLED", "true") or "").strip().lower() != "false"
    if email_enabled and not (os.getenv("RESEND_API_KEY", "") or "").strip():
        raise SystemExit(
            "Refusing to start: RESEND_API_KEY is unset. Set it or WELCOME_EMAIL_ENABLED=false in production/staging."
        )


__all__ = ["ensure_secure_config_on_startup", "is_prod_like"]
