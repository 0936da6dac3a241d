"""
Welcome email for newly provisioned accounts (Resend HTTP API).

Why:
    Admins hand the one-time credential to the new user out of band. This
    module is the optional follow-up: it is invoked through its own endpoint,
    never from inside the provisioning workflow, so a failed send cannot undo
    or fail a provisioned account.

Security:
    The credential appears only in the message body. It is never logged; log
    lines carry the masked recipient and the provider status code.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from html import escape
import logging
import os

import requests

from backend.provisioning.credentials import mask_email
from backend.shared.errors import InvalidArgument, Unavailable


logger = logging.getLogger("webcapz.notifications")

RESEND_API_URL = "https://api.resend.com/emails"
DEFAULT_FROM = "WEBCAPZ <onboarding@resend.dev>"
SUBJECT = "Welcome to WEBCAPZ - Your Account Credentials"


@dataclass
class WelcomeEmail:
    to: str
    display_name: str
    role: str
    temporary_password: str = field(repr=False)
    login_url: str | None = None


def _login_url(explicit: str | None) -> str:
    return (explicit or os.getenv("APP_LOGIN_URL") or "http://localhost:5173/login").strip()


def render_welcome_html(msg: WelcomeEmail) -> str:
    """Return the HTML body. All user-supplied values are escaped."""
    url = escape(_login_url(msg.login_url))
    return (
        "<div style=\"font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;\">"
        "<h1>Welcome to WEBCAPZ!</h1>"
        f"<p>Hello {escape(msg.display_name)},</p>"
        f"<p>Your {escape(msg.role)} account has been created. Use the credentials below to sign in:</p>"
        "<div style=\"background-color: #f5f5f5; padding: 16px; border-radius: 8px;\">"
        f"<p><strong>Email:</strong> {escape(msg.to)}</p>"
        f"<p><strong>Temporary Password:</strong> <code>{escape(msg.temporary_password)}</code></p>"
        "</div>"
        "<p><strong>Important:</strong> Please change your password after your first login.</p>"
        f"<p><a href=\"{url}\">Sign in to WEBCAPZ</a></p>"
        "<p>Best regards,<br>The WEBCAPZ Team</p>"
        "</div>"
    )


def send_welcome_email(msg: WelcomeEmail, *, timeout: float = 10.0) -> str:
    """Send the welcome message and return the provider message id.

    Raises:
        InvalidArgument: recipient or credential missing.
        Unavailable: RESEND_API_KEY unset, transport failure or non-2xx status.
    """
    if not (msg.to or "").strip() or "@" not in msg.to:
        raise InvalidArgument("A valid email address is required")
    if not msg.temporary_password:
        raise InvalidArgument("temporaryPassword is required")
    api_key = (os.getenv("RESEND_API_KEY") or "").strip()
    if not api_key:
        raise Unavailable("email_not_configured")
    payload = {
        "from": (os.getenv("WELCOME_EMAIL_FROM") or DEFAULT_FROM).strip(),
        "to": [msg.to],
        "subject": SUBJECT,
        "html": render_welcome_html(msg),
    }
    masked = mask_email(msg.to)
    try:
        r = requests.post(
            RESEND_API_URL,
            headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
            json=payload,
            timeout=timeout,
        )
    except requests.RequestException as exc:
        logger.warning("Welcome email transport error for %s: %s", masked, exc.__class__.__name__)
        raise Unavailable("email_provider_unreachable") from exc
    if r.status_code >= 300:
        logger.warning("Welcome email rejected for %s: status=%s", masked, r.status_code)
        raise Unavailable("email_provider_unavailable")
    message_id = str((r.json() or {}).get("id") or "")
    logger.info("Welcome email sent to %s", masked)
    return message_id


__all__ = ["WelcomeEmail", "render_welcome_html", "send_welcome_email", "SUBJECT", "DEFAULT_FROM"]
