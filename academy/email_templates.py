"""
Email template rendering

HTML bodies for every outbound email, rendered from academy/templates/email
with autoescaping so user-provided names and announcement text stay inert.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .config import settings

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates" / "email"

jinja_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html", "xml"]),
)


def render_email(template_name: str, **context) -> str:
    """Render an email template with the shared branding context"""
    base_context = {
        "app_name": settings.APP_NAME,
        "app_url": settings.APP_URL.rstrip("/"),
        "year": datetime.now(timezone.utc).year,
    }
    return jinja_env.get_template(template_name).render(**base_context, **context)


def confirm_account_email(full_name: str, confirm_url: str) -> str:
    return render_email("confirm_account.html", full_name=full_name, confirm_url=confirm_url)


def reset_password_email(reset_url: str) -> str:
    return render_email("reset_password.html", reset_url=reset_url)


def welcome_email(full_name: str, email: str, reset_url: str) -> str:
    return render_email(
        "welcome.html",
        full_name=full_name,
        email=email,
        reset_url=reset_url,
        expiry_hours=settings.AUTH_LINK_EXPIRY_HOURS,
    )


def invitation_email(full_name: Optional[str], invite_url: str) -> str:
    return render_email(
        "invitation.html",
        full_name=full_name,
        invite_url=invite_url,
        expiry_days=settings.INVITATION_EXPIRY_DAYS,
    )


def announcement_email(title: str, content: str) -> str:
    return render_email(
        "announcement.html",
        title=title,
        content=content,
        announcements_url=f"{settings.APP_URL.rstrip('/')}/anuncios",
    )
