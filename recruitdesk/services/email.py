"""Templated email via SMTP, with a logged simulation when no SMTP account is configured.

The rest of the system only sees ``send(email_type, recipient, variables)``,
which returns ``{"success": bool, "messageId": str | None}``.
"""

import asyncio
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid
from typing import Any, Dict, Optional

from jinja2 import Environment, TemplateError

from recruitdesk.config import settings

logger = logging.getLogger(__name__)

_env = Environment(autoescape=True)

HTML_TEMPLATE_BASE = """
<!DOCTYPE html>
<html>
<head>
    <style>
        body { font-family: 'Inter', -apple-system, sans-serif; background-color: #f8f9fa; color: #333; margin: 0; padding: 0; }
        .container { max-width: 600px; margin: 40px auto; background: #ffffff; border-radius: 12px; overflow: hidden; }
        .header { background: #0d6efd; padding: 30px 40px; text-align: center; }
        .header h1 { color: #ffffff; margin: 0; font-size: 24px; }
        .content { padding: 40px; line-height: 1.6; }
        .btn { display: inline-block; background: #0d6efd; color: #ffffff; text-decoration: none; padding: 14px 28px; border-radius: 8px; font-weight: 600; }
        .footer { background: #f1f3f5; padding: 20px; text-align: center; color: #6c757d; font-size: 13px; }
    </style>
</head>
<body>
    <div class="container">
        <div class="header"><h1>{{ app_name }}</h1></div>
        <div class="content">{% block body %}{% endblock %}</div>
        <div class="footer"><p>You received this email because you have an account on {{ app_name }}.</p></div>
    </div>
</body>
</html>
"""

# email_type -> (subject template, body template)
EMAIL_TEMPLATES: Dict[str, tuple] = {
    "candidate_registration": (
        "Welcome to {{ app_name }}, {{ candidate_name }}",
        """
        <h2>Hello {{ candidate_name }},</h2>
        <p>Your registration has been received and is awaiting approval.</p>
        {% if username %}<p>Your username is <strong>{{ username }}</strong>.</p>{% endif %}
        """,
    ),
    "test_assignment": (
        "New assessment assigned: {{ test_name }}",
        """
        <h2>Hello {{ candidate_name }},</h2>
        <p>You have been assigned the <strong>{{ test_name }}</strong> assessment.</p>
        {% if due_date %}<p>Please complete it before {{ due_date }}.</p>{% endif %}
        """,
    ),
    "reminder": (
        "Reminder: {{ title }}",
        """
        <h2>Hello {{ name }},</h2>
        <p>{{ message }}</p>
        """,
    ),
}


def render(email_type: str, variables: Dict[str, Any]) -> tuple:
    """Return ``(subject, html)`` for a known email type."""
    if email_type not in EMAIL_TEMPLATES:
        raise KeyError(f"Unknown email type: {email_type}")
    subject_src, body_src = EMAIL_TEMPLATES[email_type]
    context = {"app_name": settings.APP_NAME, **variables}
    page = HTML_TEMPLATE_BASE.replace("{% block body %}{% endblock %}", body_src)
    subject = _env.from_string(subject_src).render(context).strip()
    html = _env.from_string(page).render(context)
    return subject, html


def _send_email_sync(recipient_email: str, subject: str, html_body: str) -> str:
    """Send or simulate one email; returns the Message-ID."""
    message_id = make_msgid(domain="recruitdesk.local")

    if not settings.SMTP_USERNAME or not settings.SMTP_PASSWORD:
        logger.info("Simulated email to %s subject=%r message_id=%s", recipient_email, subject, message_id)
        logger.debug("Simulated email body:\n%s", html_body)
        return message_id

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"{settings.MAIL_FROM_NAME} <{settings.SMTP_USERNAME}>"
    msg["To"] = recipient_email
    msg["Message-ID"] = message_id
    msg.attach(MIMEText(html_body, "html"))

    with smtplib.SMTP(settings.SMTP_SERVER, settings.SMTP_PORT) as server:
        server.starttls()
        server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        server.send_message(msg)
    logger.info("Email sent to %s message_id=%s", recipient_email, message_id)
    return message_id


async def send(email_type: str, recipient: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Render and deliver one email. Never raises; failures come back as ``success: False``."""
    try:
        subject, html = render(email_type, variables or {})
    except (KeyError, TemplateError) as exc:
        logger.error("Could not render %s email for %s: %s", email_type, recipient, exc)
        return {"success": False, "messageId": None, "error": str(exc)}

    try:
        # smtplib blocks; keep it off the event loop.
        message_id = await asyncio.to_thread(_send_email_sync, recipient, subject, html)
    except (smtplib.SMTPException, OSError) as exc:
        logger.error("Failed to send %s email to %s: %s", email_type, recipient, exc)
        return {"success": False, "messageId": None, "error": str(exc)}

    return {"success": True, "messageId": message_id}
