import logging
import os
import smtplib
from email.message import EmailMessage
from typing import Any, Dict

from jinja2 import Environment, FileSystemLoader, select_autoescape

from core.config import settings
from schemas.order import OrderOut

logger = logging.getLogger(__name__)

# Jinja2 environment for email templates
_templates_env = Environment(
    loader=FileSystemLoader(searchpath=os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates")),
    autoescape=select_autoescape(["html", "xml"]),
)


def send_email(to_email: str, subject: str, body: str) -> None:
    """Queue the email on Celery, or send it inline when Celery is disabled."""
    if settings.EMAIL_USE_CELERY:
        from tasks.email_tasks import send_email_task

        send_email_task.delay(to_email, subject, body)
        logger.debug("Email to %s queued", to_email)
        return
    deliver_email(to_email, subject, body)


def render_template(template_path: str, context: Dict[str, Any]) -> str:
    """Render a text template from templates/ directory with provided context."""
    template = _templates_env.get_template(template_path)
    return template.render(**context)


def send_templated_email(to_email: str, subject: str, template_path: str, context: Dict[str, Any]) -> None:
    body = render_template(template_path, context)
    send_email(to_email, subject, body)


def deliver_email(to_email: str, subject: str, body: str) -> None:
    """Send over SMTP; raises smtplib.SMTPException/OSError on failure."""
    if not settings.SMTP_PASSWORD:
        logger.info("SMTP not configured, skipping email to %s (%s)", to_email, subject)
        return

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = settings.SMTP_FROM or settings.SMTP_USERNAME
    msg["To"] = to_email
    msg.set_content(body)

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT) as server:
        server.starttls()
        if settings.SMTP_USERNAME:
            server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        server.send_message(msg)
    logger.info("Email sent to %s", to_email)


def notify_order_confirmed(to_email: str, full_name: str, order: OrderOut) -> None:
    # A lost confirmation email must never undo a placed order
    try:
        send_templated_email(
            to_email,
            f"Order confirmed: {order.order_number}",
            "emails/order_confirmation.txt",
            {"full_name": full_name, "order": order},
        )
    except Exception:
        logger.exception("Could not send confirmation for order %s", order.order_number)


def notify_support_received(to_email: str, full_name: str, subject: str) -> None:
    try:
        send_templated_email(
            to_email,
            "We received your message",
            "emails/support_received.txt",
            {"full_name": full_name, "subject": subject},
        )
    except Exception:
        logger.exception("Could not acknowledge support message from %s", to_email)
