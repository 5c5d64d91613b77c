"""SMTP delivery of confirmed drafts.

Configuration is read from the environment (`EMAIL_HOST`, `EMAIL_PORT`,
`EMAIL_USER`, `EMAIL_PASS`, `EMAIL_SENDER_NAME`). Port 465 uses implicit TLS;
every other port upgrades with STARTTLS.

Sending blocks, so it runs in a worker thread. Any failure is an
`EmailDeliveryError`.
"""

import asyncio
import logging
import os
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage

from dotenv import load_dotenv

from synapse.core.scratchpad import EmailDraft
from synapse.exceptions import EmailDeliveryError

load_dotenv()


logger = logging.getLogger(__name__)

PLAIN_TEXT_FALLBACK = (
    "This is a system-generated email from Synapse Agent. "
    "Please view in an HTML-enabled client."
)


@dataclass(frozen=True)
class MailConfig:
    host: str = os.getenv("EMAIL_HOST", "").strip()
    port: int = int(os.getenv("EMAIL_PORT", "587"))
    user: str = os.getenv("EMAIL_USER", "").strip()
    password: str = os.getenv("EMAIL_PASS", "")
    sender_name: str = os.getenv("EMAIL_SENDER_NAME", "Synapse Agent").strip()
    timeout_seconds: float = 30.0

    @property
    def configured(self) -> bool:
        return bool(self.host and self.user and self.password)


def build_message(draft: EmailDraft, config: MailConfig) -> EmailMessage:
    message = EmailMessage()
    message["From"] = f"{config.sender_name} <{config.user}>"
    message["To"] = draft.to
    message["Subject"] = draft.subject
    message.set_content(PLAIN_TEXT_FALLBACK)
    message.add_alternative(draft.html, subtype="html")
    return message


def _deliver(message: EmailMessage, config: MailConfig) -> None:
    if config.port == 465:
        with smtplib.SMTP_SSL(config.host, config.port, timeout=config.timeout_seconds) as smtp:
            smtp.login(config.user, config.password)
            smtp.send_message(message)
        return

    with smtplib.SMTP(config.host, config.port, timeout=config.timeout_seconds) as smtp:
        smtp.starttls()
        smtp.login(config.user, config.password)
        smtp.send_message(message)


async def send_email(draft: EmailDraft, config: MailConfig | None = None) -> None:
    """Send `draft` over SMTP.

    Raises:
        EmailDeliveryError: Missing credentials, an incomplete draft, or an SMTP
            failure.
    """
    config = config or MailConfig()

    if not config.configured:
        raise EmailDeliveryError(
            "Email credentials (EMAIL_HOST/EMAIL_USER/EMAIL_PASS) are not set."
        )
    if not (draft.to and draft.subject and draft.html):
        raise EmailDeliveryError("Missing required email fields (to, subject, html).")

    message = build_message(draft, config)

    try:
        await asyncio.to_thread(_deliver, message, config)
    except (smtplib.SMTPException, OSError) as exc:
        logger.exception("SMTP delivery to %s failed", draft.to)
        raise EmailDeliveryError(f"Failed to send email to {draft.to}: {exc}") from exc

    logger.info("Email sent to %s", draft.to)
