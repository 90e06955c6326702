"""Transactional email sending."""

from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx
import structlog

from . import settings
from .errors import ConfigurationError, ProviderError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str
    text: str


class EmailSender(ABC):
    @abstractmethod
    def send(self, to: str, message: RenderedEmail, bcc: list[str] | None = None) -> str:
        """Send one message and return the provider's message id.

        Raises:
            ProviderError: if the provider rejects or cannot be reached.
        """
        ...


class ResendEmailSender(EmailSender):
    """Sends through the Resend HTTP API."""

    def __init__(
        self,
        api_key: str | None,
        sender: str | None,
        api_url: str = settings.RESEND_API_URL,
        timeout: float = settings.EMAIL_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.sender = sender
        self.api_url = api_url
        self.timeout = timeout
        self.transport = transport

    def send(self, to: str, message: RenderedEmail, bcc: list[str] | None = None) -> str:
        if not self.api_key:
            raise ConfigurationError("Missing RESEND_API_KEY")
        if not self.sender:
            raise ConfigurationError("Missing ORDER_NOTIFICATION_EMAIL (used as sender address)")

        payload = {
            "from": self.sender,
            "to": [to],
            "subject": message.subject,
            "html": message.html,
            "text": message.text,
        }
        if bcc:
            payload["bcc"] = bcc

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                r = client.post(
                    self.api_url,
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
                r.raise_for_status()
                return r.json().get("id", "")
        except httpx.HTTPError as e:
            logger.error("email_send_failed", to=to, error=str(e), error_type=type(e).__name__)
            raise ProviderError("Could not send the confirmation email") from e


def get_email_sender() -> EmailSender:
    return ResendEmailSender(
        api_key=settings.RESEND_API_KEY,
        sender=settings.ORDER_NOTIFICATION_EMAIL,
    )
