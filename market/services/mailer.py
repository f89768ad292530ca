from __future__ import annotations

import logging

from market.core.config import settings
from market.services.http_client import JsonHttpClient

log = logging.getLogger(__name__)


class MailDeliveryError(RuntimeError):
    def __init__(self, message: str, *, retryable: bool):
        super().__init__(message)
        self.retryable = retryable


class ResetLinkMailer:
    """Delivers password reset links through a JSON mail API."""

    def __init__(self, client: JsonHttpClient | None = None, *, api_url: str | None = None, sender: str | None = None):
        self.api_url = settings.mail_api_url if api_url is None else api_url
        self.sender = sender or settings.mail_from
        self._client = client

    async def send_reset_link(self, *, to: str, username: str, link: str) -> None:
        if not self.api_url:
            # Development: no mail API configured
            log.info("reset link for %s: %s", to, link)
            return

        client = self._client or JsonHttpClient()
        try:
            res = await client.post_json(
                url=self.api_url,
                json_body={
                    "from": self.sender,
                    "to": to,
                    "subject": "Reset your password",
                    "text": (
                        f"Hi {username},\n\n"
                        f"Use this link within the next hour to choose a new password:\n{link}\n\n"
                        "If you did not ask for this, ignore this email."
                    ),
                },
            )
        finally:
            if self._client is None:
                await client.aclose()

        if not res.ok:
            raise MailDeliveryError(res.error_message or "mail api error", retryable=res.retryable)
