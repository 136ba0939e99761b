"""WhatsApp Cloud API sender."""

import logging
from typing import Optional

import httpx

from recruit_engine.config import MessagingConfig, settings
from recruit_engine.errors import MessagingError
from recruit_engine.schemas.conversation_schema import OutboundMessage
from recruit_engine.utils import mask_identity

logger = logging.getLogger(__name__)

GRAPH_API_BASE = "https://graph.facebook.com"


class WhatsAppSender:
    """
    Sends text replies through the Meta Graph API.

    Failures are logged and raised as MessagingError. Nothing is retried
    here; the transport's own redelivery covers the inbound side.
    """

    def __init__(
        self,
        config: MessagingConfig = settings.messaging,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._config = config
        self._client = client

    @property
    def url(self) -> str:
        return f"{GRAPH_API_BASE}/{self._config.api_version}/{self._config.phone_number_id}/messages"

    async def send(self, message: OutboundMessage) -> str:
        """Send ``message`` and return the provider message id."""
        if not self._config.token or not self._config.phone_number_id:
            raise MessagingError("WhatsApp credentials are not configured")

        headers = {
            "Authorization": f"Bearer {self._config.token}",
            "Content-Type": "application/json",
        }
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": message.to.lstrip("+"),
            "type": "text",
            "text": {"preview_url": False, "body": message.text},
        }

        try:
            if self._client is not None:
                response = await self._client.post(self.url, headers=headers, json=payload)
            else:
                async with httpx.AsyncClient(timeout=self._config.timeout_sec) as client:
                    response = await client.post(self.url, headers=headers, json=payload)
        except httpx.HTTPError as exc:
            logger.error("WhatsApp send to %s failed: %s", mask_identity(message.to), exc)
            raise MessagingError("WhatsApp send failed") from exc

        if response.status_code != 200:
            logger.error(
                "WhatsApp API error for %s: %s - %s",
                mask_identity(message.to), response.status_code, response.text,
            )
            raise MessagingError(f"WhatsApp API returned {response.status_code}")

        try:
            message_id = response.json()["messages"][0]["id"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            logger.error(
                "Unreadable WhatsApp response for %s: %s",
                mask_identity(message.to), response.text,
            )
            raise MessagingError("WhatsApp API returned an unreadable response") from exc
        logger.info("WhatsApp message sent to %s, id=%s", mask_identity(message.to), message_id)
        return message_id
