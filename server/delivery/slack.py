"""
Slack messaging sink.

Posts plain text to a Slack channel through the Web API (chat.postMessage).
One attempt per call: every transport, HTTP or Slack-level failure is raised
as DeliveryError and retry policy is left to the caller.
"""

import logging
from typing import Dict, Optional

import httpx

from .errors import DeliveryError
from .models import Audience, NotificationMessage
from .settings import settings


logger = logging.getLogger(__name__)


class SlackSink:
    """Delivers text messages to configured Slack channels."""

    def __init__(
        self,
        token: Optional[str],
        channels: Dict[Audience, Optional[str]],
        api_url: str = "https://slack.com/api/chat.postMessage",
        timeout: float = 3.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.token = token
        self.channels = channels
        self.api_url = api_url
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    def channel_for(self, audience: Audience) -> Optional[str]:
        return self.channels.get(audience)

    async def send(self, text: str, channel: Optional[str] = None) -> None:
        """Post `text` to `channel` (the user channel when omitted)."""
        channel = channel or self.channel_for(Audience.USER)
        if not self.token:
            raise DeliveryError("Slack token is not configured", channel=channel)
        if not channel:
            raise DeliveryError("Slack channel is not configured")

        try:
            response = await self._get_client().post(
                self.api_url,
                json={"channel": channel, "text": text},
                headers={"Authorization": f"Bearer {self.token}"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise DeliveryError(f"Slack request failed: {e}", channel=channel, cause=e) from e
        except ValueError as e:
            raise DeliveryError("Slack returned a non-JSON response", channel=channel, cause=e) from e

        if not isinstance(body, dict):
            raise DeliveryError("Slack returned an unexpected response body", channel=channel)
        if not body.get("ok", False):
            # invalid_auth, channel_not_found, not_in_channel, ...
            raise DeliveryError(f"Slack API error: {body.get('error', 'unknown_error')}", channel=channel)

        logger.debug("[slack] Message posted channel=%s", channel)

    async def send_message(self, message: NotificationMessage) -> None:
        channel = self.channel_for(message.audience)
        if not channel:
            raise DeliveryError(f"No Slack channel configured for {message.audience.value}")
        await self.send(message.text, channel=channel)

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None


def build_sink() -> SlackSink:
    """Create a sink from settings."""
    return SlackSink(
        token=settings.slack_token,
        channels={
            Audience.USER: settings.slack_user_channel,
            Audience.OWNER: settings.slack_owner_channel,
            Audience.BROADCAST: settings.slack_broadcast_channel,
        },
        api_url=settings.slack_api_url,
        timeout=settings.slack_timeout_seconds,
    )
