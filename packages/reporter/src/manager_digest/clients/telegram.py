"""Telegram Bot API notifier."""

from typing import Any

import httpx
import structlog

from manager_digest.config import get_settings

logger = structlog.get_logger(__name__)


class TelegramNotifier:
    """Delivers composed reports to Telegram chats.

    One ``sendMessage`` call per delivery, HTML parse mode, no retry.
    Failures are logged and reported as ``False``; ``deliver`` never raises.
    """

    def __init__(
        self,
        token: str | None = None,
        api_url: str | None = None,
        timeout: float | None = None,
    ):
        settings = get_settings()
        self._token = token or settings.bot_token.get_secret_value()
        self.api_url = (api_url or settings.telegram_api_url).rstrip("/")
        self._timeout = timeout or settings.telegram_timeout

        self._client: httpx.AsyncClient | None = None
        self._logger = logger.bind(component="telegram_notifier")

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.api_url,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "TelegramNotifier":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def deliver(self, destination_id: str, text: str) -> bool:
        """Send ``text`` to one chat.

        Args:
            destination_id: Telegram chat id.
            text: Message body (HTML markup allowed).

        Returns:
            True if Telegram accepted the message.
        """
        client = await self._get_client()
        try:
            response = await client.post(
                f"/bot{self._token}/sendMessage",
                json={"chat_id": destination_id, "text": text, "parse_mode": "HTML"},
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            # Exception text can embed the request URL, which carries the token.
            self._logger.error(
                "telegram_send_failed",
                destination=destination_id,
                error_type=type(e).__name__,
            )
            return False

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_success and isinstance(body, dict) and body.get("ok") is True:
            result = body.get("result")
            self._logger.debug(
                "telegram_message_sent",
                destination=destination_id,
                message_id=result.get("message_id") if isinstance(result, dict) else None,
            )
            return True

        self._logger.error(
            "telegram_send_failed",
            destination=destination_id,
            status_code=response.status_code,
            description=body.get("description") if isinstance(body, dict) else None,
        )
        return False
