"""Telegram notification sink: async version."""

import asyncio
import html
import logging

import httpx

from visibility_tracker.notifications.base import ProviderFailure, failure_subject

logger = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org/bot{token}/sendMessage"


def _split_message(text: str, max_len: int = 4000) -> list[str]:
    """Split long message into chunks at newline boundaries."""
    if len(text) <= max_len:
        return [text]

    chunks = []
    while text:
        if len(text) <= max_len:
            chunks.append(text)
            break
        split_pos = text.rfind("\n", 0, max_len)
        if split_pos == -1:
            split_pos = max_len
        chunks.append(text[:split_pos])
        text = text[split_pos:].lstrip("\n")
    return chunks


def format_failure_html(failures: list[ProviderFailure]) -> str:
    """Format failed providers as HTML for Telegram."""
    lines = [f"<b>{html.escape(failure_subject(len(failures)))}</b>", "Disabled providers:"]
    for f in failures:
        lines.append(f"• <b>{html.escape(f.provider_name)}</b> (#{f.provider_id})")
        lines.append(f"  {html.escape(f.message[:200])}")
    return "\n".join(lines)


async def send_telegram_message(
    text: str,
    bot_token: str,
    chat_id: str,
    parse_mode: str = "HTML",
    client: httpx.AsyncClient | None = None,
) -> None:
    """Send a message via Telegram Bot API. Splits if too long."""
    if not bot_token or not chat_id:
        logger.info("Telegram: no bot token or chat_id, skipping")
        return

    url = TELEGRAM_API.format(token=bot_token)
    chunks = _split_message(text, 4000)

    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=15)
    try:
        for chunk in chunks:
            payload = {"chat_id": chat_id, "text": chunk, "parse_mode": parse_mode}
            try:
                resp = await client.post(url, json=payload)
                if resp.status_code == 429:
                    retry_after = resp.json().get("parameters", {}).get("retry_after", 5)
                    logger.warning("Telegram rate limit, retry after %ds", retry_after)
                    await asyncio.sleep(retry_after)
                    await client.post(url, json=payload)
                elif resp.status_code != 200:
                    logger.error("Telegram send failed (%d): %s", resp.status_code, resp.text)
            except httpx.HTTPError as e:
                logger.error("Telegram send error: %s", e)
    finally:
        if owns_client:
            await client.aclose()


class TelegramNotificationSink:
    """Sends one message per health-check run listing all failed providers."""

    def __init__(self, bot_token: str, chat_id: str, client: httpx.AsyncClient | None = None):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self._client = client

    async def notify_providers_failed(self, failures: list[ProviderFailure]) -> None:
        if not failures:
            return
        await send_telegram_message(
            format_failure_html(failures),
            self.bot_token,
            self.chat_id,
            client=self._client,
        )
        logger.info("Provider failure report sent to Telegram (%d providers)", len(failures))
