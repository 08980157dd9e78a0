"""Tests for failure reports and the Telegram sink (mocked HTTP)."""

import json
import logging

import httpx

from visibility_tracker.notifications import LogNotificationSink, ProviderFailure, get_notification_sink
from visibility_tracker.notifications.base import failure_subject, format_failure_report
from visibility_tracker.notifications.telegram import (
    TelegramNotificationSink,
    _split_message,
    format_failure_html,
)

FAILURES = [
    ProviderFailure(provider_id=1, provider_name="gemini", message="401 unauthorized"),
    ProviderFailure(provider_id=2, provider_name="perplexity", message="<timeout>"),
]


class TestReport:
    def test_subject(self):
        assert failure_subject(1) == "AI Provider Health Check: 1 Provider Failed"
        assert failure_subject(3) == "AI Provider Health Check: 3 Providers Failed"

    def test_plain_report_lists_every_provider(self):
        report = format_failure_report(FAILURES)
        assert report.startswith("AI Provider Health Check: 2 Providers Failed")
        assert "gemini (#1): 401 unauthorized" in report
        assert "perplexity (#2)" in report

    def test_html_is_escaped(self):
        html = format_failure_html(FAILURES)
        assert "&lt;timeout&gt;" in html
        assert "<b>gemini</b>" in html

    def test_split_message(self):
        text = "\n".join(["x" * 50] * 200)
        chunks = _split_message(text, max_len=1000)
        assert all(len(c) <= 1000 for c in chunks)
        assert "".join(chunks).replace("\n", "") == text.replace("\n", "")


class TestTelegramSink:
    async def test_sends_one_message(self):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"ok": True})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            sink = TelegramNotificationSink("TOKEN", "123", client=client)
            await sink.notify_providers_failed(FAILURES)

        assert len(requests) == 1
        assert requests[0].url.path == "/botTOKEN/sendMessage"
        payload = json.loads(requests[0].content)
        assert payload["chat_id"] == "123"
        assert payload["parse_mode"] == "HTML"
        assert "2 Providers Failed" in payload["text"]

    async def test_retries_once_on_rate_limit(self):
        responses = [
            httpx.Response(429, json={"ok": False, "parameters": {"retry_after": 0}}),
            httpx.Response(200, json={"ok": True}),
        ]
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return responses[len(calls) - 1]

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            await TelegramNotificationSink("TOKEN", "123", client=client).notify_providers_failed(FAILURES)

        assert len(calls) == 2

    async def test_network_error_is_swallowed(self, caplog):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with caplog.at_level(logging.ERROR):
                await TelegramNotificationSink("TOKEN", "123", client=client).notify_providers_failed(FAILURES)

        assert "Telegram send error" in caplog.text

    async def test_empty_failures_send_nothing(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            await TelegramNotificationSink("TOKEN", "123", client=client).notify_providers_failed([])

        assert calls == []


class TestSinkSelection:
    def test_log_sink_without_telegram(self):
        assert isinstance(get_notification_sink(), LogNotificationSink)

    def test_telegram_when_configured(self, monkeypatch):
        from visibility_tracker.core.config import settings

        monkeypatch.setattr(settings, "telegram_bot_token", "TOKEN")
        monkeypatch.setattr(settings, "telegram_chat_id", "123")
        assert isinstance(get_notification_sink(), TelegramNotificationSink)

    async def test_log_sink_writes_report(self, caplog):
        with caplog.at_level(logging.WARNING):
            await LogNotificationSink().notify_providers_failed(FAILURES)
        assert "2 Providers Failed" in caplog.text
