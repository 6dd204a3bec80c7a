"""
Tests for the Telegram client.
"""

import json

import httpx
import pytest

from cm_bridge.core.telegram import TelegramClient

API_KEY = "123456789:" + "A" * 35
CHAT_ID = "-1001234567890"


def make_client(handler, **kwargs) -> TelegramClient:
    """TelegramClient whose HTTP traffic goes to ``handler``."""
    http_client = httpx.Client(transport=httpx.MockTransport(handler))
    return TelegramClient(API_KEY, http_client=http_client, **kwargs)


def ok_handler(calls: list):
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"ok": True, "result": {"message_id": 1}})

    return handler


class TestTelegramClientInit:
    def test_rejects_empty_token(self):
        with pytest.raises(ValueError, match="cannot be empty"):
            TelegramClient("")

    @pytest.mark.parametrize("token", ["abc", "123:short", "bot123456789:" + "A" * 35])
    def test_rejects_malformed_token(self, token):
        with pytest.raises(ValueError, match="Invalid Telegram Bot API key format"):
            TelegramClient(token)

    def test_rejects_unknown_parse_mode(self):
        with pytest.raises(ValueError, match="Invalid parse mode"):
            TelegramClient(API_KEY, parse_mode="BBCode")

    def test_base_url(self):
        client = TelegramClient(API_KEY)
        assert client.base_url == f"https://api.telegram.org/bot{API_KEY}"


class TestSendMessage:
    def test_success(self):
        calls = []
        with make_client(ok_handler(calls)) as client:
            assert client.send_message(CHAT_ID, "[CM] *alarm*") is True

        assert len(calls) == 1
        request = calls[0]
        assert request.method == "POST"
        assert str(request.url) == f"https://api.telegram.org/bot{API_KEY}/sendMessage"
        assert request.headers["User-Agent"] == "CloudMonitor-Telegram-Bot/1.0"
        assert json.loads(request.content) == {
            "chat_id": CHAT_ID,
            "text": "[CM] *alarm*",
            "disable_notification": False,
            "parse_mode": "Markdown",
        }

    def test_send_is_message_sender_entry_point(self):
        calls = []
        client = make_client(ok_handler(calls))
        assert client.send("@my_channel", "hello") is True
        assert json.loads(calls[0].content)["chat_id"] == "@my_channel"

    def test_silent_and_no_parse_mode(self):
        calls = []
        client = make_client(ok_handler(calls), parse_mode="")
        assert client.send_message(CHAT_ID, "quiet", silent=True) is True

        payload = json.loads(calls[0].content)
        assert payload["disable_notification"] is True
        assert "parse_mode" not in payload

    def test_control_characters_are_removed(self):
        calls = []
        client = make_client(ok_handler(calls))
        assert client.send_message(CHAT_ID, "a\x00b\x1bc\nd") is True
        assert json.loads(calls[0].content)["text"] == "abc\nd"

    @pytest.mark.parametrize("chat_id", ["abc", "@abc", "12-34", ""])
    def test_invalid_chat_id(self, chat_id):
        calls = []
        client = make_client(ok_handler(calls))
        assert client.send_message(chat_id, "hello") is False
        assert calls == []

    @pytest.mark.parametrize("text", ["", "   ", "\x00\x01"])
    def test_empty_text(self, text):
        calls = []
        client = make_client(ok_handler(calls))
        assert client.send_message(CHAT_ID, text) is False
        assert calls == []

    def test_text_too_long(self):
        calls = []
        client = make_client(ok_handler(calls))
        assert client.send_message(CHAT_ID, "x" * 4097) is False
        assert client.send_message(CHAT_ID, "x" * 4096) is True
        assert len(calls) == 1

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        assert make_client(handler).send_message(CHAT_ID, "hello") is False

    def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        assert make_client(handler).send_message(CHAT_ID, "hello") is False

    @pytest.mark.parametrize("status", [400, 403, 500, 502])
    def test_http_error(self, status):
        def handler(request):
            return httpx.Response(status, json={"ok": False, "description": "nope"})

        assert make_client(handler).send_message(CHAT_ID, "hello") is False

    def test_api_reports_not_ok(self):
        def handler(request):
            return httpx.Response(200, json={"ok": False, "description": "chat not found"})

        assert make_client(handler).send_message(CHAT_ID, "hello") is False

    def test_invalid_json_response(self):
        def handler(request):
            return httpx.Response(200, text="<html>gateway</html>")

        assert make_client(handler).send_message(CHAT_ID, "hello") is False


class TestClientLifecycle:
    def test_lazy_client_creation_and_close(self):
        client = TelegramClient(API_KEY)
        assert client._client is None

        http_client = client._get_client()
        assert isinstance(http_client, httpx.Client)
        assert client._get_client() is http_client

        client.close()
        assert client._client is None
        assert http_client.is_closed

    def test_context_manager_closes(self):
        http_client = httpx.Client(transport=httpx.MockTransport(ok_handler([])))
        with TelegramClient(API_KEY, http_client=http_client):
            pass
        assert http_client.is_closed
