"""Tests for outbound SMS providers."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from twilio.base.exceptions import TwilioRestException

from smsrouter.messaging import DevLoggerProvider, get_messaging_provider
from smsrouter.messaging.twilio_provider import TwilioProvider


class TestDevLoggerProvider:
    def test_send_is_recorded(self) -> None:
        provider = DevLoggerProvider()

        result = provider.send(to="+12125550100", from_="+17185550199", body="hi")

        assert result["ok"] is True
        assert result["delivery_id"] == "dev-1"
        assert provider.sent == [{"to": "+12125550100", "from_": "+17185550199", "body": "hi"}]


class TestTwilioProvider:
    @pytest.fixture
    def provider(self) -> TwilioProvider:
        provider = TwilioProvider(account_sid="AC123", auth_token="token")
        provider.client = MagicMock()
        return provider

    def test_requires_credentials(self, monkeypatch) -> None:
        monkeypatch.delenv("TWILIO_ACCOUNT_SID", raising=False)
        monkeypatch.delenv("TWILIO_AUTH_TOKEN", raising=False)
        with pytest.raises(ValueError):
            TwilioProvider()

    def test_send(self, provider) -> None:
        provider.client.messages.create.return_value = SimpleNamespace(sid="SM42")

        result = provider.send(to="+12125550100", from_="+17185550199", body="Ride booked!")

        assert result == {"ok": True, "message": "Message sent", "delivery_id": "SM42"}
        provider.client.messages.create.assert_called_once_with(
            body="Ride booked!", from_="+17185550199", to="+12125550100"
        )

    def test_send_failure(self, provider) -> None:
        provider.client.messages.create.side_effect = TwilioRestException(
            status=400, uri="/Messages.json", msg="Invalid 'To' number", code=21211
        )

        result = provider.send(to="+1", from_="+17185550199", body="hi")

        assert result["ok"] is False
        assert "21211" in result["message"]


class TestMessagingProviderFactory:
    def test_default_is_dev(self, monkeypatch) -> None:
        monkeypatch.delenv("SMSROUTER_MESSAGING_PROVIDER", raising=False)
        assert isinstance(get_messaging_provider(), DevLoggerProvider)

    def test_twilio_without_credentials_falls_back(self, monkeypatch) -> None:
        monkeypatch.setenv("SMSROUTER_MESSAGING_PROVIDER", "twilio")
        monkeypatch.delenv("TWILIO_ACCOUNT_SID", raising=False)
        monkeypatch.delenv("TWILIO_AUTH_TOKEN", raising=False)
        assert isinstance(get_messaging_provider(), DevLoggerProvider)

    def test_twilio_with_credentials(self, monkeypatch) -> None:
        monkeypatch.setenv("SMSROUTER_MESSAGING_PROVIDER", "twilio")
        monkeypatch.setenv("TWILIO_ACCOUNT_SID", "AC123")
        monkeypatch.setenv("TWILIO_AUTH_TOKEN", "token")
        assert isinstance(get_messaging_provider(), TwilioProvider)

    def test_unknown_falls_back(self, monkeypatch) -> None:
        monkeypatch.setenv("SMSROUTER_MESSAGING_PROVIDER", "fax")
        assert isinstance(get_messaging_provider(), DevLoggerProvider)
