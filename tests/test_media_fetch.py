"""Tests for MMS media download."""

import httpx
import pytest

from smsrouter.media_fetch import fetch_media

MEDIA_URL = "https://api.twilio.com/2010-04-01/Accounts/AC1/Messages/MM1/Media/ME1"
JPEG = b"\xff\xd8\xff\xe0fake-jpeg-bytes"


@pytest.fixture(autouse=True)
def media_env(monkeypatch):
    monkeypatch.delenv("MEDIA_ALLOWED_HOSTS", raising=False)
    monkeypatch.delenv("MEDIA_MAX_SIZE_BYTES", raising=False)
    monkeypatch.setenv("TWILIO_ACCOUNT_SID", "AC1")
    monkeypatch.setenv("TWILIO_AUTH_TOKEN", "secret")


class TestFetchMedia:
    def test_fetch_success(self, respx_mock) -> None:
        route = respx_mock.get(MEDIA_URL).mock(
            return_value=httpx.Response(200, content=JPEG, headers={"content-type": "image/jpeg"})
        )

        data, content_type = fetch_media(MEDIA_URL)

        assert data == JPEG
        assert content_type == "image/jpeg"
        assert route.calls.last.request.headers["authorization"].startswith("Basic ")

    def test_follows_cdn_redirect(self, respx_mock) -> None:
        cdn_url = "https://s3-external-1.amazonaws.com/media/ME1"
        respx_mock.get(MEDIA_URL).mock(
            return_value=httpx.Response(307, headers={"location": cdn_url})
        )
        respx_mock.get(cdn_url).mock(
            return_value=httpx.Response(
                200, content=JPEG, headers={"content-type": "image/png; charset=binary"}
            )
        )

        data, content_type = fetch_media(MEDIA_URL)

        assert data == JPEG
        assert content_type == "image/png"

    def test_subdomain_of_allowed_host(self, respx_mock) -> None:
        url = "https://media.api.twilio.com/ME1"
        respx_mock.get(url).mock(
            return_value=httpx.Response(200, content=JPEG, headers={"content-type": "image/gif"})
        )
        assert fetch_media(url)[1] == "image/gif"

    def test_http_rejected(self) -> None:
        with pytest.raises(ValueError, match="scheme"):
            fetch_media("http://api.twilio.com/ME1")

    def test_host_not_allowed(self) -> None:
        with pytest.raises(ValueError, match="not allowed"):
            fetch_media("https://evil.example.com/ME1")

    def test_allowlist_override(self, respx_mock, monkeypatch) -> None:
        monkeypatch.setenv("MEDIA_ALLOWED_HOSTS", "media.example.com, api.twilio.com")
        url = "https://media.example.com/photo.jpg"
        respx_mock.get(url).mock(
            return_value=httpx.Response(200, content=JPEG, headers={"content-type": "image/jpeg"})
        )
        assert fetch_media(url)[0] == JPEG

    def test_non_image_rejected(self, respx_mock) -> None:
        respx_mock.get(MEDIA_URL).mock(
            return_value=httpx.Response(
                200, content=b"%PDF", headers={"content-type": "application/pdf"}
            )
        )
        with pytest.raises(RuntimeError, match="content-type"):
            fetch_media(MEDIA_URL)

    def test_too_large(self, respx_mock, monkeypatch) -> None:
        monkeypatch.setenv("MEDIA_MAX_SIZE_BYTES", "8")
        respx_mock.get(MEDIA_URL).mock(
            return_value=httpx.Response(200, content=JPEG, headers={"content-type": "image/jpeg"})
        )
        with pytest.raises(RuntimeError):
            fetch_media(MEDIA_URL)

    def test_http_error(self, respx_mock) -> None:
        respx_mock.get(MEDIA_URL).mock(return_value=httpx.Response(404))
        with pytest.raises(RuntimeError, match="404"):
            fetch_media(MEDIA_URL)

    def test_timeout(self, respx_mock) -> None:
        respx_mock.get(MEDIA_URL).mock(side_effect=httpx.ConnectTimeout("slow"))
        with pytest.raises(RuntimeError, match="timeout"):
            fetch_media(MEDIA_URL)
