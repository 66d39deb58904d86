"""MMS media download with Twilio authentication and safety limits.

Only HTTPS URLs on allowed hosts are fetched. Downloads are streamed so the
size limit holds even when Content-Length is missing or wrong.
"""

import logging
import os
from urllib.parse import urlparse

import httpx

logger = logging.getLogger(__name__)

ALLOWED_MEDIA_CONTENT_TYPES = {
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
    "image/heic",
}

DEFAULT_ALLOWED_HOSTS = "api.twilio.com"


def _get_config() -> tuple[int, float, list[str]]:
    """Return (max_size_bytes, timeout_seconds, allowed_hosts) from the environment."""
    max_size = int(os.getenv("MEDIA_MAX_SIZE_BYTES", str(5 * 1024 * 1024)))
    timeout = float(os.getenv("MEDIA_FETCH_TIMEOUT_SECONDS", "15"))
    allowed_hosts_str = os.getenv("MEDIA_ALLOWED_HOSTS", DEFAULT_ALLOWED_HOSTS)
    allowed_hosts = [h.strip() for h in allowed_hosts_str.split(",") if h.strip()]
    return max_size, timeout, allowed_hosts


def _is_host_allowed(hostname: str, allowed_hosts: list[str]) -> bool:
    return any(
        hostname == allowed or hostname.endswith(f".{allowed}") for allowed in allowed_hosts
    )


def _twilio_auth() -> tuple[str, str] | None:
    account_sid = os.getenv("TWILIO_ACCOUNT_SID")
    auth_token = os.getenv("TWILIO_AUTH_TOKEN")
    if account_sid and auth_token:
        return account_sid, auth_token
    return None


def fetch_media(url: str) -> tuple[bytes, str]:
    """Download an MMS attachment.

    Args:
        url: Media URL from the inbound webhook (MediaUrl0)

    Returns:
        Tuple of (media bytes, content type)

    Raises:
        ValueError: If the URL is not HTTPS or the host is not allowed
        RuntimeError: If the download fails, times out, exceeds the size
            limit or is not an image
    """
    parsed = urlparse(url)
    if parsed.scheme != "https":
        raise ValueError(f"Unsupported media URL scheme: {parsed.scheme or 'none'}")

    hostname = parsed.hostname
    if not hostname:
        raise ValueError("Invalid media URL: missing hostname")

    max_size, timeout, allowed_hosts = _get_config()
    if not _is_host_allowed(hostname, allowed_hosts):
        raise ValueError(
            f"Host '{hostname}' is not allowed. Configure MEDIA_ALLOWED_HOSTS to allow it."
        )

    try:
        # Twilio media URLs redirect to a CDN
        with httpx.Client(timeout=timeout, auth=_twilio_auth(), follow_redirects=True) as client:
            with client.stream("GET", url) as response:
                response.raise_for_status()

                content_length = response.headers.get("content-length")
                if content_length and content_length.isdigit() and int(content_length) > max_size:
                    raise RuntimeError(
                        f"Media too large: {content_length} bytes (max: {max_size} bytes)"
                    )

                content_type = (
                    response.headers.get("content-type", "").lower().split(";")[0].strip()
                )
                if content_type not in ALLOWED_MEDIA_CONTENT_TYPES:
                    raise RuntimeError(f"Unsupported media content-type: {content_type or 'none'}")

                chunks: list[bytes] = []
                total_size = 0
                for chunk in response.iter_bytes(chunk_size=8192):
                    total_size += len(chunk)
                    if total_size > max_size:
                        raise RuntimeError(f"Media download exceeded size limit: {max_size} bytes")
                    chunks.append(chunk)

    except httpx.TimeoutException as e:
        raise RuntimeError(f"Media fetch timeout after {timeout} seconds") from e
    except httpx.HTTPStatusError as e:
        raise RuntimeError(f"HTTP error fetching media: {e.response.status_code}") from e
    except httpx.RequestError as e:
        raise RuntimeError(f"Network error fetching media: {e}") from e

    logger.info("Fetched media: %d bytes, %s", total_size, content_type)
    return b"".join(chunks), content_type
