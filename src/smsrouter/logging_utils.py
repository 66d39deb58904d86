"""Logging utilities for the SMS router.

Provides:
- Secret redaction for Twilio tokens, API keys and authorization headers
- Phone number masking
- Structured "message | key=value" logging helpers
- Request ID context management
"""

import logging
import re
import uuid
from contextvars import ContextVar
from typing import Any

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

SECRET_PATTERNS = [
    (re.compile(r"sk-[A-Za-z0-9_\-]{8,}"), "sk-***REDACTED***"),  # OpenAI keys
    (re.compile(r"\bSK[0-9a-fA-F]{32}\b"), "SK***REDACTED***"),  # Twilio API key SIDs
    (re.compile(r"(auth_?token[=:\s]+)([^\s,;&]+)", re.IGNORECASE), r"\1***REDACTED***"),
    (re.compile(r"((?:api_)?key=)([^\s,;&]+)", re.IGNORECASE), r"\1***REDACTED***"),
]

AUTH_HEADER_PATTERN = re.compile(
    r"(Authorization[:\s]+(?:Bearer\s+|Basic\s+)?)([^\s,;]+)",
    re.IGNORECASE,
)

_PHONE_PATTERN = re.compile(r"\+\d{7,15}\b")


def mask_phone(phone: str | None) -> str:
    """Mask a phone number down to its last four digits.

    Example: "+12125551234" -> "***1234"
    """
    if not phone:
        return ""
    digits = re.sub(r"\D", "", phone)
    if len(digits) <= 4:
        return "***"
    return f"***{digits[-4:]}"


def redact_secrets(text: str | None) -> str:
    """Redact secrets and phone numbers from text.

    Args:
        text: Text that may contain secrets

    Returns:
        Text with secrets redacted and phone numbers masked
    """
    if text is None:
        return ""

    if not isinstance(text, str):
        text = str(text)

    for pattern, replacement in SECRET_PATTERNS:
        text = pattern.sub(replacement, text)

    text = AUTH_HEADER_PATTERN.sub(r"\1***REDACTED***", text)
    text = _PHONE_PATTERN.sub(lambda m: mask_phone(m.group(0)), text)

    return text


def set_request_id(request_id: str | None = None) -> str:
    """Set the request ID for the current context.

    Args:
        request_id: Optional request ID (generates one if not provided)

    Returns:
        The request ID that was set
    """
    if request_id is None:
        request_id = str(uuid.uuid4())

    _request_id_var.set(request_id)
    return request_id


def get_request_id() -> str | None:
    """Get the request ID for the current context."""
    return _request_id_var.get()


def clear_request_id() -> None:
    """Clear the request ID from the current context."""
    _request_id_var.set(None)


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    **kwargs: Any,
) -> None:
    """Log a message with structured context.

    Values are passed through ``redact_secrets`` before they are written.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, logging.ERROR, etc.)
        message: Log message
        **kwargs: Additional structured fields to include
    """
    parts = [message]

    request_id = get_request_id()
    if request_id:
        parts.append(f"request_id={request_id}")

    for key, value in kwargs.items():
        parts.append(f"{key}={redact_secrets(str(value))}")

    logger.log(level, " | ".join(parts))


def log_info(logger: logging.Logger, message: str, **kwargs: Any) -> None:
    log_with_context(logger, logging.INFO, message, **kwargs)


def log_warning(logger: logging.Logger, message: str, **kwargs: Any) -> None:
    log_with_context(logger, logging.WARNING, message, **kwargs)


def log_error(logger: logging.Logger, message: str, **kwargs: Any) -> None:
    log_with_context(logger, logging.ERROR, message, **kwargs)
