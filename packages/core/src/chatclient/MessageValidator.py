"""Validation for outgoing chat messages and the webhook endpoint.

Messages pass through a short pipeline before anything reaches the
network: non-empty after trimming, within the length cap, and free of
script-injection markers. The webhook URL is checked once, when the
transport is configured, so a client pointed at a development endpoint
never starts.
"""

import ipaddress
import re
from urllib.parse import urlsplit

from chatclient.errors import (
    DevEndpointRejected,
    EmptyMessage,
    InsecureEndpoint,
    MessageTooLong,
    MissingEndpoint,
    UnsafeContent,
)

DEFAULT_MAX_MESSAGE_LENGTH = 5000

# Hostnames used by local development servers and tunnelling tools.
_DEV_HOSTNAMES = {"localhost", "0.0.0.0"}
_TUNNEL_HOST_MARKERS = ("ngrok",)


class MessageValidator:
    """Validates user text before it is sent to the assistant webhook."""

    # Script tags, javascript: URLs and inline event handler attributes.
    _BLOCKED_PATTERN = re.compile(
        r"<script|javascript:|on\w+=",
        re.IGNORECASE | re.ASCII,
    )

    def __init__(self, max_length: int = DEFAULT_MAX_MESSAGE_LENGTH) -> None:
        self.max_length = max_length

    def validate(self, message: str) -> str:
        """Validate a message and return its trimmed form.

        Raises:
            EmptyMessage: If the message is not a string or is blank.
            MessageTooLong: If the trimmed message exceeds ``max_length``.
            UnsafeContent: If the message contains a blocked pattern.
        """
        # 1. Type check
        if not isinstance(message, str):
            raise EmptyMessage("Invalid message format")

        trimmed = message.strip()

        # 2. Non-empty check
        if not trimmed:
            raise EmptyMessage("Message cannot be empty")

        # 3. Length cap
        if len(trimmed) > self.max_length:
            raise MessageTooLong(self.max_length)

        # 4. Script-injection markers
        if self._BLOCKED_PATTERN.search(trimmed):
            raise UnsafeContent("Invalid content detected")

        return trimmed


def validate_webhook_url(url: str | None) -> str:
    """Check that the webhook URL is safe to use in production.

    Returns:
        The URL with surrounding whitespace removed.

    Raises:
        MissingEndpoint: If no URL is configured.
        InsecureEndpoint: If the URL does not use HTTPS.
        DevEndpointRejected: If the URL points at a loopback or tunnel host.
    """
    if not url or not url.strip():
        raise MissingEndpoint("WEBHOOK_URL environment variable is required")

    url = url.strip()
    parts = urlsplit(url)

    if parts.scheme.lower() != "https":
        raise InsecureEndpoint("WEBHOOK_URL must use HTTPS protocol")

    hostname = (parts.hostname or "").lower().rstrip(".")
    if not hostname:
        raise MissingEndpoint("WEBHOOK_URL has no host")

    if _is_dev_host(hostname):
        raise DevEndpointRejected("WEBHOOK_URL cannot be a development endpoint")

    return url


def _is_dev_host(hostname: str) -> bool:
    if hostname in _DEV_HOSTNAMES or hostname.endswith(".localhost"):
        return True
    if any(marker in hostname for marker in _TUNNEL_HOST_MARKERS):
        return True
    try:
        return ipaddress.ip_address(hostname).is_loopback
    except ValueError:
        return False
