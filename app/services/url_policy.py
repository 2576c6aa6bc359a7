"""Outbound webhook URL policy (SSRF guard)"""
import re
from urllib.parse import urlsplit

from app.models.webhooks import UrlValidationResult

_LOOPBACK_HOSTS = {"localhost", "127.0.0.1", "::1"}
_PRIVATE_IPV4 = re.compile(r"^(10\.|172\.(1[6-9]|2[0-9]|3[01])\.|192\.168\.)")
_HOSTNAME = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?(\.[a-z0-9]([a-z0-9-]*[a-z0-9])?)*$")


def _reject(error: str) -> UrlValidationResult:
    return UrlValidationResult(is_valid=False, error=error)


def validate_webhook_url(url: str) -> UrlValidationResult:
    """
    Check that a webhook URL points at a public HTTPS host

    Blocks plain http, localhost/loopback, cloud metadata endpoints, private
    IPv4 ranges and link-local addresses.

    Args:
        url: Candidate webhook URL

    Returns:
        UrlValidationResult with the first rule the URL breaks, if any
    """
    try:
        parsed = urlsplit(url)
        hostname = (parsed.hostname or "").lower()
    except ValueError:
        return _reject("Invalid URL format")

    if not parsed.scheme or not hostname:
        return _reject("Invalid URL format")

    if parsed.scheme.lower() != "https":
        return _reject("Only HTTPS URLs are allowed for security reasons")

    if hostname in _LOOPBACK_HOSTS:
        return _reject("Localhost URLs are not allowed")

    if hostname == "169.254.169.254" or "metadata" in hostname:
        return _reject("Metadata endpoints are not allowed")

    if _PRIVATE_IPV4.match(hostname):
        return _reject("Private IP addresses are not allowed")

    if hostname.startswith("169.254."):
        return _reject("Link-local addresses are not allowed")

    if not _HOSTNAME.match(hostname):
        return _reject("Invalid hostname format")

    return UrlValidationResult(is_valid=True)
