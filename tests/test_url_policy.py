"""Tests for the outbound webhook URL policy."""

import pytest

from app.services.url_policy import validate_webhook_url


@pytest.mark.parametrize("url", [
    "https://hooks.example.com/forms",
    "https://hooks.zapier.com/hooks/catch/123/abc/",
    "https://n8n.example.org:8443/webhook/form?x=1",
    "https://8.8.8.8/hook",
])
def test_public_https_urls_pass(url):
    result = validate_webhook_url(url)
    assert result.is_valid is True
    assert result.error is None


@pytest.mark.parametrize("url,error", [
    ("not a url", "Invalid URL format"),
    ("", "Invalid URL format"),
    ("http://hooks.example.com/x", "Only HTTPS URLs are allowed for security reasons"),
    ("ftp://hooks.example.com/x", "Only HTTPS URLs are allowed for security reasons"),
    ("https://localhost/x", "Localhost URLs are not allowed"),
    ("https://127.0.0.1:8080/x", "Localhost URLs are not allowed"),
    ("https://[::1]/x", "Localhost URLs are not allowed"),
    ("https://169.254.169.254/latest/meta-data", "Metadata endpoints are not allowed"),
    ("https://metadata.google.internal/x", "Metadata endpoints are not allowed"),
    ("https://10.0.0.5/x", "Private IP addresses are not allowed"),
    ("https://172.16.3.4/x", "Private IP addresses are not allowed"),
    ("https://172.31.255.1/x", "Private IP addresses are not allowed"),
    ("https://192.168.1.10/hook", "Private IP addresses are not allowed"),
    ("https://169.254.10.1/x", "Link-local addresses are not allowed"),
    ("https://bad_host.example.com/x", "Invalid hostname format"),
])
def test_blocked_urls(url, error):
    result = validate_webhook_url(url)
    assert result.is_valid is False
    assert result.error == error


def test_hostname_is_case_insensitive():
    assert validate_webhook_url("https://LOCALHOST/x").error == "Localhost URLs are not allowed"


def test_172_outside_private_range_passes():
    assert validate_webhook_url("https://172.32.0.1/x").is_valid is True
