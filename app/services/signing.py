"""HMAC-SHA256 signatures for outbound webhook bodies.

Receivers recompute the signature over the raw request body they got, so
signing always happens on the final serialized bytes, never on a dict that
might be re-serialized with different key order or whitespace.
"""
import hashlib
import hmac

SIGNATURE_PREFIX = "sha256="


def sign_payload(secret: str, body: bytes) -> str:
    """
    Sign a serialized webhook body

    Args:
        secret: Integration secret
        body: Exact bytes that will be sent

    Returns:
        Signature in the form "sha256=<hex>"
    """
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(secret: str, body: bytes, signature: str) -> bool:
    """
    Check a signature against a freshly computed one.

    Plain string equality, not constant-time.
    """
    return signature == sign_payload(secret, body)
