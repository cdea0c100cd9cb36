"""
Helper functions for common infrastructure operations.

This module provides domain-agnostic utility functions for:
- Token generation (cryptographic)
- String hashing
- HTTP request helpers (client IP extraction, shared-secret checks)

Usage:
    from core.helpers import generate_token, get_client_ip

    token = generate_token(32)
    ip = get_client_ip(request)
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from django.http import HttpRequest


def generate_token(length: int = 32) -> str:
    """
    Generate a cryptographically secure random token.

    Args:
        length: Number of bytes (resulting string is 2x length in hex)
    """
    return secrets.token_hex(length)


def hash_string(value: str, algorithm: str = "sha256") -> str:
    """Hash a string using the specified hashlib algorithm, returned as hex."""
    hasher = hashlib.new(algorithm)
    hasher.update(value.encode("utf-8"))
    return hasher.hexdigest()


def secrets_match(provided: str | None, expected: str | None) -> bool:
    """
    Compare a caller-supplied secret with the configured one.

    An empty configured secret never matches, so an unconfigured endpoint
    stays closed.
    """
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def get_client_ip(request: HttpRequest) -> str:
    """Extract client IP from request, handling proxies via X-Forwarded-For."""
    x_forwarded_for = request.META.get("HTTP_X_FORWARDED_FOR")
    if x_forwarded_for:
        # Take the first IP in the chain (original client)
        ip = x_forwarded_for.split(",")[0].strip()
    else:
        ip = request.META.get("REMOTE_ADDR", "")
    return ip
