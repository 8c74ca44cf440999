"""Security helpers for headers, input sanitation, and auth utilities."""
import html
import time
from typing import Mapping

from flask import request


def sanitize_input(data: Mapping) -> dict:
    """Return a sanitized copy of incoming data to reduce injection risk."""
    sanitized = {}
    for key, value in data.items():
        sanitized[html.escape(str(key))] = html.escape(str(value))
    return sanitized


def clean_text(value, max_length: int = 500) -> str:
    return html.escape(str(value or "").strip())[:max_length]


def apply_security_headers(response, force_https: bool = False):
    """Security headers for a JSON API consumed by the web client."""
    response.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    # Camera and geolocation are used by the capture flow.
    response.headers.setdefault("Permissions-Policy", "geolocation=(self), camera=(self), microphone=()")
    if force_https or request.is_secure:
        response.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains; preload")
    return response


def password_meets_policy(password: str) -> tuple[bool, str | None]:
    """Enforce a sane password baseline for production."""
    if len(password) < 12:
        return False, "Password must be at least 12 characters long."
    if password.lower() == password or password.upper() == password:
        return False, "Use a mix of upper and lower case characters."
    if not any(c.isdigit() for c in password):
        return False, "Include at least one digit."
    if not any(c in "!@#$%^&*()-_=+[]{}|;:,.<>?/" for c in password):
        return False, "Include at least one symbol."
    return True, None


# In-process counters keyed by caller; swap for a shared cache when running several workers.
_attempts: dict[str, tuple[float, int]] = {}


def track_attempt(key: str, limit: int = 10, window_seconds: int = 3600) -> bool:
    """Track attempts by key (e.g., user id) and report whether the limit still allows another."""
    now = time.monotonic()
    for stale in [k for k, (started, _) in _attempts.items() if now - started >= window_seconds]:
        del _attempts[stale]
    started, count = _attempts.get(key, (now, 0))
    count += 1
    _attempts[key] = (started, count)
    return count <= limit


def reset_attempts() -> None:
    _attempts.clear()
