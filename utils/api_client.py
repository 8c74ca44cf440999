"""HTTP client for the remote AI endpoint with fixed-delay retries."""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional

import requests
from flask import current_app, has_app_context

DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_DELAY_MS = 1000
DEFAULT_RATE_LIMIT_WAIT = 60


class APIError(Exception):
    """Classified failure of a single attempt."""

    def __init__(self, code: str, message: str, retry_after: Optional[int] = None, is_retryable: bool = False):
        super().__init__(message)
        self.code = code
        self.message = message
        self.retry_after = retry_after
        self.is_retryable = is_retryable

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "retryAfter": self.retry_after}


def _logger() -> logging.Logger:
    return current_app.logger if has_app_context() else logging.getLogger(__name__)


def failure(code: str, message: str, retry_after: Optional[int] = None) -> Dict[str, Any]:
    return {"success": False, "error": {"code": code, "message": message, "retryAfter": retry_after}}


class APIClient:
    def __init__(
        self,
        base_url: str,
        attempts: int = DEFAULT_RETRY_ATTEMPTS,
        delay_ms: int = DEFAULT_RETRY_DELAY_MS,
        timeout: int = 30,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if attempts < 1:
            raise ValueError("Retry attempts must be at least 1")
        self.base_url = base_url.rstrip("/")
        self.attempts = attempts
        self.delay_ms = delay_ms
        self.timeout = timeout
        self.session = session or requests.Session()
        self._sleep = sleep

    @classmethod
    def from_config(cls, config, **kwargs) -> "APIClient":
        return cls(
            config.get("AI_API_URL", "/api"),
            attempts=int(config.get("AI_API_RETRY_ATTEMPTS", DEFAULT_RETRY_ATTEMPTS)),
            delay_ms=int(config.get("AI_API_RETRY_DELAY_MS", DEFAULT_RETRY_DELAY_MS)),
            timeout=int(config.get("AI_API_TIMEOUT", 30)),
            **kwargs,
        )

    def _wait(self) -> None:
        self._sleep(self.delay_ms / 1000)

    def _attempt(self, prompt: Any) -> Dict[str, Any]:
        """One round trip; raises APIError on anything but a usable success body."""
        try:
            response = self.session.post(f"{self.base_url}/ai", json={"prompt": prompt}, timeout=self.timeout)
        except requests.RequestException as exc:
            raise APIError("network_error", str(exc) or "Network request failed", is_retryable=True) from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise APIError("network_error", "Malformed response from AI service", is_retryable=True) from exc

        body = data if isinstance(data, dict) else {}
        if body.get("code") == "rate-limited":
            retry_after = body.get("retryAfter") or DEFAULT_RATE_LIMIT_WAIT
            raise APIError(
                "rate-limited",
                f"Rate limit exceeded. Try again in {retry_after} seconds.",
                retry_after=retry_after,
                is_retryable=True,
            )

        if not response.ok or body.get("error"):
            raise APIError(
                body.get("code") or "api_error",
                body.get("message") or "API request failed",
                is_retryable=response.status_code >= 500,
            )
        return {"success": True, "data": data}

    def fetch_ai_response(self, prompt: Any) -> Dict[str, Any]:
        last_error: Optional[APIError] = None
        for attempt in range(1, self.attempts + 1):
            try:
                return self._attempt(prompt)
            except APIError as exc:
                last_error = exc

            if attempt < self.attempts and last_error.is_retryable:
                _logger().warning(
                    "AI request failed, retrying",
                    extra={
                        "code": last_error.code,
                        "attempt": attempt,
                        "max_attempts": self.attempts,
                        "delay_ms": self.delay_ms,
                    },
                )
                self._wait()
                continue
            break

        _logger().error(
            "AI API error after all retries",
            extra={"code": last_error.code, "error_message": last_error.message},
        )
        return {"success": False, "error": last_error.to_dict()}

    def analyze_image(self, image_ref: str, location: Dict[str, float]) -> Dict[str, Any]:
        try:
            prompt = f"Analyze billboard image {image_ref} at location {location['lat']}, {location['lng']}"
            return self.fetch_ai_response(prompt)
        except Exception:
            _logger().exception("Image analysis request failed")
            return failure("analysis_failed", "Failed to analyze image")
