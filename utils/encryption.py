"""Symmetric encryption, hashing and expiring tokens built on Fernet."""
from __future__ import annotations

import base64
import hashlib
import json
import secrets
import time
from typing import Any, Dict

from cryptography.fernet import Fernet, InvalidToken


class EncryptionError(Exception):
    """Raised when data cannot be encrypted or decrypted."""


def _derive_key(secret: str) -> bytes:
    return base64.urlsafe_b64encode(hashlib.sha256(secret.encode("utf-8")).digest())


class EncryptionService:
    def __init__(self, key: str | bytes | None = None, secret: str | None = None) -> None:
        if key:
            fernet_key = key.encode("utf-8") if isinstance(key, str) else key
        elif secret:
            fernet_key = _derive_key(secret)
        else:
            raise EncryptionError("An encryption key or secret is required")
        try:
            self._fernet = Fernet(fernet_key)
        except (ValueError, TypeError) as exc:
            raise EncryptionError("Invalid encryption key") from exc

    @classmethod
    def from_config(cls, config) -> "EncryptionService":
        return cls(key=config.get("ENCRYPTION_KEY") or None, secret=config.get("SECRET_KEY"))

    def encrypt_data(self, data: Any) -> str:
        try:
            payload = json.dumps(data, sort_keys=True, separators=(",", ":"))
        except (TypeError, ValueError) as exc:
            raise EncryptionError("Failed to encrypt data") from exc
        return self._fernet.encrypt(payload.encode("utf-8")).decode("ascii")

    def decrypt_data(self, encrypted: str) -> Any:
        try:
            plain = self._fernet.decrypt(encrypted.encode("ascii"))
            return json.loads(plain.decode("utf-8"))
        except (InvalidToken, UnicodeError, ValueError) as exc:
            raise EncryptionError("Failed to decrypt data") from exc

    @staticmethod
    def hash_data(data: str) -> str:
        return hashlib.sha256(data.encode("utf-8")).hexdigest()

    def generate_secure_id(self) -> str:
        return self.hash_data(f"{time.time_ns()}{secrets.token_hex(8)}")[:16]

    def validate_data_integrity(self, data: Any, digest: str) -> bool:
        return secrets.compare_digest(self.hash_data(json.dumps(data, sort_keys=True, separators=(",", ":"))), digest)

    def create_secure_token(self, subject: str, expiration_hours: int = 24, now: float | None = None) -> str:
        issued = now if now is not None else time.time()
        return self.encrypt_data(
            {
                "subject": subject,
                "timestamp": int(issued * 1000),
                "expires_at": int((issued + expiration_hours * 3600) * 1000),
            }
        )

    def validate_secure_token(self, token: str, now: float | None = None) -> Dict[str, Any]:
        try:
            payload = self.decrypt_data(token)
        except EncryptionError:
            return {"valid": False}
        current_ms = int((now if now is not None else time.time()) * 1000)
        if not isinstance(payload, dict) or "expires_at" not in payload:
            return {"valid": False}
        if current_ms > payload["expires_at"]:
            return {"valid": False, "expired": True}
        return {"valid": True, "subject": payload.get("subject")}
