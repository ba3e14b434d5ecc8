"""
Security helpers for secret hashing and signed access tokens.

Admin passwords and student PINs share the same pbkdf2 encoding. Tokens
are compact HS256 JWTs carrying a ``kind`` claim (``admin`` or
``student``) so one kind can never be replayed as the other.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import os
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from .config import settings


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + padding)


def hash_secret(secret: str) -> str:
    if not secret:
        raise ValueError("Secret cannot be empty")
    salt = secrets.token_hex(16)
    rounds = int(os.getenv("SSS_PASSWORD_HASH_ROUNDS", "120000"))
    digest = hashlib.pbkdf2_hmac("sha256", secret.encode("utf-8"), salt.encode("ascii"), rounds)
    return f"pbkdf2_sha256${rounds}${salt}${digest.hex()}"


def verify_secret(secret: str, encoded: str | None) -> bool:
    if not secret or not encoded:
        return False
    try:
        algo, rounds_raw, salt, expected_hex = encoded.split("$", 3)
        if algo != "pbkdf2_sha256":
            return False
        rounds = int(rounds_raw)
    except ValueError:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", secret.encode("utf-8"), salt.encode("ascii"), rounds)
    return secrets.compare_digest(digest.hex(), expected_hex)


def _jwt_secret() -> str:
    secret = (os.getenv("SSS_JWT_SECRET") or settings.jwt_secret or "").strip()
    if secret:
        return secret
    env = (os.getenv("SSS_ENV") or os.getenv("APP_ENV") or "dev").strip().lower()
    if env == "prod":
        return ""
    return "dev-jwt-secret-change-me"


def create_access_token(*, kind: str, sub: str, ttl_minutes: int, **claims: Any) -> str:
    secret = _jwt_secret()
    if not secret:
        raise RuntimeError("SSS_JWT_SECRET is required when auth is enabled")
    now = datetime.now(timezone.utc)
    payload = {
        "kind": kind,
        "sub": sub,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=max(1, ttl_minutes))).timestamp()),
    }
    payload.update({k: v for k, v in claims.items() if v is not None})
    header = {"alg": "HS256", "typ": "JWT"}
    signing_input = (
        f"{_b64url_encode(json.dumps(header, separators=(',', ':')).encode('utf-8'))}."
        f"{_b64url_encode(json.dumps(payload, separators=(',', ':')).encode('utf-8'))}"
    )
    signature = hmac.new(secret.encode("utf-8"), signing_input.encode("ascii"), hashlib.sha256).digest()
    return f"{signing_input}.{_b64url_encode(signature)}"


def decode_access_token(token: str, *, kind: str) -> dict[str, Any]:
    secret = _jwt_secret()
    if not secret:
        raise ValueError("JWT secret not configured")
    parts = token.split(".")
    if len(parts) != 3:
        raise ValueError("Malformed token")
    header_b64, payload_b64, signature_b64 = parts
    signing_input = f"{header_b64}.{payload_b64}"
    expected_sig = hmac.new(secret.encode("utf-8"), signing_input.encode("ascii"), hashlib.sha256).digest()
    provided_sig = _b64url_decode(signature_b64)
    if not secrets.compare_digest(expected_sig, provided_sig):
        raise ValueError("Invalid signature")
    payload = json.loads(_b64url_decode(payload_b64).decode("utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("Invalid payload")
    if payload.get("kind") != kind:
        raise ValueError("Wrong token kind")
    exp = int(payload.get("exp") or 0)
    if exp <= 0:
        raise ValueError("Missing exp")
    if int(datetime.now(timezone.utc).timestamp()) >= exp:
        raise ValueError("Token expired")
    return payload
