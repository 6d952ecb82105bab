"""Password hashing, JWT creation/verification and anti-forgery tokens."""

import hashlib
import hmac
import secrets
from datetime import datetime, timezone, timedelta
from typing import Any

import bcrypt
from jose import jwt

from liftingtracker.config import settings


def _sha256(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def hash_password(password: str) -> str:
    """Hash password with bcrypt. Bytes truncated to 72 (bcrypt limit); no passlib re-encoding."""
    pwd_bytes = password.encode("utf-8")[:72]
    hashed = bcrypt.hashpw(pwd_bytes, bcrypt.gensalt())
    return hashed.decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Verify password with bcrypt. Plain password truncated to 72 bytes."""
    plain_bytes = plain_password.encode("utf-8")[:72]
    return bcrypt.checkpw(plain_bytes, password_hash.encode("utf-8"))


def _get_jwt_signing_key_and_algorithm() -> tuple[str, str]:
    """Return (key, algorithm) for signing access tokens."""
    if settings.use_rs256:
        return settings.jwt_private_key.strip(), "RS256"
    return settings.secret_key, settings.jwt_algorithm


def new_session_id() -> str:
    return secrets.token_urlsafe(16)


def create_access_token(user_id: int, email: str, sid: str) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)
    payload = {"sub": str(user_id), "email": email, "sid": sid, "exp": expire}
    key, algorithm = _get_jwt_signing_key_and_algorithm()
    result = jwt.encode(payload, key, algorithm=algorithm)
    return result if isinstance(result, str) else result.decode("utf-8")


def create_refresh_token() -> str:
    """Generate a new refresh token (plain string; caller must hash and store)."""
    return secrets.token_urlsafe(32)


def hash_refresh_token(token: str) -> str:
    """SHA256 hash of refresh token for storage."""
    return _sha256(token)


def create_draft_token() -> str:
    """Opaque registration draft id handed to the browser; only its hash is stored."""
    return secrets.token_urlsafe(32)


def hash_draft_token(token: str) -> str:
    return _sha256(token)


def _get_jwt_verification_key_and_algorithms() -> tuple[str, list[str]]:
    """Return (key, algorithms) for verifying access tokens."""
    if settings.use_rs256:
        return settings.jwt_public_key.strip(), ["RS256"]
    return settings.secret_key, [settings.jwt_algorithm]


def decode_token(token: str) -> dict[str, Any]:
    key, algorithms = _get_jwt_verification_key_and_algorithms()
    return jwt.decode(token, key, algorithms=algorithms)


def make_csrf_token(scope: str) -> str:
    """Anti-forgery token bound to a session scope (access-token sid or draft token)."""
    digest = hmac.new(settings.secret_key.encode("utf-8"), f"csrf:{scope}".encode("utf-8"), hashlib.sha256)
    return digest.hexdigest()


def draft_csrf_scope(draft_token: str) -> str:
    return f"draft:{draft_token}"


def csrf_token_matches(scope: str, presented: str | None) -> bool:
    if not presented:
        return False
    return hmac.compare_digest(make_csrf_token(scope), presented)
