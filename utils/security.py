"""Security headers, password policy, login throttling, and bearer tokens."""
import secrets
import time
from datetime import datetime

import jwt
from flask import current_app, request


class TokenError(Exception):
    """Raised when a bearer token is missing, malformed, or expired."""


def apply_security_headers(response, force_https: bool = False):
    """Apply security headers suitable for a JSON API consumed by the SPA."""
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    response.headers.setdefault("Cache-Control", "no-store")
    if force_https or request.is_secure:
        response.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains; preload")
    return response


def generate_token(length: int = 32) -> str:
    return secrets.token_urlsafe(length)


def password_meets_policy(password: str) -> tuple[bool, str | None]:
    """Enforce a sane password baseline."""
    if len(password) < 8:
        return False, "Password must be at least 8 characters long."
    if password.lower() == password or password.upper() == password:
        return False, "Use a mix of upper and lower case characters."
    if not any(c.isdigit() for c in password):
        return False, "Include at least one digit."
    return True, None


def issue_access_token(user) -> str:
    now = datetime.utcnow()
    payload = {
        "sub": str(user.id),
        "role": user.role,
        "iat": now,
        "exp": now + current_app.config["JWT_EXPIRES"],
        "jti": generate_token(12),
    }
    return jwt.encode(payload, current_app.config["SECRET_KEY"], algorithm=current_app.config.get("JWT_ALGORITHM", "HS256"))


def decode_access_token(token: str) -> dict:
    if not token:
        raise TokenError("Token missing")
    try:
        return jwt.decode(
            token,
            current_app.config["SECRET_KEY"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
        )
    except jwt.ExpiredSignatureError as exc:
        raise TokenError("Token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise TokenError("Invalid token") from exc


def bearer_token_from_header(header_value: str | None) -> str | None:
    if not header_value:
        return None
    scheme, _, token = header_value.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


# In-process login throttle: key -> (attempt count, window start).
_attempts = {}
_PRUNE_THRESHOLD = 1024


def _prune(now: float, window: int) -> None:
    expired = [key for key, (_, started) in _attempts.items() if now - started >= window]
    for key in expired:
        _attempts.pop(key, None)


def track_attempt(key: str, limit: int = 10, window: int = 900, now: float | None = None) -> bool:
    """Count an attempt for ``key`` (IP and email); False once ``limit`` is exceeded within ``window`` seconds."""
    now = time.monotonic() if now is None else now
    if len(_attempts) > _PRUNE_THRESHOLD:
        _prune(now, window)
    count, started = _attempts.get(key, (0, now))
    if now - started >= window:
        count, started = 0, now
    count += 1
    _attempts[key] = (count, started)
    return count <= limit


def reset_attempts(key: str) -> None:
    _attempts.pop(key, None)
