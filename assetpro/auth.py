from __future__ import annotations

import base64
import hmac
import os
from typing import Any

from fastapi import Request, Response
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

SESSION_COOKIE = "assetpro_session"
ROLE_ADMIN = "admin"
ROLE_TECHNICIAN = "technician"

_WEAK_SECRET_MARKERS = {"change-me", "secret", "assetpro-dev-secret"}


def _read_secret_key() -> str:
    raw = (os.getenv("ASSETPRO_SECRET_KEY") or "").strip()
    if raw and raw.lower() not in _WEAK_SECRET_MARKERS and len(raw) >= 16:
        return raw
    if raw:
        raise RuntimeError("ASSETPRO_SECRET_KEY must be at least 16 characters and not a placeholder")
    generated = base64.urlsafe_b64encode(os.urandom(48)).decode("ascii")
    os.environ.setdefault("ASSETPRO_SECRET_KEY", generated)
    return generated


SECRET_KEY = _read_secret_key()

_ser = URLSafeTimedSerializer(SECRET_KEY, salt="assetpro-session")


def check_admin_password(candidate: str, expected: str) -> bool:
    return bool(expected) and hmac.compare_digest(
        str(candidate or "").encode("utf-8"),
        str(expected).encode("utf-8"),
    )


def make_session(role: str, subject: str) -> str:
    return _ser.dumps({"r": role, "u": subject})


def read_session(request: Request, max_age: int) -> dict[str, Any] | None:
    token = request.cookies.get(SESSION_COOKIE)
    if not token:
        return None
    try:
        return _ser.loads(token, max_age=max_age)
    except (BadSignature, SignatureExpired):
        return None


def set_session_cookie(response: Response, token: str, max_age: int) -> None:
    response.set_cookie(SESSION_COOKIE, token, max_age=max_age, httponly=True, samesite="lax")


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(SESSION_COOKIE)
