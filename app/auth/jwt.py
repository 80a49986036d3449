from __future__ import annotations
import time
from datetime import timedelta
from typing import Any, Dict, Optional
import jwt  # PyJWT

from ..config import get_settings

S = get_settings()

ALGO = "HS256"


def _now() -> int:
    return int(time.time())


def create_session_token(user_id: int, expires_in: Optional[timedelta] = None, **claims: Any) -> str:
    """Session cookie value for `user_id`; the id travels as a string `sub`."""
    expires_in = expires_in or timedelta(minutes=S.JWT_EXPIRE_MINUTES)
    iat = _now()
    to_encode = {
        "iss": S.APP_NAME,
        "aud": S.APP_NAME,
        "iat": iat,
        "exp": iat + int(expires_in.total_seconds()),
        **claims,
        "sub": str(user_id),
    }
    return jwt.encode(to_encode, S.JWT_SECRET, algorithm=ALGO)


def verify_jwt(token: str) -> Dict[str, Any]:
    return jwt.decode(
        token,
        S.JWT_SECRET,
        algorithms=[ALGO],
        audience=S.APP_NAME,
        issuer=S.APP_NAME,
    )


def user_id_from_claims(claims: Dict[str, Any]) -> Optional[int]:
    try:
        return int(claims["sub"])
    except (KeyError, TypeError, ValueError):
        return None
