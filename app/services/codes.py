from __future__ import annotations
import logging
import secrets
import string
from typing import Tuple

from passlib.context import CryptContext
from passlib.exc import UnknownHashError

logger = logging.getLogger(__name__)

code_context = CryptContext(schemes=["argon2"], deprecated="auto")

_ALPHABET = string.ascii_letters + string.digits


def get_random_code(length: int) -> Tuple[str, str]:
    """Return (plaintext, hashed) for a new random code of `length` characters."""
    if length <= 0:
        raise ValueError("code length must be positive")
    code = "".join(secrets.choice(_ALPHABET) for _ in range(length))
    return code, code_context.hash(code)


def verify_code(hashed: str, code: str) -> bool:
    if not hashed or not code:
        return False
    try:
        return code_context.verify(code, hashed)
    except (UnknownHashError, ValueError):
        logger.warning("Stored secure code hash is not recognised")
        return False
