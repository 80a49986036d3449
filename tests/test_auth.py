from datetime import timedelta

import pytest
from fastapi import HTTPException
from starlette.requests import Request

from app.auth.deps import get_current_user
from app.auth.jwt import create_session_token, user_id_from_claims, verify_jwt
from app.config import get_settings
from app.repos import users as users_repo
from tests.conftest import mk_user

pytestmark = pytest.mark.asyncio

S = get_settings()


def _request(token: str | None) -> Request:
    headers = []
    if token is not None:
        headers.append((b"cookie", f"{S.SESSION_COOKIE_NAME}={token}".encode()))
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers})


async def test_session_token_round_trip():
    token = create_session_token(7, name="Seven")
    claims = verify_jwt(token)
    assert claims["sub"] == "7"
    assert claims["name"] == "Seven"
    assert user_id_from_claims(claims) == 7
    assert user_id_from_claims({"sub": "nope"}) is None


async def test_current_user_from_cookie(db):
    uid = await mk_user(db, "a@x.com", "A")
    user = await get_current_user(_request(create_session_token(uid)), db)
    assert user.id == uid


@pytest.mark.parametrize("token", [None, "garbage"])
async def test_missing_or_bad_cookie_is_401(db, token):
    with pytest.raises(HTTPException) as exc:
        await get_current_user(_request(token), db)
    assert exc.value.status_code == 401


async def test_expired_or_disabled_user_is_401(db):
    uid = await mk_user(db, "a@x.com")

    expired = create_session_token(uid, expires_in=timedelta(seconds=-10))
    with pytest.raises(HTTPException):
        await get_current_user(_request(expired), db)

    user = await users_repo.get_by_id(db, uid)
    user.status = "disabled"
    await db.commit()
    with pytest.raises(HTTPException) as exc:
        await get_current_user(_request(create_session_token(uid)), db)
    assert exc.value.status_code == 401
