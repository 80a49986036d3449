from __future__ import annotations
from fastapi import Depends, HTTPException, Request
from fastapi import status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from jwt import PyJWTError
from ..config import get_settings
from ..db import get_db
from ..models import User
from ..repos import users as users_repo
from .jwt import verify_jwt, user_id_from_claims

S = get_settings()


async def get_current_user(request: Request, db: AsyncSession = Depends(get_db)) -> User:
    token: Optional[str] = request.cookies.get(S.SESSION_COOKIE_NAME)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    try:
        claims = verify_jwt(token)
    except PyJWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid session")

    user_id = user_id_from_claims(claims)
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid session")

    user = await users_repo.get_by_id(db, user_id)
    if not user or user.status != "active":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User inactive or not found")
    return user
