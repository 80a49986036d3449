from __future__ import annotations
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from ..models import User, Email


async def get_by_id(db: AsyncSession, user_id: int) -> Optional[User]:
    res = await db.execute(select(User).where(User.id == user_id))
    return res.scalar_one_or_none()


async def create_with_primary_email(
    db: AsyncSession,
    *,
    name: str,
    email: str,
    verified: bool = True,
) -> User:
    """Create a user together with its primary email address."""
    user = User(name=name)
    db.add(user)
    await db.flush()

    db.add(Email(email=email, user_id=user.id, is_primary=True, is_verified=verified))
    await db.flush()
    return user
