from __future__ import annotations
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from ..models import SecureCode


async def add(
    db: AsyncSession, *, user_id: int, type: str, hashed_code: str, email_id: Optional[int] = None
) -> SecureCode:
    sc = SecureCode(user_id=user_id, email_id=email_id, type=type, code=hashed_code)
    db.add(sc)
    await db.flush()
    # no commit here; caller's transaction should commit
    return sc


async def get_latest_for_user_by_type(db: AsyncSession, user_id: int, type: str) -> Optional[SecureCode]:
    """Most recent code of `type` for the user; older ones are superseded."""
    res = await db.execute(
        select(SecureCode)
        .where(SecureCode.user_id == user_id, SecureCode.type == type)
        .order_by(SecureCode.created_at.desc(), SecureCode.id.desc())
        .limit(1)
    )
    return res.scalar_one_or_none()


async def delete(db: AsyncSession, code_id: int) -> None:
    sc = await db.get(SecureCode, code_id)
    if sc is not None:
        await db.delete(sc)
        await db.flush()
