from __future__ import annotations
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from ..models import Email


async def get_by_address(db: AsyncSession, address: str) -> Optional[Email]:
    res = await db.execute(select(Email).where(Email.email == address))
    return res.scalar_one_or_none()


async def get_by_user_id(db: AsyncSession, user_id: int) -> List[Email]:
    res = await db.execute(
        select(Email)
        .where(Email.user_id == user_id)
        .order_by(Email.is_primary.desc(), Email.email.asc())
    )
    return list(res.scalars().all())


async def get_primary_by_user_id(db: AsyncSession, user_id: int) -> Optional[Email]:
    res = await db.execute(
        select(Email).where(Email.user_id == user_id, Email.is_primary.is_(True))
    )
    return res.scalar_one_or_none()


async def add(db: AsyncSession, email: Email) -> Email:
    db.add(email)
    await db.flush()
    return email


async def update_email(db: AsyncSession, email: Email) -> Email:
    """Flush pending attribute changes on an already-loaded row."""
    merged = await db.merge(email)
    await db.flush()
    return merged


async def delete(db: AsyncSession, email_id: int) -> None:
    email = await db.get(Email, email_id)
    if email is not None:
        await db.delete(email)
        await db.flush()


async def promote(db: AsyncSession, email_id: int, user_id: int) -> None:
    """Make `email_id` the user's only primary email.

    Demote first so the one-primary index never sees two primaries for the
    user; both statements run in the caller's transaction.
    """
    await db.execute(
        update(Email)
        .where(Email.user_id == user_id, Email.is_primary.is_(True), Email.id != email_id)
        .values(is_primary=False)
        .execution_options(synchronize_session="fetch")
    )
    await db.execute(
        update(Email)
        .where(Email.id == email_id, Email.user_id == user_id)
        .values(is_primary=True)
        .execution_options(synchronize_session="fetch")
    )
