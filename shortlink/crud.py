import asyncio
import uuid
from typing import Optional, Sequence

from sqlalchemy import select, delete, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Link, User

# Upper bound on list/count reads
AGGREGATE_TIMEOUT_SECONDS = 2.0


# Link CRUD
async def create_link(db: AsyncSession, link: Link) -> Link:
    db.add(link)
    await db.commit()
    # Read back what was stored, including server-side defaults
    stored = await get_link_by_id(db, link.id)
    return stored


async def get_link_by_id(db: AsyncSession, link_id: uuid.UUID) -> Optional[Link]:
    result = await db.execute(
        select(Link).where(Link.id == link_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_link_by_alias(db: AsyncSession, alias: str) -> Optional[Link]:
    result = await db.execute(select(Link).where(Link.alias == alias))
    return result.scalar_one_or_none()


async def alias_exists(db: AsyncSession, alias: str) -> bool:
    result = await db.execute(select(Link.id).where(Link.alias == alias).limit(1))
    return result.first() is not None


async def get_owned_link(db: AsyncSession, link_id: uuid.UUID, owner_id: uuid.UUID) -> Optional[Link]:
    result = await db.execute(select(Link).where(Link.id == link_id, Link.owner_id == owner_id))
    return result.scalar_one_or_none()


async def search_owned_links(
    db: AsyncSession,
    owner_id: uuid.UUID,
    query: str,
    newest_first: bool,
    limit: int,
    skip: int,
) -> tuple[Sequence[Link], int]:
    conditions = [Link.owner_id == owner_id]
    if query:
        pattern = f"%{query}%"
        conditions.append(or_(Link.alias.ilike(pattern), Link.original_url.ilike(pattern)))

    total = await asyncio.wait_for(
        db.scalar(select(func.count()).select_from(Link).where(*conditions)),
        timeout=AGGREGATE_TIMEOUT_SECONDS,
    )

    order = Link.created_at.desc() if newest_first else Link.created_at.asc()
    result = await asyncio.wait_for(
        db.execute(select(Link).where(*conditions).order_by(order, Link.id).offset(skip).limit(limit)),
        timeout=AGGREGATE_TIMEOUT_SECONDS,
    )
    return result.scalars().all(), total or 0


async def delete_owned_link(db: AsyncSession, link_id: uuid.UUID, owner_id: uuid.UUID) -> int:
    result = await db.execute(delete(Link).where(Link.id == link_id, Link.owner_id == owner_id))
    await db.commit()
    return result.rowcount


async def delete_owned_links(db: AsyncSession, link_ids: Sequence[uuid.UUID], owner_id: uuid.UUID) -> int:
    result = await db.execute(delete(Link).where(Link.id.in_(link_ids), Link.owner_id == owner_id))
    await db.commit()
    return result.rowcount


# User CRUD
async def create_user(db: AsyncSession, user: User) -> User:
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def get_user_by_id(db: AsyncSession, user_id: uuid.UUID) -> Optional[User]:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def delete_user_cascade(db: AsyncSession, user_id: uuid.UUID) -> int:
    """Delete a user and every link they own, all or nothing."""
    async with db.begin():
        await db.execute(delete(Link).where(Link.owner_id == user_id))
        result = await db.execute(delete(User).where(User.id == user_id))
    return result.rowcount
