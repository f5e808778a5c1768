"""Alias allocation.

Generated aliases are derived from the SHA-256 digest of the target URL: six
bytes are drawn with replacement from the digest using a generator seeded from
the wall clock, then base64 encoded. Six bytes are 48 bits, which is exactly
eight base64 characters with no padding.

The existence check before insert is only a fast path for a friendly error;
the unique index on ``links.alias`` is what settles a race between writers.
"""
import base64
import hashlib
import logging
import random
import time
import uuid
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .. import crud
from ..errors import HTTPError
from ..models import Link
from ..observability import ALIAS_COLLISIONS_TOTAL, LINKS_CREATED_TOTAL

logger = logging.getLogger(__name__)

ALIAS_RETRY = 50
SAMPLED_BYTES = 6
ALIAS_ALPHABET = frozenset("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/")

ALIAS_TAKEN = "alias already exist. try another one"
ALLOCATION_EXHAUSTED = "unable to generate a short url. please contact support"


def generate_alias(original_url: str, rng: Optional[random.Random] = None) -> str:
    rng = rng or random.Random(time.time_ns())
    digest = hashlib.sha256(original_url.encode("utf-8")).digest()
    selected = bytes(rng.choice(digest) for _ in range(SAMPLED_BYTES))
    return base64.b64encode(selected).decode("ascii")


async def _alias_exists(db: AsyncSession, alias: str) -> bool:
    try:
        return await crud.alias_exists(db, alias)
    except SQLAlchemyError as e:
        logger.error(f"Alias lookup failed: {e}")
        raise HTTPError.internal("unable to get url") from e


async def resolve_alias(db: AsyncSession, original_url: str, alias: str = "") -> str:
    if alias:
        if await _alias_exists(db, alias):
            raise HTTPError.conflict(ALIAS_TAKEN)
        return alias

    for attempt in range(ALIAS_RETRY):
        candidate = generate_alias(original_url)
        if not await _alias_exists(db, candidate):
            return candidate
        ALIAS_COLLISIONS_TOTAL.inc()
        logger.info(f"Generated alias collided, attempt {attempt + 1} of {ALIAS_RETRY}")

    raise HTTPError.internal(ALLOCATION_EXHAUSTED)


async def allocate_link(
    db: AsyncSession,
    original_url: str,
    alias: str = "",
    owner_id: Optional[uuid.UUID] = None,
) -> Link:
    """Resolve an alias for ``original_url`` and persist the link.

    Returns the link as re-read from the store after the write.
    """
    resolved = await resolve_alias(db, original_url, alias)

    link = Link(owner_id=owner_id, original_url=original_url, alias=resolved)
    try:
        stored = await crud.create_link(db, link)
    except IntegrityError as e:
        # Another writer claimed the alias between the check and the insert
        await db.rollback()
        logger.warning(f"Alias {resolved!r} taken concurrently: {e}")
        raise HTTPError.conflict(ALIAS_TAKEN) from e
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Failed to create link: {e}")
        raise HTTPError.internal("unable to create url") from e

    if stored is None:
        raise HTTPError.internal("unable to find url")

    LINKS_CREATED_TOTAL.labels(kind="custom" if alias else "generated").inc()
    return stored


async def check_alias(db: AsyncSession, alias: str):
    if await _alias_exists(db, alias):
        raise HTTPError.bad_input("alias exist")


async def redirect_target(db: AsyncSession, alias: str) -> str:
    try:
        link = await crud.get_link_by_alias(db, alias)
    except SQLAlchemyError as e:
        logger.error(f"Redirect lookup failed: {e}")
        raise HTTPError.internal("unable to get url") from e

    if link is None:
        raise HTTPError.bad_input("no url found for the alias")
    return link.original_url
