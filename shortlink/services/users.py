import logging
import uuid

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .. import crud
from ..errors import HTTPError
from ..models import User
from ..schemas import GOOGLE_SIGN_IN
from .identity import IdentityVerifier

logger = logging.getLogger(__name__)


async def sign_in(db: AsyncSession, verifier: IdentityVerifier, token: str, sign_in_with: str) -> User:
    """Find or create the user behind a provider ID token."""
    if sign_in_with != GOOGLE_SIGN_IN:
        raise HTTPError.bad_input("invalid oauth type")

    profile = await verifier.verify(token)

    try:
        user = await crud.get_user_by_email(db, profile.email)
        if user is not None:
            return user

        return await crud.create_user(db, User(
            email=profile.email,
            first_name=profile.first_name,
            last_name=profile.last_name,
            picture=profile.picture,
            verified=profile.verified,
        ))
    except IntegrityError:
        # Concurrent first sign-in with the same email
        await db.rollback()
        user = await crud.get_user_by_email(db, profile.email)
        if user is None:
            raise HTTPError.internal("unable to create user")
        return user
    except SQLAlchemyError as e:
        logger.error(f"Sign in failed: {e}")
        raise HTTPError.internal("unable to create user") from e


async def get_user(db: AsyncSession, user_id: uuid.UUID) -> User:
    try:
        user = await crud.get_user_by_id(db, user_id)
    except SQLAlchemyError as e:
        logger.error(f"User lookup failed: {e}")
        raise HTTPError.internal("unable to get user") from e
    if user is None:
        raise HTTPError.not_found("user not found")
    return user


async def delete_user(db: AsyncSession, user_id: uuid.UUID):
    try:
        await crud.delete_user_cascade(db, user_id)
    except SQLAlchemyError as e:
        logger.error(f"User deletion failed: {e}")
        raise HTTPError.internal("error deleting user") from e
