from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .config import Settings
from .services.identity import IdentityVerifier
from .services.rate_limiter import RateLimiter


@dataclass(frozen=True)
class AppContext:
    """Process-wide collaborators handed to the route builders."""

    settings: Settings
    session_factory: async_sessionmaker[AsyncSession]
    limiter: RateLimiter
    verifier: IdentityVerifier
