"""Identity provider verification for sign-in.

Only the verified profile crosses this boundary; everything about how the
provider signs its tokens stays inside ``GoogleIdentityVerifier``.
"""
import logging
from dataclasses import dataclass
from typing import Protocol

from google.auth.exceptions import GoogleAuthError
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token
from starlette.concurrency import run_in_threadpool

from ..errors import HTTPError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IdentityProfile:
    email: str
    verified: bool
    first_name: str
    last_name: str
    picture: str


class IdentityVerifier(Protocol):
    async def verify(self, token: str) -> IdentityProfile:
        ...


def _claim(claims: dict, name: str, kind: type, label: str):
    value = claims.get(name)
    if not isinstance(value, kind):
        raise HTTPError.bad_input(f"{label} claim missing in ID token")
    return value


def profile_from_claims(claims: dict) -> IdentityProfile:
    return IdentityProfile(
        email=_claim(claims, "email", str, "email"),
        verified=_claim(claims, "email_verified", bool, "email_verified"),
        first_name=_claim(claims, "given_name", str, "given name"),
        last_name=_claim(claims, "family_name", str, "family name"),
        picture=_claim(claims, "picture", str, "picture"),
    )


class GoogleIdentityVerifier:
    def __init__(self, client_id: str):
        self.client_id = client_id
        self._transport = google_requests.Request()

    async def verify(self, token: str) -> IdentityProfile:
        # google-auth fetches signing certs over a blocking HTTP session
        try:
            claims = await run_in_threadpool(
                id_token.verify_oauth2_token, token, self._transport, self.client_id
            )
        except (ValueError, GoogleAuthError) as e:
            logger.info(f"Rejected Google ID token: {e}")
            raise HTTPError.bad_input("invalid id token") from e
        return profile_from_claims(claims)
