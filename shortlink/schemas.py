import re
from typing import Optional, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from .errors import HTTPError

ALIAS_MIN_LENGTH = 3
ALIAS_MAX_LENGTH = 8

GOOGLE_SIGN_IN = "google"
GITHUB_SIGN_IN = "github"
OAUTH_SIGN_IN_METHODS = (GOOGLE_SIGN_IN, GITHUB_SIGN_IN)

# Compiled once at import and never mutated afterwards; matched against the whole value
VALID_URL = re.compile(
    r"((http|https)://)(www\.)?[a-zA-Z0-9@:%._\+~#?&/=\-]{2,256}\.[a-z]{2,6}\b([-a-zA-Z0-9@:%._\+~#?&/=]*)"
)


@runtime_checkable
class Validatable(Protocol):
    def validate_payload(self) -> Optional[HTTPError]:
        ...


def _check_alias_length(alias: str) -> Optional[HTTPError]:
    if len(alias) < ALIAS_MIN_LENGTH or len(alias) > ALIAS_MAX_LENGTH:
        return HTTPError.bad_input(
            f"alias length must be within {ALIAS_MIN_LENGTH} and {ALIAS_MAX_LENGTH} characters"
        )
    return None


class StrictPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")


class CreateUrlSchema(StrictPayload):
    original_url: str = Field("", alias="originalUrl")
    alias: str = ""

    def validate_payload(self) -> Optional[HTTPError]:
        # An empty alias means "generate one"; a supplied alias follows the same
        # length rule as /url/check_alias
        if self.alias:
            err = _check_alias_length(self.alias)
            if err:
                return err
        if not VALID_URL.fullmatch(self.original_url):
            return HTTPError.bad_input("invalid url")
        return None


class CheckAliasSchema(StrictPayload):
    alias: str = ""

    def validate_payload(self) -> Optional[HTTPError]:
        return _check_alias_length(self.alias)


class CreateUserSchema(StrictPayload):
    id_token: str = Field("", alias="idToken")
    sign_in_with: str = Field("", alias="signInWith")

    def validate_payload(self) -> Optional[HTTPError]:
        if not self.id_token:
            return HTTPError.bad_input("id token must exist")
        if self.sign_in_with not in OAUTH_SIGN_IN_METHODS:
            return HTTPError.bad_input("invalid sign in method")
        return None
