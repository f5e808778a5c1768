"""Error signal shared by every layer of the request pipeline.

Layers return an ``HTTPError`` instead of rendering a response; services may
also raise one. Either way only the exception boundary turns it into a wire
response.
"""
import enum


class ErrorKind(enum.Enum):
    BAD_INPUT = "bad-input"
    UNAUTHENTICATED = "unauthenticated"
    NOT_FOUND = "not-found"
    CONFLICT = "conflict"
    RATE_LIMITED = "rate-limited"
    INTERNAL = "internal"


_STATUS = {
    ErrorKind.BAD_INPUT: 400,
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.NOT_FOUND: 404,
    # Alias conflicts are reported to clients as input errors
    ErrorKind.CONFLICT: 400,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.INTERNAL: 500,
}


class HTTPError(Exception):
    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    @property
    def status_code(self) -> int:
        return _STATUS[self.kind]

    def __repr__(self) -> str:
        return f"HTTPError({self.kind.name}, {self.message!r})"

    def __eq__(self, other):
        if not isinstance(other, HTTPError):
            return NotImplemented
        return self.kind == other.kind and self.message == other.message

    def __hash__(self):
        return hash((self.kind, self.message))

    @classmethod
    def bad_input(cls, message: str) -> "HTTPError":
        return cls(ErrorKind.BAD_INPUT, message)

    @classmethod
    def unauthenticated(cls, message: str) -> "HTTPError":
        return cls(ErrorKind.UNAUTHENTICATED, message)

    @classmethod
    def not_found(cls, message: str) -> "HTTPError":
        return cls(ErrorKind.NOT_FOUND, message)

    @classmethod
    def conflict(cls, message: str) -> "HTTPError":
        return cls(ErrorKind.CONFLICT, message)

    @classmethod
    def rate_limited(cls, message: str) -> "HTTPError":
        return cls(ErrorKind.RATE_LIMITED, message)

    @classmethod
    def internal(cls, message: str = "internal server error") -> "HTTPError":
        return cls(ErrorKind.INTERNAL, message)
