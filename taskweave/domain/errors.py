"""Provider error taxonomy."""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Kinds of failure an adapter may report."""

    AUTH = "auth"
    NETWORK = "network"
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    MALFORMED = "malformed"
    UNSUPPORTED = "unsupported"
    CONFLICT = "conflict"

    @property
    def retryable(self) -> bool:
        """Whether a caller may reasonably retry the same request."""
        return self in (ErrorKind.NETWORK, ErrorKind.RATE_LIMITED)


class ProviderError(Exception):
    """Classified failure raised at the adapter boundary."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        provider_id: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.provider_id = provider_id

    def for_provider(self, provider_id: str) -> "ProviderError":
        """Return the error tagged with a provider id (if it is not already)."""
        if self.provider_id == provider_id:
            return self
        err = ProviderError(self.kind, self.message, provider_id=provider_id)
        err.__cause__ = self.__cause__
        return err

    def __str__(self) -> str:
        prefix = f"[{self.provider_id}] " if self.provider_id else ""
        return f"{prefix}{self.kind.value}: {self.message}"

    def __repr__(self) -> str:
        return (
            f"ProviderError(kind={self.kind!r}, message={self.message!r}, "
            f"provider_id={self.provider_id!r})"
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ProviderError):
            return NotImplemented
        return (self.kind, self.message, self.provider_id) == (
            other.kind,
            other.message,
            other.provider_id,
        )

    def __hash__(self) -> int:
        return hash((self.kind, self.message, self.provider_id))
