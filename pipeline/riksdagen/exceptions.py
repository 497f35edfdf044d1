"""Error types raised while talking to the Riksdagen open-data API."""

from dataclasses import dataclass, field
from typing import Any


class RiksdagenError(Exception):
    """Base exception for Riksdagen ingestion errors."""


@dataclass(eq=False)
class FetchFailed(RiksdagenError):
    """A request returned a non-2xx, non-404 status or failed in transport.

    `status` is None when no response was received at all.
    """

    url: str
    status: int | None = None

    def __str__(self) -> str:
        if self.status is None:
            return f"Request to {self.url} failed without a response"
        return f"Request to {self.url} failed with HTTP {self.status}"


@dataclass(eq=False)
class MalformedRecord(RiksdagenError):
    """An upstream record is missing a field required to key or classify it."""

    message: str
    record: dict[str, Any] = field(default_factory=dict, repr=False)

    def __str__(self) -> str:
        return self.message
