"""Pipeline configuration."""

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Riksmöte labels look like "2024/25": two consecutive calendar years.
SESSION_PATTERN = re.compile(r"^(\d{4})/(\d{2})$")

# Committee codes as they appear in the API `organ` field.
DEFAULT_COMMITTEES: dict[str, str] = {
    "AU": "Arbetsmarknad",
    "CU": "Civilrätt",
    "FiU": "Finans",
    "FöU": "Försvar",
    "JuU": "Justitie",
    "KrU": "Kultur",
    "KU": "Konstitution",
    "MJU": "Miljö & Jordbruk",
    "NU": "Näringsliv",
    "SkU": "Skatter",
    "SfU": "Socialförsäkring",
    "SoU": "Socialpolitik",
    "TU": "Trafik",
    "UbU": "Utbildning",
    "UU": "Utrikes",
}


def validate_session(label: str) -> str:
    """Check that a session label is formatted as two consecutive years.

    Args:
        label: Session label, e.g. "2024/25".

    Returns:
        The label unchanged.

    Raises:
        ValueError: If the label is malformed or the years are not consecutive.
    """
    match = SESSION_PATTERN.match(label)
    if not match:
        raise ValueError(f"Invalid session label {label!r}, expected YYYY/YY")
    first = int(match.group(1))
    if (first + 1) % 100 != int(match.group(2)):
        raise ValueError(f"Session {label!r} does not span consecutive years")
    return label


class Settings(BaseSettings):
    """Pipeline settings loaded from environment variables.

    Settings are loaded in this priority order (highest to lowest):
    1. Environment variables
    2. .env file (for local development)
    3. Default values

    For local development, copy .env.example to .env and fill in your values.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================================================================
    # Database
    # =========================================================================
    database_url: str = Field(
        default="sqlite+aiosqlite:///data/riksdagsrosten.db",
        description="SQLAlchemy async connection URL",
    )
    debug: bool = False

    # =========================================================================
    # Riksdagen open data API
    # =========================================================================
    # Documentation: https://data.riksdagen.se/dokumentation/
    # No published rate limit; ~3 requests/second has proven safe.
    riksdagen_base_url: str = "https://data.riksdagen.se"
    request_delay: float = Field(
        default=0.3,
        ge=0,
        description="Minimum seconds between consecutive API requests",
    )
    request_timeout: float = 60.0
    max_retries: int = Field(default=3, ge=1)
    retry_delay: float = Field(default=2.0, ge=0)

    # HARDCODED ASSUMPTION: dokumentlista accepts up to 500 items per page,
    # voteringlista caps at 10000 records and ignores the page parameter.
    document_page_size: int = 500
    ballot_page_size: int = 10000
    max_pages: int = 500

    # =========================================================================
    # Scope
    # =========================================================================
    sessions: list[str] = ["2022/23", "2023/24", "2024/25", "2025/26"]
    document_types: list[str] = ["bet", "mot", "prop"]
    report_document_type: str = "bet"
    motion_document_types: list[str] = ["mot", "prop"]

    # Party code used for ballots cast by members without a party.
    unaffiliated_party: str = "-"

    committees: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_COMMITTEES))

    # =========================================================================
    # Bulk persistence / orchestration
    # =========================================================================
    bulk_batch_size: int = Field(default=500, ge=1)
    bulk_concurrency: int = Field(default=5, ge=1)
    stage_timeout_seconds: float | None = 30 * 60

    @field_validator("sessions")
    @classmethod
    def _check_sessions(cls, value: list[str]) -> list[str]:
        return [validate_session(label) for label in value]


@dataclass(frozen=True)
class CommitteeCatalog:
    """Immutable lookup of committee codes to display names.

    Codes are matched case-insensitively, since the API is not consistent
    about casing (e.g. "FiU" vs "FIU").
    """

    names: Mapping[str, str] = field(default_factory=dict)
    _by_folded: Mapping[str, str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "names", MappingProxyType(dict(self.names)))
        object.__setattr__(
            self,
            "_by_folded",
            MappingProxyType({code.casefold(): code for code in self.names}),
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "CommitteeCatalog":
        return cls(settings.committees)

    def canonical(self, code: str) -> str:
        """Return the catalog spelling of a committee code, or the code unchanged."""
        stripped = code.strip()
        return self._by_folded.get(stripped.casefold(), stripped)

    def name_for(self, code: str) -> str | None:
        return self.names.get(self.canonical(code))
