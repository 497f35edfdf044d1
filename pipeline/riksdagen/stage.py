"""Result record returned by every ingestion stage."""

from dataclasses import dataclass, field
from datetime import datetime, timezone


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class StageResult:
    """Outcome of one stage run.

    Items move from pending to fetched and then to persisted or skipped
    (not found, malformed). `records_failed` counts items whose fetch or
    parse failed; the stage carries on past them.
    """

    stage: str
    status: str = "running"
    records_processed: int = 0
    records_persisted: int = 0
    records_skipped: int = 0
    records_failed: int = 0
    details: str | None = None
    error_message: str | None = None
    # Free-form per-key tallies, e.g. documents per kind and session
    counts: dict[str, int] = field(default_factory=dict)
    started_at: datetime = field(default_factory=_now)
    completed_at: datetime | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == "completed"

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1

    @property
    def elapsed_seconds(self) -> float:
        end = self.completed_at or _now()
        return (end - self.started_at).total_seconds()

    def complete(self, details: str | None = None) -> "StageResult":
        self.status = "completed"
        self.completed_at = _now()
        if details is not None:
            self.details = details
        return self

    def fail(self, error: BaseException | str) -> "StageResult":
        self.status = "failed"
        self.error_message = str(error)
        self.completed_at = _now()
        return self

    def summary(self) -> str:
        text = (
            f"{self.stage}: {self.status}, {self.records_processed} processed, "
            f"{self.records_persisted} persisted, {self.records_skipped} skipped, "
            f"{self.records_failed} failed"
        )
        if self.details:
            text += f" ({self.details})"
        if self.error_message:
            text += f" - error: {self.error_message}"
        return text
