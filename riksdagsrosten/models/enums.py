"""Enumerations shared by the models and the pipeline."""

import enum


class VoteChoice(str, enum.Enum):
    """A member's ballot on one voting event, as spelled by the API."""

    JA = "Ja"
    NEJ = "Nej"
    AVSTAR = "Avstår"
    FRANVARANDE = "Frånvarande"

    @property
    def counter(self) -> str:
        """Name of the aggregate column this choice increments."""
        return _COUNTER_COLUMNS[self]


_COUNTER_COLUMNS = {
    VoteChoice.JA: "ja",
    VoteChoice.NEJ: "nej",
    VoteChoice.AVSTAR: "avstar",
    VoteChoice.FRANVARANDE: "franvarande",
}


class VoteOutcome(str, enum.Enum):
    """Derived result of a voting event. Never stored."""

    PASSED = "passed"
    REJECTED = "rejected"
    TIED = "tied"


class DocumentType(str, enum.Enum):
    """Document kinds (`doktyp`) handled by the pipeline."""

    REPORT = "bet"  # Utskottsbetänkande
    MOTION = "mot"  # Member motion
    PROPOSITION = "prop"  # Government bill


def derive_outcome(ja: int, nej: int) -> VoteOutcome:
    """Decide whether a voting event passed.

    Abstentions and absences do not count; only yes against no.

    Args:
        ja: Number of yes votes.
        nej: Number of no votes.

    Returns:
        PASSED when yes outnumbers no, REJECTED when no outnumbers yes,
        TIED otherwise.
    """
    if ja > nej:
        return VoteOutcome.PASSED
    if nej > ja:
        return VoteOutcome.REJECTED
    return VoteOutcome.TIED
