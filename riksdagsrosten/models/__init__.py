"""SQLAlchemy models for Riksdagsrösten."""

from riksdagsrosten.models.base import (
    Base,
    create_engine,
    create_session_maker,
    metadata,
)
from riksdagsrosten.models.document import Document, Motion, Proposal
from riksdagsrosten.models.enums import (
    DocumentType,
    VoteChoice,
    VoteOutcome,
    derive_outcome,
)
from riksdagsrosten.models.member import Member
from riksdagsrosten.models.vote import PartyVoteSummary, VoteRecord, VotingEvent

__all__ = [
    # Base
    "Base",
    "metadata",
    "create_engine",
    "create_session_maker",
    # Enums
    "DocumentType",
    "VoteChoice",
    "VoteOutcome",
    "derive_outcome",
    # Tables
    "Member",
    "Document",
    "Motion",
    "Proposal",
    "VotingEvent",
    "VoteRecord",
    "PartyVoteSummary",
]
