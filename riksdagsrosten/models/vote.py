"""Vote models: VotingEvent, VoteRecord, PartyVoteSummary."""

from datetime import date

from sqlalchemy import Date, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from riksdagsrosten.models.base import Base, enum_column
from riksdagsrosten.models.enums import VoteChoice, VoteOutcome, derive_outcome


class CountsMixin:
    """The four ballot counters shared by events and party summaries."""

    ja: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    nej: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    avstar: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    franvarande: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    @property
    def total(self) -> int:
        return self.ja + self.nej + self.avstar + self.franvarande

    @property
    def outcome(self) -> VoteOutcome:
        return derive_outcome(self.ja, self.nej)


class VotingEvent(CountsMixin, Base):
    """One aggregated roll-call decision (votering)."""

    __tablename__ = "voting_events"

    votering_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    dok_id: Mapped[str] = mapped_column(String(50), nullable=False)
    punkt: Mapped[int] = mapped_column(Integer, nullable=False)
    beteckning: Mapped[str] = mapped_column(String(50), nullable=False)
    rm: Mapped[str] = mapped_column(String(10), nullable=False)
    organ: Mapped[str] = mapped_column(String(50), nullable=False)
    # Filled by the decision-text linker
    rubrik: Mapped[str | None] = mapped_column(Text, nullable=True)
    datum: Mapped[date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (
        Index("idx_voting_events_rm", "rm"),
        Index("idx_voting_events_organ", "organ"),
        Index("idx_voting_events_datum", "datum"),
    )

    def __repr__(self) -> str:
        return f"<VotingEvent({self.votering_id}, {self.ja}-{self.nej})>"


class VoteRecord(Base):
    """One member's ballot on one voting event."""

    __tablename__ = "votes"

    votering_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    intressent_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    rost: Mapped[VoteChoice] = mapped_column(
        enum_column(VoteChoice, "vote_choice", native_enum=False, length=20),
        nullable=False,
    )

    __table_args__ = (Index("idx_votes_intressent", "intressent_id"),)

    def __repr__(self) -> str:
        return f"<VoteRecord({self.votering_id}, {self.intressent_id}: {self.rost})>"


class PartyVoteSummary(CountsMixin, Base):
    """Ballots of one party on one voting event."""

    __tablename__ = "party_vote_summary"

    parti: Mapped[str] = mapped_column(String(20), primary_key=True)
    votering_id: Mapped[str] = mapped_column(
        ForeignKey("voting_events.votering_id", ondelete="CASCADE"),
        primary_key=True,
    )

    __table_args__ = (Index("idx_party_summary_parti", "parti"),)

    def __repr__(self) -> str:
        return f"<PartyVoteSummary({self.parti}, {self.votering_id})>"
