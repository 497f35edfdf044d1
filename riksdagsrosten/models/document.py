"""Document models: Document, Motion, Proposal."""

from datetime import date

from sqlalchemy import Date, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from riksdagsrosten.models.base import Base


class Document(Base):
    """A filed document: committee report, motion or government bill."""

    __tablename__ = "documents"

    dok_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    beteckning: Mapped[str] = mapped_column(String(50), nullable=False)
    rm: Mapped[str] = mapped_column(String(10), nullable=False)
    organ: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    titel: Mapped[str] = mapped_column(Text, nullable=False)
    datum: Mapped[date | None] = mapped_column(Date, nullable=True)
    beslutsdag: Mapped[date | None] = mapped_column(Date, nullable=True)
    dokument_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    doktyp: Mapped[str] = mapped_column(String(10), nullable=False, default="bet")

    __table_args__ = (
        Index("idx_documents_rm", "rm"),
        Index("idx_documents_organ", "organ"),
        Index("idx_documents_doktyp", "doktyp"),
        Index("idx_documents_beslutsdag", "beslutsdag"),
    )

    def __repr__(self) -> str:
        return f"<Document({self.rm}:{self.beteckning}, {self.doktyp})>"


class Motion(Base):
    """A member motion or a government proposition.

    Both kinds share one table, told apart by `doktyp`. `behandlas_i` points
    at the committee report that resolved the document; it is filled by the
    linker and never cleared.
    """

    __tablename__ = "motions"

    dok_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    doktyp: Mapped[str] = mapped_column(String(10), nullable=False)
    beteckning: Mapped[str] = mapped_column(String(50), nullable=False)
    rm: Mapped[str] = mapped_column(String(10), nullable=False)
    titel: Mapped[str] = mapped_column(Text, nullable=False)
    datum: Mapped[date | None] = mapped_column(Date, nullable=True)
    dokument_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    # JSON list of {"id", "namn", "parti"} for motion signatories
    forfattare: Mapped[str | None] = mapped_column(Text, nullable=True)
    parti: Mapped[str | None] = mapped_column(String(20), nullable=True)
    departement: Mapped[str | None] = mapped_column(String(200), nullable=True)
    behandlas_i: Mapped[str | None] = mapped_column(String(50), nullable=True)

    __table_args__ = (
        Index("idx_motions_rm", "rm"),
        Index("idx_motions_parti", "parti"),
        Index("idx_motions_doktyp", "doktyp"),
        Index("idx_motions_behandlas_i", "behandlas_i"),
    )

    def __repr__(self) -> str:
        return f"<Motion({self.rm}:{self.beteckning}, {self.doktyp})>"


class Proposal(Base):
    """One numbered decision point (utskottsförslag) inside a report."""

    __tablename__ = "proposals"

    dok_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    punkt: Mapped[int] = mapped_column(Integer, primary_key=True)
    rubrik: Mapped[str | None] = mapped_column(Text, nullable=True)
    forslag: Mapped[str | None] = mapped_column(Text, nullable=True)
    beslutstyp: Mapped[str | None] = mapped_column(String(100), nullable=True)
    votering_id: Mapped[str | None] = mapped_column(String(50), nullable=True)

    __table_args__ = (Index("idx_proposals_votering_id", "votering_id"),)

    def __repr__(self) -> str:
        return f"<Proposal({self.dok_id} p{self.punkt})>"
