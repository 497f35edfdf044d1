"""Member model."""

from sqlalchemy import Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from riksdagsrosten.models.base import Base


class Member(Base):
    """A member of the Riksdag (ledamot)."""

    __tablename__ = "members"

    intressent_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    tilltalsnamn: Mapped[str] = mapped_column(String(200), nullable=False)
    efternamn: Mapped[str] = mapped_column(String(200), nullable=False)
    parti: Mapped[str] = mapped_column(String(20), nullable=False)
    valkrets: Mapped[str] = mapped_column(String(200), nullable=False)
    kon: Mapped[str | None] = mapped_column(String(20), nullable=True)
    fodd_ar: Mapped[int | None] = mapped_column(Integer, nullable=True)
    bild_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    status: Mapped[str | None] = mapped_column(String(200), nullable=True)

    __table_args__ = (Index("idx_members_parti", "parti"),)

    @property
    def full_name(self) -> str:
        return f"{self.tilltalsnamn} {self.efternamn}".strip()

    def __repr__(self) -> str:
        return f"<Member({self.full_name}, {self.parti})>"
