"""Idempotent persistence layer used by every pipeline stage.

Every write is an upsert keyed by the table's natural primary key, so any
stage can be re-run against an already-populated database without creating
duplicates. Reads return ORM objects detached from their session.
"""

import asyncio
import logging
from collections.abc import Iterable, Iterator, Sequence
from datetime import date
from pathlib import Path
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncEngine

from riksdagsrosten.config import Settings
from riksdagsrosten.models import (
    Base,
    Document,
    Member,
    Motion,
    PartyVoteSummary,
    Proposal,
    VoteRecord,
    VotingEvent,
    create_engine,
    create_session_maker,
)

logger = logging.getLogger(__name__)

Row = dict[str, Any]

# Dialects with INSERT ... ON CONFLICT support
UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _batched(rows: Sequence[Row], size: int) -> Iterator[Sequence[Row]]:
    for start in range(0, len(rows), size):
        yield rows[start : start + size]


def _primary_key_names(model: type[Base]) -> list[str]:
    return [column.name for column in model.__table__.primary_key.columns]


def dedupe_rows(model: type[Base], rows: Iterable[Row]) -> list[Row]:
    """Collapse rows sharing a primary key, keeping the last occurrence.

    A single ON CONFLICT statement may not touch the same row twice, so
    duplicates must be removed before batching.
    """
    keys = _primary_key_names(model)
    unique: dict[tuple[Any, ...], Row] = {}
    for row in rows:
        unique[tuple(row[key] for key in keys)] = row
    return list(unique.values())


class Store:
    """Relational store for members, documents and votes."""

    def __init__(
        self,
        engine: AsyncEngine,
        batch_size: int = 500,
        concurrency: int = 5,
    ):
        """Initialize the store.

        Args:
            engine: SQLAlchemy async engine.
            batch_size: Rows per INSERT statement.
            concurrency: Maximum concurrent batches in bulk writes. Forced
                to 1 on SQLite, which allows a single writer.
        """
        self.engine = engine
        self.session_maker = create_session_maker(engine)
        self.batch_size = batch_size
        self.concurrency = 1 if engine.dialect.name == "sqlite" else concurrency

    @classmethod
    def from_settings(cls, settings: Settings) -> "Store":
        engine = create_engine(settings.database_url, echo=settings.debug)
        return cls(
            engine,
            batch_size=settings.bulk_batch_size,
            concurrency=settings.bulk_concurrency,
        )

    async def __aenter__(self) -> "Store":
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.dispose()

    async def dispose(self) -> None:
        await self.engine.dispose()

    # =========================================================================
    # Schema
    # =========================================================================

    async def create_schema(self) -> None:
        """Create all tables and indexes. Safe to call repeatedly."""
        url = self.engine.url
        if url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:"):
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    # =========================================================================
    # Generic upserts
    # =========================================================================

    def _upsert_statement(
        self,
        model: type[Base],
        rows: Sequence[Row],
        update_columns: Sequence[str] | None = None,
    ) -> Any:
        dialect = self.engine.dialect.name
        insert = UPSERT_INSERTS.get(dialect)
        if insert is None:
            raise ValueError(f"Upserts are not supported for dialect {dialect!r}")

        table = model.__table__
        keys = _primary_key_names(model)
        if update_columns is None:
            update_columns = [c.name for c in table.columns if c.name not in keys]

        stmt = insert(table).values(list(rows))
        if not update_columns:
            return stmt.on_conflict_do_nothing(index_elements=keys)
        return stmt.on_conflict_do_update(
            index_elements=keys,
            set_={name: stmt.excluded[name] for name in update_columns},
        )

    async def upsert(
        self,
        model: type[Base],
        rows: Iterable[Row],
        update_columns: Sequence[str] | None = None,
    ) -> int:
        """Insert or update rows in one transaction.

        Args:
            model: Target model class.
            rows: Column dicts. Every row must carry the same keys.
            update_columns: Columns overwritten on conflict (default: every
                non-key column).

        Returns:
            Number of distinct rows written.
        """
        unique = dedupe_rows(model, rows)
        if not unique:
            return 0

        async with self.session_maker() as session:
            for batch in _batched(unique, self.batch_size):
                await session.execute(
                    self._upsert_statement(model, batch, update_columns)
                )
            await session.commit()
        return len(unique)

    async def bulk_upsert(
        self,
        model: type[Base],
        rows: Iterable[Row],
        update_columns: Sequence[str] | None = None,
    ) -> int:
        """Upsert many rows as concurrent batches, each in its own transaction.

        Returns only after every batch has committed, so rows written by a
        later call can safely reference these.
        """
        unique = dedupe_rows(model, rows)
        if not unique:
            return 0

        semaphore = asyncio.Semaphore(self.concurrency)

        async def write(batch: Sequence[Row]) -> None:
            async with semaphore:
                async with self.session_maker() as session:
                    await session.execute(
                        self._upsert_statement(model, batch, update_columns)
                    )
                    await session.commit()

        await asyncio.gather(
            *(write(batch) for batch in _batched(unique, self.batch_size))
        )
        logger.debug(f"Bulk upserted {len(unique)} rows into {model.__tablename__}")
        return len(unique)

    # =========================================================================
    # Entity writes
    # =========================================================================

    async def upsert_members(self, rows: Iterable[Row]) -> int:
        return await self.upsert(Member, rows)

    async def upsert_documents(self, rows: Iterable[Row]) -> int:
        return await self.upsert(Document, rows)

    async def upsert_motions(self, rows: Iterable[Row]) -> int:
        """Upsert motion metadata without ever touching `behandlas_i`."""
        columns = [
            c.name
            for c in Motion.__table__.columns
            if c.name not in ("dok_id", "behandlas_i")
        ]
        return await self.upsert(Motion, rows, update_columns=columns)

    async def upsert_votes(self, rows: Iterable[Row]) -> int:
        return await self.upsert(VoteRecord, rows)

    async def bulk_upsert_voting_events(self, rows: Iterable[Row]) -> int:
        """Bulk upsert voting events, preserving any decision label already set."""
        columns = [
            c.name
            for c in VotingEvent.__table__.columns
            if c.name not in ("votering_id", "rubrik")
        ]
        return await self.bulk_upsert(VotingEvent, rows, update_columns=columns)

    async def replace_party_summaries(
        self,
        rows: Iterable[Row],
        votering_ids: Iterable[str],
    ) -> int:
        """Replace the party summaries of the given voting events.

        The existing summaries of each event are deleted and rewritten in
        one transaction, so a party bucket that no longer occurs does not
        survive a re-run. Events are written as concurrent batches, like
        `bulk_upsert`.

        Args:
            rows: Summary rows, all belonging to `votering_ids`.
            votering_ids: Every event whose summaries are rewritten,
                including events left with no rows.

        Returns:
            Number of summary rows written.
        """
        unique = dedupe_rows(PartyVoteSummary, rows)
        by_event: dict[str, list[Row]] = {}
        for row in unique:
            by_event.setdefault(row["votering_id"], []).append(row)
        event_ids = sorted(set(votering_ids) | set(by_event))
        if not event_ids:
            return 0

        semaphore = asyncio.Semaphore(self.concurrency)

        async def write(chunk: list[str]) -> None:
            chunk_rows = [
                row for event_id in chunk for row in by_event.get(event_id, [])
            ]
            async with semaphore:
                async with self.session_maker() as session:
                    await session.execute(
                        delete(PartyVoteSummary).where(
                            PartyVoteSummary.votering_id.in_(chunk)
                        )
                    )
                    for batch in _batched(chunk_rows, self.batch_size):
                        await session.execute(
                            self._upsert_statement(PartyVoteSummary, batch)
                        )
                    await session.commit()

        chunks = [
            event_ids[start : start + self.batch_size]
            for start in range(0, len(event_ids), self.batch_size)
        ]
        await asyncio.gather(*(write(chunk) for chunk in chunks))
        logger.debug(
            f"Replaced party summaries of {len(event_ids)} voting events "
            f"with {len(unique)} rows"
        )
        return len(unique)

    async def save_decision_points(self, rows: Sequence[Row]) -> int:
        """Upsert decision points and backfill the labels of their voting events.

        Voting-event ids are matched case-insensitively: the decision-point
        feed uses lowercase ids while the ballot feed uses uppercase.

        Returns:
            Number of voting events whose label was set.
        """
        unique = dedupe_rows(Proposal, rows)
        if not unique:
            return 0

        linked = 0
        async with self.session_maker() as session:
            await session.execute(self._upsert_statement(Proposal, unique))
            for row in unique:
                if not row.get("votering_id") or not row.get("rubrik"):
                    continue
                result = await session.execute(
                    update(VotingEvent)
                    .where(
                        func.lower(VotingEvent.votering_id)
                        == row["votering_id"].lower()
                    )
                    .values(rubrik=row["rubrik"])
                    .execution_options(synchronize_session=False)
                )
                linked += result.rowcount or 0
            await session.commit()
        return linked

    async def set_resolving_document(self, dok_id: str, report_id: str) -> bool:
        """Record which report resolved a motion, unless one is already recorded.

        Returns:
            True if the row was updated.
        """
        async with self.session_maker() as session:
            result = await session.execute(
                update(Motion)
                .where(Motion.dok_id == dok_id, Motion.behandlas_i.is_(None))
                .values(behandlas_i=report_id)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        return bool(result.rowcount)

    # =========================================================================
    # Reads
    # =========================================================================

    async def report_documents(self, session_label: str, doc_type: str) -> list[Document]:
        """Reports of one session, ordered by designation."""
        async with self.session_maker() as session:
            result = await session.execute(
                select(Document)
                .where(Document.rm == session_label, Document.doktyp == doc_type)
                .order_by(Document.beteckning)
            )
            return list(result.scalars().all())

    async def documents_of_types(self, doc_types: Sequence[str]) -> list[Document]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(Document)
                .where(Document.doktyp.in_(list(doc_types)))
                .order_by(Document.dok_id)
            )
            return list(result.scalars().all())

    async def document_ids(self, doc_types: Sequence[str]) -> set[str]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(Document.dok_id).where(Document.doktyp.in_(list(doc_types)))
            )
            return set(result.scalars().all())

    async def motion_ids(self) -> set[str]:
        async with self.session_maker() as session:
            result = await session.execute(select(Motion.dok_id))
            return set(result.scalars().all())

    async def unresolved_motions(self) -> list[Motion]:
        """Motions and propositions not yet linked to a report."""
        async with self.session_maker() as session:
            result = await session.execute(
                select(Motion)
                .where(Motion.behandlas_i.is_(None))
                .order_by(Motion.doktyp, Motion.dok_id)
            )
            return list(result.scalars().all())

    async def decision_dates(self, dok_ids: Iterable[str]) -> dict[str, date | None]:
        """Map report ids to their decision date (beslutsdag)."""
        ids = sorted(set(dok_ids))
        dates: dict[str, date | None] = {}
        async with self.session_maker() as session:
            for start in range(0, len(ids), self.batch_size):
                chunk = ids[start : start + self.batch_size]
                result = await session.execute(
                    select(Document.dok_id, Document.beslutsdag).where(
                        Document.dok_id.in_(chunk)
                    )
                )
                dates.update({dok_id: day for dok_id, day in result.all()})
        return dates

    async def count(self, model: type[Base]) -> int:
        async with self.session_maker() as session:
            result = await session.execute(select(func.count()).select_from(model))
            return int(result.scalar_one())
