"""Ingest ballots for every committee report and aggregate them."""

import logging
from collections.abc import Sequence
from typing import Any

from pipeline.riksdagen.aggregator import VoteAggregator
from pipeline.riksdagen.client import Ballot, RiksdagenClient
from pipeline.riksdagen.exceptions import MalformedRecord
from pipeline.riksdagen.stage import StageResult
from riksdagsrosten.models import Document, DocumentType
from riksdagsrosten.store import Store

logger = logging.getLogger(__name__)

PROGRESS_INTERVAL = 50


def vote_row(ballot: Ballot) -> dict[str, Any]:
    """Convert a Ballot into a `votes` row."""
    return {
        "votering_id": ballot.votering_id,
        "intressent_id": ballot.intressent_id,
        "rost": ballot.rost,
    }


class VoteIngestionService:
    """Service for ingesting ballots into the database.

    Ballots are fetched one report at a time, since the ballot list ignores
    paging. The aggregator lives for a single call to `ingest_votes`.
    """

    def __init__(
        self,
        store: Store,
        client: RiksdagenClient,
        unaffiliated_party: str = "-",
        report_document_type: str = DocumentType.REPORT.value,
    ):
        """Initialize the ingestion service.

        Args:
            store: Relational store.
            client: Riksdagen API client.
            unaffiliated_party: Party code for members without a party.
            report_document_type: Document kind of committee reports.
        """
        self.store = store
        self.client = client
        self.unaffiliated_party = unaffiliated_party
        self.report_document_type = report_document_type

    async def ingest_report(
        self,
        document: Document,
        session: str,
        aggregator: VoteAggregator,
    ) -> int:
        """Persist and aggregate the main substantive ballots of one report.

        Args:
            document: The committee report.
            session: Session the report belongs to.
            aggregator: Run-wide aggregator.

        Returns:
            Number of ballots kept; 0 if the report had none.
        """
        ballots = await self.client.get_ballots(session, document.beteckning)
        main = [b for b in ballots if b.is_main_substantive]
        if not main:
            return 0

        await self.store.upsert_votes(vote_row(b) for b in main)
        for ballot in main:
            aggregator.accumulate(ballot, document.organ, session)
        return len(main)

    async def ingest_votes(self, sessions: Sequence[str]) -> StageResult:
        """Ingest ballots for every report in the given sessions.

        Args:
            sessions: Session labels, e.g. ["2024/25"].

        A report whose ballot list cannot be decoded is skipped. A failed
        fetch fails the stage before any aggregate is written.

        Returns:
            Stage result.
        """
        result = StageResult(stage="votes")
        aggregator = VoteAggregator(self.unaffiliated_party)

        try:
            for session in sessions:
                reports = await self.store.report_documents(
                    session, self.report_document_type
                )
                logger.info(f"{session}: processing {len(reports)} reports")

                with_votes = 0
                session_ballots = 0
                for i, report in enumerate(reports, start=1):
                    result.records_processed += 1
                    try:
                        kept = await self.ingest_report(report, session, aggregator)
                    except MalformedRecord as e:
                        logger.warning(f"Skipping ballots of {report.beteckning}: {e}")
                        result.records_failed += 1
                        continue

                    if kept:
                        with_votes += 1
                        session_ballots += kept
                    else:
                        result.records_skipped += 1

                    if i % PROGRESS_INTERVAL == 0:
                        logger.info(
                            f"{session}: {i}/{len(reports)} reports, "
                            f"{session_ballots} ballots, {len(aggregator.events)} events"
                        )

                result.counts[session] = session_ballots
                logger.info(
                    f"{session}: {with_votes} reports with votes, "
                    f"{session_ballots} ballots"
                )

            events, summaries = await aggregator.flush(self.store)
            result.records_persisted = aggregator.ballot_count
            return result.complete(
                f"{aggregator.ballot_count} ballots, {events} voting events, "
                f"{summaries} party summaries"
            )

        except Exception as e:
            logger.exception("Error ingesting votes")
            return result.fail(e)
