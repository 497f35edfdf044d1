"""Attach decision texts to committee reports and their voting events."""

import logging
from typing import Any

from pipeline.riksdagen.client import DecisionPoint, RiksdagenClient
from pipeline.riksdagen.exceptions import RiksdagenError
from pipeline.riksdagen.stage import StageResult
from riksdagsrosten.models import DocumentType
from riksdagsrosten.store import Store

logger = logging.getLogger(__name__)

PROGRESS_INTERVAL = 50


def proposal_row(dok_id: str, point: DecisionPoint) -> dict[str, Any]:
    """Convert a DecisionPoint into a `proposals` row."""
    return {
        "dok_id": dok_id,
        "punkt": point.punkt,
        "rubrik": point.rubrik,
        "forslag": point.forslag,
        "beslutstyp": point.beslutstyp,
        "votering_id": point.votering_id,
    }


class ProposalIngestionService:
    """Service for ingesting decision points (utskottsförslag).

    Also labels each voting event with the heading of the decision point it
    decided, which the ballot list itself does not carry.
    """

    def __init__(
        self,
        store: Store,
        client: RiksdagenClient,
        report_document_type: str = DocumentType.REPORT.value,
    ):
        """Initialize the ingestion service.

        Args:
            store: Relational store.
            client: Riksdagen API client.
            report_document_type: Document kind of committee reports.
        """
        self.store = store
        self.client = client
        self.report_document_type = report_document_type

    async def ingest_report(self, dok_id: str) -> tuple[int, int]:
        """Fetch and store the decision points of one report.

        Returns:
            Tuple of (decision points stored, voting events labelled).
            (0, 0) when the report is unknown upstream.

        Raises:
            RiksdagenError: If the fetch failed or the record is malformed.
        """
        status = await self.client.get_document_status(dok_id)
        if status is None or not status.decision_points:
            return 0, 0

        rows = [proposal_row(dok_id, p) for p in status.decision_points]
        labelled = await self.store.save_decision_points(rows)
        return len(rows), labelled

    async def ingest_proposals(self) -> StageResult:
        """Ingest decision points for every stored report.

        Returns:
            Stage result.
        """
        result = StageResult(stage="proposals")

        try:
            # Only reports carry utskottsforslag; motions and propositions are not fetched
            reports = await self.store.documents_of_types([self.report_document_type])
            logger.info(f"Fetching decision points for {len(reports)} reports")

            points = 0
            labelled = 0
            for i, report in enumerate(reports, start=1):
                result.records_processed += 1
                try:
                    stored, linked = await self.ingest_report(report.dok_id)
                except RiksdagenError as e:
                    logger.warning(f"Skipping {report.dok_id}: {e}")
                    result.records_failed += 1
                    continue

                if stored:
                    result.records_persisted += 1
                    points += stored
                    labelled += linked
                else:
                    result.records_skipped += 1

                if i % PROGRESS_INTERVAL == 0:
                    logger.info(
                        f"Processed {i}/{len(reports)} reports, {points} decision points"
                    )

            result.counts = {"decision_points": points, "voting_events_labelled": labelled}
            return result.complete(
                f"{points} decision points, {labelled} voting events labelled"
            )

        except Exception as e:
            logger.exception("Error ingesting decision points")
            return result.fail(e)
