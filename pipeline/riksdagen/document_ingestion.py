"""Ingest paginated document lists (reports, motions, propositions)."""

import logging
from collections import Counter
from collections.abc import Sequence
from typing import Any

from pipeline.riksdagen.client import DocumentInfo, RiksdagenClient
from pipeline.riksdagen.exceptions import MalformedRecord
from pipeline.riksdagen.stage import StageResult
from riksdagsrosten.config import CommitteeCatalog
from riksdagsrosten.models import DocumentType
from riksdagsrosten.store import Store

logger = logging.getLogger(__name__)


def document_row(document: DocumentInfo, committees: CommitteeCatalog) -> dict[str, Any]:
    """Convert a DocumentInfo into a `documents` row.

    Committee codes on reports are rewritten to their catalog spelling.
    """
    organ = document.organ
    if document.doktyp == DocumentType.REPORT.value:
        organ = committees.canonical(organ)
    return {
        "dok_id": document.dok_id,
        "beteckning": document.beteckning,
        "rm": document.rm,
        "organ": organ,
        "titel": document.titel,
        "datum": document.datum,
        "beslutsdag": document.beslutsdag,
        "dokument_url": document.dokument_url,
        "doktyp": document.doktyp,
    }


def describe_committees(
    reports_by_organ: Counter[str],
    committees: CommitteeCatalog,
) -> tuple[str, list[str]]:
    """Summarise report counts per committee.

    Returns:
        Tuple of (readable breakdown, codes missing from the catalog).
    """
    parts = []
    unknown = []
    for organ, count in sorted(reports_by_organ.items()):
        name = committees.name_for(organ)
        if name is None:
            unknown.append(organ)
            parts.append(f"{organ} {count}")
        else:
            parts.append(f"{name} ({organ}) {count}")
    return ", ".join(parts), unknown


class DocumentIngestionService:
    """Service for ingesting document lists into the database."""

    def __init__(
        self,
        store: Store,
        client: RiksdagenClient,
        committees: CommitteeCatalog,
    ):
        """Initialize the ingestion service.

        Args:
            store: Relational store.
            client: Riksdagen API client.
            committees: Committee code catalog used to normalise `organ`.
        """
        self.store = store
        self.client = client
        self.committees = committees

    async def ingest_session(
        self,
        doc_type: str,
        session: str,
        result: StageResult,
    ) -> int:
        """Page through one (kind, session) pair, upserting each page.

        A page that cannot be decoded ends the pair; pages already upserted
        are kept and the pair is counted as failed.

        Returns:
            Number of documents seen.
        """
        seen = 0
        reports_by_organ: Counter[str] = Counter()
        page_number = 0
        try:
            async for page in self.client.iter_documents(doc_type, session):
                page_number += 1
                rows = [document_row(d, self.committees) for d in page]
                persisted = await self.store.upsert_documents(rows)
                seen += len(page)
                result.records_persisted += persisted
                logger.debug(
                    f"{doc_type} {session} page {page_number}: {len(page)} documents"
                )

                if doc_type == DocumentType.REPORT.value:
                    reports_by_organ.update(row["organ"] for row in rows if row["organ"])
        except MalformedRecord as e:
            logger.warning(
                f"{doc_type} {session}: stopped after page {page_number}: {e}"
            )
            result.records_failed += 1

        if reports_by_organ:
            breakdown, unknown = describe_committees(reports_by_organ, self.committees)
            logger.info(f"{doc_type} {session} by committee: {breakdown}")
            if unknown:
                logger.warning(
                    f"{doc_type} {session}: committees missing from the catalog: "
                    f"{', '.join(unknown)}"
                )

        logger.info(f"{doc_type} {session}: {seen} documents in {page_number} pages")
        return seen

    async def ingest_documents(
        self,
        doc_types: Sequence[str],
        sessions: Sequence[str],
    ) -> StageResult:
        """Ingest every (document kind x session) pair.

        Args:
            doc_types: Document kinds, e.g. ["bet", "mot", "prop"].
            sessions: Session labels, e.g. ["2024/25"].

        Returns:
            Stage result with per-kind, per-session counts.
        """
        result = StageResult(stage="documents")

        try:
            for doc_type in doc_types:
                for session in sessions:
                    seen = await self.ingest_session(doc_type, session, result)
                    result.counts[f"{doc_type} {session}"] = seen
                    result.records_processed += seen

            breakdown = ", ".join(f"{k}: {v}" for k, v in result.counts.items())
            return result.complete(breakdown or "no documents requested")

        except Exception as e:
            logger.exception("Error ingesting documents")
            return result.fail(e)
