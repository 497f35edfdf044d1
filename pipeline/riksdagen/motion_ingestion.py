"""Ingest detail records for member motions and government propositions."""

import json
import logging
from collections.abc import Sequence
from typing import Any

from pipeline.riksdagen.client import DocumentStatus, RiksdagenClient
from pipeline.riksdagen.exceptions import RiksdagenError
from pipeline.riksdagen.stage import StageResult
from riksdagsrosten.models import Document, DocumentType
from riksdagsrosten.store import Store

logger = logging.getLogger(__name__)

PROGRESS_INTERVAL = 50


def _authors(status: DocumentStatus | None) -> tuple[str | None, str | None]:
    """Return the JSON author list and the shared party, if any.

    A motion counts as a party motion when every signatory with a known
    party belongs to the same one.
    """
    if status is None:
        return None, None

    signatories = status.signatories
    if not signatories:
        return None, None

    parties = {a.partibet for a in signatories if a.partibet}
    parti = parties.pop() if len(parties) == 1 else None
    forfattare = json.dumps([a.to_dict() for a in signatories], ensure_ascii=False)
    return forfattare, parti


def motion_row(document: Document, status: DocumentStatus | None) -> dict[str, Any]:
    """Build a `motions` row from a listed document and its detail record.

    Never includes `behandlas_i`; that column belongs to the linker.
    """
    forfattare: str | None = None
    parti: str | None = None
    departement: str | None = None

    if document.doktyp == DocumentType.PROPOSITION.value:
        departement = (status.organ if status else None) or document.organ or None
    else:
        forfattare, parti = _authors(status)

    return {
        "dok_id": document.dok_id,
        "doktyp": document.doktyp,
        "beteckning": document.beteckning,
        "rm": document.rm,
        "titel": document.titel,
        "datum": document.datum,
        "dokument_url": document.dokument_url,
        "forfattare": forfattare,
        "parti": parti,
        "departement": departement,
    }


class MotionIngestionService:
    """Service for ingesting motion and proposition metadata.

    Resumable: documents that already have a `motions` row are not fetched
    again, and a failed fetch leaves no row so the next run retries it.
    """

    def __init__(self, store: Store, client: RiksdagenClient):
        """Initialize the ingestion service.

        Args:
            store: Relational store.
            client: Riksdagen API client.
        """
        self.store = store
        self.client = client

    async def ingest_motion(self, document: Document) -> bool:
        """Fetch one document's detail record and upsert its motion row.

        Returns:
            True if the detail record was found, False on 404.

        Raises:
            RiksdagenError: If the fetch failed or the record is malformed.
        """
        status = await self.client.get_document_status(document.dok_id)
        await self.store.upsert_motions([motion_row(document, status)])
        return status is not None

    async def ingest_motions(self, doc_types: Sequence[str]) -> StageResult:
        """Ingest detail records for every pending motion or proposition.

        Args:
            doc_types: Document kinds to process, e.g. ["mot", "prop"].

        Returns:
            Stage result.
        """
        result = StageResult(stage="motions")

        try:
            documents = await self.store.documents_of_types(doc_types)
            existing = await self.store.motion_ids()
            pending = [d for d in documents if d.dok_id not in existing]
            logger.info(
                f"{len(pending)} of {len(documents)} documents need detail records"
            )

            not_found = 0
            for i, document in enumerate(pending, start=1):
                result.records_processed += 1
                try:
                    found = await self.ingest_motion(document)
                except RiksdagenError as e:
                    logger.warning(f"Skipping {document.dok_id}: {e}")
                    result.records_failed += 1
                    continue

                result.records_persisted += 1
                if not found:
                    not_found += 1

                if i % PROGRESS_INTERVAL == 0:
                    logger.info(f"Processed {i}/{len(pending)} documents")

            result.records_skipped = len(documents) - len(pending)
            return result.complete(
                f"{result.records_persisted} upserted ({not_found} without detail), "
                f"{result.records_skipped} already present, "
                f"{result.records_failed} failed"
            )

        except Exception as e:
            logger.exception("Error ingesting motions")
            return result.fail(e)
