"""Link motions and propositions to the committee reports that resolved them."""

import logging
from collections.abc import Iterable

from pipeline.riksdagen.client import DocumentReference, RiksdagenClient
from pipeline.riksdagen.exceptions import RiksdagenError
from pipeline.riksdagen.stage import StageResult
from riksdagsrosten.models import DocumentType
from riksdagsrosten.store import Store

logger = logging.getLogger(__name__)

PROGRESS_INTERVAL = 100


def find_resolving_report(
    references: Iterable[DocumentReference],
    report_ids: set[str],
) -> str | None:
    """Return the first referenced document that is a known report."""
    for reference in references:
        if reference.ref_dok_id in report_ids:
            return reference.ref_dok_id
    return None


class DocumentLinkingService:
    """Service for filling `Motion.behandlas_i`.

    Links are monotonic: only unresolved rows are selected, and the update
    itself is guarded so an existing link is never overwritten.
    """

    def __init__(
        self,
        store: Store,
        client: RiksdagenClient,
        report_document_type: str = DocumentType.REPORT.value,
    ):
        """Initialize the linking service.

        Args:
            store: Relational store.
            client: Riksdagen API client.
            report_document_type: Document kind of committee reports.
        """
        self.store = store
        self.client = client
        self.report_document_type = report_document_type

    async def link_document(self, dok_id: str, report_ids: set[str]) -> str | None:
        """Resolve one motion or proposition.

        Returns:
            The id of the report it was linked to, or None.

        Raises:
            RiksdagenError: If the fetch failed or the record is malformed.
        """
        status = await self.client.get_document_status(dok_id)
        if status is None:
            return None

        report_id = find_resolving_report(status.references, report_ids)
        if report_id is None:
            return None

        if not await self.store.set_resolving_document(dok_id, report_id):
            return None
        return report_id

    async def link_documents(self) -> StageResult:
        """Link every unresolved motion and proposition.

        Returns:
            Stage result.
        """
        result = StageResult(stage="link")

        try:
            report_ids = await self.store.document_ids([self.report_document_type])
            pending = await self.store.unresolved_motions()
            logger.info(
                f"Linking {len(pending)} unresolved documents against "
                f"{len(report_ids)} reports"
            )

            for i, motion in enumerate(pending, start=1):
                result.records_processed += 1
                try:
                    report_id = await self.link_document(motion.dok_id, report_ids)
                except RiksdagenError as e:
                    logger.warning(f"Skipping {motion.dok_id}: {e}")
                    result.records_failed += 1
                    continue

                if report_id:
                    result.records_persisted += 1
                    kind = f"linked {motion.doktyp}"
                    result.counts[kind] = result.counts.get(kind, 0) + 1
                else:
                    result.records_skipped += 1

                if i % PROGRESS_INTERVAL == 0:
                    logger.info(
                        f"Processed {i}/{len(pending)}, "
                        f"{result.records_persisted} linked"
                    )

            return result.complete(
                f"{result.records_persisted} linked, "
                f"{result.records_skipped} without a known report, "
                f"{result.records_failed} failed"
            )

        except Exception as e:
            logger.exception("Error linking documents")
            return result.fail(e)
