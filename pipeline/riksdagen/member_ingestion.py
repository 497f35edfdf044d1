"""Ingest the roster of serving members into the database."""

import logging
from typing import Any

from pipeline.riksdagen.client import MemberInfo, RiksdagenClient
from pipeline.riksdagen.stage import StageResult
from riksdagsrosten.store import Store

logger = logging.getLogger(__name__)


def member_row(member: MemberInfo) -> dict[str, Any]:
    """Convert a MemberInfo into a `members` row."""
    return {
        "intressent_id": member.intressent_id,
        "tilltalsnamn": member.tilltalsnamn,
        "efternamn": member.efternamn,
        "parti": member.parti,
        "valkrets": member.valkrets,
        "kon": member.kon,
        "fodd_ar": member.fodd_ar,
        "bild_url": member.bild_url,
        "status": member.status,
    }


class MemberIngestionService:
    """Service for ingesting members of parliament into the database."""

    def __init__(self, store: Store, client: RiksdagenClient):
        """Initialize the ingestion service.

        Args:
            store: Relational store.
            client: Riksdagen API client.
        """
        self.store = store
        self.client = client

    async def ingest_members(self) -> StageResult:
        """Fetch every serving member and upsert them by intressent_id.

        Members no longer serving keep their rows: their historical ballots
        still reference them.

        Returns:
            Stage result.
        """
        result = StageResult(stage="members")

        try:
            members = await self.client.get_members()
            logger.info(f"Found {len(members)} serving members")

            persisted = await self.store.upsert_members(
                member_row(m) for m in members
            )

            result.records_processed = len(members)
            result.records_persisted = persisted
            # Duplicate ids in the roster collapse into one row
            result.records_skipped = len(members) - persisted
            return result.complete(f"{persisted} members upserted")

        except Exception as e:
            logger.exception("Error ingesting members")
            return result.fail(e)
