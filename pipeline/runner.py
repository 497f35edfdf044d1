"""Stage registry and sequential pipeline driver."""

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass

from pipeline.riksdagen.client import RiksdagenClient
from pipeline.riksdagen.document_ingestion import DocumentIngestionService
from pipeline.riksdagen.linking import DocumentLinkingService
from pipeline.riksdagen.member_ingestion import MemberIngestionService
from pipeline.riksdagen.motion_ingestion import MotionIngestionService
from pipeline.riksdagen.proposal_ingestion import ProposalIngestionService
from pipeline.riksdagen.stage import StageResult
from pipeline.riksdagen.vote_ingestion import VoteIngestionService
from riksdagsrosten.config import CommitteeCatalog, Settings
from riksdagsrosten.store import Store

logger = logging.getLogger(__name__)

StageFunc = Callable[[Store, RiksdagenClient, Settings], Awaitable[StageResult]]


@dataclass(frozen=True)
class Stage:
    """A named, individually re-runnable pipeline step."""

    name: str
    description: str
    run: StageFunc


async def _ingest_members(
    store: Store, client: RiksdagenClient, settings: Settings
) -> StageResult:
    return await MemberIngestionService(store, client).ingest_members()


async def _ingest_documents(
    store: Store, client: RiksdagenClient, settings: Settings
) -> StageResult:
    service = DocumentIngestionService(
        store, client, CommitteeCatalog.from_settings(settings)
    )
    return await service.ingest_documents(settings.document_types, settings.sessions)


async def _ingest_motions(
    store: Store, client: RiksdagenClient, settings: Settings
) -> StageResult:
    service = MotionIngestionService(store, client)
    return await service.ingest_motions(settings.motion_document_types)


async def _ingest_votes(
    store: Store, client: RiksdagenClient, settings: Settings
) -> StageResult:
    service = VoteIngestionService(
        store,
        client,
        unaffiliated_party=settings.unaffiliated_party,
        report_document_type=settings.report_document_type,
    )
    return await service.ingest_votes(settings.sessions)


async def _ingest_proposals(
    store: Store, client: RiksdagenClient, settings: Settings
) -> StageResult:
    service = ProposalIngestionService(
        store, client, report_document_type=settings.report_document_type
    )
    return await service.ingest_proposals()


async def _link_documents(
    store: Store, client: RiksdagenClient, settings: Settings
) -> StageResult:
    service = DocumentLinkingService(
        store, client, report_document_type=settings.report_document_type
    )
    return await service.link_documents()


# Registry order is execution order: votes need report ids from documents,
# proposals need the voting events written by votes.
STAGES: dict[str, Stage] = {
    stage.name: stage
    for stage in (
        Stage("members", "Fetch serving members", _ingest_members),
        Stage("documents", "Fetch report, motion and proposition lists", _ingest_documents),
        Stage("motions", "Fetch motion and proposition details", _ingest_motions),
        Stage("votes", "Fetch ballots and aggregate voting events", _ingest_votes),
        Stage("proposals", "Attach decision texts to voting events", _ingest_proposals),
        Stage("link", "Link motions and propositions to reports", _link_documents),
    )
}


def resolve_stages(
    only: Sequence[str] | None = None,
    registry: Mapping[str, Stage] = STAGES,
) -> list[Stage]:
    """Select stages in registry order.

    Args:
        only: Stage names to keep (default: all).
        registry: Stage registry.

    Raises:
        ValueError: If a requested stage does not exist.
    """
    if not only:
        return list(registry.values())

    unknown = sorted(set(only) - set(registry))
    if unknown:
        raise ValueError(
            f"Unknown stage(s): {', '.join(unknown)}. "
            f"Available: {', '.join(registry)}"
        )
    return [stage for name, stage in registry.items() if name in only]


@asynccontextmanager
async def open_resources(
    settings: Settings,
    store: Store | None = None,
    client: RiksdagenClient | None = None,
) -> AsyncIterator[tuple[Store, RiksdagenClient]]:
    """Yield a store with its schema in place and an API client.

    Resources passed in are used as-is and left open.
    """
    owned_store = store is None
    owned_client = client is None
    store = store or Store.from_settings(settings)
    client = client or RiksdagenClient.from_settings(settings)
    try:
        await store.create_schema()
        yield store, client
    finally:
        if owned_client:
            await client.aclose()
        if owned_store:
            await store.dispose()


async def execute_stage(
    stage: Stage,
    store: Store,
    client: RiksdagenClient,
    settings: Settings,
) -> StageResult:
    """Run one stage under the configured per-stage timeout."""
    logger.info(f"Starting stage {stage.name}: {stage.description}")
    try:
        result = await asyncio.wait_for(
            stage.run(store, client, settings),
            timeout=settings.stage_timeout_seconds,
        )
    except TimeoutError:
        result = StageResult(stage=stage.name).fail(
            f"timed out after {settings.stage_timeout_seconds}s"
        )

    if result.succeeded:
        logger.info(result.summary())
    else:
        logger.error(result.summary())
    return result


async def run_stage(
    name: str,
    settings: Settings,
    store: Store | None = None,
    client: RiksdagenClient | None = None,
    registry: Mapping[str, Stage] = STAGES,
) -> int:
    """Run a single stage.

    Returns:
        0 on success, 1 on failure.
    """
    stage = resolve_stages([name], registry)[0]
    async with open_resources(settings, store, client) as (store, client):
        result = await execute_stage(stage, store, client, settings)
    return result.exit_code


async def run_pipeline(
    settings: Settings,
    only: Sequence[str] | None = None,
    store: Store | None = None,
    client: RiksdagenClient | None = None,
    registry: Mapping[str, Stage] = STAGES,
) -> int:
    """Run stages in registry order, stopping at the first failure.

    Args:
        settings: Pipeline settings.
        only: Subset of stage names to run (default: all).
        store: Store override.
        client: Client override.
        registry: Stage registry.

    Returns:
        0 if every stage succeeded, otherwise the failing stage's exit code.
    """
    stages = resolve_stages(only, registry)
    pipeline_start = time.monotonic()

    async with open_resources(settings, store, client) as (store, client):
        for stage in stages:
            stage_start = time.monotonic()
            result = await execute_stage(stage, store, client, settings)
            logger.info(
                f"Stage {stage.name} took {time.monotonic() - stage_start:.1f}s"
            )
            if result.exit_code != 0:
                logger.error(f"Stage {stage.name} failed, aborting pipeline")
                return result.exit_code

    logger.info(
        f"Pipeline finished {len(stages)} stage(s) in "
        f"{time.monotonic() - pipeline_start:.1f}s"
    )
    return 0
