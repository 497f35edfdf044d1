"""Riksdagen open-data ingestion: client, stage services and aggregation."""

from pipeline.riksdagen.aggregator import VoteAggregator
from pipeline.riksdagen.client import RiksdagenClient, unwrap_list
from pipeline.riksdagen.document_ingestion import DocumentIngestionService
from pipeline.riksdagen.exceptions import FetchFailed, MalformedRecord, RiksdagenError
from pipeline.riksdagen.linking import DocumentLinkingService
from pipeline.riksdagen.member_ingestion import MemberIngestionService
from pipeline.riksdagen.motion_ingestion import MotionIngestionService
from pipeline.riksdagen.proposal_ingestion import ProposalIngestionService
from pipeline.riksdagen.rate_limit import RateLimiter
from pipeline.riksdagen.stage import StageResult
from pipeline.riksdagen.vote_ingestion import VoteIngestionService

__all__ = [
    "DocumentIngestionService",
    "DocumentLinkingService",
    "FetchFailed",
    "MalformedRecord",
    "MemberIngestionService",
    "MotionIngestionService",
    "ProposalIngestionService",
    "RateLimiter",
    "RiksdagenClient",
    "RiksdagenError",
    "StageResult",
    "VoteAggregator",
    "VoteIngestionService",
    "unwrap_list",
]
