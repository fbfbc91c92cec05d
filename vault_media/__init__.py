"""
Vault Media - content-addressed image store and link rewriting for Markdown vaults
"""
from .config import settings
from .addressing import ContentAddresser, MediaIdentity
from .storage import ShardedStore, DedupOutcome, StoreResult
from .rewriter import replace_async, find_references, RewriteResult
from .resolver import ReferenceResolver
from .processor import PageProcessor, CorpusBatcher
from .orphans import OrphanDetector
from .ingest import RealtimeIngestHandler
from .errors import VaultMediaError, UnrecognizedContent, HashCollision, ResolutionMiss

__version__ = "1.0.0"
__all__ = [
    "settings",
    "ContentAddresser", "MediaIdentity",
    "ShardedStore", "DedupOutcome", "StoreResult",
    "replace_async", "find_references", "RewriteResult",
    "ReferenceResolver",
    "PageProcessor", "CorpusBatcher",
    "OrphanDetector",
    "RealtimeIngestHandler",
    "VaultMediaError", "UnrecognizedContent", "HashCollision", "ResolutionMiss",
]
