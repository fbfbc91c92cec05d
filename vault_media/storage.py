"""
Vault Media Store

Content-addressed storage for images referenced by vault documents.

Storage layout:
  {root}/{hash[0]}/{hash[1]}/{hash[2]}/{hash}.{ext}

The three single-character shards only bound directory fan-out. Store
membership is discovered by existence checks, there is no manifest. Files
are never overwritten or deleted by the store.

Usage:
  store = ShardedStore(vault, "media")
  result = await store.store(image_bytes)
  if not result.is_duplicate: ...
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Dict, Optional

from .addressing import ContentAddresser, MediaIdentity, content_addresser
from .errors import HashCollision
from .vault import BinaryStore, join_path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DedupOutcome:
    """Where bytes belong and whether identical bytes are already there"""
    path: str           # Vault-relative canonical path
    is_duplicate: bool  # True if identical bytes already stored (no write)


@dataclass
class StoreResult:
    """Result of storing a file"""
    identity: MediaIdentity
    path: str
    size: int
    is_duplicate: bool
    stored_at: datetime


class ShardedStore:
    """
    Content-addressed media store inside a vault.

    Interface:
    - resolve_path(identity) -> canonical path (pure)
    - dedup(identity, bytes) -> DedupOutcome, raises HashCollision
    - write(path, bytes)
    - store(bytes) -> StoreResult (identify + dedup + write)
    """

    def __init__(
        self,
        files: BinaryStore,
        root: str = "media",
        shard_depth: int = 3,
        shard_width: int = 1,
        addresser: Optional[ContentAddresser] = None,
    ):
        self.files = files
        self.root = root.strip("/") or "."
        self.shard_depth = shard_depth
        self.shard_width = shard_width
        self.addresser = addresser or content_addresser
        # Canonical paths with a dedup/write in flight
        self._claims: Dict[str, asyncio.Lock] = {}
        self._claim_counts: Dict[str, int] = {}
        logger.info(f"Media store initialized: {self.root}")

    def _get_shard_path(self, file_hash: str) -> str:
        """Get sharded directory path for a hash"""
        parts = []
        for i in range(self.shard_depth):
            start = i * self.shard_width
            end = start + self.shard_width
            parts.append(file_hash[start:end])
        return join_path(self.root, "/".join(parts))

    def resolve_path(self, identity: MediaIdentity) -> str:
        """Get canonical path for an identity (doesn't check existence)"""
        return join_path(self._get_shard_path(identity.hash), identity.file_name)

    def contains(self, path: str) -> bool:
        """True if a vault path lies inside the store root"""
        if self.root == ".":
            return True
        return PurePosixPath(path).is_relative_to(self.root)

    async def exists(self, identity: MediaIdentity) -> bool:
        return await self.files.exists(self.resolve_path(identity))

    async def dedup(self, identity: MediaIdentity, data: bytes, source: str = "") -> DedupOutcome:
        """
        Check whether bytes are already stored at their canonical path.

        Raises:
            HashCollision: a different byte sequence sits at the same path
        """
        path = self.resolve_path(identity)

        if not await self.files.exists(path):
            return DedupOutcome(path=path, is_duplicate=False)

        existing = await self.files.read_bytes(path)
        if existing == data:
            logger.debug(f"Deduplicated: {identity.hash[:16]}...")
            return DedupOutcome(path=path, is_duplicate=True)

        logger.warning(f"SHA256 collision happened for file: {path} (incoming: {source or 'unknown'})")
        raise HashCollision(path, source)

    async def write(self, path: str, data: bytes) -> None:
        """Create parent folders as needed, then write the bytes once"""
        parent = str(PurePosixPath(path).parent)
        await self.files.create_folder(parent)
        await self.files.write_bytes(path, data)
        logger.info(f"Stored: {path} ({len(data):,} bytes)")

    @asynccontextmanager
    async def claim(self, path: str):
        """Serialize dedup-then-write for one canonical path within this process"""
        lock = self._claims.get(path)
        if lock is None:
            lock = self._claims[path] = asyncio.Lock()
        self._claim_counts[path] = self._claim_counts.get(path, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._claim_counts[path] -= 1
            if not self._claim_counts[path]:
                del self._claim_counts[path]
                del self._claims[path]

    async def store(self, data: bytes, source: str = "") -> StoreResult:
        """
        Store bytes with content-based addressing.

        Args:
            data: Raw file bytes
            source: Where the bytes came from, for log and error messages

        Returns:
            StoreResult with identity, path, size and dedup status

        Raises:
            UnrecognizedContent: extension could not be sniffed
            HashCollision: different bytes already stored under the same hash
        """
        identity = self.addresser.identify(data)
        path = self.resolve_path(identity)

        async with self.claim(path):
            outcome = await self.dedup(identity, data, source)
            if not outcome.is_duplicate:
                await self.write(outcome.path, data)

        return StoreResult(
            identity=identity,
            path=outcome.path,
            size=len(data),
            is_duplicate=outcome.is_duplicate,
            stored_at=datetime.now(timezone.utc)
        )
