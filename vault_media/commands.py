"""
User-facing commands over one vault

Wires the collaborators together from Settings and exposes the three
commands: process the active document, process all documents, list orphan
images. The HTTP API and the CLI are thin layers over this module.
"""
import logging
from typing import List, Optional

import httpx

from .config import Settings
from .ingest import CreationEventBus, DocumentWorkspace, RealtimeIngestHandler
from .links import build_link_graph
from .models import BatchReport, CreationEvent, IngestResult, OrphanReport, PageResult
from .notices import NoticeBoard
from .orphans import OrphanDetector, format_orphan_report
from .processor import CorpusBatcher, PageProcessor
from .resolver import ACCEPT_HEADER, ReferenceResolver
from .storage import ShardedStore
from .vault import LocalVault

logger = logging.getLogger(__name__)


class VaultMediaService:
    """All pipeline components for a single vault"""

    def __init__(
        self,
        settings: Settings,
        notifier: Optional[NoticeBoard] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings
        self.vault = LocalVault(settings.vault_path)
        self.notifier = notifier or NoticeBoard()
        self.store = ShardedStore(self.vault, settings.media_root_directory)
        self.workspace = DocumentWorkspace(self.vault)
        self.events = CreationEventBus()
        self.ingest = RealtimeIngestHandler(
            store=self.store,
            files=self.vault,
            workspace=self.workspace,
            notifier=self.notifier,
            enabled=settings.realtime_update,
            pasted_image_prefix=settings.pasted_image_prefix,
            freshness_window_ms=settings.freshness_window_ms,
            image_extensions=settings.image_extensions,
            use_wikilinks=settings.use_wikilinks,
        )
        self.orphan_detector = OrphanDetector(settings.image_extensions, store=self.store)
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self):
        await self.startup()
        return self

    async def __aexit__(self, *exc):
        await self.shutdown()

    async def startup(self):
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"User-Agent": self.settings.user_agent, "Accept": ACCEPT_HEADER}
            )
            self._owns_client = True
        self.ingest.start(self.events)

    async def shutdown(self):
        self.ingest.stop()
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Service not started")
        return self._client

    async def _page_processor(self) -> PageProcessor:
        # Link graph is a snapshot taken per command
        link_graph = await build_link_graph(self.vault, self.vault)
        resolver = ReferenceResolver(
            store=self.store,
            files=self.vault,
            link_graph=link_graph,
            client=self.client,
            notifier=self.notifier,
            image_extensions=self.settings.image_extensions,
            timeout=self.settings.download_timeout,
            max_download_size=self.settings.max_download_size,
        )
        return PageProcessor(self.vault, resolver, self.notifier)

    async def process_active_document(self, path: Optional[str] = None, silent: bool = False) -> PageResult:
        """Process the given document, or the workspace's active one"""
        path = path or self.workspace.active_document()
        if not path:
            raise LookupError("No active document")
        processor = await self._page_processor()
        return await processor.process_document(path, silent=silent)

    async def process_all_documents(
        self,
        included_file_regex: Optional[str] = None,
        excluded_folders: Optional[List[str]] = None,
    ) -> BatchReport:
        processor = await self._page_processor()
        batcher = CorpusBatcher(processor, self.notifier, self.settings.notice_timeout_ms)
        return await batcher.process_corpus(
            await self.vault.list_documents(),
            included_file_regex if included_file_regex is not None else self.settings.included_file_regex,
            excluded_folders if excluded_folders is not None else self.settings.excluded_folders,
        )

    async def list_orphan_images(self, store_only: bool = False) -> OrphanReport:
        link_graph = await build_link_graph(self.vault, self.vault)
        orphans = self.orphan_detector.find_orphans(await self.vault.list_files(), link_graph, store_only)
        report = format_orphan_report(orphans)
        logger.info(report)
        self.notifier.show(f"Found {len(orphans)} orphaned images")
        return OrphanReport(orphans=orphans, count=len(orphans), report=report)

    async def file_created(self, event: CreationEvent) -> List[IngestResult]:
        """Route a creation event to every subscribed handler"""
        if event.created_at_ms is None:
            try:
                file_stat = await self.vault.stat_file(event.path)
            except OSError as e:
                logger.warning(f"Cannot stat created file {event.path}: {e}")
            else:
                event = event.model_copy(update={
                    "created_at_ms": file_stat.ctime_ms,
                    "is_file": file_stat.is_file,
                })
        return await self.events.publish(event)
