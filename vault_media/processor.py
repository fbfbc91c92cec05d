"""
Page and corpus processing

PageProcessor rewrites the image references of one document. CorpusBatcher
drives it over every matching document, one at a time, so a single progress
counter stays meaningful. A failing document never stops the batch.
"""
import logging
import re
import time
from typing import Iterable, List, Optional, Pattern, Sequence

from .models import BatchReport, PageResult
from .notices import INDEFINITE, NOTICE_TIMEOUT, Notifier
from .resolver import ReferenceResolver
from .rewriter import EXTERNAL_MEDIA_LINK_PATTERN, replace_async
from .vault import DocumentStore

logger = logging.getLogger(__name__)


class PageProcessor:
    """Rewrites image references in a single document"""

    def __init__(
        self,
        documents: DocumentStore,
        resolver: ReferenceResolver,
        notifier: Optional[Notifier] = None,
        pattern: Pattern = EXTERNAL_MEDIA_LINK_PATTERN,
    ):
        self.documents = documents
        self.resolver = resolver
        self.notifier = notifier
        self.pattern = pattern

    async def process_document(self, path: str, silent: bool = False) -> PageResult:
        """
        Process one document and persist it if anything changed.

        Read and write failures propagate to the caller.
        """
        content = await self.documents.read_text(path)
        result = await replace_async(content, self.pattern, self.resolver.resolve)

        if result.changed:
            await self.documents.write_text(path, result.text)
            logger.info(f"Page processed and changed: {path}")
            if not silent and self.notifier:
                self.notifier.show(f'Page "{path}" has been processed, and changed.')
        else:
            logger.debug(f"Page processed, unchanged: {path}")
            if not silent and self.notifier:
                self.notifier.show(f'Page "{path}" has been processed, but nothing was changed.')

        return PageResult(path=path, changed=result.changed)


def filter_documents(
    paths: Iterable[str],
    include_pattern: str = ".*",
    excluded_folders: Sequence[str] = (),
) -> List[str]:
    """Keep documents matching include_pattern (case-insensitive) outside excluded folders"""
    include = re.compile(include_pattern, re.IGNORECASE)
    excluded = [folder for folder in excluded_folders if folder]
    return [
        path for path in paths
        if include.search(path) and not any(path.startswith(folder) for folder in excluded)
    ]


class CorpusBatcher:
    """Runs PageProcessor over a whole corpus sequentially"""

    def __init__(
        self,
        processor: PageProcessor,
        notifier: Optional[Notifier] = None,
        notice_timeout_ms: int = NOTICE_TIMEOUT,
    ):
        self.processor = processor
        self.notifier = notifier
        self.notice_timeout_ms = notice_timeout_ms

    async def process_corpus(
        self,
        all_documents: Iterable[str],
        include_pattern: str = ".*",
        excluded_folders: Sequence[str] = (),
    ) -> BatchReport:
        """
        Process every matching document.

        Per-document failures are logged and counted; the run always
        completes. There is no cancellation of a run in progress.
        """
        matched = filter_documents(all_documents, include_pattern, excluded_folders)
        total = len(matched)
        report = BatchReport(total=total)
        start_time = time.perf_counter()

        notice = None
        if self.notifier:
            notice = self.notifier.show(f"Start processing. Total {total} pages.", INDEFINITE)

        for index, path in enumerate(matched, start=1):
            if notice:
                self.notifier.update(notice, f'Processing "{path}" page {index} of {total}')
            try:
                result = await self.processor.process_document(path, silent=True)
            except Exception as e:
                logger.error(f"Processing failed for {path}: {e}")
                report.failed += 1
                report.failed_paths.append(path)
                continue

            if result.changed:
                report.changed += 1
            else:
                report.unchanged += 1

        report.processing_time_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            f"Batch finished: {total} pages, {report.changed} changed, "
            f"{report.unchanged} unchanged, {report.failed} failed "
            f"({report.processing_time_ms:.0f} ms)"
        )

        if notice:
            self.notifier.update(notice, f"{total} pages were processed.")
            self.notifier.dismiss_after(notice, self.notice_timeout_ms)

        return report
