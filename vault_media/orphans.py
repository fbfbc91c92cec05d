"""
Orphan detection: images no document links to

Detection only. Nothing here deletes files; acting on the list is left to
the user.
"""
import logging
from typing import Iterable, List, Optional

from .links import IMAGE_EXTS_LOWER, LinkGraph, LinkMatcher, get_link_full_path, is_local_image
from .storage import ShardedStore

logger = logging.getLogger(__name__)

REPORT_HEADER = "----below are orphaned images----"
REPORT_FOOTER = "----end----"


def format_orphan_report(orphans: Iterable[str]) -> str:
    return REPORT_HEADER + "\n" + "\n".join(orphans) + "\n" + REPORT_FOOTER


class OrphanDetector:
    """Cross-references vault images against a link graph"""

    def __init__(
        self,
        image_extensions: Iterable[str] = IMAGE_EXTS_LOWER,
        link_matcher: LinkMatcher = get_link_full_path,
        store: Optional[ShardedStore] = None,
    ):
        self.image_extensions = list(image_extensions)
        self.link_matcher = link_matcher
        self.store = store

    def is_referenced(self, path: str, link_graph: LinkGraph) -> bool:
        return self.link_matcher(link_graph, path) is not None

    def find_orphans(
        self,
        all_files: Iterable[str],
        link_graph: LinkGraph,
        store_only: bool = False,
    ) -> List[str]:
        """
        Return image paths that no document's resolved links reach.

        With store_only, only files inside the media store are considered.
        """
        images = [path for path in all_files if is_local_image(path, self.image_extensions)]
        if store_only and self.store is not None:
            images = [path for path in images if self.store.contains(path)]

        orphans = [path for path in images if not self.is_referenced(path, link_graph)]
        logger.info(f"Orphan scan: {len(images)} images, {len(orphans)} orphaned")
        return orphans
