"""
Reference resolution: turn one image reference into a canonical store link
"""
import logging
from typing import Iterable, Optional
from urllib.parse import unquote

import httpx

from .errors import HashCollision, IO_ERRORS, ResolutionMiss, UnrecognizedContent
from .links import IMAGE_EXTS_LOWER, LinkGraph, LinkMatcher, get_link_full_path, is_local_image, is_url
from .notices import Notifier
from .storage import ShardedStore
from .vault import BinaryStore

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64) vault-media/1.0"
ACCEPT_HEADER = "image/avif,image/webp,image/apng,image/*,*/*;q=0.8"


class DownloadTooLarge(httpx.HTTPError):
    """Remote file exceeded the configured size limit"""


async def download_image(
    client: httpx.AsyncClient,
    url: str,
    timeout: float = DEFAULT_TIMEOUT,
    max_size: Optional[int] = None,
) -> bytes:
    """
    Download image bytes from URL.

    The body is streamed; a declared Content-Length over max_size fails
    before reading, and an undeclared body fails as soon as it passes it.
    """
    chunks = []
    received = 0
    async with client.stream("GET", url, timeout=timeout, follow_redirects=True) as response:
        response.raise_for_status()

        declared = response.headers.get("Content-Length", "")
        if max_size is not None and declared.isdigit() and int(declared) > max_size:
            raise DownloadTooLarge(f"Download too large: {int(declared):,} bytes declared by {url}")

        async for chunk in response.aiter_bytes():
            received += len(chunk)
            if max_size is not None and received > max_size:
                raise DownloadTooLarge(f"Download too large: over {max_size:,} bytes from {url}")
            chunks.append(chunk)

    return b"".join(chunks)


def format_reference(anchor: str, path: str) -> str:
    return f"![{anchor}]({path})"


class ReferenceResolver:
    """
    Resolves a matched image reference to a link into the media store.

    Classification of the link:
    - data: URI → unchanged
    - absolute URL → downloaded
    - path with an image extension → read from the vault
    - anything else → unchanged
    """

    def __init__(
        self,
        store: ShardedStore,
        files: BinaryStore,
        link_graph: LinkGraph,
        client: Optional[httpx.AsyncClient] = None,
        notifier: Optional[Notifier] = None,
        image_extensions: Iterable[str] = IMAGE_EXTS_LOWER,
        link_matcher: LinkMatcher = get_link_full_path,
        timeout: float = DEFAULT_TIMEOUT,
        max_download_size: Optional[int] = None,
        user_agent: str = USER_AGENT,
    ):
        self.store = store
        self.files = files
        self.link_graph = link_graph
        self.notifier = notifier
        self.image_extensions = list(image_extensions)
        self.link_matcher = link_matcher
        self.timeout = timeout
        self.max_download_size = max_download_size
        self.client = client or httpx.AsyncClient(
            headers={"User-Agent": user_agent, "Accept": ACCEPT_HEADER}
        )
        self._owns_client = client is None

    async def aclose(self):
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    def is_remote(self, link: str) -> bool:
        return is_url(link)

    def is_local(self, link: str) -> bool:
        return is_local_image(link, self.image_extensions)

    def resolve_local_path(self, link: str) -> str:
        """
        Map a document link to a vault path through the link graph.

        Raises:
            ResolutionMiss: the link graph has no matching target
        """
        full_path = self.link_matcher(self.link_graph, unquote(link))
        if not full_path:
            raise ResolutionMiss(link)
        return full_path

    async def fetch(self, link: str) -> bytes:
        if self.is_remote(link):
            return await download_image(self.client, link, self.timeout, self.max_download_size)
        return await self.files.read_bytes(self.resolve_local_path(link))

    async def resolve(self, match: str, anchor: str, link: str) -> str:
        """
        Return the replacement text for one reference.

        Never raises for a single broken reference: failures are logged and
        the original text is returned.
        """
        link = link.strip()
        if link.lower().startswith("data:"):
            return match
        if not self.is_remote(link) and not self.is_local(link):
            return match

        try:
            data = await self.fetch(link)
            result = await self.store.store(data, source=link)
        except ResolutionMiss:
            logger.debug(f"Link not found in vault, left unchanged: {link}")
            return match
        except UnrecognizedContent as e:
            logger.warning(f"Image processing failed for link: {link} ({e})")
            return match
        except HashCollision as e:
            logger.warning(f"Image processing failed for link: {link} ({e})")
            if self.notifier:
                self.notifier.show(f"SHA256 collision! FROM |{link}| TO |{e.path}|, please resolve manually")
            return match
        except IO_ERRORS as e:
            logger.warning(f"Image processing failed for link: {link} ({type(e).__name__}: {e})")
            return match

        new_match = format_reference(anchor, result.path)
        if new_match == match:
            return match

        logger.info(f"Changed link: FROM |{link}| TO |{result.path}|")
        return new_match
