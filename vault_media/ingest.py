"""
Real-time ingest of pasted images

When the editor saves a pasted image ("Pasted image 20240101123456.png"),
the file is moved into the media store right away and the link on the
cursor line of the active document is rewritten to the new name.

Every event ends in exactly one IngestOutcome. Failures after the filter
stage are always reported through the notifier.
"""
import asyncio
import logging
import time
from contextlib import contextmanager
from pathlib import PurePosixPath
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Protocol, runtime_checkable

from .errors import HashCollision, UnrecognizedContent
from .links import IMAGE_EXTS_LOWER, generate_markdown_link, is_local_image
from .models import CreationEvent, IngestOutcome, IngestResult
from .notices import Notifier
from .storage import ShardedStore
from .vault import BinaryStore, DocumentStore

logger = logging.getLogger(__name__)

OB_PASTED_IMAGE_PREFIX = "Pasted image "
FRESHNESS_WINDOW_MS = 1000

EventCallback = Callable[[CreationEvent], Awaitable[IngestResult]]


@runtime_checkable
class Workspace(Protocol):
    """The editor state the handler is allowed to touch"""

    def active_document(self) -> Optional[str]: ...

    def cursor_line(self) -> int: ...

    async def get_line(self, line: int) -> str: ...

    async def set_line(self, line: int, text: str) -> None: ...


class DocumentWorkspace:
    """
    Workspace whose open document lives in a DocumentStore.

    Lines are patched by rewriting the document; everything except the
    targeted line is written back unchanged.
    """

    def __init__(self, documents: DocumentStore, active_document: Optional[str] = None, cursor_line: int = 0):
        self.documents = documents
        self._active_document = active_document
        self._cursor_line = cursor_line

    def set_active(self, document: Optional[str], cursor_line: int = 0) -> None:
        self._active_document = document
        self._cursor_line = cursor_line

    def active_document(self) -> Optional[str]:
        return self._active_document

    def cursor_line(self) -> int:
        return self._cursor_line

    async def get_line(self, line: int) -> str:
        if self._active_document is None:
            raise LookupError("No active document")
        lines = (await self.documents.read_text(self._active_document)).split("\n")
        return lines[line]

    async def set_line(self, line: int, text: str) -> None:
        if self._active_document is None:
            raise LookupError("No active document")
        lines = (await self.documents.read_text(self._active_document)).split("\n")
        lines[line] = text
        await self.documents.write_text(self._active_document, "\n".join(lines))


class CreationEventBus:
    """Fan-out of file-creation events to subscribed handlers"""

    def __init__(self):
        self._subscribers: Dict[int, EventCallback] = {}
        self._next_token = 0

    def subscribe(self, callback: EventCallback) -> int:
        self._next_token += 1
        self._subscribers[self._next_token] = callback
        return self._next_token

    def unsubscribe(self, token: int) -> None:
        self._subscribers.pop(token, None)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def publish(self, event: CreationEvent) -> List[IngestResult]:
        """Deliver an event to every subscriber; a failing subscriber is logged and skipped"""
        callbacks = list(self._subscribers.values())
        outcomes = await asyncio.gather(
            *(callback(event) for callback in callbacks),
            return_exceptions=True,
        )

        results = []
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.error(f"Creation handler failed for {event.path}: {type(outcome).__name__}: {outcome}")
                continue
            results.append(outcome)
        return results


def now_ms() -> int:
    return int(time.time() * 1000)


class RealtimeIngestHandler:
    """Moves freshly pasted images into the media store"""

    def __init__(
        self,
        store: ShardedStore,
        files: BinaryStore,
        workspace: Workspace,
        notifier: Notifier,
        enabled: bool = True,
        pasted_image_prefix: str = OB_PASTED_IMAGE_PREFIX,
        freshness_window_ms: int = FRESHNESS_WINDOW_MS,
        image_extensions: Iterable[str] = IMAGE_EXTS_LOWER,
        use_wikilinks: bool = True,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.files = files
        self.workspace = workspace
        self.notifier = notifier
        self.enabled = enabled
        self.pasted_image_prefix = pasted_image_prefix
        self.freshness_window_ms = freshness_window_ms
        self.image_extensions = list(image_extensions)
        self.use_wikilinks = use_wikilinks
        self.clock = clock
        self._bus: Optional[CreationEventBus] = None
        self._token: Optional[int] = None

    # Subscription lifecycle

    def start(self, bus: CreationEventBus) -> None:
        if self._bus is not None:
            raise RuntimeError("Ingest handler already started")
        self._bus = bus
        self._token = bus.subscribe(self.handle)
        logger.info("Real-time ingest started")

    def stop(self) -> None:
        if self._bus is None:
            return
        self._bus.unsubscribe(self._token)
        self._bus = None
        self._token = None
        logger.info("Real-time ingest stopped")

    @contextmanager
    def subscribed(self, bus: CreationEventBus):
        self.start(bus)
        try:
            yield self
        finally:
            self.stop()

    # Event handling

    def _result(self, outcome: IngestOutcome, event: CreationEvent,
                new_path: Optional[str] = None, message: Optional[str] = None) -> IngestResult:
        return IngestResult(outcome=outcome, old_path=event.path, new_path=new_path, message=message)

    def _fail(self, outcome: IngestOutcome, event: CreationEvent, message: str,
              new_path: Optional[str] = None) -> IngestResult:
        logger.warning(message)
        self.notifier.show(message)
        return self._result(outcome, event, new_path, message)

    def accepts(self, event: CreationEvent) -> Optional[IngestOutcome]:
        """Return the outcome for events that are ignored, None for events to handle"""
        if not self.enabled:
            return IngestOutcome.DISABLED
        if not event.is_file:
            return IngestOutcome.NOT_A_FILE
        if event.created_at_ms is None or self.clock() - event.created_at_ms > self.freshness_window_ms:
            return IngestOutcome.STALE
        if not is_local_image(event.name, self.image_extensions) or not event.name.startswith(self.pasted_image_prefix):
            return IngestOutcome.NOT_PASTED_IMAGE
        return None

    async def handle(self, event: CreationEvent) -> IngestResult:
        ignored = self.accepts(event)
        if ignored is not None:
            logger.debug(f"Ignoring creation of {event.path}: {ignored.value}")
            return self._result(ignored, event)

        old_path = event.path
        try:
            data = await self.files.read_bytes(old_path)
        except OSError as e:
            return self._fail(IngestOutcome.READ_FAILED, event, f"Failed to read {old_path}: {e}")

        try:
            identity = self.store.addresser.identify(data)
        except UnrecognizedContent as e:
            return self._fail(IngestOutcome.UNRECOGNIZED, event, f"Cannot store {old_path}: {e}")

        new_path = self.store.resolve_path(identity)
        old_link = generate_markdown_link(old_path, self.use_wikilinks)

        async with self.store.claim(new_path):
            try:
                outcome = await self.store.dedup(identity, data, source=old_path)
            except HashCollision:
                return self._fail(
                    IngestOutcome.COLLISION, event,
                    f"IMAGE hash collision! FROM |{old_path}| TO |{new_path}|, please edit manually",
                    new_path,
                )
            except OSError as e:
                return self._fail(IngestOutcome.READ_FAILED, event, f"Failed to check {new_path}: {e}", new_path)

            if outcome.is_duplicate:
                return self._fail(
                    IngestOutcome.DUPLICATE, event,
                    f"IMAGE Duplicated! FROM |{old_path}| TO |{new_path}|, please edit manually",
                    new_path,
                )

            try:
                await self.files.create_folder(str(PurePosixPath(new_path).parent))
                await self.files.rename(old_path, new_path)
            except OSError as e:
                return self._fail(IngestOutcome.MOVE_FAILED, event,
                                  f"Failed to move {old_path} to {new_path}: {e}", new_path)

        new_link = generate_markdown_link(new_path, self.use_wikilinks)

        active = self.workspace.active_document()
        if active is None or event.active_document is None or active != event.active_document:
            return self._fail(IngestOutcome.NO_ACTIVE_EDITOR, event,
                              f"Failed to rename {new_path}: no active editor", new_path)

        cursor = self.workspace.cursor_line()
        try:
            line = await self.workspace.get_line(cursor)
            if old_link in line:
                await self.workspace.set_line(cursor, line.replace(old_link, new_link))
            else:
                logger.warning(f"Link {old_link} not found on line {cursor} of {active}")
        except (LookupError, OSError) as e:
            return self._fail(IngestOutcome.EDIT_FAILED, event,
                              f"Renamed {old_path} to {new_path}, but updating {active} failed: {e}", new_path)

        message = f"Renamed {old_path} to {new_path}"
        logger.info(message)
        self.notifier.show(message)
        return self._result(IngestOutcome.RENAMED, event, new_path, message)
