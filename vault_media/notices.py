"""
Transient user notices

The pipeline talks to users only through a Notifier. NoticeBoard is the
in-process implementation: every notice is logged and kept in a bounded
history that the HTTP API exposes.
"""
import asyncio
import itertools
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Deque, Dict, List, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

NOTICE_TIMEOUT = 10 * 1000
# None as timeout: stays until dismissed
INDEFINITE = None


@dataclass
class Notice:
    id: int
    message: str
    timeout_ms: Optional[int]
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = None
    dismissed: bool = False


@runtime_checkable
class Notifier(Protocol):
    def show(self, message: str, timeout_ms: Optional[int] = NOTICE_TIMEOUT) -> Notice: ...

    def update(self, notice: Notice, message: str) -> None: ...

    def dismiss(self, notice: Notice) -> None: ...

    def dismiss_after(self, notice: Notice, timeout_ms: int) -> None: ...


class NoticeBoard:
    """In-memory notices with timed dismissal on the running event loop"""

    def __init__(self, history_size: int = 200):
        self._ids = itertools.count(1)
        self._history: Deque[Notice] = deque(maxlen=history_size)
        self._timers: Dict[int, asyncio.TimerHandle] = {}

    def show(self, message: str, timeout_ms: Optional[int] = NOTICE_TIMEOUT) -> Notice:
        notice = Notice(id=next(self._ids), message=message, timeout_ms=timeout_ms)
        self._history.append(notice)
        logger.info(f"Notice: {message}")
        if timeout_ms is not None:
            self.dismiss_after(notice, timeout_ms)
        return notice

    def update(self, notice: Notice, message: str) -> None:
        notice.message = message
        notice.updated_at = datetime.now(timezone.utc)
        logger.debug(f"Notice {notice.id} updated: {message}")

    def dismiss(self, notice: Notice) -> None:
        timer = self._timers.pop(notice.id, None)
        if timer:
            timer.cancel()
        notice.dismissed = True

    def dismiss_after(self, notice: Notice, timeout_ms: int) -> None:
        """Schedule dismissal. Without a running loop the notice stays visible."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        previous = self._timers.pop(notice.id, None)
        if previous:
            previous.cancel()
        self._timers[notice.id] = loop.call_later(timeout_ms / 1000, self.dismiss, notice)

    def active(self) -> List[Notice]:
        return [n for n in self._history if not n.dismissed]

    def history(self) -> List[Notice]:
        return list(self._history)

    def clear(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._history.clear()
