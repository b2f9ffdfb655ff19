"""
Post-commit notification dispatch.

Services call Notifier.dispatch() after their write has committed. Each
message is delivered on its own asyncio task, so the caller's response never
waits on Slack. Failures are logged and dropped; with notify_max_retries > 0
a failed message is retried with linear backoff.
"""

import asyncio
import logging
from typing import Iterable, List, Optional, Set

from .errors import DeliveryError
from .models import NotificationMessage
from .settings import settings


logger = logging.getLogger(__name__)


class Notifier:
    """Fire-and-forget delivery of NotificationMessages through a sink."""

    def __init__(self, sink, max_retries: int = 0, backoff_seconds: float = 0.5):
        self.sink = sink
        self.max_retries = max(0, max_retries)
        self.backoff_seconds = backoff_seconds
        self._pending: Set[asyncio.Task] = set()
        self.delivered = 0
        self.failed = 0

    def dispatch(self, messages: Iterable[NotificationMessage]) -> List[asyncio.Task]:
        """Schedule delivery of each message and return immediately."""
        tasks = []
        for message in messages:
            task = asyncio.create_task(self._deliver(message))
            # Keep a strong reference until the task finishes
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            tasks.append(task)
        return tasks

    async def _deliver(self, message: NotificationMessage) -> bool:
        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                await self.sink.send_message(message)
                self.delivered += 1
                return True
            except DeliveryError as e:
                logger.warning(
                    "[notify] Delivery failed audience=%s attempt=%d/%d channel=%s error=%s",
                    message.audience.value, attempt, attempts, e.channel, e,
                )
                if attempt < attempts:
                    await asyncio.sleep(self.backoff_seconds * attempt)
            except Exception:
                logger.exception(
                    "[notify] Delivery failed with unexpected error audience=%s attempt=%d/%d",
                    message.audience.value, attempt, attempts,
                )
                break
        self.failed += 1
        return False

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight deliveries (used on shutdown and in tests)."""
        if not self._pending:
            return
        done, not_done = await asyncio.wait(set(self._pending), timeout=timeout)
        if not_done:
            logger.warning("[notify] %d deliveries still pending after drain timeout", len(not_done))


# --- Global Instance ---

_notifier: Optional[Notifier] = None


def init_notifier(sink) -> Notifier:
    """Initialize the global notifier around `sink`."""
    global _notifier
    _notifier = Notifier(
        sink,
        max_retries=settings.notify_max_retries,
        backoff_seconds=settings.notify_retry_backoff_seconds,
    )
    return _notifier


def get_notifier() -> Notifier:
    """Get the global notifier, building a Slack-backed one on first use."""
    global _notifier
    if _notifier is None:
        from .slack import build_sink
        init_notifier(build_sink())
    return _notifier


def set_notifier(notifier: Optional[Notifier]) -> None:
    global _notifier
    _notifier = notifier
