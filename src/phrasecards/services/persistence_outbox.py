"""Single-slot outbox that makes progress snapshots durable in the background."""
import asyncio
import logging
from typing import Callable, Mapping, Optional, Tuple

from phrasecards import monitoring
from phrasecards.config import PersistenceSettings, settings
from phrasecards.errors import ErrorResult, StoreError
from phrasecards.models.progress_models import Language, LanguageProgress

logger = logging.getLogger(__name__)

Progress = Mapping[Language, LanguageProgress]
ProgressWriter = Callable[[str, Progress], ErrorResult]


class PersistenceOutbox:
    """Holds the latest unsaved progress snapshot and writes it with retries.

    ``submit`` never blocks: it replaces whatever snapshot is waiting, so rapid
    successive folds collapse into one write of the newest state. Snapshots
    carry the full progress, so writing only the newest one loses nothing.
    """

    def __init__(self, writer: ProgressWriter, retry: Optional[PersistenceSettings] = None):
        """Initialize the outbox with the function that performs one write."""
        self.writer = writer
        self.retry = retry or settings.persistence
        self.running = False
        self.last_error: Optional[StoreError] = None
        self._slot: Optional[Tuple[str, Progress]] = None
        self._writing = False
        self._task: Optional[asyncio.Task] = None
        self._wakeup = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def sync_pending(self) -> bool:
        """True while a snapshot has not been confirmed durable."""
        return self._slot is not None or self._writing

    def submit(self, user_id: str, progress: Progress) -> None:
        """Queue ``progress`` as the next snapshot to write for ``user_id``."""
        if self._slot is not None:
            logger.debug("Replacing pending snapshot for user %s", self._slot[0])
        self._slot = (user_id, progress)
        self._idle.clear()
        self._wakeup.set()
        monitoring.outbox_pending.set(1)

    async def start(self) -> None:
        """Start the drain task."""
        if self.running:
            return
        self.running = True
        self._task = asyncio.create_task(self._run())
        logger.info("Persistence outbox started")

    async def stop(self, flush: bool = True) -> None:
        """Stop the drain task, writing any pending snapshot first."""
        if not self.running:
            return
        if flush:
            await self.flush()
        self.running = False
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        logger.info("Persistence outbox stopped")

    async def flush(self) -> None:
        """Wait until the pending snapshot has been written or given up on."""
        if self.running:
            await self._idle.wait()
        else:
            await self._drain()

    async def _run(self) -> None:
        while self.running:
            await self._wakeup.wait()
            self._wakeup.clear()
            await self._drain()

    async def _drain(self) -> None:
        try:
            while self._slot is not None:
                user_id, progress = self._slot
                self._slot = None
                self._writing = True
                try:
                    await self._write_with_retry(user_id, progress)
                finally:
                    self._writing = False
        finally:
            # Waiters in flush() must be released even if the drain is cancelled
            self._idle.set()
            monitoring.outbox_pending.set(0 if self._slot is None else 1)

    def _write_once(self, user_id: str, progress: Progress) -> ErrorResult:
        try:
            return self.writer(user_id, progress)
        except StoreError as e:
            return ErrorResult(error=e)
        except Exception as e:
            logger.exception("Unexpected error writing progress for user %s", user_id)
            error = StoreError(f"Unexpected error writing progress for {user_id}: {e}")
            error.__cause__ = e
            return ErrorResult(error=error)

    async def _write_with_retry(self, user_id: str, progress: Progress) -> bool:
        attempts = self.retry.max_attempts
        for attempt in range(1, attempts + 1):
            result = self._write_once(user_id, progress)
            if result.ok:
                if self.last_error is not None:
                    logger.info("Progress for user %s is durable again", user_id)
                self.last_error = result.error
                return True

            self.last_error = result.error
            logger.warning(
                "Progress write for user %s failed (attempt %d/%d): %s",
                user_id,
                attempt,
                attempts,
                result.error,
            )
            if self._slot is not None or attempt == attempts:
                break
            delay = min(self.retry.base_delay * 2 ** (attempt - 1), self.retry.max_delay)
            monitoring.outbox_retries.inc()
            await asyncio.sleep(delay)
            if self._slot is not None:
                break

        if self._slot is not None:
            logger.info("Snapshot for user %s superseded by a newer one", user_id)
        else:
            logger.error("Giving up on progress write for user %s: %s", user_id, self.last_error)
        return False
