"""
Offline Mode & Sync Service.
Lets a caregiver keep recording doses and stock changes without a connection;
queued writes are replayed in order, once, when the device is back online.
"""
import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from ..core.config import settings
from ..core.timeutil import utcnow
from .mutations import MutationDecodeError, QueuedMutation, decode_mutation, encode_payload
from .queue_store import QueueStorageError, QueueStore
from .remote_client import PermanentRemoteError

logger = logging.getLogger(__name__)


class QueueState(str, Enum):
    IDLE = "idle"
    DRAINING = "draining"


class NotificationLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class DropReason(str, Enum):
    PERMANENT = "permanent"        # rejected by the server or not replayable
    RETRY_LIMIT = "retry_limit"    # transient failures used up every attempt


@dataclass
class SyncProgress:
    current: int = 0
    total: int = 0


@dataclass
class DroppedMutation:
    id: str
    type: str
    reason: DropReason
    retries: int
    error: Optional[str] = None


@dataclass
class SyncReport:
    synced: int = 0
    failed: int = 0
    total: int = 0
    dropped: List[DroppedMutation] = field(default_factory=list)

    @property
    def handled(self) -> int:
        return self.synced + self.failed + len(self.dropped)


_LOG_LEVELS = {
    NotificationLevel.INFO: logging.INFO,
    NotificationLevel.SUCCESS: logging.INFO,
    NotificationLevel.WARNING: logging.WARNING,
    NotificationLevel.ERROR: logging.ERROR,
}


def log_notifier(level: NotificationLevel, message: str) -> None:
    logger.log(_LOG_LEVELS[level], "[%s] %s", level.value, message)


def _plural(count: int) -> str:
    return "change" if count == 1 else "changes"


class OfflineSyncService:
    """
    Durable FIFO of pending writes for one household on one device.

    Items are replayed strictly one at a time. A transient failure keeps the
    item for a later pass with a growing delay; a permanent failure, or an
    item that has used up its retries, is dropped and reported. Only one
    drain runs per instance, and a lease in the store keeps other instances
    (another window, another process) from draining the same household.
    """

    def __init__(
        self,
        store: QueueStore,
        remote,
        household_id: str,
        user_id: Optional[str] = None,
        online: bool = True,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        lease_seconds: Optional[int] = None,
        notifier: Callable[[NotificationLevel, str], None] = log_notifier,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        holder_id: Optional[str] = None,
    ):
        self.store = store
        self.remote = remote
        self.household_id = household_id
        self.user_id = user_id
        self.max_retries = max_retries if max_retries is not None else settings.OFFLINE_QUEUE_MAX_RETRIES
        self.retry_delay = retry_delay if retry_delay is not None else settings.OFFLINE_QUEUE_RETRY_DELAY_SECONDS
        self.lease_seconds = lease_seconds if lease_seconds is not None else settings.OFFLINE_QUEUE_LEASE_SECONDS
        self.holder_id = holder_id or str(uuid.uuid4())
        self._notifier = notifier
        self._sleep = sleep
        self._online = online
        self._state = QueueState.IDLE
        self._drain_task: Optional[asyncio.Task] = None
        self.progress = SyncProgress()
        self.queue_size = self.store.count(household_id)

    @property
    def state(self) -> QueueState:
        return self._state

    @property
    def is_online(self) -> bool:
        return self._online

    def _notify(self, level: NotificationLevel, message: str) -> None:
        try:
            self._notifier(level, message)
        except Exception as exc:
            logger.warning("Notifier failed for %r: %s", message, exc)

    async def _in_thread(self, func, *args):
        # Store calls block on disk I/O; keep them off the event loop
        return await asyncio.to_thread(func, *args)

    async def _refresh_size(self) -> None:
        self.queue_size = await self._in_thread(self.store.count, self.household_id)

    @asynccontextmanager
    async def _draining(self):
        self._state = QueueState.DRAINING
        try:
            yield
        finally:
            self._state = QueueState.IDLE
            self.progress = SyncProgress()

    # ── Enqueue ──────────────────────────────────────────────────────────────

    async def enqueue(self, mutation, idempotency_key: Optional[str] = None) -> str:
        """
        Persist a mutation and return its id. The id is the idempotency key:
        queuing the same key twice keeps the first entry.
        """
        if mutation.household_id != self.household_id:
            raise ValueError(
                f"Mutation for household {mutation.household_id} queued on {self.household_id}"
            )
        natural_key = mutation.natural_key
        if idempotency_key and natural_key and idempotency_key != natural_key:
            raise ValueError("idempotency_key does not match the request's idempotency key")
        key = idempotency_key or natural_key or str(uuid.uuid4())

        item = QueuedMutation(
            id=key,
            type=mutation.type,
            payload=encode_payload(mutation),
            timestamp=utcnow(),
            household_id=self.household_id,
            user_id=self.user_id,
            max_retries=self.max_retries,
        )
        try:
            added = await self._in_thread(self.store.add, item)
        except QueueStorageError:
            self._notify(
                NotificationLevel.ERROR,
                "Could not save change for offline sync. Device storage may be full.",
            )
            raise

        if added:
            logger.info("Queued %s as %s", item.type, key)
        else:
            logger.info("Mutation %s is already queued", key)
        await self._refresh_size()

        if self._online and self._state is QueueState.IDLE:
            self._schedule_drain()
        return key

    async def enqueue_if_offline(self, mutation, idempotency_key: Optional[str] = None) -> Optional[str]:
        """Queue only while offline; online callers send the request directly."""
        if self._online:
            return None
        return await self.enqueue(mutation, idempotency_key)

    def _schedule_drain(self) -> None:
        if self._drain_task is not None and not self._drain_task.done():
            return
        self._drain_task = asyncio.get_running_loop().create_task(self.process_queue())
        self._drain_task.add_done_callback(self._on_drain_done)

    @staticmethod
    def _on_drain_done(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background sync failed: %s", exc)

    # ── Connectivity ─────────────────────────────────────────────────────────

    async def set_online(self, online: bool) -> Optional[SyncReport]:
        was_online = self._online
        self._online = online
        if online and not was_online:
            logger.info("Back online, syncing %d queued %s", self.queue_size, _plural(self.queue_size))
            return await self.process_queue()
        return None

    async def sync(self) -> Optional[SyncReport]:
        """Manual sync trigger."""
        if not self._online:
            self._notify(NotificationLevel.WARNING, "Cannot sync while offline")
            return None
        return await self.process_queue()

    # ── Drain ────────────────────────────────────────────────────────────────

    async def process_queue(self) -> Optional[SyncReport]:
        """
        Replay every queued item once, in enqueue order.
        Returns None when a drain is already running here or elsewhere.
        """
        if self._state is QueueState.DRAINING:
            return None
        if not self._online:
            return None

        async with self._draining():
            if not await self._in_thread(
                self.store.acquire_lease, self.household_id, self.holder_id, self.lease_seconds
            ):
                logger.info("Queue for household %s is being synced elsewhere", self.household_id)
                return None
            try:
                report = await self._drain()
            finally:
                await self._in_thread(self.store.release_lease, self.household_id, self.holder_id)

        self._notify_summary(report)
        return report

    async def _drain(self) -> SyncReport:
        items = await self._in_thread(self.store.list_for_household, self.household_id)
        report = SyncReport(total=len(items))
        self.progress = SyncProgress(current=0, total=len(items))

        for index, item in enumerate(items, start=1):
            if not self._online:
                logger.info("Connection lost, stopping sync after %d of %d", index - 1, len(items))
                break
            self.progress.current = index
            counted = report.handled
            try:
                await self._process_item(item, report)
                await self._refresh_size()
                await self._in_thread(
                    self.store.acquire_lease, self.household_id, self.holder_id, self.lease_seconds
                )
            except QueueStorageError as exc:
                logger.error("Queue storage error while syncing %s: %s", item.id, exc)
                # An item already counted as synced, failed or dropped is not counted twice
                if report.handled == counted:
                    report.failed += 1
        return report

    async def _process_item(self, item: QueuedMutation, report: SyncReport) -> None:
        if item.retries >= item.max_retries:
            await self._drop(item, report, DropReason.RETRY_LIMIT)
            self._notify(
                NotificationLevel.WARNING,
                f"A queued {item.type} change exceeded retry limit and was removed",
            )
            return

        if item.retries > 0:
            await self._sleep(self.retry_delay * item.retries)

        try:
            mutation = decode_mutation(item.type, item.payload)
            await mutation.dispatch(self.remote)
        except (PermanentRemoteError, MutationDecodeError) as exc:
            item.retries += 1
            item.last_error = str(exc)
            await self._drop(item, report, DropReason.PERMANENT)
            self._notify(NotificationLevel.ERROR, f"A queued {item.type} change was rejected: {exc}")
        except Exception as exc:
            item.retries += 1
            item.last_error = str(exc)
            report.failed += 1
            logger.warning(
                "Sync of %s failed (attempt %d/%d): %s",
                item.id, item.retries, item.max_retries, exc,
            )
            await self._in_thread(self.store.put, item)
        else:
            report.synced += 1
            logger.info("Synced %s %s", item.type, item.id)
            try:
                await self._in_thread(self.store.delete, item.id)
            except QueueStorageError as exc:
                logger.error(
                    "Synced %s %s but could not remove it from the queue; it may be replayed: %s",
                    item.type, item.id, exc,
                )
                raise

    async def _drop(self, item: QueuedMutation, report: SyncReport, reason: DropReason) -> None:
        await self._in_thread(self.store.delete, item.id)
        report.dropped.append(
            DroppedMutation(
                id=item.id,
                type=item.type,
                reason=reason,
                retries=item.retries,
                error=item.last_error,
            )
        )
        logger.warning("Dropped %s %s (%s): %s", item.type, item.id, reason.value, item.last_error)

    def _notify_summary(self, report: SyncReport) -> None:
        if report.synced:
            self._notify(NotificationLevel.SUCCESS, f"Synced {report.synced} {_plural(report.synced)}")
        if report.failed:
            self._notify(
                NotificationLevel.WARNING,
                f"{report.failed} {_plural(report.failed)} failed, will retry",
            )
        if report.dropped:
            dropped = len(report.dropped)
            self._notify(
                NotificationLevel.ERROR,
                f"{dropped} {_plural(dropped)} could not be synced and {'was' if dropped == 1 else 'were'} removed",
            )

    # ── Inspection ───────────────────────────────────────────────────────────

    def clear_queue(self, confirm: Callable[[int], bool]) -> int:
        """Discard every queued change after confirm(count) agrees."""
        count = self.store.count(self.household_id)
        if count == 0 or not confirm(count):
            return 0
        cleared = self.store.clear(self.household_id)
        self.queue_size = self.store.count(self.household_id)
        logger.warning("Cleared %d queued %s for household %s", cleared, _plural(cleared), self.household_id)
        self._notify(NotificationLevel.INFO, f"Cleared {cleared} queued {_plural(cleared)}")
        return cleared

    def get_queue_details(self) -> List[QueuedMutation]:
        return self.store.list_for_household(self.household_id)
