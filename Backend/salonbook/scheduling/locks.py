"""
Serialization keys for writes.

Every write on a date holds that date's salon key, plus the stylist key when
a stylist is involved. Keys are taken in sorted order with one deadline for
the whole set; a miss raises TransientContention.

Within a process the keys are asyncio locks. On PostgreSQL the same keys are
also taken as transaction-scoped advisory locks so several workers
serialize against each other; they are released by commit or rollback.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date
from typing import Awaitable, Callable, Iterable, List, Optional, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import BookingError, TransientContention

logger = logging.getLogger(__name__)

T = TypeVar("T")

SALON_SCOPE = 0
LOCK_NOT_AVAILABLE = "55P03"


@dataclass(frozen=True, order=True)
class LockKey:
    day: date
    scope: int  # SALON_SCOPE or a stylist id

    def __str__(self) -> str:
        return f"{self.day.isoformat()}:{self.scope or '*'}"

    def advisory_pair(self) -> tuple[int, int]:
        return self.day.toordinal() % 2147483647, self.scope % 2147483647


def lock_keys_for(day: date, stylist_id: Optional[int] = None) -> List[LockKey]:
    keys = [LockKey(day, SALON_SCOPE)]
    if stylist_id is not None:
        keys.append(LockKey(day, stylist_id))
    return keys


class _Entry:
    __slots__ = ("lock", "refs")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.refs = 0


class SlotLockRegistry:
    """Per-key asyncio locks, created on demand and dropped when unused."""

    def __init__(self):
        self._entries: dict[LockKey, _Entry] = {}

    def _checkout(self, key: LockKey) -> _Entry:
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _Entry()
        entry.refs += 1
        return entry

    def _checkin(self, key: LockKey) -> None:
        entry = self._entries[key]
        entry.refs -= 1
        if entry.refs == 0:
            del self._entries[key]

    def is_held(self, key: LockKey) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        return len(self._entries)

    @asynccontextmanager
    async def hold(self, keys: Iterable[LockKey], timeout: float):
        ordered = sorted(set(keys))
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        acquired: list[LockKey] = []
        try:
            for key in ordered:
                entry = self._checkout(key)
                try:
                    await asyncio.wait_for(entry.lock.acquire(), max(deadline - loop.time(), 0))
                except asyncio.TimeoutError:
                    self._checkin(key)
                    logger.warning("Timed out waiting for serialization key %s", key)
                    raise TransientContention(
                        "Booking system is busy, please retry",
                        details={"key": str(key)},
                    )
                except BaseException:
                    self._checkin(key)
                    raise
                acquired.append(key)
            yield
        finally:
            for key in reversed(acquired):
                self._entries[key].lock.release()
                self._checkin(key)

    async def run_exclusive(
        self,
        keys: Iterable[LockKey],
        timeout: float,
        section: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Run section while holding keys. A caller cancelled while still waiting
        abandons the attempt; once the keys are held the section runs to
        completion even if the caller goes away.
        """
        keys = list(keys)
        entered = asyncio.Event()

        async def guarded() -> T:
            async with self.hold(keys, timeout):
                entered.set()
                return await section()

        task = asyncio.ensure_future(guarded())
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if not entered.is_set():
                task.cancel()
            else:
                task.add_done_callback(_log_detached_result)
            raise


def _log_detached_result(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.info("Write finished after its caller went away: %s", exc)


slot_locks = SlotLockRegistry()


async def acquire_advisory_locks(
    session: AsyncSession,
    keys: Iterable[LockKey],
    timeout: float,
) -> None:
    """Take transaction-scoped advisory locks. No-op outside PostgreSQL."""
    if session.get_bind().dialect.name != "postgresql":
        return
    try:
        await session.execute(text(f"SET LOCAL lock_timeout = '{int(timeout * 1000)}ms'"))
        for key in sorted(set(keys)):
            k1, k2 = key.advisory_pair()
            await session.execute(
                text("SELECT pg_advisory_xact_lock(:k1, :k2)"), {"k1": k1, "k2": k2}
            )
    except DBAPIError as exc:
        await session.rollback()
        code = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
        if code != LOCK_NOT_AVAILABLE:
            raise
        logger.warning("Advisory lock timeout for %s", ", ".join(str(k) for k in keys))
        raise TransientContention("Booking system is busy, please retry")


async def serialized(
    session: AsyncSession,
    keys: Iterable[LockKey],
    section: Callable[[], Awaitable[T]],
    timeout: float,
    registry: Optional[SlotLockRegistry] = None,
) -> T:
    """Run section under the in-process keys and, on PostgreSQL, the advisory keys."""
    keys = sorted(set(keys))
    if registry is None:
        registry = slot_locks

    async def locked() -> T:
        await acquire_advisory_locks(session, keys, timeout)
        return await section()

    return await registry.run_exclusive(keys, timeout, locked)


async def atomic_write(
    session: AsyncSession,
    keys: Iterable[LockKey],
    section: Callable[[], Awaitable[T]],
    timeout: float,
    registry: Optional[SlotLockRegistry] = None,
    refresh: bool = True,
) -> T:
    """
    Run section serialized and commit. Any failure rolls the session back
    before propagating, so a failed write leaves no trace.
    """
    async def unit() -> T:
        try:
            result = await section()
            await session.commit()
        except BookingError:
            await session.rollback()
            raise
        except Exception:
            await session.rollback()
            logger.exception("Write failed; rolled back")
            raise
        if refresh and result is not None:
            await session.refresh(result)
        return result

    return await serialized(session, keys, unit, timeout, registry)
