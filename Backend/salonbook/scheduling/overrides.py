"""
SlotOverride: administrative block/unblock of a date + time (+ stylist).

Both operations are idempotent. A block over a SCHEDULED appointment is
allowed and leaves the appointment untouched; it only stops new bookings.
"""

import logging
from datetime import date, time
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import Settings, get_settings
from ..models import SlotBlock
from ..queries import get_stylist_by_id, list_slot_blocks
from .errors import StylistNotFound
from .locks import SlotLockRegistry, atomic_write, lock_keys_for
from .types import format_hhmm

logger = logging.getLogger(__name__)


class SlotOverride:
    def __init__(
        self,
        session: AsyncSession,
        settings: Optional[Settings] = None,
        registry: Optional[SlotLockRegistry] = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.registry = registry

    async def _find(self, day: date, start: time, stylist_id: Optional[int]) -> Optional[SlotBlock]:
        query = select(SlotBlock).where(SlotBlock.date == day, SlotBlock.start_time == start)
        if stylist_id is None:
            query = query.where(SlotBlock.stylist_id.is_(None))
        else:
            query = query.where(SlotBlock.stylist_id == stylist_id)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def _require_stylist(self, stylist_id: Optional[int]) -> None:
        if stylist_id is not None and await get_stylist_by_id(self.session, stylist_id) is None:
            raise StylistNotFound(
                f"Stylist {stylist_id} not found", details={"stylist_id": stylist_id}
            )

    async def block(self, day: date, start: time, stylist_id: Optional[int] = None) -> SlotBlock:
        await self._require_stylist(stylist_id)

        async def add() -> SlotBlock:
            existing = await self._find(day, start, stylist_id)
            if existing is not None:
                return existing
            block = SlotBlock(date=day, start_time=start, stylist_id=stylist_id)
            self.session.add(block)
            await self.session.flush()
            logger.info("Blocked %s %s stylist=%s", day, format_hhmm(start), stylist_id)
            return block

        return await atomic_write(
            self.session,
            lock_keys_for(day, stylist_id),
            add,
            timeout=self.settings.lock_timeout_seconds,
            registry=self.registry,
        )

    async def unblock(self, day: date, start: time, stylist_id: Optional[int] = None) -> bool:
        """Remove the block. Returns False when there was nothing to remove."""
        async def remove() -> bool:
            existing = await self._find(day, start, stylist_id)
            if existing is None:
                return False
            await self.session.delete(existing)
            await self.session.flush()
            logger.info("Unblocked %s %s stylist=%s", day, format_hhmm(start), stylist_id)
            return True

        return await atomic_write(
            self.session,
            lock_keys_for(day, stylist_id),
            remove,
            timeout=self.settings.lock_timeout_seconds,
            registry=self.registry,
            refresh=False,
        )

    async def list_blocks(self, day: date, stylist_id: Optional[int] = None) -> Sequence[SlotBlock]:
        return await list_slot_blocks(self.session, day, stylist_id)
