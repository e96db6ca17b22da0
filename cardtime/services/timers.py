"""Timer state per (card, member): completed entries plus one open interval.

Every method opens its own session. ``stop`` runs its conditional delete and
the entry insert in one transaction, so a failure on either side rolls both
back and two concurrent stops for the same pair can never both insert.
Card-keyed reads and deletes only ever see rows of the given board.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from sqlalchemy import delete, select

from ..core.errors import ConstraintViolation, InvalidInput, store_errors
from ..db.database import Database
from ..db.models import ActiveTimer, TimeEntry, now_utc
from ..util.durations import elapsed_ms
from .host import CardContext, Person

logger = logging.getLogger(__name__)


@dataclass
class MemberTime:
    name: str
    total_ms: int = 0
    active_start: Optional[datetime] = None
    active_timer_id: Optional[int] = None


class TimerStore:
    def __init__(self, db: Database, clock: Callable[[], datetime] = now_utc):
        self.db = db
        self.clock = clock

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def start(self, card: CardContext, person: Person) -> bool:
        """Open a timer. Returns False when one is already running."""
        with store_errors("start timer"):
            async with self.db.session() as session:
                existing = await self._find_active(session, card.card_id, person.id, card.board_id)
                if existing is not None:
                    return False
                session.add(ActiveTimer(
                    board_id=card.board_id,
                    card_id=card.card_id,
                    member_id=person.id,
                    member_name=person.name,
                    started_at=self.clock(),
                ))
                try:
                    with store_errors("start timer"):
                        await session.commit()
                except ConstraintViolation:
                    # Another session started the same timer between our read and insert
                    await session.rollback()
                    logger.warning("duplicate start ignored card=%s member=%s", card.card_id, person.id)
                    return False
        logger.info("timer started card=%s member=%s", card.card_id, person.id)
        return True

    async def stop(self, card: CardContext, person_id: str) -> Optional[TimeEntry]:
        """Close the running timer into a completed entry. None if not running."""
        with store_errors("stop timer"):
            async with self.db.session() as session:
                async with session.begin():
                    active = await self._find_active(session, card.card_id, person_id, card.board_id)
                    if active is None:
                        return None
                    entry = await self._close(session, active, card)
        if entry is not None:
            logger.info("timer stopped card=%s member=%s duration_ms=%s", card.card_id, person_id, entry.duration_ms)
        return entry

    async def toggle(self, card: CardContext, person: Person) -> bool:
        """Stop if running, else start. Returns the resulting running state."""
        if await self.get_active(card.card_id, person.id, card.board_id) is not None:
            await self.stop(card, person.id)
            return False
        await self.start(card, person)
        return True

    async def adjust_time(self, card: CardContext, person: Person, delta_ms: int, at: Optional[datetime] = None) -> TimeEntry:
        """Record a manual correction. Negative deltas are stored unclamped."""
        if not delta_ms:
            raise InvalidInput("Adjustment must be non-zero")
        when = at or self.clock()
        entry = TimeEntry(
            board_id=card.board_id,
            card_id=card.card_id,
            card_name=card.card_name,
            list_name=card.list_name,
            member_id=person.id,
            member_name=person.name,
            labels=[l.to_dict() for l in card.labels],
            started_at=when,
            ended_at=when,
            duration_ms=int(delta_ms),
            created_at=self.clock(),
        )
        with store_errors("adjust time"):
            async with self.db.session() as session:
                session.add(entry)
                await session.commit()
        logger.info("time adjusted card=%s member=%s delta_ms=%s", card.card_id, person.id, delta_ms)
        return entry

    async def reset_card_time(self, card_id: str, board_id: str) -> Dict[str, int]:
        with store_errors("reset card time"):
            async with self.db.session() as session:
                async with session.begin():
                    res_entries = await session.execute(
                        delete(TimeEntry).where(TimeEntry.card_id == card_id, TimeEntry.board_id == board_id)
                    )
                    res_active = await session.execute(
                        delete(ActiveTimer).where(ActiveTimer.card_id == card_id, ActiveTimer.board_id == board_id)
                    )
        counts = {"entries": res_entries.rowcount or 0, "active_timers": res_active.rowcount or 0}
        logger.info("card time reset card=%s %s", card_id, counts)
        return counts

    async def stop_active_timers(self, timer_ids: Iterable[int], contexts: Optional[Dict[str, CardContext]] = None) -> List[TimeEntry]:
        """Stop timers by id, typically on behalf of other members.

        ``contexts`` maps card id to a fresh card snapshot; timers on cards
        without one keep only the ids stored on the timer row.
        """
        ids = sorted({int(i) for i in timer_ids})
        if not ids:
            return []
        contexts = contexts or {}
        stopped: List[TimeEntry] = []
        with store_errors("stop active timers"):
            async with self.db.session() as session:
                async with session.begin():
                    res = await session.execute(select(ActiveTimer).where(ActiveTimer.id.in_(ids)))
                    for active in res.scalars().all():
                        card = contexts.get(active.card_id) or CardContext(board_id=active.board_id, card_id=active.card_id)
                        entry = await self._close(session, active, card)
                        if entry is not None:
                            stopped.append(entry)
        logger.info("stopped %d of %d requested timers", len(stopped), len(ids))
        return stopped

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_active(self, card_id: str, person_id: str, board_id: Optional[str] = None) -> Optional[ActiveTimer]:
        with store_errors("read active timer"):
            async with self.db.session() as session:
                return await self._find_active(session, card_id, person_id, board_id)

    async def member_time_view(self, card_id: str, board_id: str) -> Dict[str, MemberTime]:
        """Completed totals and open intervals per member for one card."""
        result: Dict[str, MemberTime] = {}
        with store_errors("read card time"):
            async with self.db.session() as session:
                res = await session.execute(
                    select(TimeEntry.member_id, TimeEntry.member_name, TimeEntry.duration_ms)
                    .where(TimeEntry.card_id == card_id, TimeEntry.board_id == board_id)
                    .order_by(TimeEntry.id)
                )
                for member_id, member_name, duration_ms in res.all():
                    mt = result.setdefault(member_id, MemberTime(name=member_name))
                    mt.total_ms += duration_ms or 0
                    mt.name = member_name or mt.name
                res_active = await session.execute(
                    select(ActiveTimer).where(ActiveTimer.card_id == card_id, ActiveTimer.board_id == board_id)
                )
                for active in res_active.scalars().all():
                    mt = result.setdefault(active.member_id, MemberTime(name=active.member_name))
                    mt.active_start = active.started_at
                    mt.active_timer_id = active.id
        return result

    async def list_entries(self, board_id: str, start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[TimeEntry]:
        """Completed entries for a board, newest first, ``start <= started_at <= end``."""
        stmt = select(TimeEntry).where(TimeEntry.board_id == board_id)
        if start is not None:
            stmt = stmt.where(TimeEntry.started_at >= start)
        if end is not None:
            stmt = stmt.where(TimeEntry.started_at <= end)
        stmt = stmt.order_by(TimeEntry.started_at.desc(), TimeEntry.id.desc())
        with store_errors("list time entries"):
            async with self.db.session() as session:
                res = await session.execute(stmt)
                return list(res.scalars().all())

    async def list_active(self, board_id: str) -> List[ActiveTimer]:
        with store_errors("list active timers"):
            async with self.db.session() as session:
                res = await session.execute(
                    select(ActiveTimer).where(ActiveTimer.board_id == board_id).order_by(ActiveTimer.id)
                )
                return list(res.scalars().all())

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _find_active(self, session, card_id: str, person_id: str, board_id: Optional[str] = None) -> Optional[ActiveTimer]:
        stmt = select(ActiveTimer).where(ActiveTimer.card_id == card_id, ActiveTimer.member_id == person_id)
        if board_id is not None:
            stmt = stmt.where(ActiveTimer.board_id == board_id)
        res = await session.execute(stmt)
        return res.scalar_one_or_none()

    async def _close(self, session, active: ActiveTimer, card: CardContext) -> Optional[TimeEntry]:
        # Conditional delete: only the session that actually removes the row records the interval
        res = await session.execute(delete(ActiveTimer).where(ActiveTimer.id == active.id))
        if res.rowcount != 1:
            logger.warning("timer %s already stopped by another session", active.id)
            return None
        ended_at = self.clock()
        entry = TimeEntry(
            board_id=active.board_id,
            card_id=active.card_id,
            card_name=card.card_name,
            list_name=card.list_name,
            member_id=active.member_id,
            member_name=active.member_name,
            labels=[l.to_dict() for l in card.labels],
            started_at=active.started_at,
            ended_at=ended_at,
            duration_ms=elapsed_ms(active.started_at, ended_at),
            created_at=ended_at,
        )
        session.add(entry)
        await session.flush()
        return entry
