"""Per-(card, member) estimates with a re-estimation log.

A change made within the grace period of the estimate's own last update is
treated as a typo fix and overwrites silently. Later changes are logged to
``estimate_history`` before the estimate is updated. The original estimate is
the ``previous_ms`` of the earliest history row.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete, select

from ..core.errors import ConstraintViolation, InvalidInput, store_errors
from ..db.database import Database
from ..db.models import Estimate, EstimateHistory, now_utc
from .host import Person

logger = logging.getLogger(__name__)

GRACE_PERIOD = timedelta(minutes=2)

# Keep IN lists under SQLite's bound-parameter limit
CHUNK = 900


class EstimateChange(str, enum.Enum):
    CREATED = "created"
    UNCHANGED = "unchanged"
    CORRECTED = "corrected"
    RE_ESTIMATED = "re_estimated"


@dataclass
class EstimateView:
    id: int
    name: str
    estimated_ms: int
    original_ms: Optional[int]
    updated_at: datetime


class EstimateStore:
    def __init__(self, db: Database, clock: Callable[[], datetime] = now_utc, grace_period: timedelta = GRACE_PERIOD):
        self.db = db
        self.clock = clock
        self.grace_period = grace_period

    async def set_estimate(
        self,
        board_id: str,
        card_id: str,
        person: Person,
        estimated_ms: int,
        reason: Optional[str] = None,
    ) -> EstimateChange:
        if estimated_ms is None or int(estimated_ms) <= 0:
            raise InvalidInput("Estimate must be a positive duration")
        estimated_ms = int(estimated_ms)

        try:
            change = await self._apply(board_id, card_id, person, estimated_ms, reason)
        except ConstraintViolation:
            # A concurrent insert created the row first; redo as an update
            logger.warning("concurrent estimate insert card=%s member=%s, retrying", card_id, person.id)
            change = await self._apply(board_id, card_id, person, estimated_ms, reason)
        if change is not EstimateChange.UNCHANGED:
            logger.info("estimate %s card=%s member=%s ms=%s", change.value, card_id, person.id, estimated_ms)
        return change

    async def _apply(self, board_id, card_id, person, estimated_ms, reason) -> EstimateChange:
        with store_errors("set estimate"):
            async with self.db.session() as session:
                async with session.begin():
                    res = await session.execute(
                        select(Estimate).where(
                            Estimate.card_id == card_id, Estimate.member_id == person.id, Estimate.board_id == board_id
                        )
                    )
                    existing = res.scalar_one_or_none()
                    now = self.clock()

                    if existing is None:
                        session.add(Estimate(
                            board_id=board_id,
                            card_id=card_id,
                            member_id=person.id,
                            member_name=person.name,
                            estimated_ms=estimated_ms,
                            created_at=now,
                            updated_at=now,
                        ))
                        return EstimateChange.CREATED

                    if existing.estimated_ms == estimated_ms:
                        return EstimateChange.UNCHANGED

                    within_grace = (now - existing.updated_at) < self.grace_period
                    if not within_grace:
                        session.add(EstimateHistory(
                            estimate_id=existing.id,
                            board_id=existing.board_id,
                            card_id=card_id,
                            member_id=person.id,
                            member_name=person.name or existing.member_name,
                            previous_ms=existing.estimated_ms,
                            new_ms=estimated_ms,
                            reason=reason or None,
                            changed_at=now,
                        ))

                    existing.estimated_ms = estimated_ms
                    existing.member_name = person.name or existing.member_name
                    existing.updated_at = now
                    return EstimateChange.CORRECTED if within_grace else EstimateChange.RE_ESTIMATED

    async def remove_estimate(self, card_id: str, person_id: str, board_id: str) -> bool:
        with store_errors("remove estimate"):
            async with self.db.session() as session:
                async with session.begin():
                    ids = await self._estimate_ids(
                        session, Estimate.card_id == card_id, Estimate.member_id == person_id, Estimate.board_id == board_id
                    )
                    removed = await self._delete_estimates(session, ids)
        if removed:
            logger.info("estimate removed card=%s member=%s", card_id, person_id)
        return bool(removed)

    async def clear_all_estimates(self, card_id: str, board_id: str) -> int:
        with store_errors("clear estimates"):
            async with self.db.session() as session:
                async with session.begin():
                    ids = await self._estimate_ids(session, Estimate.card_id == card_id, Estimate.board_id == board_id)
                    removed = await self._delete_estimates(session, ids)
        logger.info("cleared %d estimates card=%s", removed, card_id)
        return removed

    async def get_original_estimate(self, estimate_id: int) -> Optional[int]:
        with store_errors("read original estimate"):
            async with self.db.session() as session:
                originals = await self._originals(session, [estimate_id])
        return originals.get(estimate_id)

    async def card_estimates(self, card_id: str, board_id: str) -> Dict[str, EstimateView]:
        with store_errors("read card estimates"):
            async with self.db.session() as session:
                res = await session.execute(
                    select(Estimate).where(Estimate.card_id == card_id, Estimate.board_id == board_id).order_by(Estimate.id)
                )
                estimates = res.scalars().all()
                originals = await self._originals(session, [e.id for e in estimates])
        return {
            e.member_id: EstimateView(
                id=e.id,
                name=e.member_name,
                estimated_ms=e.estimated_ms,
                original_ms=originals.get(e.id),
                updated_at=e.updated_at,
            )
            for e in estimates
        }

    async def estimate_history(self, card_id: str, board_id: str) -> List[EstimateHistory]:
        with store_errors("read estimate history"):
            async with self.db.session() as session:
                res = await session.execute(
                    select(EstimateHistory)
                    .where(EstimateHistory.card_id == card_id, EstimateHistory.board_id == board_id)
                    .order_by(EstimateHistory.changed_at.desc(), EstimateHistory.id.desc())
                )
                return list(res.scalars().all())

    async def list_board_estimates(self, board_id: str) -> List[Tuple[Estimate, Optional[int]]]:
        """All estimates on a board paired with their original value."""
        with store_errors("list board estimates"):
            async with self.db.session() as session:
                res = await session.execute(select(Estimate).where(Estimate.board_id == board_id).order_by(Estimate.id))
                estimates = list(res.scalars().all())
                originals = await self._originals(session, [e.id for e in estimates])
        return [(e, originals.get(e.id)) for e in estimates]

    # ------------------------------------------------------------------

    async def _estimate_ids(self, session, *criteria) -> List[int]:
        res = await session.execute(select(Estimate.id).where(*criteria))
        return list(res.scalars().all())

    async def _delete_estimates(self, session, ids: List[int]) -> int:
        if not ids:
            return 0
        # History goes with its estimate even where the backend ignores ON DELETE CASCADE
        await session.execute(delete(EstimateHistory).where(EstimateHistory.estimate_id.in_(ids)))
        res = await session.execute(delete(Estimate).where(Estimate.id.in_(ids)))
        return res.rowcount or 0

    async def _originals(self, session, estimate_ids: Iterable[int]) -> Dict[int, int]:
        ids = list(estimate_ids)
        originals: Dict[int, int] = {}
        for start in range(0, len(ids), CHUNK):
            chunk = ids[start:start + CHUNK]
            res = await session.execute(
                select(EstimateHistory.estimate_id, EstimateHistory.previous_ms)
                .where(EstimateHistory.estimate_id.in_(chunk))
                .order_by(EstimateHistory.changed_at.asc(), EstimateHistory.id.asc())
            )
            for estimate_id, previous_ms in res.all():
                originals.setdefault(estimate_id, previous_ms)
        return originals
