"""Operations the tracker exposes to the UI and export layers.

Resolves the acting person and card snapshot through the host, delegates to
the stores, and fires the host's ``touch`` hint after every mutation.
Card-level reads degrade to empty results when the store is unreachable;
writes always propagate.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional

from ..core.config import Settings, get_settings
from ..core.errors import InvalidInput, TransientIOError
from ..db.database import Database
from ..db.models import EstimateHistory, TimeEntry, now_utc
from ..schemas import ReportFilters, ReportOut
from ..util.dates import noon_of
from . import export
from .estimates import EstimateChange, EstimateStore, EstimateView
from .host import CardContext, HostContext, Label, Person
from .report import ReportAggregator
from .timers import MemberTime, TimerStore

logger = logging.getLogger(__name__)


class TimeTracker:
    def __init__(self, db: Database, host: HostContext, settings: Optional[Settings] = None, clock: Callable[[], datetime] = now_utc):
        self.settings = settings or get_settings()
        self.host = host
        self.clock = clock
        self.timers = TimerStore(db, clock=clock)
        self.estimates = EstimateStore(db, clock=clock, grace_period=timedelta(seconds=self.settings.grace_period_seconds))
        self.reports = ReportAggregator(
            self.timers,
            self.estimates,
            clock=clock,
            unlabeled=Label(name=self.settings.unlabeled_name, color=self.settings.unlabeled_color),
        )

    # ------------------------------------------------------------------
    # Context resolution
    # ------------------------------------------------------------------

    async def resolve_person(self, person: Optional[Person] = None) -> Person:
        """The session member, or another member of the same board."""
        me = await self.host.current_person()
        if person is None or person.id == me.id:
            return me
        for member in await self.host.group_members():
            if member.id == person.id:
                return member
        raise InvalidInput(f"{person.id} is not a member of this board")

    async def _card_id(self, card_id: Optional[str]) -> str:
        if card_id:
            return card_id
        item = await self.host.current_work_item()
        if item is None:
            raise InvalidInput("No card in context")
        return item.id

    async def _card_context(self, card_id: str) -> CardContext:
        try:
            return await self.host.card_context(card_id)
        except TransientIOError as exc:
            # snapshot names are cosmetic; the mutation itself must still go through
            logger.warning("card metadata unavailable card=%s: %s", card_id, exc)
            return CardContext(board_id=await self.host.current_group(), card_id=card_id)

    async def _touch(self, card_id: str) -> None:
        try:
            await self.host.touch(card_id)
        except Exception as exc:
            logger.warning("touch failed card=%s: %s", card_id, exc)

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    async def get_member_time_view(self, card_id: Optional[str] = None) -> Dict[str, MemberTime]:
        card_id = await self._card_id(card_id)
        try:
            return await self.timers.member_time_view(card_id, await self.host.current_group())
        except TransientIOError as exc:
            logger.warning("time view unavailable card=%s: %s", card_id, exc)
            return {}

    async def start_timer(self, card_id: Optional[str] = None, person: Optional[Person] = None) -> bool:
        card_id = await self._card_id(card_id)
        person = await self.resolve_person(person)
        started = await self.timers.start(await self._card_context(card_id), person)
        await self._touch(card_id)
        return started

    async def stop_timer(self, card_id: Optional[str] = None, person: Optional[Person] = None) -> Optional[TimeEntry]:
        card_id = await self._card_id(card_id)
        person = await self.resolve_person(person)
        entry = await self.timers.stop(await self._card_context(card_id), person.id)
        await self._touch(card_id)
        return entry

    async def toggle_timer(self, card_id: Optional[str] = None, person: Optional[Person] = None) -> bool:
        card_id = await self._card_id(card_id)
        person = await self.resolve_person(person)
        running = await self.timers.toggle(await self._card_context(card_id), person)
        await self._touch(card_id)
        return running

    async def adjust_time(
        self,
        delta_ms: int,
        card_id: Optional[str] = None,
        day: Optional[date] = None,
        person: Optional[Person] = None,
    ) -> TimeEntry:
        if not delta_ms:
            raise InvalidInput("Adjustment must be non-zero")
        card_id = await self._card_id(card_id)
        person = await self.resolve_person(person)
        at = noon_of(day, self.settings.timezone) if day else None
        entry = await self.timers.adjust_time(await self._card_context(card_id), person, delta_ms, at)
        await self._touch(card_id)
        return entry

    async def reset_card_time(self, card_id: Optional[str] = None) -> Dict[str, int]:
        card_id = await self._card_id(card_id)
        counts = await self.timers.reset_card_time(card_id, await self.host.current_group())
        await self._touch(card_id)
        return counts

    async def stop_active_timers(self, timer_ids: Iterable[int]) -> List[TimeEntry]:
        ids = {int(i) for i in timer_ids}
        board_id = await self.host.current_group()
        actives = [a for a in await self.timers.list_active(board_id) if a.id in ids]
        contexts = {}
        for card_id in {a.card_id for a in actives}:
            contexts[card_id] = await self._card_context(card_id)
        # only timers on the current board can be stopped from here
        stopped = await self.timers.stop_active_timers([a.id for a in actives], contexts)
        for card_id in contexts:
            await self._touch(card_id)
        return stopped

    # ------------------------------------------------------------------
    # Estimates
    # ------------------------------------------------------------------

    async def get_estimates(self, card_id: Optional[str] = None) -> Dict[str, EstimateView]:
        card_id = await self._card_id(card_id)
        try:
            return await self.estimates.card_estimates(card_id, await self.host.current_group())
        except TransientIOError as exc:
            logger.warning("estimates unavailable card=%s: %s", card_id, exc)
            return {}

    async def get_estimate_history(self, card_id: Optional[str] = None) -> List[EstimateHistory]:
        card_id = await self._card_id(card_id)
        try:
            return await self.estimates.estimate_history(card_id, await self.host.current_group())
        except TransientIOError as exc:
            logger.warning("estimate history unavailable card=%s: %s", card_id, exc)
            return []

    async def set_estimate(
        self,
        estimated_ms: int,
        card_id: Optional[str] = None,
        person: Optional[Person] = None,
        reason: Optional[str] = None,
    ) -> EstimateChange:
        if estimated_ms is None or estimated_ms <= 0:
            raise InvalidInput("Estimate must be a positive duration")
        card_id = await self._card_id(card_id)
        person = await self.resolve_person(person)
        board_id = await self.host.current_group()
        change = await self.estimates.set_estimate(board_id, card_id, person, estimated_ms, reason)
        await self._touch(card_id)
        return change

    async def remove_estimate(self, card_id: Optional[str] = None, person: Optional[Person] = None) -> bool:
        card_id = await self._card_id(card_id)
        person = await self.resolve_person(person)
        removed = await self.estimates.remove_estimate(card_id, person.id, await self.host.current_group())
        await self._touch(card_id)
        return removed

    async def clear_estimates(self, card_id: Optional[str] = None) -> int:
        card_id = await self._card_id(card_id)
        removed = await self.estimates.clear_all_estimates(card_id, await self.host.current_group())
        await self._touch(card_id)
        return removed

    # ------------------------------------------------------------------
    # Reports & export
    # ------------------------------------------------------------------

    async def get_report(
        self,
        filters: Optional[ReportFilters] = None,
        kind: str = "estimate",
        group_by: str = "card",
        sort_by: str = "deviation",
        board_id: Optional[str] = None,
    ) -> ReportOut:
        board_id = board_id or await self.host.current_group()
        return await self.reports.build(board_id, self.host, filters, kind=kind, group_by=group_by, sort_by=sort_by)

    async def export_entries(self, filters: Optional[ReportFilters] = None, structured: bool = False) -> str:
        """Per-(card, member) completed time for the board."""
        board_id = await self.host.current_group()
        cards = await self.reports.load_cards(board_id, self.host, filters or ReportFilters(), "time")
        records = export.flatten_time_report(cards)
        if structured:
            return export.to_structured(records)
        return export.to_delimited(records, export.TIME_COLUMNS, self.settings.csv_delimiter)

    def export_delimited(self, report: ReportOut) -> str:
        return export.to_delimited(export.report_records(report), export.report_columns(report.group_by), self.settings.csv_delimiter)

    def export_structured(self, report: ReportOut) -> str:
        return export.to_structured(export.report_records(report))
