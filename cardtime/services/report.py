"""Board-level time and estimate reports.

Raw rows (completed entries, running timers, estimates) are merged into one
aggregate per card, then grouped by card, person or label. Card names, lists
and labels come from the host's live metadata so renamed or relabelled cards
show their current state; stored snapshots are only a fallback.
"""

from __future__ import annotations

import logging
import unicodedata
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from ..core.errors import ReportLoadError, TrackerError
from ..db.models import ActiveTimer, Estimate, TimeEntry, now_utc
from ..schemas import ActiveMember, ReportFilters, ReportOut, ReportRow, ReportSummary
from ..util.durations import live_total
from .estimates import EstimateStore
from .host import Category, HostContext, Label, WorkItem
from .timers import TimerStore

logger = logging.getLogger(__name__)

UNLABELED = Label(name="Unlabeled", color="gray")


@dataclass
class MemberAggregate:
    name: str
    estimated_ms: int = 0
    original_ms: Optional[int] = None
    actual_ms: int = 0
    active_start: Optional[datetime] = None
    active_timer_id: Optional[int] = None

    def live_ms(self, now: datetime) -> int:
        return live_total(self.actual_ms, self.active_start, now)


@dataclass
class CardAggregate:
    card_id: str
    card_name: str
    list_name: str = ""
    labels: Tuple[Label, ...] = ()
    members: Dict[str, MemberAggregate] = field(default_factory=dict)

    @property
    def has_estimate(self) -> bool:
        return any(m.estimated_ms > 0 for m in self.members.values())


# ----------------------------------------------------------------------
# Derived metrics
# ----------------------------------------------------------------------

def deviation_pct(estimated_ms: int, actual_ms: int) -> Optional[float]:
    if not estimated_ms:
        return None
    return (actual_ms - estimated_ms) / estimated_ms * 100


def accuracy_score(estimated_ms: int, actual_ms: int) -> Optional[float]:
    """100 when actual matches the estimate, falling linearly, floored at 0."""
    if not estimated_ms:
        return None
    return max(0.0, 100 - abs(actual_ms / estimated_ms - 1) * 100)


# ----------------------------------------------------------------------
# Merge
# ----------------------------------------------------------------------

def merge_cards(
    entries: Iterable[TimeEntry],
    actives: Iterable[ActiveTimer],
    estimates: Iterable[Tuple[Estimate, Optional[int]]] = (),
    items: Iterable[WorkItem] = (),
    categories: Iterable[Category] = (),
) -> List[CardAggregate]:
    """One aggregate per card, in first-seen order (estimates, entries, actives).

    ``entries`` are expected newest first so the stored snapshot used for
    cards the host no longer knows about is the most recent one.
    """
    list_names = {c.id: c.name for c in categories}
    live = {i.id: i for i in items}
    cards: Dict[str, CardAggregate] = {}

    def card_for(card_id: str, snapshot: Optional[TimeEntry] = None) -> CardAggregate:
        card = cards.get(card_id)
        if card is None:
            item = live.get(card_id)
            if item is not None:
                card = CardAggregate(card_id, item.name or card_id, list_names.get(item.category_id, ""), tuple(item.labels))
            elif snapshot is not None:
                labels = tuple(Label.from_dict(l) for l in (snapshot.labels or []))
                card = CardAggregate(card_id, snapshot.card_name or card_id, snapshot.list_name or "", labels)
            else:
                card = CardAggregate(card_id, card_id)
            cards[card_id] = card
        return card

    def member_for(card: CardAggregate, member_id: str, member_name: str) -> MemberAggregate:
        member = card.members.get(member_id)
        if member is None:
            member = card.members[member_id] = MemberAggregate(name=member_name or member_id)
        return member

    for est, original_ms in estimates:
        m = member_for(card_for(est.card_id), est.member_id, est.member_name)
        m.estimated_ms = est.estimated_ms
        m.original_ms = original_ms

    for entry in entries:
        m = member_for(card_for(entry.card_id, entry), entry.member_id, entry.member_name)
        m.actual_ms += entry.duration_ms or 0

    for active in actives:
        m = member_for(card_for(active.card_id), active.member_id, active.member_name)
        m.active_start = active.started_at
        m.active_timer_id = active.id

    return list(cards.values())


# ----------------------------------------------------------------------
# Group / sort / summarize
# ----------------------------------------------------------------------

def group_rows(
    cards: Iterable[CardAggregate],
    kind: str,
    group_by: str,
    now: datetime,
    unlabeled: Label = UNLABELED,
) -> List[ReportRow]:
    acc: Dict[str, dict] = {}

    for card in cards:
        if kind == "estimate" and not card.has_estimate:
            continue

        for member_id, m in card.members.items():
            actual = m.live_ms(now)
            if kind == "time":
                if actual == 0:
                    continue
            elif not m.estimated_ms and not actual:
                continue

            remaining = max(0, m.estimated_ms - actual)
            active = None
            if m.active_timer_id is not None:
                active = ActiveMember(
                    timer_id=m.active_timer_id,
                    member_id=member_id,
                    member_name=m.name,
                    card_id=card.card_id,
                    card_name=card.card_name,
                )

            if group_by == "card":
                targets = {card.card_id: {"label": card.card_name, "sublabel": card.list_name, "card_id": card.card_id}}
            elif group_by == "person":
                targets = {member_id: {"label": m.name or member_id}}
            else:
                # every label gets the card's full time
                targets = {}
                for lbl in card.labels or (unlabeled,):
                    targets.setdefault(lbl.key, {"label": lbl.key, "color": lbl.color})

            for key, base in targets.items():
                row = acc.setdefault(key, {
                    **base,
                    "key": key,
                    "estimated_ms": 0,
                    "original_ms": None,
                    "actual_ms": 0,
                    "remaining_ms": 0,
                    "active_members": [],
                })
                row["estimated_ms"] += m.estimated_ms
                row["actual_ms"] += actual
                row["remaining_ms"] += remaining
                if m.original_ms is not None:
                    row["original_ms"] = (row["original_ms"] or 0) + m.original_ms
                if active is not None:
                    row["active_members"].append(active)

    rows = []
    for data in acc.values():
        est, actual = data["estimated_ms"], data["actual_ms"]
        rows.append(ReportRow(
            **data,
            deviation_ms=actual - est,
            deviation_pct=deviation_pct(est, actual),
            accuracy=accuracy_score(est, actual),
        ))
    return rows


def _label_key(row: ReportRow):
    # accents and case only break ties, so "Émile" sorts with the E's
    folded = unicodedata.normalize("NFKD", row.label.casefold())
    base = "".join(ch for ch in folded if not unicodedata.combining(ch))
    return (base, row.label.casefold(), row.label)


def sort_rows(rows: List[ReportRow], sort_by: str) -> List[ReportRow]:
    """Stable sort; ties keep insertion order."""
    if sort_by == "deviation":
        return sorted(rows, key=lambda r: -abs(r.deviation_ms))
    if sort_by == "estimated":
        return sorted(rows, key=lambda r: -r.estimated_ms)
    if sort_by == "accuracy":
        # rows without an estimate sort first, as worst
        return sorted(rows, key=lambda r: r.accuracy if r.accuracy is not None else -1)
    if sort_by == "time":
        return sorted(rows, key=lambda r: -r.actual_ms)
    return sorted(rows, key=_label_key)


def summarize(rows: List[ReportRow]) -> ReportSummary:
    total_est = sum(r.estimated_ms for r in rows)
    total_actual = sum(r.actual_ms for r in rows)
    originals = [r.original_ms for r in rows if r.original_ms is not None]
    accuracies = [r.accuracy for r in rows if r.accuracy is not None]

    most_over = most_under = None
    for r in rows:
        if r.deviation_pct is None:
            continue
        if most_over is None or r.deviation_pct > most_over.deviation_pct:
            most_over = r
        if most_under is None or r.deviation_pct < most_under.deviation_pct:
            most_under = r

    return ReportSummary(
        total_estimated_ms=total_est,
        total_actual_ms=total_actual,
        total_remaining_ms=sum(r.remaining_ms for r in rows),
        total_original_ms=sum(originals) if originals else None,
        deviation_pct=deviation_pct(total_est, total_actual),
        avg_accuracy=sum(accuracies) / len(accuracies) if accuracies else None,
        most_over=most_over,
        most_under=most_under,
    )


# ----------------------------------------------------------------------
# Aggregator
# ----------------------------------------------------------------------

class ReportAggregator:
    def __init__(
        self,
        timers: TimerStore,
        estimates: EstimateStore,
        clock: Callable[[], datetime] = now_utc,
        unlabeled: Label = UNLABELED,
    ):
        self.timers = timers
        self.estimates = estimates
        self.clock = clock
        self.unlabeled = unlabeled

    async def load_cards(self, board_id: str, host: HostContext, filters: ReportFilters, kind: str) -> List[CardAggregate]:
        """Fetch everything a report needs. Any failure aborts the whole load."""
        try:
            items = await host.all_work_items()
            categories = await host.all_categories()
            entries = await self.timers.list_entries(board_id, filters.start, filters.end)
            # running timers are present-moment state and ignore the date filter
            actives = await self.timers.list_active(board_id)
            estimates = await self.estimates.list_board_estimates(board_id) if kind == "estimate" else []
        except (TrackerError, SQLAlchemyError) as exc:
            logger.error("report load failed board=%s: %s", board_id, exc)
            raise ReportLoadError(f"Could not load report data for board {board_id}") from exc
        return merge_cards(entries, actives, estimates, items, categories)

    async def build(
        self,
        board_id: str,
        host: HostContext,
        filters: Optional[ReportFilters] = None,
        kind: str = "estimate",
        group_by: str = "card",
        sort_by: str = "deviation",
    ) -> ReportOut:
        filters = filters or ReportFilters()
        cards = await self.load_cards(board_id, host, filters, kind)
        now = self.clock()
        rows = sort_rows(group_rows(cards, kind, group_by, now, self.unlabeled), sort_by)
        return ReportOut(
            board_id=board_id,
            kind=kind,
            group_by=group_by,
            sort_by=sort_by,
            filters=filters,
            generated_at=now,
            rows=rows,
            summary=summarize(rows),
        )
