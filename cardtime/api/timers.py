from typing import Optional

from fastapi import APIRouter, Body, Depends

from ..schemas import (
    AdjustIn, CardTimeOut, MemberRef, MemberTimeOut, StopTimersIn,
    TimeEntryOut, TimerActionIn, TimerStateOut,
)
from ..services.host import Person
from ..services.tracker import TimeTracker
from ..util.durations import format_duration, format_timer, live_total, require_duration
from .deps import get_tracker

router = APIRouter(tags=["timers"])

def _person(member: Optional[MemberRef]) -> Optional[Person]:
    if member is None:
        return None
    return Person(id=member.id, name=member.name)

async def _resolve(tracker: TimeTracker, payload: Optional[TimerActionIn]) -> Person:
    return await tracker.resolve_person(_person(payload.member if payload else None))

@router.get("/cards/{card_id}/time", response_model=CardTimeOut)
async def card_time(card_id: str, tracker: TimeTracker = Depends(get_tracker)):
    view = await tracker.get_member_time_view(card_id)
    now = tracker.clock()
    members = []
    for member_id, m in view.items():
        live = live_total(m.total_ms, m.active_start, now)
        members.append(MemberTimeOut(
            member_id=member_id,
            name=m.name,
            total_ms=m.total_ms,
            live_total_ms=live,
            active_start=m.active_start,
            active_timer_id=m.active_timer_id,
            formatted=format_duration(live),
            timer=format_timer(live),
        ))
    total = sum(m.live_total_ms for m in members)
    return CardTimeOut(
        card_id=card_id,
        members=members,
        total_ms=total,
        formatted=format_duration(total),
        active=any(m.active_start is not None for m in members),
    )

@router.post("/cards/{card_id}/timer/start", response_model=TimerStateOut)
async def start_timer(card_id: str, payload: Optional[TimerActionIn] = Body(default=None), tracker: TimeTracker = Depends(get_tracker)):
    person = await _resolve(tracker, payload)
    # already running counts as running
    await tracker.start_timer(card_id, person)
    return TimerStateOut(card_id=card_id, member_id=person.id, running=True)

@router.post("/cards/{card_id}/timer/stop", response_model=TimerStateOut)
async def stop_timer(card_id: str, payload: Optional[TimerActionIn] = Body(default=None), tracker: TimeTracker = Depends(get_tracker)):
    person = await _resolve(tracker, payload)
    await tracker.stop_timer(card_id, person)
    return TimerStateOut(card_id=card_id, member_id=person.id, running=False)

@router.post("/cards/{card_id}/timer/toggle", response_model=TimerStateOut)
async def toggle_timer(card_id: str, payload: Optional[TimerActionIn] = Body(default=None), tracker: TimeTracker = Depends(get_tracker)):
    person = await _resolve(tracker, payload)
    running = await tracker.toggle_timer(card_id, person)
    return TimerStateOut(card_id=card_id, member_id=person.id, running=running)

@router.post("/cards/{card_id}/time/adjust", response_model=TimeEntryOut)
async def adjust_time(card_id: str, payload: AdjustIn, tracker: TimeTracker = Depends(get_tracker)):
    if payload.delta_ms is not None:
        delta = payload.delta_ms
    else:
        delta = require_duration(payload.amount)
    if payload.subtract:
        delta = -abs(delta)
    entry = await tracker.adjust_time(delta, card_id=card_id, day=payload.day, person=_person(payload.member))
    return TimeEntryOut.model_validate(entry, from_attributes=True)

@router.delete("/cards/{card_id}/time")
async def reset_card_time(card_id: str, tracker: TimeTracker = Depends(get_tracker)):
    return await tracker.reset_card_time(card_id)

@router.post("/timers/stop", response_model=list[TimeEntryOut])
async def stop_timers(payload: StopTimersIn, tracker: TimeTracker = Depends(get_tracker)):
    stopped = await tracker.stop_active_timers(payload.timer_ids)
    return [TimeEntryOut.model_validate(e, from_attributes=True) for e in stopped]
