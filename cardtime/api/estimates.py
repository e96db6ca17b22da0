from typing import List, Optional

from fastapi import APIRouter, Body, Depends

from ..schemas import EstimateChangeOut, EstimateHistoryOut, EstimateIn, EstimateOut, TimerActionIn
from ..services.host import Person
from ..services.tracker import TimeTracker
from ..util.durations import require_duration
from .deps import get_tracker

router = APIRouter(prefix="/cards/{card_id}/estimates", tags=["estimates"])

@router.get("", response_model=List[EstimateOut])
async def get_estimates(card_id: str, tracker: TimeTracker = Depends(get_tracker)):
    views = await tracker.get_estimates(card_id)
    return [
        EstimateOut(member_id=member_id, name=v.name, estimated_ms=v.estimated_ms, original_ms=v.original_ms, updated_at=v.updated_at)
        for member_id, v in views.items()
    ]

@router.put("", response_model=EstimateChangeOut)
async def set_estimate(card_id: str, payload: EstimateIn, tracker: TimeTracker = Depends(get_tracker)):
    if payload.estimated_ms is not None:
        estimated_ms = payload.estimated_ms
    else:
        estimated_ms = require_duration(payload.estimate)
    requested = Person(id=payload.member.id, name=payload.member.name) if payload.member else None
    person = await tracker.resolve_person(requested)
    change = await tracker.set_estimate(estimated_ms, card_id=card_id, person=person, reason=payload.reason)
    return EstimateChangeOut(card_id=card_id, member_id=person.id, change=change.value)

@router.delete("")
async def remove_estimate(card_id: str, payload: Optional[TimerActionIn] = Body(default=None), tracker: TimeTracker = Depends(get_tracker)):
    person = Person(id=payload.member.id, name=payload.member.name) if payload and payload.member else None
    removed = await tracker.remove_estimate(card_id, person)
    return {"removed": removed}

@router.delete("/all")
async def clear_estimates(card_id: str, tracker: TimeTracker = Depends(get_tracker)):
    return {"removed": await tracker.clear_estimates(card_id)}

@router.get("/history", response_model=List[EstimateHistoryOut])
async def estimate_history(card_id: str, tracker: TimeTracker = Depends(get_tracker)):
    rows = await tracker.get_estimate_history(card_id)
    return [EstimateHistoryOut.model_validate(h, from_attributes=True) for h in rows]
