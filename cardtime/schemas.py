from pydantic import BaseModel, Field, model_validator
from typing import Optional, List, Dict, Literal
from datetime import datetime, date

ReportKind = Literal["time", "estimate"]
GroupBy = Literal["card", "person", "label"]
SortBy = Literal["deviation", "estimated", "accuracy", "label", "time"]

class LabelOut(BaseModel):
    name: str = ""
    color: str = ""

class LoginIn(BaseModel):
    board_id: str
    trello_token: Optional[str] = None
    # only honoured when no Trello API key is configured (local/dev installs)
    member_id: Optional[str] = None
    member_name: Optional[str] = None

class ContextOut(BaseModel):
    member_id: str
    member_name: str = ""
    board_id: str
    # echoed on login for clients that send X-Tracker-Context instead of the cookie
    token: Optional[str] = None

class MemberRef(BaseModel):
    id: str
    name: str = ""

class MemberTimeOut(BaseModel):
    member_id: str
    name: str
    total_ms: int
    live_total_ms: int
    active_start: Optional[datetime] = None
    active_timer_id: Optional[int] = None
    formatted: str
    timer: str

class CardTimeOut(BaseModel):
    card_id: str
    members: List[MemberTimeOut]
    total_ms: int
    formatted: str
    active: bool

class TimerActionIn(BaseModel):
    # acting on behalf of another board member; defaults to the session member
    member: Optional[MemberRef] = None

class TimerStateOut(BaseModel):
    card_id: str
    member_id: str
    running: bool

class AdjustIn(BaseModel):
    delta_ms: Optional[int] = None
    amount: Optional[str] = None  # "1h 30m"
    subtract: bool = False
    day: Optional[date] = None  # adjustment lands at noon of this day
    member: Optional[MemberRef] = None

    @model_validator(mode="after")
    def _one_of(self):
        if self.delta_ms is None and not (self.amount or "").strip():
            raise ValueError("Provide delta_ms or amount")
        return self

class TimeEntryOut(BaseModel):
    id: int
    card_id: str
    member_id: str
    member_name: str
    started_at: datetime
    ended_at: datetime
    duration_ms: int

class StopTimersIn(BaseModel):
    timer_ids: List[int] = Field(default_factory=list)

class EstimateIn(BaseModel):
    estimated_ms: Optional[int] = None
    estimate: Optional[str] = None  # "2h 30m"
    reason: Optional[str] = None
    member: Optional[MemberRef] = None

    @model_validator(mode="after")
    def _one_of(self):
        if self.estimated_ms is None and not (self.estimate or "").strip():
            raise ValueError("Provide estimated_ms or estimate")
        return self

class EstimateOut(BaseModel):
    member_id: str
    name: str
    estimated_ms: int
    original_ms: Optional[int] = None
    updated_at: datetime

class EstimateChangeOut(BaseModel):
    card_id: str
    member_id: str
    change: str

class EstimateHistoryOut(BaseModel):
    id: int
    estimate_id: int
    member_id: str
    member_name: str
    previous_ms: int
    new_ms: int
    reason: Optional[str] = None
    changed_at: datetime

class ReportFilters(BaseModel):
    start: Optional[datetime] = None
    end: Optional[datetime] = None

class ActiveMember(BaseModel):
    timer_id: int
    member_id: str
    member_name: str
    card_id: str
    card_name: str

class ReportRow(BaseModel):
    key: str
    label: str
    sublabel: Optional[str] = None
    color: Optional[str] = None
    card_id: Optional[str] = None
    estimated_ms: int = 0
    original_ms: Optional[int] = None
    actual_ms: int = 0
    remaining_ms: int = 0
    deviation_ms: int = 0
    deviation_pct: Optional[float] = None
    accuracy: Optional[float] = None
    active_members: List[ActiveMember] = Field(default_factory=list)

class ReportSummary(BaseModel):
    total_estimated_ms: int = 0
    total_actual_ms: int = 0
    total_remaining_ms: int = 0
    total_original_ms: Optional[int] = None
    deviation_pct: Optional[float] = None
    avg_accuracy: Optional[float] = None
    most_over: Optional[ReportRow] = None
    most_under: Optional[ReportRow] = None

class ReportOut(BaseModel):
    board_id: str
    kind: ReportKind
    group_by: GroupBy
    sort_by: SortBy
    filters: ReportFilters
    generated_at: datetime
    rows: List[ReportRow]
    summary: ReportSummary

class ClientConfigOut(BaseModel):
    poll_interval_seconds: float
    tick_interval_seconds: float
    grace_period_seconds: int
    timezone: str
