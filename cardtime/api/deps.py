from fastapi import Depends, HTTPException, Request
from starlette import status

from ..core.config import Settings, get_settings
from ..core.security import verify_context
from ..db.database import Database
from ..services.host import HostContext, Person, StaticHost, TrelloClient, TrelloHost
from ..services.tracker import TimeTracker

def _extract_token(request: Request) -> str | None:
    # 1) Cookie
    token = request.cookies.get("session")
    if token:
        return token
    # 2) Authorization: Bearer <token>
    auth = request.headers.get("Authorization")
    if auth and auth.lower().startswith("bearer "):
        return auth.split(None, 1)[1].strip()
    # 3) X-Tracker-Context header (power-up iframes cannot rely on cookies)
    hdr = request.headers.get("X-Tracker-Context")
    if hdr:
        return hdr.strip()
    # 4) Query param (fallback for downloads)
    qs = request.query_params.get("ctx")
    if qs:
        return qs.strip()
    return None

def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()

def get_database(request: Request) -> Database:
    db = getattr(request.app.state, "db", None)
    if db is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database not initialised")
    return db

async def current_context(request: Request, settings: Settings = Depends(get_app_settings)) -> dict:
    token = _extract_token(request)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    data = verify_context(token, settings.app_secret)
    if not data:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid session")
    return data

async def get_host(
    request: Request,
    ctx: dict = Depends(current_context),
    settings: Settings = Depends(get_app_settings),
) -> HostContext:
    person = Person(id=ctx["member_id"], name=ctx.get("member_name") or "")
    card_id = request.path_params.get("card_id")
    trello_token = request.headers.get("X-Trello-Token")
    if settings.trello_api_key and trello_token:
        client = TrelloClient(settings.trello_base_url, settings.trello_api_key, trello_token)
        return TrelloHost(client, ctx["board_id"], person, card_id=card_id)
    # No board API available: reports fall back to stored snapshots
    return StaticHost(person=person, board_id=ctx["board_id"], members=[person])

async def get_tracker(
    db: Database = Depends(get_database),
    host: HostContext = Depends(get_host),
    settings: Settings = Depends(get_app_settings),
) -> TimeTracker:
    return TimeTracker(db, host, settings=settings)
