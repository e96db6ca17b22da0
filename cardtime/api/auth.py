import logging

from fastapi import APIRouter, Depends, HTTPException, Response

from ..core.config import Settings
from ..core.errors import TransientIOError
from ..core.security import sign_context
from ..schemas import ContextOut, LoginIn
from ..services.host import TrelloClient
from .deps import current_context, get_app_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

@router.post("/login", response_model=ContextOut)
async def login(payload: LoginIn, response: Response, settings: Settings = Depends(get_app_settings)):
    if settings.trello_api_key:
        if not payload.trello_token:
            raise HTTPException(status_code=401, detail="Trello token required")
        client = TrelloClient(settings.trello_base_url, settings.trello_api_key, payload.trello_token)
        try:
            me = await client.get_me()
        except TransientIOError as exc:
            logger.warning("login rejected: %s", exc)
            raise HTTPException(status_code=401, detail="Invalid Trello token")
        member_id, member_name = me.id, me.name
    else:
        if not payload.member_id:
            raise HTTPException(status_code=401, detail="member_id required")
        member_id, member_name = payload.member_id, payload.member_name or ""

    ctx = {"member_id": member_id, "member_name": member_name, "board_id": payload.board_id}
    token = sign_context(ctx, settings.app_secret)
    response.set_cookie("session", token, httponly=True, samesite="none", secure=True)
    logger.info("login member=%s board=%s", member_id, payload.board_id)
    return ContextOut(**ctx, token=token)

@router.post("/logout")
async def logout(response: Response):
    response.delete_cookie("session")
    return {"ok": True}

me_router = APIRouter(tags=["me"])

@me_router.get("/me", response_model=ContextOut)
async def me(ctx: dict = Depends(current_context)):
    return ContextOut(member_id=ctx["member_id"], member_name=ctx.get("member_name") or "", board_id=ctx["board_id"])
