"""Async client for the tracker's HTTP API.

Board-side code uses it to read card time and reports and to keep a card's
view current: :meth:`TrackerClient.watch_card` re-fetches on the interval the
server advertises at ``/api/client-config``.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

import httpx

from .core.errors import NotAuthenticated, TransientIOError
from .schemas import CardTimeOut, ClientConfigOut, ReportOut
from .services.poller import Poller

logger = logging.getLogger(__name__)


class TrackerClient:
    def __init__(self, base_url: str, token: str, transport: httpx.AsyncBaseTransport | None = None):
        self.base = base_url.rstrip("/")
        self.headers = {"Accept": "application/json", "X-Tracker-Context": token}
        self.transport = transport

    async def _get(self, path: str, **params: Any) -> Any:
        url = f"{self.base}/api/{path.lstrip('/')}"
        query = {k: v for k, v in params.items() if v is not None}
        try:
            async with httpx.AsyncClient(timeout=30.0, transport=self.transport) as client:
                r = await client.get(url, params=query, headers=self.headers)
                if r.status_code == 401:
                    raise NotAuthenticated("Tracker session rejected")
                r.raise_for_status()
                return r.json()
        except httpx.HTTPError as exc:
            raise TransientIOError(f"tracker GET {path} failed: {exc}") from exc

    async def client_config(self) -> ClientConfigOut:
        return ClientConfigOut.model_validate(await self._get("client-config"))

    async def card_time(self, card_id: str) -> CardTimeOut:
        return CardTimeOut.model_validate(await self._get(f"cards/{card_id}/time"))

    async def report(self, kind: str = "estimate", group_by: str = "card", sort_by: str = "deviation", preset: Optional[str] = None) -> ReportOut:
        data = await self._get("reports", kind=kind, group_by=group_by, sort_by=sort_by, preset=preset)
        return ReportOut.model_validate(data)

    async def watch_card(
        self,
        card_id: str,
        on_result: Callable[[CardTimeOut], None],
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> Poller[CardTimeOut]:
        """Start polling one card's time view. Stop it with ``await poller.stop()``."""
        config = await self.client_config()
        poller: Poller[CardTimeOut] = Poller(
            lambda: self.card_time(card_id),
            on_result,
            interval=config.poll_interval_seconds,
            on_error=on_error,
        )
        poller.start()
        poller.refresh_now()
        logger.debug("watching card=%s every %ss", card_id, config.poll_interval_seconds)
        return poller

