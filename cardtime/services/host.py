"""Pull-based view of the host board platform.

The tracker never receives push events from the board. It asks for the
current person, card and board, reads board metadata (cards, lists, members)
on demand, and fires ``touch`` after mutations so badges can refresh.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from ..core.errors import TransientIOError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Person:
    id: str
    name: str = ""


@dataclass(frozen=True)
class Label:
    name: str = ""
    color: str = ""

    @property
    def key(self) -> str:
        return self.name or self.color

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "color": self.color}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Label":
        return cls(name=data.get("name") or "", color=data.get("color") or "")


@dataclass(frozen=True)
class WorkItem:
    id: str
    name: str = ""
    category_id: str = ""
    labels: tuple = ()


@dataclass(frozen=True)
class Category:
    id: str
    name: str = ""


@dataclass(frozen=True)
class CardContext:
    """Snapshot of a card written alongside completed entries."""

    board_id: str
    card_id: str
    card_name: str = ""
    list_name: str = ""
    labels: tuple = ()


class HostContext:
    """Interface to the board platform. Subclasses implement the reads."""

    async def current_person(self) -> Person:
        raise NotImplementedError

    async def current_group(self) -> str:
        raise NotImplementedError

    async def current_work_item(self) -> Optional[WorkItem]:
        raise NotImplementedError

    async def group_members(self) -> List[Person]:
        raise NotImplementedError

    async def all_work_items(self) -> List[WorkItem]:
        raise NotImplementedError

    async def all_categories(self) -> List[Category]:
        raise NotImplementedError

    async def touch(self, card_id: str) -> None:
        """Badge refresh hint. Never part of correctness."""

    async def work_item(self, card_id: str) -> Optional[WorkItem]:
        for item in await self.all_work_items():
            if item.id == card_id:
                return item
        return None

    async def category_name(self, category_id: str) -> str:
        if not category_id:
            return ""
        for cat in await self.all_categories():
            if cat.id == category_id:
                return cat.name
        return ""

    async def card_context(self, card_id: str) -> CardContext:
        board_id = await self.current_group()
        item = await self.work_item(card_id)
        if item is None:
            return CardContext(board_id=board_id, card_id=card_id)
        return CardContext(
            board_id=board_id,
            card_id=card_id,
            card_name=item.name,
            list_name=await self.category_name(item.category_id),
            labels=tuple(item.labels),
        )


@dataclass
class StaticHost(HostContext):
    """In-memory host. Used by tests and when no board API is configured."""

    person: Person
    board_id: str
    card: Optional[WorkItem] = None
    members: List[Person] = field(default_factory=list)
    items: List[WorkItem] = field(default_factory=list)
    categories: List[Category] = field(default_factory=list)
    touched: List[str] = field(default_factory=list)

    async def current_person(self) -> Person:
        return self.person

    async def current_group(self) -> str:
        return self.board_id

    async def current_work_item(self) -> Optional[WorkItem]:
        return self.card

    async def group_members(self) -> List[Person]:
        return list(self.members)

    async def all_work_items(self) -> List[WorkItem]:
        return list(self.items)

    async def all_categories(self) -> List[Category]:
        return list(self.categories)

    async def touch(self, card_id: str) -> None:
        self.touched.append(card_id)


class TrelloClient:
    def __init__(self, base_url: str, api_key: str, token: str, transport: httpx.AsyncBaseTransport | None = None):
        self.base = base_url.rstrip("/")
        self.params = {"key": api_key, "token": token}
        self.headers = {"Accept": "application/json"}
        self.transport = transport

    async def _get(self, path: str, **params: Any) -> Any:
        url = f"{self.base}/1/{path.lstrip('/')}"
        query = {**self.params, **{k: v for k, v in params.items() if v is not None}}
        try:
            async with httpx.AsyncClient(timeout=30.0, transport=self.transport) as client:
                r = await client.get(url, params=query, headers=self.headers)
                r.raise_for_status()
                return r.json()
        except httpx.HTTPError as exc:
            raise TransientIOError(f"Trello GET {path} failed: {exc}") from exc

    async def get_me(self) -> Person:
        data = await self._get("members/me", fields="id,fullName")
        return Person(id=data["id"], name=data.get("fullName") or "")

    async def get_board_cards(self, board_id: str) -> List[WorkItem]:
        arr = await self._get(f"boards/{board_id}/cards", fields="id,name,idList,labels")
        return [_work_item(c) for c in arr]

    async def get_card(self, card_id: str) -> WorkItem:
        return _work_item(await self._get(f"cards/{card_id}", fields="id,name,idList,labels"))

    async def get_board_lists(self, board_id: str) -> List[Category]:
        arr = await self._get(f"boards/{board_id}/lists", fields="id,name")
        return [Category(id=l["id"], name=l.get("name") or "") for l in arr]

    async def get_list(self, list_id: str) -> Category:
        data = await self._get(f"lists/{list_id}", fields="id,name")
        return Category(id=data["id"], name=data.get("name") or "")

    async def get_board_members(self, board_id: str) -> List[Person]:
        arr = await self._get(f"boards/{board_id}/members", fields="id,fullName")
        return [Person(id=m["id"], name=m.get("fullName") or "") for m in arr]


def _work_item(c: Dict[str, Any]) -> WorkItem:
    labels = tuple(Label.from_dict(l) for l in (c.get("labels") or []))
    return WorkItem(id=c["id"], name=c.get("name") or "", category_id=c.get("idList") or "", labels=labels)


class TrelloHost(HostContext):
    """Host backed by the Trello REST API for one member on one board."""

    def __init__(self, client: TrelloClient, board_id: str, person: Person, card_id: str | None = None):
        self.client = client
        self.board_id = board_id
        self.person = person
        self.card_id = card_id

    async def current_person(self) -> Person:
        return self.person

    async def current_group(self) -> str:
        return self.board_id

    async def current_work_item(self) -> Optional[WorkItem]:
        if not self.card_id:
            return None
        return await self.client.get_card(self.card_id)

    async def group_members(self) -> List[Person]:
        return await self.client.get_board_members(self.board_id)

    async def all_work_items(self) -> List[WorkItem]:
        return await self.client.get_board_cards(self.board_id)

    async def all_categories(self) -> List[Category]:
        return await self.client.get_board_lists(self.board_id)

    async def work_item(self, card_id: str) -> Optional[WorkItem]:
        return await self.client.get_card(card_id)

    async def category_name(self, category_id: str) -> str:
        if not category_id:
            return ""
        return (await self.client.get_list(category_id)).name

    async def touch(self, card_id: str) -> None:
        # Badges re-read through the power-up iframe on their own refresh cycle
        logger.debug("touch card=%s (badge refresh left to the board client)", card_id)
