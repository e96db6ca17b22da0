"""Tests for the Trello-backed host."""

import httpx
import pytest

from cardtime.core.errors import TransientIOError
from cardtime.services.host import Label, Person, StaticHost, TrelloClient, TrelloHost, WorkItem

CARD = {
    "id": "c1",
    "name": "Login page",
    "idList": "l1",
    "labels": [{"name": "Frontend", "color": "blue"}, {"name": "", "color": "red"}],
}


def _handler(request: httpx.Request) -> httpx.Response:
    assert request.url.params["key"] == "k"
    assert request.url.params["token"] == "t"
    path = request.url.path
    if path == "/1/members/me":
        return httpx.Response(200, json={"id": "m1", "fullName": "Alice"})
    if path == "/1/boards/b1/cards":
        return httpx.Response(200, json=[CARD])
    if path == "/1/cards/c1":
        return httpx.Response(200, json=CARD)
    if path == "/1/lists/l1":
        return httpx.Response(200, json={"id": "l1", "name": "Doing"})
    if path == "/1/boards/b1/lists":
        return httpx.Response(200, json=[{"id": "l1", "name": "Doing"}])
    if path == "/1/boards/b1/members":
        return httpx.Response(200, json=[{"id": "m1", "fullName": "Alice"}, {"id": "m2"}])
    return httpx.Response(404, json={"message": "not found"})


@pytest.fixture
def client():
    return TrelloClient("https://trello.test", "k", "t", transport=httpx.MockTransport(_handler))


class TestTrelloClient:
    @pytest.mark.asyncio
    async def test_me(self, client):
        assert await client.get_me() == Person("m1", "Alice")

    @pytest.mark.asyncio
    async def test_cards_map_to_work_items(self, client):
        cards = await client.get_board_cards("b1")
        assert cards == [WorkItem("c1", "Login page", "l1", (Label("Frontend", "blue"), Label("", "red")))]
        assert cards[0].labels[1].key == "red"

    @pytest.mark.asyncio
    async def test_members_without_names(self, client):
        members = await client.get_board_members("b1")
        assert members[1] == Person("m2", "")

    @pytest.mark.asyncio
    async def test_http_errors_are_transient(self, client):
        with pytest.raises(TransientIOError):
            await client.get_card("missing")


class TestHosts:
    @pytest.mark.asyncio
    async def test_trello_card_context(self, client):
        host = TrelloHost(client, "b1", Person("m1", "Alice"), card_id="c1")
        ctx = await host.card_context("c1")
        assert ctx.board_id == "b1"
        assert ctx.card_name == "Login page"
        assert ctx.list_name == "Doing"
        assert (await host.current_work_item()).id == "c1"

    @pytest.mark.asyncio
    async def test_static_host_unknown_card_gets_bare_context(self):
        host = StaticHost(person=Person("m1"), board_id="b1")
        ctx = await host.card_context("nope")
        assert (ctx.card_id, ctx.card_name, ctx.labels) == ("nope", "", ())
        await host.touch("nope")
        assert host.touched == ["nope"]
