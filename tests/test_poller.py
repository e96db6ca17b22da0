"""Tests for the polling loop."""

import asyncio

import pytest

from cardtime.services.poller import Poller


class TestPoller:
    @pytest.mark.asyncio
    async def test_polls_on_interval(self):
        results = []
        calls = 0

        async def fetch():
            nonlocal calls
            calls += 1
            return calls

        poller = Poller(fetch, results.append, interval=0.01)
        poller.start()
        await asyncio.sleep(0.1)
        await poller.stop()
        await poller.drain()

        assert len(results) >= 2
        assert results == sorted(results)

    @pytest.mark.asyncio
    async def test_fetch_errors_do_not_stop_the_loop(self):
        errors = []
        results = []
        calls = 0

        async def fetch():
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("store down")
            return calls

        poller = Poller(fetch, results.append, interval=0.01, on_error=errors.append)
        poller.start()
        await asyncio.sleep(0.1)
        await poller.stop()
        await poller.drain()

        assert len(errors) == 1
        assert results

    @pytest.mark.asyncio
    async def test_result_after_stop_is_dropped(self):
        release = asyncio.Event()
        results = []

        async def fetch():
            await release.wait()
            return "late"

        poller = Poller(fetch, results.append, interval=60)
        task = poller.refresh_now()
        await poller.stop()
        release.set()
        await task

        assert results == []
        assert not task.cancelled()

    @pytest.mark.asyncio
    async def test_hidden_skips_fetch_and_reveal_refreshes(self):
        results = []

        async def fetch():
            return "fresh"

        poller = Poller(fetch, results.append, interval=60)
        poller.set_visible(False)
        poller.start()
        await asyncio.sleep(0.02)
        assert results == []

        poller.set_visible(True)
        await asyncio.sleep(0.02)
        await poller.drain()
        await poller.stop()

        assert results == ["fresh"]
