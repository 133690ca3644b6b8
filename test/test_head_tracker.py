#!/usr/bin/env python3
"""Tests for the finalized head tracker."""

import asyncio
import logging

import pytest
from unittest.mock import AsyncMock, MagicMock
from hexbytes import HexBytes
from web3.datastructures import AttributeDict

from superchain_backend.errors import FinalizedHeadUnavailableError
from superchain_backend.head_tracker import (
    DEFAULT_FETCH_TIMEOUT,
    DEFAULT_POLL_INTERVAL,
    FinalizedHeadTracker,
    fetch_finalized_reference,
)

from conftest import finalized_ref


class TestFetchFinalizedReference:
    """Tests for fetching the finalized head from a node."""

    @pytest.mark.asyncio
    async def test_fetch(self):
        """Test that the finalized block is requested and converted."""
        w3 = MagicMock()
        w3.eth.get_block = AsyncMock(return_value=AttributeDict({
            "number": 90,
            "hash": HexBytes("0x" + "ab" * 32),
            "timestamp": 1500,
        }))

        ref = await fetch_finalized_reference(w3)

        w3.eth.get_block.assert_awaited_once_with("finalized")
        assert ref.number == 90
        assert ref.timestamp == 1500

    def test_reference_policy(self):
        """Test the default polling policy: one epoch, short fetch timeout."""
        assert DEFAULT_POLL_INTERVAL == 384
        assert DEFAULT_FETCH_TIMEOUT == 10


class TestStart:
    """Tests for tracker startup."""

    @pytest.mark.asyncio
    async def test_start_fetches_initial_reference(self):
        """Test that start serves the initially fetched reference."""
        fetch = AsyncMock(return_value=finalized_ref(90, 1500))

        tracker = await FinalizedHeadTracker.start(fetch, poll_interval=60, fetch_timeout=1)
        try:
            assert tracker.current() == finalized_ref(90, 1500)
            assert tracker.finalized_timestamp == 1500
            assert tracker.poller.is_running is True
            fetch.assert_awaited_once()
        finally:
            await tracker.stop()

        assert tracker.poller.is_running is False

    @pytest.mark.asyncio
    async def test_start_fails_without_initial_reference(self):
        """Test that a failed initial fetch is fatal."""
        fetch = AsyncMock(side_effect=OSError("node down"))

        with pytest.raises(FinalizedHeadUnavailableError, match="node down") as exc_info:
            await FinalizedHeadTracker.start(fetch)

        assert isinstance(exc_info.value.__cause__, OSError)

    @pytest.mark.asyncio
    async def test_start_fails_on_timeout(self):
        """Test that a stalled initial fetch is fatal."""
        async def stalled_fetch():
            await asyncio.sleep(10)

        with pytest.raises(FinalizedHeadUnavailableError, match="timed out"):
            await FinalizedHeadTracker.start(stalled_fetch, fetch_timeout=0.01)


class TestUpdate:
    """Tests for the single write path."""

    def test_update_replaces_reference(self):
        """Test that update replaces the reference whole."""
        tracker = FinalizedHeadTracker(AsyncMock(), finalized_ref(90, 1500))
        before = tracker.current()

        tracker.update(finalized_ref(91, 1512))

        assert tracker.current() == finalized_ref(91, 1512)
        assert tracker.updates == 1
        # Snapshots handed out earlier are not modified
        assert before == finalized_ref(90, 1500)

    def test_status_reports_poller_state(self):
        """Test that tracker status carries the poller counters and last polled reference."""
        tracker = FinalizedHeadTracker(AsyncMock(), finalized_ref(90, 1500))

        assert tracker.get_status() == {
            "finalized_number": 90,
            "finalized_timestamp": 1500,
            "updates": 0,
            "polls_succeeded": 0,
            "polls_failed": 0,
            "is_polling": False,
            "last_polled": None,
        }

    def test_update_backwards_is_logged(self, caplog):
        """Test that an older reference is stored but logged as a warning."""
        tracker = FinalizedHeadTracker(AsyncMock(), finalized_ref(90, 1500))

        with caplog.at_level(logging.WARNING):
            tracker.update(finalized_ref(80, 1380))

        assert tracker.current() == finalized_ref(80, 1380)
        assert "moved backwards: 90 -> 80" in caplog.text

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_previous(self):
        """Test that a failed refresh leaves the last good reference in place."""
        fetch = AsyncMock(side_effect=[finalized_ref(91, 1512), OSError("node down")])
        tracker = FinalizedHeadTracker(fetch, finalized_ref(90, 1500))

        assert await tracker.poller.poll_once(tracker.update, timeout=1) is True
        assert await tracker.poller.poll_once(tracker.update, timeout=1) is False

        assert tracker.current() == finalized_ref(91, 1512)
        status = tracker.get_status()
        assert status["finalized_number"] == 91
        assert status["polls_failed"] == 1
        assert status["updates"] == 1
        assert status["polls_succeeded"] == 1
        assert status["last_polled"] == finalized_ref(91, 1512)
        assert status["is_polling"] is False


class TestRefreshLoop:
    """Tests for background refreshing under concurrent reads."""

    @pytest.mark.asyncio
    async def test_reads_see_latest_refresh(self):
        """Test that after N refreshes a read returns the last one."""
        refs = [finalized_ref(90 + i, 1500 + 12 * i) for i in range(1, 6)]
        fetch = AsyncMock(side_effect=refs + [refs[-1]] * 1000)
        tracker = FinalizedHeadTracker(fetch, finalized_ref(90, 1500))

        tracker.poller.start(tracker.update, interval=0.001, timeout=1)
        try:
            while tracker.updates < len(refs):
                await asyncio.sleep(0.001)
        finally:
            await tracker.stop()

        assert tracker.current() == refs[-1]
        assert tracker.finalized_timestamp == refs[-1].timestamp

    @pytest.mark.asyncio
    async def test_concurrent_reads_during_refresh(self):
        """Test that readers only ever see whole, non-decreasing references."""
        refs = [finalized_ref(90 + i, 1500 + 12 * i) for i in range(50)]
        fetch = AsyncMock(side_effect=refs[1:] + [refs[-1]] * 1000)
        tracker = FinalizedHeadTracker(fetch, refs[0])
        known = set(refs)

        async def reader() -> int:
            last_number = -1
            reads = 0
            while tracker.updates < len(refs) - 1:
                ref = tracker.current()
                assert ref in known
                assert ref.timestamp == 1500 + 12 * (ref.number - 90)
                assert ref.number >= last_number
                last_number = ref.number
                reads += 1
                await asyncio.sleep(0)
            return reads

        tracker.poller.start(tracker.update, interval=0.001, timeout=1)
        try:
            reads = await asyncio.wait_for(asyncio.gather(*(reader() for _ in range(10))), timeout=10)
        finally:
            await tracker.stop()

        assert all(count > 0 for count in reads)
        assert tracker.current() == refs[-1]
