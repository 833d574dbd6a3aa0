"""
Tests for ProgressBroadcaster.
"""

import pytest

from batch.events import VIEW_BATCH, VIEW_CONVERSATION, ProgressBroadcaster
from batch.models import RunProgress, RunStatus, SubTask


class TestProgressBroadcaster:
    """Tests for ProgressBroadcaster."""

    @pytest.mark.asyncio
    async def test_records_latest_snapshot(self):
        broadcaster = ProgressBroadcaster()
        progress = RunProgress(status=RunStatus.PROCESSING, message="go")
        sub_tasks = [SubTask(file_path="a")]

        await broadcaster.on_progress(progress, sub_tasks)

        assert broadcaster.latest is progress
        assert broadcaster.latest_sub_tasks == sub_tasks
        assert broadcaster.latest_sub_tasks is not sub_tasks

    @pytest.mark.asyncio
    async def test_route_and_history(self):
        broadcaster = ProgressBroadcaster()

        await broadcaster.on_progress(RunProgress(status=RunStatus.PARSING), [])
        await broadcaster.on_route(VIEW_CONVERSATION)
        await broadcaster.on_route(VIEW_BATCH)

        assert broadcaster.view == VIEW_BATCH
        kinds = [e["kind"] for e in broadcaster.events()]
        assert kinds == ["progress", "route", "route"]
        assert broadcaster.events(1)[0]["view"] == VIEW_CONVERSATION
        assert broadcaster.events()[0]["progress"]["status"] == "parsing"

    @pytest.mark.asyncio
    async def test_history_bounded(self):
        broadcaster = ProgressBroadcaster(history_size=3)

        for _ in range(5):
            await broadcaster.on_route(VIEW_BATCH)

        assert len(broadcaster.events()) == 3

    @pytest.mark.asyncio
    async def test_cursor_survives_history_rollover(self):
        broadcaster = ProgressBroadcaster(history_size=3)
        for view in ("a", "b", "c"):
            await broadcaster.on_route(view)

        cursor = broadcaster.next_seq
        assert [e["view"] for e in broadcaster.events(0)] == ["a", "b", "c"]

        await broadcaster.on_route("new1")
        await broadcaster.on_route("new2")

        assert [e["view"] for e in broadcaster.events(cursor)] == ["new1", "new2"]
        assert [e["seq"] for e in broadcaster.events()] == [2, 3, 4]
        assert broadcaster.events(broadcaster.next_seq) == []
