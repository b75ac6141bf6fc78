"""Tests for the feedback log, its persistence and delivery."""

import asyncio
import json
import threading
from types import SimpleNamespace

import httpx
import pytest

from simpllm.feedback import (
    STATE_KEY,
    FeedbackEntry,
    FeedbackRecorder,
    Rating,
    RatingKind,
)
from simpllm.routing.catalog import TaskType
from simpllm.sink import FeedbackSink
from simpllm.state import StateStore


def sink_settings(endpoint="https://admin.example.com/feedback"):
    return SimpleNamespace(feedback_endpoint=endpoint, team_id="team-7", department_id="platform")


@pytest.fixture
def captured():
    """Requests seen by a mock feedback endpoint."""
    return []


@pytest.fixture
def transport(captured):
    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"ok": True})
    return httpx.MockTransport(handler)


# ═══════════════════════════════════════════════════════════════
# Ratings and entries
# ═══════════════════════════════════════════════════════════════

class TestRating:

    def test_constructors(self):
        assert Rating.positive().kind == RatingKind.POSITIVE
        assert Rating.override("gpt-5").overridden_to == "gpt-5"

    def test_override_requires_target(self):
        with pytest.raises(ValueError):
            Rating(RatingKind.OVERRIDE)

    def test_target_only_on_override(self):
        with pytest.raises(ValueError):
            Rating(RatingKind.POSITIVE, "gpt-5")


class TestFeedbackEntry:

    def test_wire_format(self):
        entry = FeedbackEntry("2026-01-01T00:00:00+00:00", "r1", "gpt-4o", "debug",
                              Rating.override("claude-sonnet-4.5"))
        assert entry.to_dict() == {
            "timestamp": "2026-01-01T00:00:00+00:00",
            "requestId": "r1",
            "selectedModel": "gpt-4o",
            "taskType": "debug",
            "rating": "override",
            "overriddenTo": "claude-sonnet-4.5",
        }

    def test_optional_fields_kept(self):
        entry = FeedbackEntry("t", "r1", "gpt-4o", "test", Rating.positive(), 120, 850.5)
        restored = FeedbackEntry.from_dict(entry.to_dict())
        assert restored == entry


# ═══════════════════════════════════════════════════════════════
# Recorder
# ═══════════════════════════════════════════════════════════════

class TestFeedbackRecorder:

    def test_record_feedback(self):
        recorder = FeedbackRecorder()
        entry = recorder.record_feedback("r1", "gpt-4o", TaskType.DEBUG, Rating.positive(),
                                         prompt_length=42, response_time=300.0)
        assert entry.task_type == "debug"
        assert entry.prompt_length == 42
        assert recorder.entries() == [entry]

    def test_record_feedback_rejects_override(self):
        recorder = FeedbackRecorder()
        with pytest.raises(ValueError):
            recorder.record_feedback("r1", "gpt-4o", TaskType.DEBUG, Rating.override("gpt-5"))

    def test_record_override(self):
        recorder = FeedbackRecorder()
        entry = recorder.record_override("r2", "gpt-4o", "claude-opus-4.5", TaskType.ARCHITECTURE)
        assert entry.selected_model == "gpt-4o"
        assert entry.rating == Rating.override("claude-opus-4.5")

    def test_cap_keeps_newest_in_order(self):
        recorder = FeedbackRecorder(max_entries=1000)
        for i in range(1005):
            recorder.record_feedback(f"r{i}", "gpt-4o", TaskType.SIMPLE, Rating.positive())

        entries = recorder.entries()
        assert len(entries) == len(recorder) == 1000
        assert entries[0].request_id == "r5"
        assert entries[-1].request_id == "r1004"

    def test_stats(self):
        recorder = FeedbackRecorder()
        recorder.record_feedback("r1", "gpt-4o", TaskType.DEBUG, Rating.positive())
        recorder.record_feedback("r2", "gpt-4o", TaskType.DEBUG, Rating.negative())
        recorder.record_feedback("r3", "claude-sonnet-4.5", TaskType.TEST, Rating.positive())
        recorder.record_override("r4", "gpt-4o", "gpt-5", TaskType.DEBUG)

        stats = recorder.stats()
        assert (stats.total, stats.positive, stats.negative, stats.overrides) == (4, 2, 1, 1)
        assert stats.by_model["gpt-4o"].overrides == 1
        assert stats.by_model["gpt-4o"].negative == 1
        assert stats.by_task["debug"].positive == 1
        assert stats.by_task["test"].positive == 1
        assert stats.satisfaction_rate == pytest.approx(2 / 3)

    def test_satisfaction_none_without_ratings(self):
        recorder = FeedbackRecorder()
        recorder.record_override("r1", "gpt-4o", "gpt-5", TaskType.DEBUG)
        assert recorder.stats().satisfaction_rate is None

    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "state.json"
        recorder = FeedbackRecorder(StateStore(path))
        recorder.record_feedback("r1", "gpt-4o", TaskType.DEBUG, Rating.negative())

        on_disk = json.loads(path.read_text())
        assert on_disk[STATE_KEY][0]["requestId"] == "r1"

        reloaded = FeedbackRecorder(StateStore(path))
        assert [e.request_id for e in reloaded.entries()] == ["r1"]

    def test_malformed_entries_skipped(self, tmp_path):
        path = tmp_path / "state.json"
        good = FeedbackEntry("t", "r1", "gpt-4o", "debug", Rating.negative()).to_dict()
        path.write_text(json.dumps({STATE_KEY: [
            {"rating": "positive"},
            {**good, "rating": "meh"},
            "junk",
            good,
        ]}))

        recorder = FeedbackRecorder(StateStore(path))
        assert [e.request_id for e in recorder.entries()] == ["r1"]

    def test_clear(self, tmp_path):
        path = tmp_path / "state.json"
        recorder = FeedbackRecorder(StateStore(path))
        recorder.record_feedback("r1", "gpt-4o", TaskType.DEBUG, Rating.negative())
        recorder.clear()

        assert len(recorder) == 0
        assert FeedbackRecorder(StateStore(path)).entries() == []

    def test_forwards_to_sink(self, transport, captured):
        sink = FeedbackSink(sink_settings, transport=transport)
        recorder = FeedbackRecorder(sink=sink)
        recorder.record_feedback("r1", "gpt-4o", TaskType.DEBUG, Rating.positive())
        sink.join(timeout=5)

        [request] = captured
        body = json.loads(request.content)
        assert body["requestId"] == "r1"
        assert body["rating"] == "positive"
        assert body["teamId"] == "team-7"
        assert body["departmentId"] == "platform"


# ═══════════════════════════════════════════════════════════════
# Sink
# ═══════════════════════════════════════════════════════════════

class TestFeedbackSink:

    def test_no_endpoint_is_noop(self, transport, captured):
        sink = FeedbackSink(lambda: sink_settings(""), transport=transport)
        assert asyncio.run(sink.post({"a": 1})) is False
        sink.submit({"a": 1})
        assert captured == []

    def test_non_2xx_is_false(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(503))
        sink = FeedbackSink(sink_settings, transport=transport)

        async def run():
            try:
                return await sink.post({"a": 1})
            finally:
                await sink.aclose()

        assert asyncio.run(run()) is False

    def test_unreachable_is_false(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        sink = FeedbackSink(sink_settings, transport=httpx.MockTransport(handler))

        async def run():
            try:
                return await sink.post({"a": 1})
            finally:
                await sink.aclose()

        assert asyncio.run(run()) is False

    def test_sync_submit_does_not_wait(self, captured):
        release = threading.Event()

        def handler(request):
            release.wait(5)
            captured.append(request)
            return httpx.Response(200)

        sink = FeedbackSink(sink_settings, transport=httpx.MockTransport(handler))
        sink.submit({"n": 1})
        assert captured == []

        release.set()
        sink.join(timeout=5)
        assert json.loads(captured[0].content)["n"] == 1

    def test_submit_in_loop_runs_in_background(self, transport, captured):
        sink = FeedbackSink(sink_settings, transport=transport)

        async def run():
            sink.submit({"n": 1})
            sink.submit({"n": 2})
            await sink.aclose()

        asyncio.run(run())
        assert sorted(json.loads(r.content)["n"] for r in captured) == [1, 2]

    def test_request_credits(self, transport, captured):
        sink = FeedbackSink(sink_settings, transport=transport)

        async def run():
            try:
                return await sink.request_credits("release week", 287.5)
            finally:
                await sink.aclose()

        assert asyncio.run(run()) is True
        body = json.loads(captured[0].content)
        assert body["type"] == "credit_request"
        assert body["reason"] == "release week"
        assert body["currentUsage"] == 287.5
        assert body["teamId"] == "team-7"


class TestStateStore:

    def test_missing_file(self, tmp_path):
        assert StateStore(tmp_path / "nope.json").get("k", 5) == 5

    def test_corrupt_file_starts_empty(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json")
        store = StateStore(path)
        assert store.get("k") is None
        store.update("k", [1])
        assert json.loads(path.read_text()) == {"k": [1]}
