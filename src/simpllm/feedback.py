"""Feedback collection.

Two kinds of signal:
- Explicit: the user rates a response thumbs up or down
- Implicit: the user forces a different model than the one used for
  the previous request (an "override")

Entries are appended to a log capped at the most recent 1000, persisted
under the "simpllm.feedback" state key and, when an endpoint is
configured, forwarded to the admin collector. Routing never reads this
log; it exists for inspection and offline analysis.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from simpllm.routing.catalog import TaskType
from simpllm.sink import FeedbackSink
from simpllm.state import StateStore

logger = logging.getLogger(__name__)

STATE_KEY = "simpllm.feedback"
MAX_ENTRIES = 1000


class RatingKind(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    OVERRIDE = "override"


@dataclass(frozen=True)
class Rating:
    """A rating. ``overridden_to`` is set on overrides and only on overrides."""
    kind: RatingKind
    overridden_to: str | None = None

    def __post_init__(self):
        if (self.kind == RatingKind.OVERRIDE) != (self.overridden_to is not None):
            raise ValueError("overridden_to must be set exactly for override ratings")

    @classmethod
    def positive(cls) -> "Rating":
        return cls(RatingKind.POSITIVE)

    @classmethod
    def negative(cls) -> "Rating":
        return cls(RatingKind.NEGATIVE)

    @classmethod
    def override(cls, to: str) -> "Rating":
        return cls(RatingKind.OVERRIDE, to)


@dataclass(frozen=True)
class FeedbackEntry:
    """A single feedback record."""
    timestamp: str
    request_id: str
    selected_model: str
    task_type: str
    rating: Rating
    prompt_length: int | None = None
    response_time: float | None = None  # ms

    def to_dict(self) -> dict[str, Any]:
        """Wire/storage format (camelCase, optional fields omitted)."""
        d: dict[str, Any] = {
            "timestamp": self.timestamp,
            "requestId": self.request_id,
            "selectedModel": self.selected_model,
            "taskType": self.task_type,
            "rating": self.rating.kind.value,
        }
        if self.rating.overridden_to is not None:
            d["overriddenTo"] = self.rating.overridden_to
        if self.prompt_length is not None:
            d["promptLength"] = self.prompt_length
        if self.response_time is not None:
            d["responseTime"] = self.response_time
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "FeedbackEntry":
        return cls(
            timestamp=d["timestamp"],
            request_id=d["requestId"],
            selected_model=d["selectedModel"],
            task_type=d["taskType"],
            rating=Rating(RatingKind(d["rating"]), d.get("overriddenTo")),
            prompt_length=d.get("promptLength"),
            response_time=d.get("responseTime"),
        )


@dataclass
class ModelFeedback:
    positive: int = 0
    negative: int = 0
    overrides: int = 0


@dataclass
class TaskFeedback:
    positive: int = 0
    negative: int = 0


@dataclass
class FeedbackStats:
    """Aggregate counts over the current log."""
    total: int = 0
    positive: int = 0
    negative: int = 0
    overrides: int = 0
    by_model: dict[str, ModelFeedback] = field(default_factory=dict)
    by_task: dict[str, TaskFeedback] = field(default_factory=dict)

    @property
    def satisfaction_rate(self) -> float | None:
        """Share of explicit ratings that were positive, or None without any."""
        rated = self.positive + self.negative
        return self.positive / rated if rated else None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _label(task_type: TaskType | str) -> str:
    return task_type.value if isinstance(task_type, TaskType) else str(task_type)


class FeedbackRecorder:
    """Append-only, bounded feedback log.

    Usage:
        recorder = FeedbackRecorder(StateStore(), sink)
        recorder.record_feedback(request_id, "gpt-4o", TaskType.DEBUG, Rating.positive())
        recorder.stats().positive  # 1
    """

    def __init__(
        self,
        state: StateStore | None = None,
        sink: FeedbackSink | None = None,
        max_entries: int = MAX_ENTRIES,
    ):
        self.state = state
        self.sink = sink
        self._lock = threading.Lock()
        self._log: deque[FeedbackEntry] = deque(maxlen=max_entries)
        if state is not None:
            for raw in state.get(STATE_KEY, []):
                try:
                    self._log.append(FeedbackEntry.from_dict(raw))
                except (KeyError, ValueError, TypeError) as e:
                    logger.warning(f"Skipping malformed feedback entry: {e!r}")

    def record_feedback(
        self,
        request_id: str,
        model_id: str,
        task_type: TaskType | str,
        rating: Rating,
        prompt_length: int | None = None,
        response_time: float | None = None,
    ) -> FeedbackEntry:
        """Record an explicit rating."""
        if rating.kind == RatingKind.OVERRIDE:
            raise ValueError("Use record_override for override feedback")
        entry = FeedbackEntry(
            timestamp=_now(),
            request_id=request_id,
            selected_model=model_id,
            task_type=_label(task_type),
            rating=rating,
            prompt_length=prompt_length,
            response_time=response_time,
        )
        return self._append(entry)

    def record_override(
        self,
        request_id: str,
        from_model_id: str,
        to_model_id: str,
        task_type: TaskType | str,
    ) -> FeedbackEntry:
        """Record that the user switched away from from_model_id."""
        entry = FeedbackEntry(
            timestamp=_now(),
            request_id=request_id,
            selected_model=from_model_id,
            task_type=_label(task_type),
            rating=Rating.override(to_model_id),
        )
        return self._append(entry)

    def _append(self, entry: FeedbackEntry) -> FeedbackEntry:
        with self._lock:
            self._log.append(entry)  # deque drops the oldest past maxlen
            self._persist()
        if self.sink is not None:
            self.sink.submit(entry.to_dict())
        return entry

    def _persist(self) -> None:
        if self.state is not None:
            self.state.update(STATE_KEY, [e.to_dict() for e in self._log])

    def entries(self) -> list[FeedbackEntry]:
        with self._lock:
            return list(self._log)

    def __len__(self) -> int:
        return len(self._log)

    def clear(self) -> None:
        with self._lock:
            self._log.clear()
            self._persist()

    def stats(self) -> FeedbackStats:
        """Fold the current log into aggregate counts."""
        stats = FeedbackStats()
        for entry in self.entries():
            stats.total += 1
            kind = entry.rating.kind
            model = stats.by_model.setdefault(entry.selected_model, ModelFeedback())
            task = stats.by_task.setdefault(entry.task_type, TaskFeedback())

            if kind == RatingKind.POSITIVE:
                stats.positive += 1
                model.positive += 1
                task.positive += 1
            elif kind == RatingKind.NEGATIVE:
                stats.negative += 1
                model.negative += 1
                task.negative += 1
            else:
                stats.overrides += 1
                model.overrides += 1
        return stats
