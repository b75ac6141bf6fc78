"""Session credit and token accounting.

Every completed request charges the model's credit multiplier against
the session. Token counts are estimated from character length (4 chars
per token); they are for display, not billing.

Budget state is observational. It colours reports and adds a warning
to responses, but never changes which model gets picked.
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from simpllm.routing.catalog import ModelDefinition, TaskType

CHARS_PER_TOKEN = 4

SOFT_WARNING_PCT = 70.0
HARD_WARNING_PCT = 90.0


def estimate_tokens(text_or_length: str | int) -> float:
    """Approximate token count from a string or a character count."""
    length = text_or_length if isinstance(text_or_length, int) else len(text_or_length)
    return length / CHARS_PER_TOKEN


class BudgetState(str, Enum):
    NORMAL = "normal"
    SOFT_WARNING = "soft_warning"    # >= 70%
    HARD_WARNING = "hard_warning"    # >= 90%


@dataclass
class TokenCount:
    input: float = 0.0
    output: float = 0.0


@dataclass
class SessionStats:
    """Cumulative usage for the lifetime of the process."""
    request_count: int = 0
    token_count: TokenCount = field(default_factory=TokenCount)
    credits_by_model: dict[str, float] = field(default_factory=dict)
    task_types: dict[str, int] = field(default_factory=dict)
    total_credits_used: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "request_count": self.request_count,
            "token_count": {
                "input": self.token_count.input,
                "output": self.token_count.output,
            },
            "credits_by_model": dict(self.credits_by_model),
            "task_types": dict(self.task_types),
            "total_credits_used": self.total_credits_used,
        }


def budget_percent(credits_used: float, monthly_budget: float) -> float:
    if monthly_budget <= 0:
        return 0.0
    return min(100.0, credits_used / monthly_budget * 100)


def budget_state(percent: float) -> BudgetState:
    if percent >= HARD_WARNING_PCT:
        return BudgetState.HARD_WARNING
    if percent >= SOFT_WARNING_PCT:
        return BudgetState.SOFT_WARNING
    return BudgetState.NORMAL


class SessionAccountant:
    """Owns SessionStats. The only writer is record_completion."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._stats = SessionStats()

    def record_completion(
        self,
        model: ModelDefinition,
        task_type: TaskType | str,
        input_len: int,
        output_len: int,
    ) -> None:
        """Charge one completed request. All counters move together."""
        label = task_type.value if isinstance(task_type, TaskType) else str(task_type)
        with self._lock:
            s = self._stats
            s.request_count += 1
            s.token_count.input += estimate_tokens(input_len)
            s.token_count.output += estimate_tokens(output_len)
            s.credits_by_model[model.id] = (
                s.credits_by_model.get(model.id, 0.0) + model.credit_multiplier
            )
            s.total_credits_used += model.credit_multiplier
            s.task_types[label] = s.task_types.get(label, 0) + 1

    def snapshot(self) -> SessionStats:
        """A consistent copy of the current stats."""
        with self._lock:
            s = self._stats
            return SessionStats(
                request_count=s.request_count,
                token_count=TokenCount(s.token_count.input, s.token_count.output),
                credits_by_model=dict(s.credits_by_model),
                task_types=dict(s.task_types),
                total_credits_used=s.total_credits_used,
            )

    @property
    def total_credits_used(self) -> float:
        with self._lock:
            return self._stats.total_credits_used

    def budget_percent(self, monthly_budget: float) -> float:
        return budget_percent(self.total_credits_used, monthly_budget)

    def budget_state(self, monthly_budget: float) -> BudgetState:
        return budget_state(self.budget_percent(monthly_budget))

    def check_budget(self, monthly_budget: float) -> dict[str, Any]:
        """Budget status for reports.

        Returns:
            Dict with used, limit, remaining, percentage and state.
        """
        used = self.total_credits_used
        percent = budget_percent(used, monthly_budget)
        return {
            "used": used,
            "limit": monthly_budget,
            "remaining": max(0.0, monthly_budget - used),
            "percentage": percent,
            "state": budget_state(percent),
        }
