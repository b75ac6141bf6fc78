"""Read-only markdown reports over session and feedback state.

Returned as markdown strings so the same text works in a chat response
and in the terminal (rendered there with rich's Markdown).
"""

from simpllm.feedback import FeedbackEntry, FeedbackStats, RatingKind
from simpllm.routing.catalog import CreditTier, get_model, models_by_tier
from simpllm.usage import SessionStats, budget_percent

BAR_CELLS = 20
LOW_CREDIT_THRESHOLD = 30

TIER_HEADINGS = {
    CreditTier.FREE: "0x Credit",
    CreditTier.CHEAP: "0.33x Credit",
    CreditTier.STANDARD: "1x Credit",
    CreditTier.PREMIUM: "3x Credit",
}

RATING_ICONS = {
    RatingKind.POSITIVE: "👍",
    RatingKind.NEGATIVE: "👎",
    RatingKind.OVERRIDE: "🔄",
}


def _model_name(model_id: str) -> str:
    model = get_model(model_id)
    return model.name if model else model_id


def budget_bar(used: float, monthly_budget: float) -> str:
    ratio = used / monthly_budget if monthly_budget > 0 else 0.0
    filled = min(BAR_CELLS, round(ratio * BAR_CELLS))
    return "█" * filled + "░" * (BAR_CELLS - filled)


def stats_report(stats: SessionStats, monthly_budget: float) -> str:
    percent = budget_percent(stats.total_credits_used, monthly_budget)
    lines = [
        "## 📊 SimpLLM Session Statistics",
        "",
        "| Metric | Value |",
        "|--------|-------|",
        f"| Requests | {stats.request_count} |",
        f"| Credits Used | {stats.total_credits_used:.1f}x |",
        f"| Budget Used | {percent:.1f}% of {monthly_budget:g} |",
        f"| Input Tokens | ~{round(stats.token_count.input)} |",
        f"| Output Tokens | ~{round(stats.token_count.output)} |",
        "",
        "### Model Usage",
        "",
        "| Model | Credits |",
        "|-------|---------|",
    ]
    for model_id, credits in sorted(stats.credits_by_model.items(), key=lambda kv: kv[1], reverse=True):
        lines.append(f"| {_model_name(model_id)} | {credits:.1f}x |")

    lines += ["", "### Task Distribution", "", "| Task | Count |", "|------|-------|"]
    for task, count in sorted(stats.task_types.items(), key=lambda kv: kv[1], reverse=True):
        lines.append(f"| {task} | {count} |")
    return "\n".join(lines) + "\n"


def budget_report(used: float, monthly_budget: float) -> str:
    percent = budget_percent(used, monthly_budget)
    remaining = max(0.0, monthly_budget - used)
    lines = [
        "## 💰 Credit Budget",
        "",
        f"`{budget_bar(used, monthly_budget)}` {percent:.1f}%",
        "",
        "| | Credits |",
        "|---|---|",
        f"| Used | {used:.1f}x |",
        f"| Remaining | {remaining:.1f}x |",
        f"| Monthly Budget | {monthly_budget:g}x |",
    ]
    if remaining < LOW_CREDIT_THRESHOLD:
        lines += ["", "> ⚠️ Low credits! Request more to avoid interruptions."]
    return "\n".join(lines) + "\n"


def feedback_report(stats: FeedbackStats, recent: list[FeedbackEntry], limit: int = 20) -> str:
    rate = stats.satisfaction_rate
    lines = [
        "## Feedback",
        "",
        "| | Count |",
        "|---|---|",
        f"| Total | {stats.total} |",
        f"| Positive | {stats.positive} |",
        f"| Negative | {stats.negative} |",
        f"| Overrides | {stats.overrides} |",
        f"| Satisfaction | {f'{rate * 100:.0f}%' if rate is not None else 'N/A'} |",
    ]

    if stats.by_model:
        lines += ["", "### By Model", "", "| Model | 👍 | 👎 | 🔄 |", "|---|---|---|---|"]
        for model_id, fb in stats.by_model.items():
            lines.append(f"| {_model_name(model_id)} | {fb.positive} | {fb.negative} | {fb.overrides} |")

    if recent:
        lines += ["", "### Recent", "", "| Rating | Model | Task | Override | Time |", "|---|---|---|---|---|"]
        for entry in reversed(recent[-limit:]):
            to = entry.rating.overridden_to
            lines.append(
                f"| {RATING_ICONS[entry.rating.kind]} | {_model_name(entry.selected_model)} "
                f"| {entry.task_type} | {'→ ' + _model_name(to) if to else '-'} | {entry.timestamp} |"
            )
    return "\n".join(lines) + "\n"


def models_report() -> str:
    """The catalog grouped by credit tier, as shown by the model picker."""
    lines = ["## Models", ""]
    for tier, heading in TIER_HEADINGS.items():
        lines += [f"### {heading}", "", "| Model | Id | Best for |", "|---|---|---|"]
        for model in models_by_tier(tier):
            lines.append(f"| {model.label} | `{model.id}` | {', '.join(model.best_for)} |")
        lines.append("")
    return "\n".join(lines)
