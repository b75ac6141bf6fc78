"""Chat request pipeline.

One ChatSession per process ties the pieces together:

    session = ChatSession(ConfigStore())
    result = await session.handle("@opus design a plugin system",
                                  on_chunk=print)
    result.metadata["model"]       # "Claude Opus 4.5"
    session.rate(result.request_id, positive=True)

For every request: check settings, answer slash commands, strip any
``@alias``, route, pick a backend, stream the reply, then charge the
session. Settings are read once per request, so a config change lands
on the next one.
"""

import logging
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

from simpllm.backends import (
    BackendError,
    BackendProvider,
    CancellationToken,
    ChatMessage,
    LiteLLMProvider,
    NoBackendAvailable,
    RequestCancelled,
    user_message,
)
from simpllm.config import ConfigStore, Settings
from simpllm.feedback import FeedbackRecorder, Rating
from simpllm.reports import budget_report, stats_report
from simpllm.routing.catalog import TaskType, UnknownModelError
from simpllm.routing.classifier import TaskClassifier
from simpllm.routing.router import LastRequest, ModelRouter, RoutingDecision, parse_force_alias
from simpllm.sink import FeedbackSink
from simpllm.state import StateStore
from simpllm.usage import HARD_WARNING_PCT, SessionAccountant

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[str], None]

# Completed requests kept around so they can still be rated
RATEABLE_REQUESTS = 50


def new_request_id() -> str:
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"


def build_messages(prompt: str, history: Sequence[ChatMessage] = ()) -> list[ChatMessage]:
    """Prior turns in order, then the current prompt."""
    return [*history, user_message(prompt)]


@dataclass
class ChatResult:
    """Outcome of one handled request."""
    text: str
    request_id: str = ""
    notices: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    decision: RoutingDecision | None = None

    @property
    def error(self) -> str | None:
        return self.metadata.get("error")

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class CompletedRequest:
    model_id: str
    task_type: TaskType
    prompt_length: int
    response_time: float  # ms


class ChatSession:
    """Routes, executes and accounts chat requests for one user session."""

    def __init__(
        self,
        config: ConfigStore,
        provider: BackendProvider | None = None,
        state: StateStore | None = None,
        sink: FeedbackSink | None = None,
    ):
        self.config = config
        settings = config.settings

        self._owns_provider = provider is None
        self.provider = provider or LiteLLMProvider(settings.backends, settings.vendor)
        self.sink = sink or FeedbackSink(lambda: self.config.settings)
        self.recorder = FeedbackRecorder(state, self.sink)
        self.classifier = TaskClassifier(self.provider, settings.classifier_model)
        self.router = ModelRouter(self.classifier, self.provider, self.recorder)

        self.accountant = SessionAccountant()

        self.last_request: LastRequest | None = None
        self._forced_next: str | None = None
        self._completed: OrderedDict[str, CompletedRequest] = OrderedDict()
        self._unsubscribe = config.subscribe(self._on_settings_changed)

    def _on_settings_changed(self, settings: Settings) -> None:
        self.classifier.classifier_model = settings.classifier_model
        if self._owns_provider and isinstance(self.provider, LiteLLMProvider):
            self.provider.family_map = dict(settings.backends)
            self.provider.vendor = settings.vendor
        logger.info("Settings changed, routing policy reloaded")

    def force_next(self, model_id: str | None) -> None:
        """Pin the next request to a model (None goes back to auto)."""
        self._forced_next = model_id

    @property
    def forced_next(self) -> str | None:
        return self._forced_next

    async def handle(
        self,
        prompt: str,
        history: Sequence[ChatMessage] = (),
        forced_model_id: str | None = None,
        cancel: CancellationToken | None = None,
        on_chunk: ChunkCallback | None = None,
    ) -> ChatResult:
        """Handle one chat request end to end."""
        settings = self.config.settings
        if not settings.enabled:
            return ChatResult(
                text="SimpLLM is disabled. Enable it in settings.",
                metadata={"error": "disabled"},
            )

        command = prompt.strip().lower()
        if command == "/stats":
            return ChatResult(text=stats_report(self.accountant.snapshot(), settings.monthly_budget))
        if command == "/budget":
            return ChatResult(text=budget_report(self.accountant.total_credits_used, settings.monthly_budget))

        request_id = new_request_id()
        started = time.monotonic()

        clean_prompt, alias_model_id = parse_force_alias(prompt)
        forced_id = alias_model_id or forced_model_id or self._forced_next
        self._forced_next = None

        try:
            decision = await self.router.route(
                clean_prompt,
                forced_id,
                settings.admin,
                cancel,
                classifier_model=settings.classifier_model,
                last_request=self.last_request,
                request_id=request_id,
            )
        except UnknownModelError as e:
            return ChatResult(text=str(e), request_id=request_id, metadata={"error": "unknown_model"})

        model = decision.model
        notices = [decision.notice] if decision.notice else []

        try:
            backend = self.router.require_backend(model)
        except NoBackendAvailable as e:
            logger.warning(f"No backend available for {model.id}")
            return ChatResult(
                text=f"{e}. Check the backend configuration.",
                request_id=request_id,
                notices=notices,
                metadata={"error": "no_model"},
                decision=decision,
            )

        if settings.show_model_info:
            notices.append(f"{backend.name} · {model.credit_multiplier:g}x credit · {decision.reason}")

        parts: list[str] = []
        try:
            async for chunk in backend.stream(build_messages(clean_prompt, history), cancel):
                parts.append(chunk)
                if on_chunk:
                    on_chunk(chunk)
        except RequestCancelled:
            logger.info(f"Request {request_id} cancelled")
            return ChatResult(
                text="".join(parts),
                request_id=request_id,
                notices=notices,
                metadata={"error": "cancelled"},
                decision=decision,
            )
        except BackendError as e:
            logger.error(f"Request {request_id} failed on {backend.name}: {e}")
            return ChatResult(
                text=f"Error: {e}",
                request_id=request_id,
                notices=notices,
                metadata={"error": "request_failed"},
                decision=decision,
            )

        text = "".join(parts)
        response_time = (time.monotonic() - started) * 1000

        self.accountant.record_completion(model, decision.task_type, len(clean_prompt), len(text))
        self.last_request = LastRequest(clean_prompt, request_id, model.id, decision.task_type)
        self._remember(request_id, CompletedRequest(model.id, decision.task_type, len(clean_prompt), response_time))

        percent = self.accountant.budget_percent(settings.monthly_budget)
        if percent >= HARD_WARNING_PCT:
            notices.append(f"Credit budget at {percent:.0f}%. Consider requesting extra credits.")

        return ChatResult(
            text=text,
            request_id=request_id,
            notices=notices,
            metadata={
                "model": model.name,
                "model_id": model.id,
                "task_type": decision.task_type.value,
                "credit": model.credit_multiplier,
                "forced": decision.forced,
                "feedback_requested": settings.collect_feedback,
            },
            decision=decision,
        )

    def _remember(self, request_id: str, completed: CompletedRequest) -> None:
        self._completed[request_id] = completed
        while len(self._completed) > RATEABLE_REQUESTS:
            self._completed.popitem(last=False)

    def rate(self, request_id: str | None, positive: bool) -> bool:
        """Thumbs up/down a completed request (the last one if request_id is None).

        Returns False when the request is unknown or too old to rate.
        """
        if request_id is None:
            if self.last_request is None:
                return False
            request_id = self.last_request.request_id

        completed = self._completed.get(request_id)
        if completed is None:
            return False

        self.recorder.record_feedback(
            request_id,
            completed.model_id,
            completed.task_type,
            Rating.positive() if positive else Rating.negative(),
            prompt_length=completed.prompt_length,
            response_time=completed.response_time,
        )
        return True

    async def request_credits(self, reason: str) -> bool:
        """Ask the admin endpoint for extra credits."""
        return await self.sink.request_credits(reason, self.accountant.total_credits_used)

    async def aclose(self) -> None:
        self._unsubscribe()
        await self.sink.aclose()
