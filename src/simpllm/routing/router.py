"""Model router.

Picks the model for each request:
- Forced selection (``@opus`` or the model picker) wins over classification
- Otherwise classify, then admin task routing, then default routing
- Admin policy filters every candidate, and is checked once more at the end
- Backend resolution walks a fallback chain when a family is unavailable

Usage:
    router = ModelRouter(TaskClassifier(provider), provider, recorder)
    decision = await router.route("write unit tests for UserService")
    # decision.task_type = TaskType.TEST
    # decision.model.id = "claude-sonnet-4.5"
"""

import logging
import re
from dataclasses import dataclass

from simpllm.backends import BackendProvider, CancellationToken, ChatBackend, NoBackendAvailable
from simpllm.feedback import FeedbackRecorder
from simpllm.routing.catalog import (
    BACKEND_FALLBACK_CHAIN,
    DEFAULT_TASK_ROUTING,
    FORCE_ALIASES,
    ModelDefinition,
    TaskType,
    free_default_model,
    get_model,
    require_model,
)
from simpllm.routing.classifier import TaskClassifier, fallback_classify
from simpllm.routing.policy import (
    DEFAULT_ADMIN_CONFIG,
    AdminConfig,
    check_model,
    is_allowed,
)

logger = logging.getLogger(__name__)

FORCE_PATTERN = re.compile(r"@(\w[\w.-]*)")


@dataclass
class LastRequest:
    """The most recently completed request. Overwritten on every completion."""
    prompt: str
    request_id: str
    model_id: str
    task_type: TaskType


@dataclass
class RoutingDecision:
    """The result of a routing decision."""
    model: ModelDefinition
    task_type: TaskType
    reason: str
    forced: bool = False
    restricted: bool = False      # Policy swapped the model for the free default
    notice: str | None = None     # User-visible restriction notice
    override_recorded: bool = False


def parse_force_alias(prompt: str) -> tuple[str, str | None]:
    """Strip a recognised ``@alias`` from a prompt.

    Returns:
        (clean_prompt, forced_model_id). Unknown aliases are left in the
        prompt and yield no forced model.
    """
    match = FORCE_PATTERN.search(prompt)
    if not match:
        return prompt, None

    key = match.group(1).lower().replace("-", "")
    model_id = FORCE_ALIASES.get(key)
    if model_id is None:
        return prompt, None

    clean = prompt.replace(match.group(0), "", 1).strip()
    return clean, model_id


class ModelRouter:
    """Routes prompts to catalog models under admin policy."""

    def __init__(
        self,
        classifier: TaskClassifier,
        provider: BackendProvider,
        recorder: FeedbackRecorder | None = None,
    ):
        self.classifier = classifier
        self.provider = provider
        self.recorder = recorder

    async def route(
        self,
        prompt: str,
        forced_model_id: str | None = None,
        config: AdminConfig = DEFAULT_ADMIN_CONFIG,
        cancel: CancellationToken | None = None,
        *,
        classifier_model: str | None = None,
        last_request: LastRequest | None = None,
        request_id: str = "",
    ) -> RoutingDecision:
        """Route a request to a model.

        Args:
            prompt: The user's prompt, with any @alias already stripped.
            forced_model_id: Model chosen explicitly by the user.
            config: Admin policy snapshot for this decision.
            cancel: Cancellation for the classifier call.
            classifier_model: Overrides the classifier's configured model.
            last_request: Previous completion, used to detect overrides.
            request_id: Id of this request, stamped on override records.

        Raises:
            UnknownModelError: forced_model_id is not in the catalog.
        """
        if forced_model_id:
            decision = self._route_forced(
                prompt, forced_model_id, last_request, request_id)
        else:
            decision = await self._route_auto(
                prompt, config, cancel, classifier_model)

        return self._apply_policy_guard(decision, config)

    def _route_forced(
        self,
        prompt: str,
        forced_model_id: str,
        last_request: LastRequest | None,
        request_id: str,
    ) -> RoutingDecision:
        model = require_model(forced_model_id)
        # The user already decided; don't spend a classifier call
        task_type = fallback_classify(prompt)
        decision = RoutingDecision(
            model=model,
            task_type=task_type,
            reason=f"Manual: {model.name}",
            forced=True,
        )

        if last_request is not None and last_request.model_id != forced_model_id:
            if self.recorder is not None:
                self.recorder.record_override(
                    request_id, last_request.model_id, forced_model_id, task_type)
                decision.override_recorded = True
            logger.info(
                f"Override: {last_request.model_id} -> {forced_model_id} ({task_type.value})")

        return decision

    async def _route_auto(
        self,
        prompt: str,
        config: AdminConfig,
        cancel: CancellationToken | None,
        classifier_model: str | None,
    ) -> RoutingDecision:
        task_type = await self.classifier.classify(prompt, cancel, classifier_model)
        model, source = self.select_for_task(task_type, config)
        return RoutingDecision(
            model=model,
            task_type=task_type,
            reason=f"{task_type.value} → {model.name} ({source})",
        )

    def select_for_task(
        self,
        task_type: TaskType,
        config: AdminConfig = DEFAULT_ADMIN_CONFIG,
    ) -> tuple[ModelDefinition, str]:
        """Pick the model for a task type.

        Admin routing first, then the default table, each only if the
        model exists and passes policy. Falls back to the free default.

        Returns:
            (model, source) where source is "admin", "default" or "fallback".
        """
        candidates = (
            ("admin", config.task_routing.get(task_type)),
            ("default", DEFAULT_TASK_ROUTING.get(task_type)),
        )
        for source, model_id in candidates:
            if not model_id:
                continue
            model = get_model(model_id)
            if model is None:
                logger.warning(f"{source} routing for {task_type.value} names unknown model {model_id!r}")
                continue
            if is_allowed(model, config):
                return model, source

        return free_default_model(), "fallback"

    def _apply_policy_guard(
        self,
        decision: RoutingDecision,
        config: AdminConfig,
    ) -> RoutingDecision:
        """Final policy check on the chosen model."""
        allowed, reason = check_model(decision.model, config)
        if allowed:
            return decision

        fallback = free_default_model()
        logger.info(f"Policy denied {decision.model.id}: {reason}")
        decision.notice = f"{decision.model.name} is restricted. Using {fallback.name}."
        decision.model = fallback
        decision.restricted = True
        return decision

    def resolve_backend(self, model: ModelDefinition) -> ChatBackend | None:
        """Find an executable backend for a model.

        Tries the model's own family, then each fallback-chain model's
        family, then any backend the provider has. Returns None when all
        of them come up empty.
        """
        families: list[str] = [model.family]
        for fallback_id in BACKEND_FALLBACK_CHAIN:
            fallback = get_model(fallback_id)
            if fallback and fallback.family not in families:
                families.append(fallback.family)

        try:
            for family in families:
                backends = self.provider.select(family)
                if backends:
                    if family != model.family:
                        logger.info(f"No backend for {model.family}, using {family}")
                    return backends[0]

            # Last resort: anything from this vendor
            backends = self.provider.select(None)
        except Exception as e:
            logger.error(f"Backend selection failed: {e}")
            return None

        if backends:
            logger.info(f"No backend in fallback chain, using {backends[0].family}")
            return backends[0]
        return None

    def require_backend(self, model: ModelDefinition) -> ChatBackend:
        """Like resolve_backend, but raises when nothing is left.

        Raises:
            NoBackendAvailable: no family in the chain has a backend.
        """
        backend = self.resolve_backend(model)
        if backend is None:
            raise NoBackendAvailable(f"Model not available: {model.name}")
        return backend
