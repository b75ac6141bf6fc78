"""Model routing for chat requests.

- Catalog of models with credit tiers and task types
- Two-pass task classification (classifier model, then keyword rules)
- Admin policy: block list and credit ceiling
- Forced selection via ``@alias`` or the model picker
- Backend fallback chain when a model family has no backend

Routing is per request and stateless apart from the last completed
request, which is only used to notice when the user overrides a pick.
"""

from simpllm.routing.catalog import (
    CreditTier,
    ModelDefinition,
    TaskType,
    UnknownModelError,
    get_model,
)
from simpllm.routing.classifier import TaskClassifier, fallback_classify
from simpllm.routing.policy import AdminConfig, check_model, is_allowed
from simpllm.routing.router import LastRequest, ModelRouter, RoutingDecision

__all__ = [
    "AdminConfig",
    "CreditTier",
    "LastRequest",
    "ModelDefinition",
    "ModelRouter",
    "RoutingDecision",
    "TaskClassifier",
    "TaskType",
    "UnknownModelError",
    "check_model",
    "fallback_classify",
    "get_model",
    "is_allowed",
]
