"""Admin policy for model selection.

Two rules, checked in order:
- Block list: a blocked model is never selected (deny takes precedence)
- Credit ceiling: a model's tier must not exceed max_credit_tier

Checks are pure functions of (model, config). AdminConfig is frozen;
a policy change replaces the whole object.
"""

from pydantic import BaseModel, ConfigDict, Field

from simpllm.routing.catalog import CreditTier, ModelDefinition, TaskType


class DepartmentRule(BaseModel):
    """Per-department allow-list. Part of the schema, not used for routing yet."""
    model_config = ConfigDict(frozen=True)

    allowed_models: list[str] = Field(default_factory=list)
    default_model: str = ""


class AdminConfig(BaseModel):
    """The routing policy slice of the settings."""
    model_config = ConfigDict(frozen=True)

    task_routing: dict[TaskType, str] = Field(default_factory=dict)
    blocked_models: frozenset[str] = frozenset()
    max_credit_tier: CreditTier = CreditTier.PREMIUM
    department_rules: dict[str, DepartmentRule] = Field(default_factory=dict)


DEFAULT_ADMIN_CONFIG = AdminConfig()


def tier_allowed(tier: CreditTier, ceiling: CreditTier) -> bool:
    return tier.rank <= ceiling.rank


def check_model(model: ModelDefinition, config: AdminConfig) -> tuple[bool, str]:
    """Check a model against admin policy.

    Returns:
        (allowed, reason) tuple.
    """
    if model.id in config.blocked_models:
        return False, f"{model.name} is blocked by admin policy"

    if not tier_allowed(model.credit_tier, config.max_credit_tier):
        return False, (
            f"{model.name} is {model.credit_tier.value} tier, "
            f"above the {config.max_credit_tier.value} ceiling"
        )

    return True, "Allowed"


def is_allowed(model: ModelDefinition, config: AdminConfig) -> bool:
    allowed, _ = check_model(model, config)
    return allowed
