"""Model catalog and default task routing.

Everything here is static data. The catalog is declared once at import
time and shared read-only, so lookups need no locking.

Credit multipliers follow the premium-request accounting of the
Copilot model picker:
- 0x     free tier, unlimited
- 0.33x  cheap tier, fast small models
- 1x     standard tier, frontier models
- 3x     premium tier, reserved for critical work
"""

from dataclasses import dataclass, field
from enum import Enum

from simpllm import SimpLLMError


class CreditTier(str, Enum):
    """Ordinal cost class of a model. Declaration order is the ordering."""
    FREE = "free"
    CHEAP = "cheap"
    STANDARD = "standard"
    PREMIUM = "premium"

    @property
    def rank(self) -> int:
        return TIER_ORDER.index(self)


TIER_ORDER: tuple[CreditTier, ...] = tuple(CreditTier)


class TaskType(str, Enum):
    """Closed set of labels a request can be classified into."""
    AUTOCOMPLETE = "autocomplete"
    SIMPLE = "simple"
    FUNCTION = "function"
    ALGORITHM = "algorithm"
    TEST = "test"
    DEBUG = "debug"
    REFACTOR = "refactor"
    ARCHITECTURE = "architecture"
    SECURITY = "security"
    DOCUMENTATION = "documentation"
    CONVERSION = "conversion"
    REVIEW = "review"
    LONG_CONTEXT = "long-context"

    @classmethod
    def parse(cls, label: str) -> "TaskType | None":
        """Return the task type for a label, or None if it is not one."""
        try:
            return cls(label.strip().lower())
        except ValueError:
            return None


class UnknownModelError(SimpLLMError):
    """Raised when a model id is not present in the catalog."""

    def __init__(self, model_id: str):
        super().__init__(f"Unknown model: {model_id}")
        self.model_id = model_id


@dataclass(frozen=True)
class Capabilities:
    """Capability scores on a 1-10 scale, context window in K tokens."""
    code_generation: int
    reasoning: int
    speed: int
    context_window: int


@dataclass(frozen=True)
class ModelDefinition:
    """An immutable catalog entry."""
    id: str
    family: str          # Selector used to find an executable backend
    name: str            # Display name
    credit_multiplier: float
    credit_tier: CreditTier
    is_preview: bool
    capabilities: Capabilities
    best_for: tuple[str, ...] = field(default_factory=tuple)

    @property
    def label(self) -> str:
        """Display name with preview marker, as shown in pickers."""
        return f"{self.name} (Preview)" if self.is_preview else self.name


def _model(
    id: str,
    family: str,
    name: str,
    multiplier: float,
    tier: CreditTier,
    caps: tuple[int, int, int, int],
    best_for: list[str],
    preview: bool = False,
) -> ModelDefinition:
    return ModelDefinition(
        id=id,
        family=family,
        name=name,
        credit_multiplier=multiplier,
        credit_tier=tier,
        is_preview=preview,
        capabilities=Capabilities(*caps),
        best_for=tuple(best_for),
    )


MODELS: tuple[ModelDefinition, ...] = (
    # ── 0x credit ──
    _model("gpt-4.1", "gpt-4.1", "GPT-4.1", 0, CreditTier.FREE,
           (8, 7, 7, 128), ["general", "debugging", "functions"]),
    _model("gpt-4o", "gpt-4o", "GPT-4o", 0, CreditTier.FREE,
           (8, 8, 8, 128), ["general", "multimodal", "debugging", "documentation"]),
    _model("gpt-5-mini", "gpt-5-mini", "GPT-5 Mini", 0, CreditTier.FREE,
           (7, 6, 9, 32), ["simple-tasks", "quick-questions", "explanations"]),

    # ── 0.33x credit ──
    _model("claude-haiku-4.5", "claude-3.5-haiku", "Claude Haiku 4.5", 0.33, CreditTier.CHEAP,
           (7, 6, 9, 32), ["quick-edits", "comments", "simple-refactoring"]),
    _model("gemini-3-flash", "gemini-flash", "Gemini 3 Flash", 0.33, CreditTier.CHEAP,
           (7, 6, 10, 128), ["quick-tasks", "formatting"], preview=True),
    _model("gpt-5.1-codex-mini", "gpt-5.1-codex-mini", "GPT-5.1-Codex-Mini", 0.33, CreditTier.CHEAP,
           (8, 5, 10, 16), ["autocomplete", "inline-suggestions"], preview=True),

    # ── 1x credit ──
    _model("claude-sonnet-4", "claude-sonnet-4", "Claude Sonnet 4", 1, CreditTier.STANDARD,
           (9, 8, 6, 200), ["code-quality", "design-patterns", "refactoring"]),
    _model("claude-sonnet-4.5", "claude-3.5-sonnet", "Claude Sonnet 4.5", 1, CreditTier.STANDARD,
           (9, 9, 6, 200), ["tests", "complex-algorithms", "code-review"]),
    _model("gemini-2.5-pro", "gemini-2.5-pro", "Gemini 2.5 Pro", 1, CreditTier.STANDARD,
           (8, 8, 5, 1000), ["long-context", "codebase-analysis", "multi-file"]),
    _model("gemini-3-pro", "gemini-3-pro", "Gemini 3 Pro", 1, CreditTier.STANDARD,
           (8, 8, 6, 128), ["modern-frameworks", "multimodal"], preview=True),
    _model("gpt-5", "gpt-5", "GPT-5", 1, CreditTier.STANDARD,
           (9, 9, 6, 128), ["complex-reasoning", "system-design"]),
    _model("gpt-5-codex", "gpt-5-codex", "GPT-5-Codex", 1, CreditTier.STANDARD,
           (9, 8, 7, 64), ["code-generation", "completions"], preview=True),
    _model("gpt-5.1", "gpt-5.1", "GPT-5.1", 1, CreditTier.STANDARD,
           (9, 9, 6, 128), ["complex-tasks", "debugging"]),
    _model("gpt-5.1-codex", "gpt-5.1-codex", "GPT-5.1-Codex", 1, CreditTier.STANDARD,
           (9, 8, 7, 64), ["code-generation", "refactoring"]),
    _model("gpt-5.1-codex-max", "gpt-5.1-codex-max", "GPT-5.1-Codex-Max", 1, CreditTier.STANDARD,
           (10, 9, 5, 128), ["complex-code", "large-refactoring"]),
    _model("gpt-5.2", "gpt-5.2", "GPT-5.2", 1, CreditTier.STANDARD,
           (9, 9, 6, 128), ["latest-features", "complex-reasoning"]),
    _model("gpt-5.2-codex", "gpt-5.2-codex", "GPT-5.2-Codex", 1, CreditTier.STANDARD,
           (10, 9, 6, 128), ["code-generation", "latest-patterns"]),

    # ── 3x credit ──
    _model("claude-opus-4.5", "claude-opus", "Claude Opus 4.5", 3, CreditTier.PREMIUM,
           (10, 10, 4, 200),
           ["architecture", "security-audit", "critical-systems", "legacy-modernization"]),
)

_BY_ID: dict[str, ModelDefinition] = {m.id: m for m in MODELS}
if len(_BY_ID) != len(MODELS):
    raise RuntimeError("Duplicate model id in catalog")


# Default routing - admin task_routing overrides take precedence
DEFAULT_TASK_ROUTING: dict[TaskType, str] = {
    TaskType.AUTOCOMPLETE: "gpt-4o",             # Free, fast
    TaskType.SIMPLE: "gpt-4o",
    TaskType.FUNCTION: "gpt-4o",
    TaskType.ALGORITHM: "claude-sonnet-4.5",
    TaskType.TEST: "claude-sonnet-4.5",
    TaskType.DEBUG: "gpt-4o",
    TaskType.REFACTOR: "claude-sonnet-4",        # Design patterns
    TaskType.ARCHITECTURE: "claude-opus-4.5",    # 3x, critical only
    TaskType.SECURITY: "claude-opus-4.5",
    TaskType.DOCUMENTATION: "gpt-4o",
    TaskType.CONVERSION: "gpt-4o",
    TaskType.REVIEW: "claude-sonnet-4.5",
    TaskType.LONG_CONTEXT: "gemini-2.5-pro",     # 1M context
}

# Zero-cost model used whenever policy or routing leaves nothing else
FREE_DEFAULT_MODEL_ID = "gpt-4o"

# Known-good generalists tried when a model's family has no backend
BACKEND_FALLBACK_CHAIN: tuple[str, ...] = ("gpt-4o", "gpt-4.1", "gpt-5-mini")

# "@alias" shortcuts accepted in prompts (keys are lowercased, dashes removed)
FORCE_ALIASES: dict[str, str] = {
    "opus": "claude-opus-4.5",
    "sonnet4.5": "claude-sonnet-4.5",
    "sonnet": "claude-sonnet-4",
    "geminipro": "gemini-2.5-pro",
    "gpt5.2": "gpt-5.2",
    "gpt5.1": "gpt-5.1",
    "gpt5": "gpt-5",
    "gpt4o": "gpt-4o",
    "gpt4.1": "gpt-4.1",
    "haiku": "claude-haiku-4.5",
    "flash": "gemini-3-flash",
    "codexmini": "gpt-5.1-codex-mini",
}


def get_model(model_id: str) -> ModelDefinition | None:
    """Look up a model by id."""
    return _BY_ID.get(model_id)


def require_model(model_id: str) -> ModelDefinition:
    """Look up a model by id, raising UnknownModelError if absent."""
    model = _BY_ID.get(model_id)
    if model is None:
        raise UnknownModelError(model_id)
    return model


def models_by_tier(tier: CreditTier) -> list[ModelDefinition]:
    """All models of a tier, in catalog declaration order."""
    return [m for m in MODELS if m.credit_tier == tier]


def free_default_model() -> ModelDefinition:
    return _BY_ID[FREE_DEFAULT_MODEL_ID]
