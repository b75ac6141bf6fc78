"""Settings and admin policy.

Settings live in ~/.simpllm/config.yaml (or $SIMPLLM_CONFIG) and are
validated once when loaded. Nothing downstream re-checks types.

    store = ConfigStore()
    store.subscribe(lambda s: print("policy changed", s.max_credit_tier))
    store.update(max_credit_tier="standard")   # persists + notifies

Settings objects are frozen. A change always builds a new object and
swaps the store's reference, so a routing decision that grabbed a
snapshot keeps a consistent view until it finishes.
"""

import logging
import os
import threading
from pathlib import Path
from typing import Any, Callable

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from simpllm import SimpLLMError
from simpllm.routing.catalog import CreditTier, TaskType, get_model
from simpllm.routing.policy import AdminConfig, DepartmentRule

logger = logging.getLogger(__name__)

DATA_DIR = Path.home() / ".simpllm"

# Catalog family -> LiteLLM model name. Families missing here have no
# backend and go through the router's fallback chain.
DEFAULT_BACKENDS: dict[str, str] = {
    "gpt-4o": "gpt-4o",
    "gpt-4.1": "gpt-4.1",
    "gpt-5-mini": "gpt-5-mini",
    "gpt-5": "gpt-5",
    "gpt-5.1": "gpt-5.1",
    "claude-3.5-haiku": "anthropic/claude-haiku-4-5",
    "claude-3.5-sonnet": "anthropic/claude-sonnet-4-5",
    "claude-sonnet-4": "anthropic/claude-sonnet-4-20250514",
    "claude-opus": "anthropic/claude-opus-4-5",
    "gemini-flash": "gemini/gemini-2.5-flash",
    "gemini-2.5-pro": "gemini/gemini-2.5-pro",
}


class ConfigError(SimpLLMError):
    """Configuration could not be loaded or failed validation."""


def default_config_path() -> Path:
    env = os.environ.get("SIMPLLM_CONFIG")
    if env:
        return Path(env).expanduser()
    return DATA_DIR / "config.yaml"


class Settings(BaseModel):
    """Everything read from the config file."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    enabled: bool = True
    classifier_model: str = "gpt-4o"
    monthly_budget: float = Field(300.0, ge=0)
    show_model_info: bool = True

    # Admin policy
    max_credit_tier: CreditTier = CreditTier.PREMIUM
    blocked_models: list[str] = Field(default_factory=list)
    task_routing: dict[TaskType, str] = Field(default_factory=dict)
    department_rules: dict[str, DepartmentRule] = Field(default_factory=dict)

    # Feedback
    collect_feedback: bool = True
    feedback_endpoint: str = ""
    team_id: str = ""
    department_id: str = ""

    # Backends
    vendor: str = "copilot"
    backends: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_BACKENDS))

    @model_validator(mode="after")
    def _warn_unknown_models(self) -> "Settings":
        referenced = [self.classifier_model, *self.blocked_models, *self.task_routing.values()]
        for model_id in referenced:
            if get_model(model_id) is None:
                logger.warning(f"Config references unknown model {model_id!r}")
        return self

    @property
    def admin(self) -> AdminConfig:
        return AdminConfig(
            task_routing=self.task_routing,
            blocked_models=frozenset(self.blocked_models),
            max_credit_tier=self.max_credit_tier,
            department_rules=self.department_rules,
        )

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


def load_settings(path: Path) -> Settings:
    """Load and validate settings. A missing file means all defaults."""
    if not path.exists():
        return Settings()
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping")
    return parse_settings(data)


def parse_settings(data: dict[str, Any]) -> Settings:
    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings: {e}") from e


def save_settings(path: Path, settings: Settings) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.dump(settings.to_dict(), f, sort_keys=False)


SettingsListener = Callable[[Settings], None]


class ConfigStore:
    """Holds the current Settings and tells subscribers when they change."""

    def __init__(self, path: Path | None = None, settings: Settings | None = None):
        self.path = path or default_config_path()
        self._lock = threading.Lock()
        self._listeners: list[SettingsListener] = []
        self._settings = settings if settings is not None else load_settings(self.path)

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def admin(self) -> AdminConfig:
        return self._settings.admin

    def subscribe(self, listener: SettingsListener) -> Callable[[], None]:
        """Register a change listener. Returns a function that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def replace(self, settings: Settings) -> bool:
        """Swap in new settings. Returns True if anything changed."""
        with self._lock:
            if settings == self._settings:
                return False
            self._settings = settings
            listeners = list(self._listeners)

        for listener in listeners:
            listener(settings)
        return True

    def reload(self) -> bool:
        """Re-read the config file."""
        return self.replace(load_settings(self.path))

    def update(self, **changes: Any) -> Settings:
        """Apply changes, persist them and notify listeners."""
        data = self._settings.to_dict()
        data.update(changes)
        settings = parse_settings(data)
        save_settings(self.path, settings)
        self.replace(settings)
        logger.info(f"Settings updated: {', '.join(sorted(changes))}")
        return settings
