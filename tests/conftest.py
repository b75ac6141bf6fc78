"""Shared fixtures: in-memory backends and throwaway config/state."""

import pytest

from simpllm.backends import StaticBackend, StaticProvider
from simpllm.routing.catalog import MODELS
from simpllm.routing.classifier import CLASSIFIER_SYSTEM_PROMPT

ALL_FAMILIES = sorted({m.family for m in MODELS})


def is_classifier_call(messages) -> bool:
    return messages[-1]["content"].startswith(CLASSIFIER_SYSTEM_PROMPT)


def scripted_reply(label: str, answer):
    """Answer classifier calls with ``label`` and everything else with ``answer``."""
    def reply(messages):
        if is_classifier_call(messages):
            return label
        return answer
    return reply


@pytest.fixture
def make_provider():
    """Factory for a StaticProvider with one backend per family."""
    def make(label="", answer="done", families=ALL_FAMILIES, error=None):
        reply = scripted_reply(label, answer)
        return StaticProvider([StaticBackend(f, reply, error=error) for f in families])
    return make


@pytest.fixture
def config_store(tmp_path):
    """ConfigStore backed by a config file under tmp_path (starts as defaults)."""
    from simpllm.config import ConfigStore
    return ConfigStore(tmp_path / "config.yaml")


@pytest.fixture
def state(tmp_path):
    from simpllm.state import StateStore
    return StateStore(tmp_path / "state.json")
