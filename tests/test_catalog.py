"""Tests for the static model catalog."""

import pytest

from simpllm.routing.catalog import (
    BACKEND_FALLBACK_CHAIN,
    DEFAULT_TASK_ROUTING,
    FORCE_ALIASES,
    MODELS,
    CreditTier,
    TaskType,
    UnknownModelError,
    free_default_model,
    get_model,
    models_by_tier,
    require_model,
)

TIER_MULTIPLIERS = {
    CreditTier.FREE: 0,
    CreditTier.CHEAP: 0.33,
    CreditTier.STANDARD: 1,
    CreditTier.PREMIUM: 3,
}


class TestCatalog:

    def test_ids_unique(self):
        ids = [m.id for m in MODELS]
        assert len(ids) == len(set(ids)) == 18

    def test_multiplier_matches_tier(self):
        for model in MODELS:
            assert model.credit_multiplier == TIER_MULTIPLIERS[model.credit_tier], model.id

    def test_tier_order(self):
        ranks = [t.rank for t in (CreditTier.FREE, CreditTier.CHEAP,
                                  CreditTier.STANDARD, CreditTier.PREMIUM)]
        assert ranks == sorted(ranks) == [0, 1, 2, 3]

    def test_lookup(self):
        assert get_model("gpt-4o").name == "GPT-4o"
        assert get_model("nope") is None

    def test_require_model_raises(self):
        with pytest.raises(UnknownModelError) as exc:
            require_model("gpt-9")
        assert exc.value.model_id == "gpt-9"
        assert "gpt-9" in str(exc.value)

    def test_models_by_tier_keeps_order(self):
        assert [m.id for m in models_by_tier(CreditTier.FREE)] == ["gpt-4.1", "gpt-4o", "gpt-5-mini"]
        assert [m.id for m in models_by_tier(CreditTier.PREMIUM)] == ["claude-opus-4.5"]

    def test_preview_label(self):
        assert get_model("gemini-3-flash").label == "Gemini 3 Flash (Preview)"
        assert get_model("gpt-4o").label == "GPT-4o"

    def test_free_default_is_free(self):
        model = free_default_model()
        assert model.id == "gpt-4o"
        assert model.credit_tier == CreditTier.FREE


class TestRoutingTables:

    def test_default_routing_covers_every_task(self):
        assert set(DEFAULT_TASK_ROUTING) == set(TaskType)

    def test_default_routing_targets_exist(self):
        for task, model_id in DEFAULT_TASK_ROUTING.items():
            assert get_model(model_id) is not None, task

    def test_defaults_match_expected_picks(self):
        assert DEFAULT_TASK_ROUTING[TaskType.TEST] == "claude-sonnet-4.5"
        assert DEFAULT_TASK_ROUTING[TaskType.REFACTOR] == "claude-sonnet-4"
        assert DEFAULT_TASK_ROUTING[TaskType.SECURITY] == "claude-opus-4.5"
        assert DEFAULT_TASK_ROUTING[TaskType.LONG_CONTEXT] == "gemini-2.5-pro"
        assert DEFAULT_TASK_ROUTING[TaskType.DEBUG] == "gpt-4o"

    def test_fallback_chain_is_free(self):
        for model_id in BACKEND_FALLBACK_CHAIN:
            assert get_model(model_id).credit_tier == CreditTier.FREE

    def test_aliases_target_catalog(self):
        for alias, model_id in FORCE_ALIASES.items():
            assert get_model(model_id) is not None, alias


class TestTaskTypeParse:

    def test_parse_known(self):
        assert TaskType.parse("debug") == TaskType.DEBUG
        assert TaskType.parse(" Long-Context ") == TaskType.LONG_CONTEXT

    def test_parse_unknown(self):
        assert TaskType.parse("banana") is None
