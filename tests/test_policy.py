"""Tests for admin policy checks."""

from simpllm.routing.catalog import MODELS, TIER_ORDER, CreditTier, get_model
from simpllm.routing.policy import (
    DEFAULT_ADMIN_CONFIG,
    AdminConfig,
    check_model,
    is_allowed,
    tier_allowed,
)


class TestPolicy:

    def test_default_allows_everything(self):
        assert all(is_allowed(m, DEFAULT_ADMIN_CONFIG) for m in MODELS)

    def test_blocked(self):
        config = AdminConfig(blocked_models=frozenset({"claude-opus-4.5"}))
        allowed, reason = check_model(get_model("claude-opus-4.5"), config)
        assert not allowed
        assert "blocked" in reason

    def test_block_beats_tier(self):
        # A free model under a premium ceiling is still denied when blocked
        config = AdminConfig(blocked_models=frozenset({"gpt-4o"}))
        assert not is_allowed(get_model("gpt-4o"), config)

    def test_ceiling(self):
        config = AdminConfig(max_credit_tier=CreditTier.STANDARD)
        allowed, reason = check_model(get_model("claude-opus-4.5"), config)
        assert not allowed
        assert "premium" in reason and "standard" in reason
        assert is_allowed(get_model("claude-sonnet-4.5"), config)

    def test_allowed_reason(self):
        assert check_model(get_model("gpt-4o"), DEFAULT_ADMIN_CONFIG) == (True, "Allowed")

    def test_free_ceiling_only_free(self):
        config = AdminConfig(max_credit_tier=CreditTier.FREE)
        allowed = {m.id for m in MODELS if is_allowed(m, config)}
        assert allowed == {"gpt-4.1", "gpt-4o", "gpt-5-mini"}

    def test_lowering_ceiling_never_allows_more(self):
        previous = None
        for ceiling in reversed(TIER_ORDER):
            config = AdminConfig(max_credit_tier=ceiling)
            allowed = {m.id for m in MODELS if is_allowed(m, config)}
            if previous is not None:
                assert allowed <= previous
            previous = allowed

    def test_tier_allowed(self):
        assert tier_allowed(CreditTier.CHEAP, CreditTier.STANDARD)
        assert tier_allowed(CreditTier.STANDARD, CreditTier.STANDARD)
        assert not tier_allowed(CreditTier.PREMIUM, CreditTier.STANDARD)
