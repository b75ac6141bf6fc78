"""Tests for two-pass task classification."""

import asyncio

import pytest

from simpllm.backends import CancellationToken, StaticBackend, StaticProvider
from simpllm.routing.catalog import TaskType
from simpllm.routing.classifier import (
    CLASSIFIER_SYSTEM_PROMPT,
    TaskClassifier,
    fallback_classify,
    parse_classification,
)


# ═══════════════════════════════════════════════════════════════
# Keyword pass
# ═══════════════════════════════════════════════════════════════

class TestFallbackClassify:

    @pytest.mark.parametrize("prompt,expected", [
        ("write unit tests for UserService", TaskType.TEST),
        ("why does this crash on startup?", TaskType.DEBUG),
        ("audit the login form for XSS", TaskType.SECURITY),
        ("design a microservice layout for billing", TaskType.ARCHITECTURE),
        ("refactor this module", TaskType.REFACTOR),
        ("implement quicksort", TaskType.ALGORITHM),
        ("explain what this regex does", TaskType.DOCUMENTATION),
        ("convert this to kotlin", TaskType.CONVERSION),
        ("add a method to parse dates", TaskType.FUNCTION),
        ("fix typo", TaskType.DEBUG),
        ("basit bir soru", TaskType.SIMPLE),
        ("finish this line", TaskType.AUTOCOMPLETE),
        ("bu hatayı düzelt", TaskType.DEBUG),
    ])
    def test_labels(self, prompt, expected):
        assert fallback_classify(prompt) == expected

    def test_first_rule_wins(self):
        # Mentions both a test and a bug; the test rule is checked first
        assert fallback_classify("fix the bug in this test") == TaskType.TEST

    def test_case_insensitive(self):
        assert fallback_classify("REFACTOR THIS") == TaskType.REFACTOR

    def test_default(self):
        assert fallback_classify("hello there") == TaskType.FUNCTION
        assert fallback_classify("") == TaskType.FUNCTION


class TestParseClassification:

    def test_exact(self):
        assert parse_classification("TASK:debug") == TaskType.DEBUG

    def test_embedded_and_case(self):
        assert parse_classification("Sure.\ntask:Review\n") == TaskType.REVIEW
        assert parse_classification("TASK:long-context") == TaskType.LONG_CONTEXT

    def test_unusable(self):
        assert parse_classification("TASK:banana") is None
        assert parse_classification("debug") is None
        assert parse_classification("") is None


# ═══════════════════════════════════════════════════════════════
# Model pass
# ═══════════════════════════════════════════════════════════════

class TestTaskClassifier:

    def test_model_label_wins(self):
        backend = StaticBackend("gpt-4o", "TASK:security")
        classifier = TaskClassifier(StaticProvider([backend]))
        # Keywords alone would say "function"
        assert asyncio.run(classifier.classify("hello there")) == TaskType.SECURITY

    def test_single_message_with_prompt(self):
        backend = StaticBackend("gpt-4o", "TASK:test")
        classifier = TaskClassifier(StaticProvider([backend]))
        asyncio.run(classifier.classify("write tests"))

        assert len(backend.calls) == 1
        [message] = backend.calls[0]
        assert message["role"] == "user"
        assert message["content"].startswith(CLASSIFIER_SYSTEM_PROMPT)
        assert message["content"].endswith("Classify this prompt:\nwrite tests")

    def test_no_backend_falls_back(self):
        classifier = TaskClassifier(StaticProvider([]))
        assert asyncio.run(classifier.classify("refactor this")) == TaskType.REFACTOR

    def test_unparseable_falls_back(self):
        classifier = TaskClassifier(StaticProvider([StaticBackend("gpt-4o", "I think it's a bug")]))
        assert asyncio.run(classifier.classify("implement quicksort")) == TaskType.ALGORITHM

    def test_backend_error_falls_back(self):
        backend = StaticBackend("gpt-4o", "", error=RuntimeError("boom"))
        classifier = TaskClassifier(StaticProvider([backend]))
        assert asyncio.run(classifier.classify("why does it crash")) == TaskType.DEBUG

    def test_cancelled_falls_back(self):
        backend = StaticBackend("gpt-4o", "TASK:security")
        classifier = TaskClassifier(StaticProvider([backend]))
        cancel = CancellationToken()
        cancel.cancel()
        assert asyncio.run(classifier.classify("refactor this", cancel)) == TaskType.REFACTOR

    def test_unknown_classifier_model(self):
        backend = StaticBackend("gpt-4o", "TASK:security")
        classifier = TaskClassifier(StaticProvider([backend]), classifier_model="gpt-9")
        assert asyncio.run(classifier.classify("refactor this")) == TaskType.REFACTOR
        assert backend.calls == []

    def test_classifier_model_override(self):
        flash = StaticBackend("gemini-flash", "TASK:review")
        classifier = TaskClassifier(StaticProvider([flash]))
        result = asyncio.run(classifier.classify("hello", classifier_model="gemini-3-flash"))
        assert result == TaskType.REVIEW
