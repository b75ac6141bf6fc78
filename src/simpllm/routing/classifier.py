"""Task classification for routing.

Two passes, tried in order until one produces a label:

1. Model pass: a cheap classifier model reads the prompt and answers
   with a single ``TASK:<label>`` line.
2. Keyword pass: ordered regex checks against the lowercased prompt.
   Local, never fails, defaults to ``function``.

The keyword pass is first-match-wins. A prompt mentioning both tests and
bugs is a ``test`` task because the test check runs first.
"""

import logging
import re

from simpllm.backends import (
    BackendProvider,
    CancellationToken,
    collect,
    user_message,
)
from simpllm.routing.catalog import TaskType, get_model

logger = logging.getLogger(__name__)


CLASSIFIER_SYSTEM_PROMPT = """You are a prompt classifier. Your ONLY job is to analyze the user's request and classify it.

RESPOND WITH EXACTLY ONE LINE in this format:
TASK:<type>

Where <type> is one of: autocomplete, simple, function, algorithm, test, debug, refactor, architecture, security, documentation, conversion, review, long-context

Classification rules:
- autocomplete: completing code, finishing snippets
- simple: typos, formatting, imports, simple questions
- function: writing functions, methods, classes
- algorithm: sorting, searching, data structures, complex logic
- test: unit tests, integration tests, test cases
- debug: finding bugs, fixing errors, troubleshooting
- refactor: restructuring code, design patterns, clean code
- architecture: system design, microservices, database design, scaling
- security: vulnerabilities, auth, encryption, security audit
- documentation: comments, README, API docs, explanations
- conversion: language conversion, migration, framework change
- review: code review, best practices, improvements
- long-context: large codebase analysis, multi-file operations

DO NOT answer the question. DO NOT write code. ONLY classify.
Example: TASK:debug"""

CLASSIFICATION_RESULT = re.compile(r"TASK:(\S+)", re.IGNORECASE)

# Checked in this order against the lowercased prompt; first hit wins.
# Vocabulary includes the Turkish terms our users type.
KEYWORD_RULES: tuple[tuple[TaskType, re.Pattern[str]], ...] = (
    (TaskType.TEST, re.compile(r"test|spec|jest|pytest|unit|mock")),
    (TaskType.DEBUG, re.compile(r"debug|hata|error|bug|fix|crash")),
    (TaskType.SECURITY, re.compile(r"security|güvenlik|vulnerability|xss|sql injection")),
    (TaskType.ARCHITECTURE, re.compile(r"architecture|mimari|design|microservice|scale")),
    (TaskType.REFACTOR, re.compile(r"refactor|yeniden yaz|rewrite|clean|solid")),
    (TaskType.ALGORITHM, re.compile(r"algorithm|algoritma|sort|search|recursive")),
    (TaskType.REVIEW, re.compile(r"review|incele|check|best practice")),
    (TaskType.DOCUMENTATION, re.compile(r"document|readme|jsdoc|açıkla|explain")),
    (TaskType.CONVERSION, re.compile(r"convert|dönüştür|migrate|transform")),
    (TaskType.FUNCTION, re.compile(r"fonksiyon|function|method|class|write|yaz")),
    (TaskType.SIMPLE, re.compile(r"basit|simple|import|typo|renk")),
    (TaskType.AUTOCOMPLETE, re.compile(r"tamamla|complete|finish")),
)

DEFAULT_TASK_TYPE = TaskType.FUNCTION


def fallback_classify(prompt: str) -> TaskType:
    """Keyword classification. Total and free of I/O."""
    text = prompt.lower()
    for task_type, pattern in KEYWORD_RULES:
        if pattern.search(text):
            return task_type
    return DEFAULT_TASK_TYPE


def parse_classification(output: str) -> TaskType | None:
    """Extract the label from a classifier reply, or None if there isn't a valid one."""
    match = CLASSIFICATION_RESULT.search(output)
    if not match:
        return None
    return TaskType.parse(match.group(1))


class TaskClassifier:
    """Classifies prompts, preferring the classifier model when reachable.

    Usage:
        classifier = TaskClassifier(provider, classifier_model="gpt-4o")
        task_type = await classifier.classify("why does this crash?")
        # task_type = TaskType.DEBUG
    """

    def __init__(self, provider: BackendProvider, classifier_model: str = "gpt-4o"):
        self.provider = provider
        self.classifier_model = classifier_model

    async def classify(
        self,
        prompt: str,
        cancel: CancellationToken | None = None,
        classifier_model: str | None = None,
    ) -> TaskType:
        task_type = await self.classify_with_model(prompt, cancel, classifier_model)
        if task_type is not None:
            return task_type
        return fallback_classify(prompt)

    async def classify_with_model(
        self,
        prompt: str,
        cancel: CancellationToken | None = None,
        classifier_model: str | None = None,
    ) -> TaskType | None:
        """Single attempt at model classification.

        Returns None whenever the answer can't be used: unknown classifier
        model, no backend, backend error, cancellation or an unparseable
        reply. Never retries.
        """
        model_id = classifier_model or self.classifier_model
        model = get_model(model_id)
        if model is None:
            logger.debug(f"Classifier model {model_id!r} not in catalog")
            return None

        try:
            backends = self.provider.select(model.family)
            if not backends:
                logger.debug(f"No backend for classifier family {model.family!r}")
                return None

            message = user_message(
                CLASSIFIER_SYSTEM_PROMPT + "\n\nClassify this prompt:\n" + prompt
            )
            output = await collect(backends[0], [message], cancel)
        except Exception as e:
            logger.debug(f"Classifier call failed, using keywords: {e}")
            return None

        task_type = parse_classification(output)
        if task_type is None:
            logger.debug(f"Unparseable classifier reply: {output[:80]!r}")
        return task_type
