"""Executable chat backends.

The router never talks to a model API directly. It asks a
BackendProvider for backends matching a model family and streams from
whichever one it gets:

    provider = LiteLLMProvider({"gpt-4o": "gpt-4o"})
    backend = provider.select("gpt-4o")[0]
    async for chunk in backend.stream(messages):
        ...

A provider may return no backends for a family; callers handle that
by walking their own fallback chain.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Callable

import litellm
import openai

from simpllm import SimpLLMError

logger = logging.getLogger(__name__)

ChatMessage = dict[str, str]  # {"role": ..., "content": ...}


class BackendError(SimpLLMError):
    """A backend failed while producing a response."""


class RequestCancelled(SimpLLMError):
    """The caller cancelled the request."""


class NoBackendAvailable(SimpLLMError):
    """No executable backend could be found for a model."""


class CancellationToken:
    """Caller-owned cancellation flag checked between streamed chunks."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise RequestCancelled("Request cancelled")


def user_message(content: str) -> ChatMessage:
    return {"role": "user", "content": content}


def assistant_message(content: str) -> ChatMessage:
    return {"role": "assistant", "content": content}


class ChatBackend(ABC):
    """One executable chat model."""

    vendor: str
    family: str
    name: str

    @abstractmethod
    def stream(
        self,
        messages: list[ChatMessage],
        cancel: CancellationToken | None = None,
    ) -> AsyncIterator[str]:
        """Stream the response text chunk by chunk.

        Raises:
            BackendError: the backend failed mid-request.
            RequestCancelled: the token was cancelled.
        """
        ...


class BackendProvider(ABC):
    """Source of executable backends."""

    vendor: str

    @abstractmethod
    def select(self, family: str | None = None) -> list[ChatBackend]:
        """Return backends for a family, or every backend if family is None."""
        ...


async def collect(
    backend: ChatBackend,
    messages: list[ChatMessage],
    cancel: CancellationToken | None = None,
) -> str:
    """Drain a backend stream into a single string."""
    parts: list[str] = []
    async for chunk in backend.stream(messages, cancel):
        parts.append(chunk)
    return "".join(parts)


# ── LiteLLM ─────────────────────────────────────────────

class LiteLLMBackend(ChatBackend):
    """Streams completions through LiteLLM's provider-agnostic API."""

    def __init__(self, family: str, model_name: str, vendor: str = "copilot", **params: Any):
        self.family = family
        self.name = model_name
        self.vendor = vendor
        self.params = params

    async def stream(
        self,
        messages: list[ChatMessage],
        cancel: CancellationToken | None = None,
    ) -> AsyncIterator[str]:
        if cancel:
            cancel.raise_if_cancelled()
        try:
            response = await litellm.acompletion(
                model=self.name,
                messages=messages,
                stream=True,
                **self.params,
            )
            async for chunk in response:
                if cancel:
                    cancel.raise_if_cancelled()
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
        except openai.OpenAIError as e:
            logger.debug(f"LiteLLM error from {self.name}: {e}")
            raise BackendError(str(e)) from e

    def __repr__(self) -> str:
        return f"LiteLLMBackend(family={self.family!r}, model={self.name!r})"


class LiteLLMProvider(BackendProvider):
    """Maps catalog families to LiteLLM model names.

    Families without a mapping have no backend, which sends the router
    down its fallback chain.
    """

    def __init__(self, family_map: dict[str, str], vendor: str = "copilot"):
        self.family_map = dict(family_map)
        self.vendor = vendor

    def select(self, family: str | None = None) -> list[ChatBackend]:
        if family is None:
            return [
                LiteLLMBackend(fam, name, vendor=self.vendor)
                for fam, name in self.family_map.items()
            ]
        name = self.family_map.get(family)
        if not name:
            return []
        return [LiteLLMBackend(family, name, vendor=self.vendor)]


# ── In-memory ───────────────────────────────────────────

Reply = str | list[str] | Callable[[list[ChatMessage]], str | list[str]]


class StaticBackend(ChatBackend):
    """Serves canned replies without any network access.

    ``reply`` is a string (one chunk), a list of chunks, or a callable
    taking the message list. Every message list received is kept in
    ``calls``. If ``error`` is set it is raised after the chunks.
    """

    def __init__(
        self,
        family: str,
        reply: Reply = "",
        vendor: str = "copilot",
        name: str | None = None,
        error: Exception | None = None,
    ):
        self.family = family
        self.name = name or family
        self.vendor = vendor
        self.reply = reply
        self.error = error
        self.calls: list[list[ChatMessage]] = []

    async def stream(
        self,
        messages: list[ChatMessage],
        cancel: CancellationToken | None = None,
    ) -> AsyncIterator[str]:
        self.calls.append(list(messages))
        reply = self.reply(messages) if callable(self.reply) else self.reply
        chunks = [reply] if isinstance(reply, str) else reply
        for chunk in chunks:
            if cancel:
                cancel.raise_if_cancelled()
            yield chunk
        if self.error is not None:
            raise self.error

    def __repr__(self) -> str:
        return f"StaticBackend(family={self.family!r})"


class StaticProvider(BackendProvider):
    """Selects from a fixed list of backends."""

    def __init__(self, backends: list[ChatBackend], vendor: str = "copilot"):
        self.backends = list(backends)
        self.vendor = vendor

    def select(self, family: str | None = None) -> list[ChatBackend]:
        if family is None:
            return list(self.backends)
        return [b for b in self.backends if b.family == family]
