"""
Model clients for toolchat.

This module is the only place that *directly* calls an LLM.  Everything else (tool loop, tools,
memory, intent routing) stays model-agnostic and talks to a :class:`BaseModelClient`.

We support three back-ends out of the box:

1. **Anthropic** via the ``anthropic`` SDK (default).
2. **OpenAI** via the ``openai`` SDK.
3. **Hugging Face Text-Generation-Inference (TGI)** for self-hosted models, over ``httpx``.

Additional providers can be added by subclassing :class:`BaseModelClient` and registering via
:func:`register_client`.
"""

import logging
import threading
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Callable,
    Dict,
    List,
    Optional,
    Sequence,
    Type,
)

import httpx

from toolchat.config import settings
from toolchat.core.schema import Message

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[str], None]


class TransportError(RuntimeError):
    """Raised when the remote model call fails (network, auth, rate limit, timeout)."""


class TurnCancelled(RuntimeError):
    """Raised when the caller aborts an in-flight model call."""


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_CLIENT_REGISTRY: dict[str, Type["BaseModelClient"]] = {}


def register_client(name: str) -> Callable:
    """Decorator to register a model client class under *name*."""

    def wrapper(cls: Type["BaseModelClient"]) -> Type["BaseModelClient"]:
        _CLIENT_REGISTRY[name] = cls
        return cls

    return wrapper


def load_client(name: str | None = None) -> "BaseModelClient":
    """
    Factory that returns an instantiated model client.

    Fallback order:
    1. *name* arg
    2. ``settings.PROVIDER`` env option
    3. default: ``"anthropic"``
    """

    target = name or getattr(settings, "PROVIDER", "anthropic")
    cls = _CLIENT_REGISTRY.get(target.lower())
    if cls is None:
        raise ValueError(f"Model client '{target}' is not registered.")
    return cls()


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BaseModelClient(ABC):
    """Abstract remote model: transcript + system prompt -> assistant text."""

    @abstractmethod
    def send(
        self,
        transcript: Sequence[Message],
        system_prompt: str,
        on_chunk: Optional[ChunkCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        """
        Return the assistant's reply to *transcript*.

        *on_chunk* receives incremental text for display only.  Setting *cancel_event* aborts the
        call with :class:`TurnCancelled`.  Any remote failure raises :class:`TransportError`.
        """

    @staticmethod
    def _wire_messages(transcript: Sequence[Message]) -> List[Dict[str, str]]:
        """Transcript without system messages, as plain role/content dicts."""
        return [{"role": msg.role, "content": msg.content} for msg in transcript if msg.role != "system"]

    @staticmethod
    def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise TurnCancelled("Model call cancelled by caller")


# ---------------------------------------------------------------------------
# Concrete clients
# ---------------------------------------------------------------------------
@register_client("anthropic")
class AnthropicClient(BaseModelClient):
    """Anthropic Claude client, streaming when a chunk callback or cancel event is given."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        timeout: float | None = None,
    ):
        self.api_key = api_key or settings.ANTHROPIC_API_KEY
        self.model = model or settings.ANTHROPIC_MODEL
        self.max_tokens = max_tokens or settings.MAX_TOKENS
        self.temperature = settings.TEMPERATURE if temperature is None else temperature
        self.timeout = timeout or settings.REQUEST_TIMEOUT

    def send(
        self,
        transcript: Sequence[Message],
        system_prompt: str,
        on_chunk: Optional[ChunkCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        self._check_cancelled(cancel_event)
        if not self.api_key:
            raise TransportError("ANTHROPIC_API_KEY is not set")

        import anthropic  # pylint: disable=import-outside-toplevel

        client = anthropic.Anthropic(api_key=self.api_key, timeout=self.timeout)
        request = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "system": system_prompt,
            "messages": self._wire_messages(transcript),
        }
        logger.debug("Anthropic request: model=%s, messages=%d", self.model, len(request["messages"]))

        try:
            if on_chunk is None and cancel_event is None:
                response = client.messages.create(**request)
                content = "".join(block.text for block in response.content if block.type == "text")
            else:
                parts: List[str] = []
                with client.messages.stream(**request) as stream:
                    for text in stream.text_stream:
                        self._check_cancelled(cancel_event)
                        parts.append(text)
                        if on_chunk is not None:
                            on_chunk(text)
                content = "".join(parts)
        except anthropic.APIError as exc:
            logger.error("Anthropic request error: %s", str(exc))
            raise TransportError(f"Error calling Anthropic: {exc}") from exc

        logger.debug("Anthropic response: %s", content)
        return content


@register_client("openai")
class OpenAIClient(BaseModelClient):
    """OpenAI chat-completions client."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        timeout: float | None = None,
    ):
        self.api_key = api_key or settings.OPENAI_API_KEY
        self.model = model or settings.OPENAI_MODEL
        self.max_tokens = max_tokens or settings.MAX_TOKENS
        self.temperature = settings.TEMPERATURE if temperature is None else temperature
        self.timeout = timeout or settings.REQUEST_TIMEOUT

    def send(
        self,
        transcript: Sequence[Message],
        system_prompt: str,
        on_chunk: Optional[ChunkCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        self._check_cancelled(cancel_event)
        if not self.api_key:
            raise TransportError("OPENAI_API_KEY is not set")

        import openai  # pylint: disable=import-outside-toplevel

        client = openai.OpenAI(api_key=self.api_key, timeout=self.timeout)
        messages = [{"role": "system", "content": system_prompt}] + self._wire_messages(transcript)

        try:
            if on_chunk is None and cancel_event is None:
                resp = client.chat.completions.create(
                    model=self.model,
                    messages=messages,  # type: ignore[arg-type]
                    max_tokens=self.max_tokens,
                    temperature=self.temperature,
                )
                content = resp.choices[0].message.content or ""
            else:
                parts: List[str] = []
                stream = client.chat.completions.create(
                    model=self.model,
                    messages=messages,  # type: ignore[arg-type]
                    max_tokens=self.max_tokens,
                    temperature=self.temperature,
                    stream=True,
                )
                for chunk in stream:
                    self._check_cancelled(cancel_event)
                    delta = chunk.choices[0].delta.content if chunk.choices else None
                    if delta:
                        parts.append(delta)
                        if on_chunk is not None:
                            on_chunk(delta)
                content = "".join(parts)
        except openai.OpenAIError as exc:
            logger.error("OpenAI request error: %s", str(exc))
            raise TransportError(f"Error calling OpenAI: {exc}") from exc

        logger.debug("OpenAI response: %s", content)
        return content


@register_client("tgi")
class TGIClient(BaseModelClient):
    """TGI-based client over a plain httpx POST."""

    def __init__(
        self,
        endpoint: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.endpoint = endpoint or settings.TGI_ENDPOINT
        self.max_tokens = max_tokens or settings.MAX_TOKENS
        self.temperature = settings.TEMPERATURE if temperature is None else temperature
        self.timeout = timeout or settings.REQUEST_TIMEOUT
        self._transport = transport

    @staticmethod
    def _build_prompt(transcript: Sequence[Message], system_prompt: str) -> str:
        lines = [system_prompt, ""]
        for msg in transcript:
            if msg.role == "system":
                continue
            speaker = "User" if msg.role == "user" else "Assistant"
            lines.append(f"{speaker}: {msg.content}")
        lines.append("Assistant:")
        return "\n".join(lines)

    def send(
        self,
        transcript: Sequence[Message],
        system_prompt: str,
        on_chunk: Optional[ChunkCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        self._check_cancelled(cancel_event)
        payload = {
            "inputs": self._build_prompt(transcript, system_prompt),
            "parameters": {
                "max_new_tokens": self.max_tokens,
                "temperature": self.temperature,
                "stop": ["User:", "</s>"],
            },
        }

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                resp = client.post(self.endpoint, json=payload)
                resp.raise_for_status()
                content = str(resp.json()["generated_text"]).strip()
        except httpx.HTTPError as e:
            logger.error("TGI request error: %s", str(e))
            raise TransportError(f"Error calling TGI endpoint: {e}") from e
        except (KeyError, ValueError) as e:
            logger.error("Malformed TGI response: %s", str(e))
            raise TransportError(f"Malformed response from TGI endpoint: {e}") from e

        self._check_cancelled(cancel_event)
        logger.debug("TGI response: %s", content)
        if on_chunk is not None:
            on_chunk(content)
        return content
