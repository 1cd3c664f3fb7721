"""Concrete implementations for local inference backends."""

import hashlib
import math
import random
import re
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

from loguru import logger

from .errors import DownloadError, InitError
from .models import (
    EMBEDDING_DIMENSIONS,
    USER_ROLE,
    ChatMessage,
    CompletionOptions,
    StreamChunk,
    ToolInvocation,
)
from .parsers import parse_native

ProgressCallback = Callable[[float], None]


class InferenceBackend(ABC):
    """Abstract Base Class for all inference backends.

    A backend wraps one model engine. It is not required to be thread-safe:
    ``InferenceSession`` guarantees that at most one of ``stream`` or ``embed``
    runs at a time.
    """

    model: str

    @abstractmethod
    def is_downloaded(self) -> bool:
        """Reports whether the model artifact is already available locally."""
        pass

    @abstractmethod
    def download(self, on_progress: ProgressCallback) -> None:
        """Fetches the model artifact.

        Parameters
        ----------
        on_progress : Callable[[float], None]
            Receives the completed fraction in [0, 1] as the download advances.
        """
        pass

    @abstractmethod
    def initialize(self) -> None:
        """Loads the downloaded model so it can serve requests."""
        pass

    @abstractmethod
    def stream(
        self,
        messages: List[ChatMessage],
        options: CompletionOptions,
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> Iterator[StreamChunk]:
        """Generates a response incrementally.

        Parameters
        ----------
        messages : List[ChatMessage]
            The conversation so far, system message first.
        options : CompletionOptions
            Sampling options.
        tools : List[Dict[str, Any]], optional
            Function-calling schemas the engine may invoke natively.

        Yields
        ------
        StreamChunk
            Text deltas and, when the engine supports it, native tool invocations.
        """
        pass

    @abstractmethod
    def embed(self, text: str) -> List[float]:
        """Returns a fixed-dimension dense vector for ``text``."""
        pass

    def stop(self) -> None:
        """Asks the engine to abort the current generation."""

    def reset(self) -> None:
        """Clears any engine-internal conversational context."""

    def close(self) -> None:
        """Releases engine resources."""


def _to_dicts(messages: List[ChatMessage]) -> List[Dict[str, Any]]:
    out = []
    for msg in messages:
        entry = {"role": msg.role, "content": msg.content}
        if msg.images:
            entry["images"] = list(msg.images)
        out.append(entry)
    return out


class Ollama(InferenceBackend):
    def __init__(
        self,
        model: str = "qwen3:0.6b",
        host: Optional[str] = None,
        embedding_model: Optional[str] = None,
        context_size: int = 2048,
    ):
        from ollama import Client

        self.client = Client(host=host)
        self.model = model
        self.embedding_model = embedding_model or model
        self.context_size = context_size

    def is_downloaded(self) -> bool:
        from ollama import ResponseError

        try:
            self.client.show(self.model)
        except ResponseError:
            return False
        return True

    def download(self, on_progress: ProgressCallback) -> None:
        for progress in self.client.pull(self.model, stream=True):
            total = getattr(progress, "total", None)
            completed = getattr(progress, "completed", None)
            if total and completed is not None:
                on_progress(completed / total)
        on_progress(1.0)

    def initialize(self) -> None:
        # An empty prompt loads the model into memory without generating.
        self.client.generate(model=self.model, prompt="")

    def _options(self, options: CompletionOptions) -> Dict[str, Any]:
        raw = {
            "temperature": options.temperature,
            "top_p": options.top_p,
            "top_k": options.top_k,
            "num_predict": options.max_tokens,
            "num_ctx": self.context_size,
            "stop": options.stop or None,
        }
        return {k: v for k, v in raw.items() if v is not None}

    def stream(self, messages, options, tools=None):
        kwargs = {}
        if tools:
            kwargs["tools"] = tools
        response = self.client.chat(
            model=self.model,
            messages=_to_dicts(messages),
            stream=True,
            options=self._options(options),
            **kwargs,
        )
        for part in response:
            message = part.message
            invocations = [
                ToolInvocation(
                    name=call.function.name,
                    arguments=dict(call.function.arguments or {}),
                )
                for call in (message.tool_calls or [])
            ]
            if message.content or invocations:
                yield StreamChunk(text=message.content or "", tool_invocations=invocations)

    def embed(self, text: str) -> List[float]:
        response = self.client.embed(model=self.embedding_model, input=text)
        return list(response.embeddings[0])

    def close(self) -> None:
        self.client.generate(model=self.model, prompt="", keep_alive=0)


class OpenAICompatible(InferenceBackend):
    """A local OpenAI-compatible server such as llama.cpp's ``llama-server``."""

    def __init__(
        self,
        model: str = "qwen3:0.6b",
        base_url: str = "http://localhost:8080/v1",
        api_key: str = "not-needed",
        embedding_model: Optional[str] = None,
    ):
        from openai import OpenAI

        self.client = OpenAI(base_url=base_url, api_key=api_key)
        self.model = model
        self.embedding_model = embedding_model or model

    def is_downloaded(self) -> bool:
        from openai import OpenAIError

        try:
            served = [m.id for m in self.client.models.list()]
        except OpenAIError as e:
            logger.warning(f"Could not list models on local server: {e}")
            return False
        return self.model in served

    def download(self, on_progress: ProgressCallback) -> None:
        # The server owns its weights; there is nothing to fetch from here.
        raise DownloadError(
            f"Model '{self.model}' is not served by {self.client.base_url}; "
            "load it on the server first."
        )

    def initialize(self) -> None:
        if not self.is_downloaded():
            raise InitError(f"Model '{self.model}' is not available on the server.")

    def stream(self, messages, options, tools=None):
        kwargs = {
            "model": self.model,
            "messages": _to_dicts(messages),
            "stream": True,
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
        }
        if options.top_p is not None:
            kwargs["top_p"] = options.top_p
        if options.stop:
            kwargs["stop"] = options.stop
        if tools:
            kwargs["tools"] = tools

        pending: Dict[int, Dict[str, str]] = {}
        for chunk in self.client.chat.completions.create(**kwargs):
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta
            if delta.content:
                yield StreamChunk(text=delta.content)
            for call in delta.tool_calls or []:
                acc = pending.setdefault(call.index, {"name": "", "arguments": ""})
                if call.function and call.function.name:
                    acc["name"] += call.function.name
                if call.function and call.function.arguments:
                    acc["arguments"] += call.function.arguments

        if pending:
            calls = [{"function": pending[i]} for i in sorted(pending)]
            yield StreamChunk(tool_invocations=parse_native(calls))

    def embed(self, text: str) -> List[float]:
        response = self.client.embeddings.create(model=self.embedding_model, input=text)
        return list(response.data[0].embedding)


class Echo(InferenceBackend):
    """Deterministic stand-in used in tests and when no model is available.

    Parameters
    ----------
    responses : list, optional
        Scripted replies consumed in order. Each item is either a string or a
        ``StreamChunk`` carrying native tool invocations. When exhausted, the
        last user message is echoed back.
    delay : float
        Seconds to sleep between streamed tokens.
    """

    def __init__(
        self,
        responses: Optional[List[Union[str, StreamChunk]]] = None,
        model: str = "echo",
        delay: float = 0.0,
        downloaded: bool = False,
        download_steps: int = 4,
        init_delay: float = 0.0,
        fail_download: bool = False,
        fail_init: bool = False,
    ):
        self.model = model
        self.responses = deque(responses or [])
        self.delay = delay
        self.downloaded = downloaded
        self.download_steps = download_steps
        self.init_delay = init_delay
        self.fail_download = fail_download
        self.fail_init = fail_init
        self.calls: List[Dict[str, Any]] = []
        self.download_calls = 0
        self.init_calls = 0
        self.reset_calls = 0
        self.closed = False
        self._stopped = threading.Event()

    def is_downloaded(self) -> bool:
        return self.downloaded

    def download(self, on_progress):
        self.download_calls += 1
        if self.fail_download:
            raise ConnectionError("simulated download failure")
        for step in range(1, self.download_steps + 1):
            on_progress(step / self.download_steps)
        self.downloaded = True

    def initialize(self):
        self.init_calls += 1
        if self.init_delay:
            time.sleep(self.init_delay)
        if self.fail_init:
            raise RuntimeError("simulated init failure")

    def _next_reply(self, messages: List[ChatMessage]) -> StreamChunk:
        if self.responses:
            reply = self.responses.popleft()
            return StreamChunk(text=reply) if isinstance(reply, str) else reply
        last_user = next(
            (m.content for m in reversed(messages) if m.role == USER_ROLE), ""
        )
        return StreamChunk(text=f"Echo: {last_user}")

    def stream(self, messages, options, tools=None):
        self._stopped.clear()
        self.calls.append(
            {"messages": list(messages), "options": options, "tools": tools}
        )
        reply = self._next_reply(messages)
        for token in re.findall(r"\S+\s*", reply.text):
            if self._stopped.is_set():
                return
            if self.delay:
                time.sleep(self.delay)
            yield StreamChunk(text=token)
        if reply.tool_invocations:
            yield StreamChunk(tool_invocations=list(reply.tool_invocations))

    def embed(self, text: str) -> List[float]:
        seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "big")
        rng = random.Random(seed)
        vector = [rng.gauss(0.0, 1.0) for _ in range(EMBEDDING_DIMENSIONS)]
        norm = math.sqrt(sum(v * v for v in vector)) or 1.0
        return [v / norm for v in vector]

    def stop(self):
        self._stopped.set()

    def reset(self):
        self.reset_calls += 1

    def close(self):
        self.closed = True


def create_backend(settings) -> InferenceBackend:
    """Builds the backend named by ``settings.backend``."""
    if settings.backend == "ollama":
        return Ollama(
            model=settings.model,
            host=settings.ollama_host,
            embedding_model=settings.embedding_model,
            context_size=settings.context_size,
        )
    if settings.backend == "openai":
        return OpenAICompatible(
            model=settings.model,
            base_url=settings.openai_base_url,
            api_key=settings.openai_api_key,
            embedding_model=settings.embedding_model,
        )
    return Echo(model=settings.model)
