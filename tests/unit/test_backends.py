"""
Tests for the inference backends.

Engine SDK clients are patched; no model server is needed.
"""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from dealscout.backends import (
    Echo,
    InferenceBackend,
    Ollama,
    OpenAICompatible,
    create_backend,
)
from dealscout.config import Settings
from dealscout.errors import DownloadError, InitError
from dealscout.models import (
    EMBEDDING_DIMENSIONS,
    ChatMessage,
    CompletionOptions,
    StreamChunk,
    ToolInvocation,
)


def collect(chunks):
    chunks = list(chunks)
    text = "".join(c.text for c in chunks)
    invocations = [i for c in chunks for i in c.tool_invocations]
    return text, invocations


class TestBackendInterface:
    def test_backend_is_abstract(self):
        with pytest.raises(TypeError, match="Can't instantiate abstract class"):
            InferenceBackend()

    def test_lifecycle_hooks_default_to_no_ops(self):
        class Minimal(InferenceBackend):
            model = "m"

            def is_downloaded(self):
                return True

            def download(self, on_progress):
                pass

            def initialize(self):
                pass

            def stream(self, messages, options, tools=None):
                yield StreamChunk(text="x")

            def embed(self, text):
                return []

        backend = Minimal()
        backend.stop()
        backend.reset()
        backend.close()


class TestEcho:
    def test_streams_scripted_reply_token_by_token(self, sample_messages):
        backend = Echo(responses=["alpha beta gamma"])
        chunks = list(backend.stream(sample_messages, CompletionOptions()))
        assert [c.text for c in chunks] == ["alpha ", "beta ", "gamma"]

    def test_echoes_last_user_message_when_script_is_exhausted(self, sample_messages):
        text, _ = collect(Echo().stream(sample_messages, CompletionOptions()))
        assert text == "Echo: Is this founder worth a meeting?"

    def test_scripted_tool_invocations(self, sample_messages):
        reply = StreamChunk(
            text="Looking up.",
            tool_invocations=[ToolInvocation(name="get_person", arguments={"person_id": "p"})],
        )
        text, invocations = collect(Echo(responses=[reply]).stream(sample_messages, CompletionOptions()))
        assert text == "Looking up."
        assert invocations[0].name == "get_person"

    def test_records_calls(self, sample_messages):
        backend = Echo(responses=["ok"])
        list(backend.stream(sample_messages, CompletionOptions(), tools=[{"type": "function"}]))
        assert backend.calls[0]["tools"] == [{"type": "function"}]
        assert backend.calls[0]["messages"] == sample_messages

    def test_stop_ends_stream(self, sample_messages):
        backend = Echo(responses=["a b c d"])
        received = []
        for chunk in backend.stream(sample_messages, CompletionOptions()):
            received.append(chunk.text)
            backend.stop()
        assert received == ["a "]

    def test_download_reports_progress(self):
        backend = Echo(download_steps=4)
        seen = []
        backend.download(seen.append)
        assert seen == [0.25, 0.5, 0.75, 1.0]
        assert backend.is_downloaded()

    def test_embedding_is_deterministic_and_normalized(self):
        backend = Echo()
        first = backend.embed("serial founder")
        assert len(first) == EMBEDDING_DIMENSIONS
        assert first == backend.embed("serial founder")
        assert first != backend.embed("first-time founder")
        assert sum(v * v for v in first) == pytest.approx(1.0)


class TestOllama:
    @pytest.fixture
    def client(self):
        with patch("ollama.Client") as client_cls:
            yield client_cls.return_value

    def test_is_downloaded(self, client):
        from ollama import ResponseError

        backend = Ollama(model="qwen3:0.6b")
        assert backend.is_downloaded() is True
        client.show.side_effect = ResponseError("model not found", 404)
        assert backend.is_downloaded() is False

    def test_download_progress(self, client):
        client.pull.return_value = [
            SimpleNamespace(status="pulling manifest", total=None, completed=None),
            SimpleNamespace(status="downloading", total=200, completed=50),
            SimpleNamespace(status="downloading", total=200, completed=200),
            SimpleNamespace(status="success", total=None, completed=None),
        ]
        seen = []
        Ollama(model="qwen3:0.6b").download(seen.append)
        assert seen == [0.25, 1.0, 1.0]
        client.pull.assert_called_once_with("qwen3:0.6b", stream=True)

    def test_stream_maps_options_and_tool_calls(self, client, sample_messages):
        call = SimpleNamespace(
            function=SimpleNamespace(name="get_company", arguments={"company_id": "com_1"})
        )
        client.chat.return_value = [
            SimpleNamespace(message=SimpleNamespace(content="Checking ", tool_calls=None)),
            SimpleNamespace(message=SimpleNamespace(content="", tool_calls=[call])),
            SimpleNamespace(message=SimpleNamespace(content="", tool_calls=None)),
        ]
        backend = Ollama(model="qwen3:0.6b", context_size=4096)
        tools = [{"type": "function", "function": {"name": "get_company"}}]
        text, invocations = collect(
            backend.stream(sample_messages, CompletionOptions(max_tokens=64, stop=["</s>"]), tools)
        )

        assert text == "Checking "
        assert invocations == [ToolInvocation(name="get_company", arguments={"company_id": "com_1"})]
        kwargs = client.chat.call_args.kwargs
        assert kwargs["stream"] is True
        assert kwargs["tools"] == tools
        assert kwargs["options"] == {
            "temperature": 0.7,
            "num_predict": 64,
            "num_ctx": 4096,
            "stop": ["</s>"],
        }
        assert kwargs["messages"][0] == {"role": "system", "content": "You are an analyst."}

    def test_images_are_forwarded(self, client):
        client.chat.return_value = []
        backend = Ollama()
        list(backend.stream([ChatMessage(role="user", content="?", images=["b64"])], CompletionOptions()))
        assert client.chat.call_args.kwargs["messages"][0]["images"] == ["b64"]
        assert "tools" not in client.chat.call_args.kwargs

    def test_embed_uses_embedding_model(self, client):
        client.embed.return_value = SimpleNamespace(embeddings=[[0.1, 0.2]])
        backend = Ollama(model="qwen3:0.6b", embedding_model="all-minilm")
        assert backend.embed("text") == [0.1, 0.2]
        client.embed.assert_called_once_with(model="all-minilm", input="text")

    def test_close_unloads_model(self, client):
        Ollama(model="qwen3:0.6b").close()
        client.generate.assert_called_once_with(model="qwen3:0.6b", prompt="", keep_alive=0)


class TestOpenAICompatible:
    @pytest.fixture
    def client(self):
        with patch("openai.OpenAI") as client_cls:
            client = client_cls.return_value
            client.base_url = "http://localhost:8080/v1"
            yield client

    def test_is_downloaded_checks_served_models(self, client):
        client.models.list.return_value = [SimpleNamespace(id="qwen3:0.6b")]
        assert OpenAICompatible(model="qwen3:0.6b").is_downloaded() is True
        assert OpenAICompatible(model="other").is_downloaded() is False

    def test_unreachable_server_is_not_downloaded(self, client):
        from openai import OpenAIError

        client.models.list.side_effect = OpenAIError("connection refused")
        assert OpenAICompatible().is_downloaded() is False

    def test_download_is_not_supported(self, client):
        with pytest.raises(DownloadError):
            OpenAICompatible().download(lambda p: None)

    def test_initialize_requires_served_model(self, client):
        client.models.list.return_value = []
        with pytest.raises(InitError):
            OpenAICompatible().initialize()

    def test_stream_accumulates_tool_call_deltas(self, client, sample_messages):
        def chunk(content=None, tool_calls=None):
            delta = SimpleNamespace(content=content, tool_calls=tool_calls)
            return SimpleNamespace(choices=[SimpleNamespace(delta=delta)])

        def call_delta(index, name=None, arguments=None):
            return SimpleNamespace(
                index=index, function=SimpleNamespace(name=name, arguments=arguments)
            )

        client.chat.completions.create.return_value = [
            chunk(content="Let me check. "),
            chunk(tool_calls=[call_delta(0, name="get_person", arguments='{"person_')]),
            chunk(tool_calls=[call_delta(0, arguments='id": "per_1"}')]),
            chunk(tool_calls=[call_delta(1, name="get_company", arguments="{}")]),
            SimpleNamespace(choices=[]),
        ]
        text, invocations = collect(
            OpenAICompatible().stream(sample_messages, CompletionOptions(top_p=0.9), tools=[{}])
        )
        assert text == "Let me check. "
        assert invocations == [
            ToolInvocation(name="get_person", arguments={"person_id": "per_1"}),
            ToolInvocation(name="get_company", arguments={}),
        ]
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["top_p"] == 0.9
        assert kwargs["max_tokens"] == 512
        assert "stop" not in kwargs

    def test_embed(self, client):
        client.embeddings.create.return_value = SimpleNamespace(
            data=[SimpleNamespace(embedding=[0.5, 0.5])]
        )
        assert OpenAICompatible().embed("x") == [0.5, 0.5]


class TestCreateBackend:
    def test_echo(self):
        backend = create_backend(Settings(backend="echo", model="scripted", _env_file=None))
        assert isinstance(backend, Echo)
        assert backend.model == "scripted"

    def test_ollama(self):
        with patch("ollama.Client") as client_cls:
            backend = create_backend(
                Settings(backend="ollama", ollama_host="http://gpu:11434", _env_file=None)
            )
        assert isinstance(backend, Ollama)
        client_cls.assert_called_once_with(host="http://gpu:11434")

    def test_openai(self):
        with patch("openai.OpenAI") as client_cls:
            backend = create_backend(Settings(backend="openai", _env_file=None))
        assert isinstance(backend, OpenAICompatible)
        client_cls.assert_called_once_with(base_url="http://localhost:8080/v1", api_key="not-needed")
