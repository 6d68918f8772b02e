from types import SimpleNamespace

import httpx
import openai
import pytest

from glucimiam import providers
from glucimiam.errors import (
    ConfigurationError,
    ProviderAuthFailure,
    ProviderEmptyResponse,
    ProviderError,
    ProviderMalformedRequest,
    ProviderQuotaFailure,
)
from glucimiam.providers import (
    ADAPTERS,
    DEFAULT_MODELS,
    ProviderId,
    call_provider,
    error_for_status,
    resolve_provider,
)

from conftest import make_image


class RecordingAdapter:
    def __init__(self, text):
        self.text = text
        self.calls = []

    def call(self, api_key, model, images, prompt, max_tokens):
        self.calls.append((api_key, model, len(images), prompt, max_tokens))
        return self.text


def test_every_provider_has_one_adapter_and_default_model():
    assert set(ADAPTERS) == set(ProviderId)
    assert set(DEFAULT_MODELS) == set(ProviderId)


@pytest.mark.parametrize(
    "status,expected",
    [
        (401, ProviderAuthFailure),
        (403, ProviderAuthFailure),
        (429, ProviderQuotaFailure),
        (400, ProviderMalformedRequest),
        (413, ProviderMalformedRequest),
    ],
)
def test_error_for_status(status, expected):
    error = error_for_status("claude", status, "boom")
    assert type(error) is expected
    assert error.status_code == status


def test_server_errors_stay_generic():
    assert type(error_for_status("gemini", 503, "down")) is ProviderError
    assert type(error_for_status("gemini", None, "down")) is ProviderError


def test_resolve_provider():
    assert resolve_provider(" Claude ") is ProviderId.CLAUDE
    assert resolve_provider(ProviderId.GEMINI) is ProviderId.GEMINI
    with pytest.raises(ConfigurationError):
        resolve_provider("mistral")


def test_call_provider_uses_default_model(monkeypatch):
    adapter = RecordingAdapter('{"foods": []}')
    monkeypatch.setitem(ADAPTERS, ProviderId.PERPLEXITY, adapter)
    text = call_provider("perplexity", "key", "", [b"a", b"b"], "prompt", max_tokens=512)
    assert text == '{"foods": []}'
    assert adapter.calls == [("key", "sonar-pro", 2, "prompt", 512)]


def test_call_provider_validates_inputs(monkeypatch):
    monkeypatch.setitem(ADAPTERS, ProviderId.CHATGPT, RecordingAdapter("ok"))
    with pytest.raises(ValueError):
        call_provider("chatgpt", "key", None, [], "prompt")
    with pytest.raises(ConfigurationError):
        call_provider("chatgpt", "", None, [b"a"], "prompt")


@pytest.mark.parametrize("text", ["", "   \n"])
def test_blank_answer_is_empty_response(monkeypatch, text):
    monkeypatch.setitem(ADAPTERS, ProviderId.CHATGPT, RecordingAdapter(text))
    with pytest.raises(ProviderEmptyResponse):
        call_provider("chatgpt", "key", None, [b"a"], "prompt")


class FakeCompletions:
    def __init__(self, result):
        self.result = result
        self.kwargs = None

    def create(self, **kwargs):
        self.kwargs = kwargs
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def _fake_openai(monkeypatch, result):
    completions = FakeCompletions(result)
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    seen = {}

    def fake_get_client(api_key, base_url=None):
        seen["base_url"] = base_url
        return client

    monkeypatch.setattr(providers, "get_openai_client", fake_get_client)
    return completions, seen


def test_openai_adapter_sends_one_image_part_per_photo(monkeypatch):
    response = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content='{"foods": ["riz"]}'))]
    )
    completions, seen = _fake_openai(monkeypatch, response)

    text = ADAPTERS[ProviderId.CHATGPT].call("key", "gpt-4o", [b"one", b"two"], "hello", 300)

    assert text == '{"foods": ["riz"]}'
    content = completions.kwargs["messages"][0]["content"]
    assert content[0] == {"type": "text", "text": "hello"}
    assert [part["type"] for part in content[1:]] == ["image_url", "image_url"]
    assert content[1]["image_url"]["url"].startswith("data:image/jpeg;base64,")
    assert completions.kwargs["max_tokens"] == 300
    assert seen["base_url"] is None


def test_perplexity_adapter_targets_its_endpoint(monkeypatch):
    response = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="x"))])
    _, seen = _fake_openai(monkeypatch, response)
    ADAPTERS[ProviderId.PERPLEXITY].call("key", "sonar-pro", [b"one"], "hello", 300)
    assert seen["base_url"] == "https://api.perplexity.ai"


def test_openai_rate_limit_maps_to_quota(monkeypatch):
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    error = openai.RateLimitError(
        "slow down", response=httpx.Response(429, request=request), body=None
    )
    _fake_openai(monkeypatch, error)
    with pytest.raises(ProviderQuotaFailure):
        ADAPTERS[ProviderId.CHATGPT].call("key", "gpt-4o", [b"one"], "hello", 300)


def test_claude_adapter_concatenates_text_blocks(monkeypatch):
    captured = {}

    def fake_post(url, headers=None, json=None, timeout=None):
        captured.update(url=url, headers=headers, body=json)
        return httpx.Response(
            200,
            json={
                "content": [
                    {"type": "text", "text": '{"foods": '},
                    {"type": "tool_use", "id": "x"},
                    {"type": "text", "text": '["riz"]}'},
                ]
            },
        )

    monkeypatch.setattr(httpx, "post", fake_post)
    text = ADAPTERS[ProviderId.CLAUDE].call("key", "claude-opus-4-6", [b"a", b"b"], "hi", 100)

    assert text == '{"foods": ["riz"]}'
    assert captured["headers"]["x-api-key"] == "key"
    assert captured["headers"]["anthropic-version"] == "2023-06-01"
    blocks = captured["body"]["messages"][0]["content"]
    assert [b["type"] for b in blocks] == ["image", "image", "text"]


@pytest.mark.parametrize(
    "status,expected",
    [(401, ProviderAuthFailure), (429, ProviderQuotaFailure), (400, ProviderMalformedRequest)],
)
def test_claude_adapter_maps_status(monkeypatch, status, expected):
    monkeypatch.setattr(
        httpx, "post", lambda url, headers=None, json=None, timeout=None: httpx.Response(status, text="no")
    )
    with pytest.raises(expected):
        ADAPTERS[ProviderId.CLAUDE].call("key", "m", [b"a"], "hi", 100)


def test_gemini_adapter_skips_thought_parts(monkeypatch):
    seen = {}

    class FakeModels:
        def generate_content(self, model, contents, config):
            seen.update(model=model, contents=contents)
            parts = [
                SimpleNamespace(text="thinking...", thought=True),
                SimpleNamespace(text='{"foods": ', thought=None),
                SimpleNamespace(text='["pomme"]}', thought=None),
            ]
            return SimpleNamespace(
                candidates=[SimpleNamespace(content=SimpleNamespace(parts=parts))]
            )

    class FakeClient:
        def __init__(self, api_key):
            seen["api_key"] = api_key
            self.models = FakeModels()

    monkeypatch.setattr(providers.genai, "Client", FakeClient)
    photo = make_image()
    text = ADAPTERS[ProviderId.GEMINI].call("gkey", "gemini-3-flash", [photo, photo], "hi", 100)

    assert text == '{"foods": ["pomme"]}'
    assert seen["api_key"] == "gkey"
    assert seen["contents"][0] == "hi"
    assert len(seen["contents"]) == 3
