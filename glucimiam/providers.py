"""
Uniform call surface over the supported vision backends.

Every provider is one ``ProviderId`` variant plus one adapter registered in
``ADAPTERS``. Callers only ever use ``call_provider``; a new backend means a
new enum member and a new table row.

One outbound request per call, no retry. Failures are mapped onto the
provider error taxonomy (auth / quota / malformed request / empty response).
"""

import enum
import logging
import time
from io import BytesIO
from typing import Dict, List, Optional, Sequence

import httpx
import openai
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types
from PIL import Image

from glucimiam.errors import (
    ConfigurationError,
    ProviderAuthFailure,
    ProviderEmptyResponse,
    ProviderError,
    ProviderMalformedRequest,
    ProviderQuotaFailure,
)
from glucimiam.image_preprocess import to_base64
from glucimiam.openai_client import get_openai_client

logger = logging.getLogger(__name__)

# Transport-level ceiling; the pipeline enforces the real (shorter) deadline.
REQUEST_TIMEOUT_S = 120.0


class ProviderId(str, enum.Enum):
    CLAUDE = "claude"
    CHATGPT = "chatgpt"
    GEMINI = "gemini"
    PERPLEXITY = "perplexity"


DEFAULT_MODELS: Dict[ProviderId, str] = {
    ProviderId.CLAUDE: "claude-opus-4-6",
    ProviderId.CHATGPT: "gpt-4o",
    ProviderId.GEMINI: "gemini-3-flash",
    ProviderId.PERPLEXITY: "sonar-pro",
}


def error_for_status(provider: str, status_code: Optional[int], message: str) -> ProviderError:
    """Map an HTTP status onto the provider error taxonomy."""
    if status_code in (401, 403):
        return ProviderAuthFailure(provider, message, status_code)
    if status_code == 429:
        return ProviderQuotaFailure(provider, message, status_code)
    if status_code is not None and 400 <= status_code < 500:
        return ProviderMalformedRequest(provider, message, status_code)
    return ProviderError(provider, message, status_code)


class ProviderAdapter:
    provider_id: ProviderId

    def call(
        self, api_key: str, model: str, images: Sequence[bytes], prompt: str, max_tokens: int
    ) -> str:
        raise NotImplementedError


class OpenAIChatAdapter(ProviderAdapter):
    """Chat Completions with one image_url part per photo."""

    provider_id = ProviderId.CHATGPT
    base_url: Optional[str] = None

    def call(self, api_key, model, images, prompt, max_tokens):
        client = get_openai_client(api_key, self.base_url)
        content: List[dict] = [{"type": "text", "text": prompt}]
        for img in images:
            content.append(
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:image/jpeg;base64,{to_base64(img)}"},
                }
            )
        name = self.provider_id.value
        try:
            response = client.chat.completions.create(
                model=model,
                temperature=0,
                max_tokens=max_tokens,
                messages=[{"role": "user", "content": content}],
                timeout=REQUEST_TIMEOUT_S,
            )
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            raise ProviderAuthFailure(name, str(e), e.status_code) from e
        except openai.RateLimitError as e:
            raise ProviderQuotaFailure(name, str(e), e.status_code) from e
        except openai.APIStatusError as e:
            raise error_for_status(name, e.status_code, str(e)) from e
        except openai.APIError as e:
            raise ProviderError(name, str(e)) from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""


class PerplexityAdapter(OpenAIChatAdapter):
    """Perplexity speaks the OpenAI Chat Completions dialect."""

    provider_id = ProviderId.PERPLEXITY
    base_url = "https://api.perplexity.ai"


class ClaudeAdapter(ProviderAdapter):
    """Anthropic Messages API over plain HTTP."""

    provider_id = ProviderId.CLAUDE
    url = "https://api.anthropic.com/v1/messages"
    api_version = "2023-06-01"

    def call(self, api_key, model, images, prompt, max_tokens):
        content: List[dict] = [
            {
                "type": "image",
                "source": {"type": "base64", "media_type": "image/jpeg", "data": to_base64(img)},
            }
            for img in images
        ]
        content.append({"type": "text", "text": prompt})
        headers = {
            "content-type": "application/json",
            "x-api-key": api_key,
            "anthropic-version": self.api_version,
        }
        body = {
            "model": model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": content}],
        }
        name = self.provider_id.value
        try:
            resp = httpx.post(self.url, headers=headers, json=body, timeout=REQUEST_TIMEOUT_S)
        except httpx.HTTPError as e:
            raise ProviderError(name, f"request failed: {e}") from e
        if resp.status_code != 200:
            raise error_for_status(name, resp.status_code, resp.text[:500])
        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderError(name, f"invalid JSON body: {e}") from e

        # The answer may be split across several text blocks
        return "".join(
            block.get("text", "")
            for block in data.get("content") or []
            if block.get("type") == "text"
        )


class GeminiAdapter(ProviderAdapter):
    provider_id = ProviderId.GEMINI

    def call(self, api_key, model, images, prompt, max_tokens):
        client = genai.Client(api_key=api_key)
        pil_images = [Image.open(BytesIO(img)) for img in images]
        name = self.provider_id.value
        try:
            response = client.models.generate_content(
                model=model,
                contents=[prompt, *pil_images],
                config=genai_types.GenerateContentConfig(
                    temperature=0, max_output_tokens=max_tokens
                ),
            )
        except genai_errors.APIError as e:
            raise error_for_status(name, getattr(e, "code", None), str(e)) from e

        candidates = response.candidates or []
        if not candidates or candidates[0].content is None:
            return ""
        parts = candidates[0].content.parts or []
        return "".join(p.text or "" for p in parts if not getattr(p, "thought", False))


ADAPTERS: Dict[ProviderId, ProviderAdapter] = {
    ProviderId.CLAUDE: ClaudeAdapter(),
    ProviderId.CHATGPT: OpenAIChatAdapter(),
    ProviderId.GEMINI: GeminiAdapter(),
    ProviderId.PERPLEXITY: PerplexityAdapter(),
}


def resolve_provider(provider) -> ProviderId:
    if isinstance(provider, ProviderId):
        return provider
    try:
        return ProviderId(str(provider).strip().lower())
    except ValueError:
        raise ConfigurationError(
            f"Unsupported provider {provider!r}, expected one of "
            f"{', '.join(p.value for p in ProviderId)}"
        ) from None


def call_provider(
    provider_id,
    credentials: str,
    model_id: Optional[str],
    images: Sequence[bytes],
    prompt: str,
    max_tokens: int = 2048,
) -> str:
    """Send the prompt and N >= 1 JPEG images; return the model's raw text."""
    provider = resolve_provider(provider_id)
    if not images:
        raise ValueError("At least one image is required")
    if not credentials:
        raise ConfigurationError(f"No credentials configured for {provider.value}")

    model = model_id or DEFAULT_MODELS[provider]
    logger.info(
        "Sending %s image(s), %.1fkb total, to provider=%s model=%s",
        len(images),
        sum(len(img) for img in images) / 1024,
        provider.value,
        model,
    )
    t0 = time.time()
    text = ADAPTERS[provider].call(credentials, model, images, prompt, max_tokens)
    elapsed_ms = round((time.time() - t0) * 1000, 2)

    if not text or not text.strip():
        raise ProviderEmptyResponse(provider.value, "model returned no text")
    logger.info(
        "Response from provider=%s received in %sms, length: %s",
        provider.value,
        elapsed_ms,
        len(text),
    )
    return text
