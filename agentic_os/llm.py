"""Multi-provider LLM adapters for OpenAI, Gemini, DeepSeek, and Qwen."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import httpx

from . import config_manager
from .credentials import CredentialStore
from .errors import ProviderError
from .models import Provider

logger = logging.getLogger(__name__)

# (provider, prompt) -> response text; raising means the call failed
ProviderCall = Callable[[Provider, str], Awaitable[str]]

PROBE_PROMPT = "Hello"


class ProviderAdapter:
    """Base class for one provider's wire protocol."""

    provider: Provider
    endpoint: str = ""

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self.api_key = api_key
        self.model = model or config_manager.DEFAULT_MODELS[self.provider]
        self.client = client
        self.timeout = timeout

    def build_request(self, prompt: str, max_tokens: Optional[int]) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        """Return ``(url, headers, json_payload)`` for a single-turn prompt."""
        raise NotImplementedError

    def extract_text(self, body: Dict[str, Any]) -> str:
        raise NotImplementedError

    def extract_error(self, body: Any) -> Optional[str]:
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
        return None

    async def complete(self, prompt: str, max_tokens: Optional[int] = 1024) -> str:
        """Send ``prompt`` and return the reply text.

        Raises:
            ProviderError: on rejection, transport failure, or a malformed reply.
        """
        url, headers, payload = self.build_request(prompt, max_tokens)
        body = await self._post(url, headers, payload)
        try:
            text = self.extract_text(body)
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderError(f"Malformed reply from {self.provider.value}: {exc!r}", self.provider.value) from exc
        if not isinstance(text, str):
            raise ProviderError(f"Malformed reply from {self.provider.value}", self.provider.value)
        return text

    async def probe(self) -> None:
        """Minimal round trip proving the key is accepted."""
        url, headers, payload = self.build_request(PROBE_PROMPT, 10)
        await self._post(url, headers, payload)

    async def _post(self, url: str, headers: Dict[str, str], payload: Dict[str, Any]) -> Dict[str, Any]:
        if self.client is not None:
            return await self._send(self.client, url, headers, payload)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await self._send(client, url, headers, payload)

    async def _send(
        self,
        client: httpx.AsyncClient,
        url: str,
        headers: Dict[str, str],
        payload: Dict[str, Any],
    ) -> Dict[str, Any]:
        name = self.provider.value
        try:
            response = await client.post(url, headers=headers, json=payload)
        except httpx.TimeoutException as exc:
            raise ProviderError("timeout", name) from exc
        except httpx.RequestError as exc:
            raise ProviderError(f"Connection error: {exc}", name) from exc

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_error:
            message = self.extract_error(body) or "Invalid API key"
            raise ProviderError(message, name)
        if not isinstance(body, dict):
            raise ProviderError(f"Malformed reply from {name}", name)
        return body


class OpenAIAdapter(ProviderAdapter):
    """OpenAI chat completions."""

    provider = Provider.OPENAI
    endpoint = "https://api.openai.com/v1/chat/completions"

    def build_request(self, prompt, max_tokens):
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
        }
        if max_tokens:
            payload["max_tokens"] = max_tokens
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        return self.endpoint, headers, payload

    def extract_text(self, body):
        return body["choices"][0]["message"]["content"]


class DeepSeekAdapter(OpenAIAdapter):
    """DeepSeek speaks the OpenAI chat format on its own host."""

    provider = Provider.DEEPSEEK
    endpoint = "https://api.deepseek.com/chat/completions"


class GeminiAdapter(ProviderAdapter):
    """Google Gemini ``generateContent``; the key travels in the query string."""

    provider = Provider.GEMINI

    def build_request(self, prompt, max_tokens):
        url = (
            "https://generativelanguage.googleapis.com/v1beta/models/"
            f"{self.model}:generateContent?key={self.api_key}"
        )
        payload: Dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
        if max_tokens:
            payload["generationConfig"] = {"maxOutputTokens": max_tokens}
        return url, {"Content-Type": "application/json"}, payload

    def extract_text(self, body):
        return body["candidates"][0]["content"]["parts"][0]["text"]


class QwenAdapter(ProviderAdapter):
    """Alibaba DashScope text generation."""

    provider = Provider.QWEN
    endpoint = "https://dashscope.aliyuncs.com/api/v1/services/aigc/text-generation/generation"

    def build_request(self, prompt, max_tokens):
        parameters: Dict[str, Any] = {"top_p": 0.8}
        if max_tokens:
            parameters["max_tokens"] = max_tokens
        payload = {
            "model": self.model,
            "input": {"messages": [{"role": "user", "content": prompt}]},
            "parameters": parameters,
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        return self.endpoint, headers, payload

    def extract_text(self, body):
        output = body["output"]
        if "text" in output:
            return output["text"]
        return output["choices"][0]["message"]["content"]

    def extract_error(self, body):
        # DashScope reports errors as a top-level {"code", "message"}
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        return None


PROVIDER_ADAPTERS = {
    Provider.OPENAI: OpenAIAdapter,
    Provider.GEMINI: GeminiAdapter,
    Provider.DEEPSEEK: DeepSeekAdapter,
    Provider.QWEN: QwenAdapter,
}


def create_adapter(
    provider: Provider,
    api_key: str,
    model: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> ProviderAdapter:
    """Create the adapter for ``provider`` with its configured model."""
    adapter_cls = PROVIDER_ADAPTERS[provider]
    return adapter_cls(api_key, model=model or config_manager.get_model(provider), client=client)


class HttpProviderCall:
    """Real provider calls, using secrets from a ``CredentialStore``."""

    def __init__(self, credentials: CredentialStore, client: Optional[httpx.AsyncClient] = None):
        self.credentials = credentials
        self.client = client

    async def __call__(self, provider: Provider, prompt: str) -> str:
        api_key = self.credentials.get(provider)
        if not api_key:
            raise ProviderError(f"No API key configured for {provider.value}", provider.value)
        adapter = create_adapter(provider, api_key, client=self.client)
        return await adapter.complete(prompt)


MOCK_RESPONSES = {
    Provider.OPENAI: (
        "This is a response from OpenAI. I can help you with various tasks "
        "including coding, analysis, and creative writing."
    ),
    Provider.GEMINI: (
        "Response from Google Gemini. I can assist with information retrieval, "
        "analysis, and problem-solving tasks."
    ),
    Provider.DEEPSEEK: "DeepSeek response: I specialize in deep reasoning and complex problem analysis.",
    Provider.QWEN: "Qwen response: I can help with multilingual tasks and comprehensive analysis.",
}


class MockProviderCall:
    """Offline stand-in returning canned replies after a random delay."""

    def __init__(self, min_delay: float = 1.0, max_delay: float = 3.0, rng: Optional[random.Random] = None):
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.rng = rng or random.Random()

    async def __call__(self, provider: Provider, prompt: str) -> str:
        delay = self.rng.uniform(self.min_delay, self.max_delay)
        if delay > 0:
            await asyncio.sleep(delay)
        return MOCK_RESPONSES[provider]
