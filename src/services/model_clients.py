"""HTTP clients for the text and multimodal model providers.

Each client is constructed explicitly and handed to the services that need it,
so tests can swap in doubles. Transport failures and 429/5xx answers surface as
retryable errors (see utils.retry); once retries are exhausted they become
UpstreamUnavailableError.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional

import httpx
from google.genai import Client
from google.genai import types

from services.errors import UpstreamUnavailableError
from utils.retry import (
    APIRateLimitError,
    NetworkError,
    RetryableError,
    classify_status,
    retry_api_call,
)

logger = logging.getLogger(__name__)

OPENROUTER_API_URL = "https://openrouter.ai/api/v1/chat/completions"
DASHSCOPE_BASE_URL = "https://dashscope-intl.aliyuncs.com/api/v1"
DASHSCOPE_GENERATION_PATH = "/services/aigc/multimodal-generation/generation"


def _raise_for_status(response: httpx.Response, provider: str) -> None:
    if response.status_code < 400:
        return
    retryable = classify_status(response.status_code, provider)
    if retryable:
        raise retryable
    detail = ""
    try:
        detail = json.dumps(response.json())
    except Exception:
        detail = response.text[:500]
    raise UpstreamUnavailableError(provider, f"HTTP {response.status_code}: {detail}")


def _decode_json(response: httpx.Response, provider: str) -> dict:
    """Decode a 2xx body; a gateway page instead of JSON counts as an upstream failure."""
    try:
        return response.json()
    except ValueError as e:
        content_type = response.headers.get("content-type", "unknown")
        raise UpstreamUnavailableError(provider, f"response was not JSON ({content_type})") from e


# =============================================================================
# Text models
# =============================================================================


class TextModelClient(ABC):
    """A chat-style text model."""

    provider: str = "text"

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        json_mode: bool = False,
        temperature: float = 0.7,
    ) -> str:
        """Send one prompt and return the model's text.

        Raises:
            UpstreamUnavailableError: If the provider fails after retries
        """


class OpenRouterClient(TextModelClient):
    """OpenAI-compatible chat completions via OpenRouter."""

    provider = "openrouter"

    def __init__(
        self,
        api_key: str,
        model: str = "google/gemma-3-27b-it:free",
        api_url: str = OPENROUTER_API_URL,
        client: Optional[httpx.AsyncClient] = None,
        app_name: str = "TrendScout",
        referer: str = "https://trendscout.local",
    ):
        self.api_key = api_key
        self.model = model
        self.api_url = api_url
        self.app_name = app_name
        self.referer = referer
        self.client = client or httpx.AsyncClient(timeout=120.0)
        logger.info(f"Initialized OpenRouter client with model: {model}")

    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        json_mode: bool = False,
        temperature: float = 0.7,
    ) -> str:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        body = {"model": self.model, "messages": messages, "temperature": temperature}
        if json_mode:
            body["response_format"] = {"type": "json_object"}

        try:
            data = await self._post(body)
        except RetryableError as e:
            raise UpstreamUnavailableError(self.provider, str(e)) from e

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise UpstreamUnavailableError(self.provider, f"unexpected response shape: {e}") from e
        return content or ""

    @retry_api_call(max_retries=3, base_delay=2.0)
    async def _post(self, body: dict) -> dict:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": self.referer,
            "X-Title": self.app_name,
        }
        try:
            response = await self.client.post(self.api_url, json=body, headers=headers)
        except httpx.TransportError as e:
            raise NetworkError(f"OpenRouter network error: {e}") from e
        _raise_for_status(response, self.provider)
        return _decode_json(response, self.provider)


class GeminiTextClient(TextModelClient):
    """Google Gemini through the google-genai SDK."""

    provider = "gemini"

    def __init__(self, api_key: str, model: str = "gemini-3-flash-preview", client=None):
        self.model = model
        self.client = client or Client(api_key=api_key)
        logger.info(f"Initialized Gemini client with model: {model}")

    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        json_mode: bool = False,
        temperature: float = 0.7,
    ) -> str:
        config = types.GenerateContentConfig(
            temperature=temperature,
            system_instruction=system,
            response_mime_type="application/json" if json_mode else None,
        )
        try:
            response = await self._generate(prompt, config)
        except RetryableError as e:
            raise UpstreamUnavailableError(self.provider, str(e)) from e
        return response.text or ""

    @retry_api_call(max_retries=3, base_delay=2.0)
    async def _generate(self, prompt: str, config: types.GenerateContentConfig):
        try:
            return await self.client.aio.models.generate_content(
                model=self.model,
                contents=prompt,
                config=config,
            )
        except Exception as e:
            message = str(e).lower()
            if "rate limit" in message or "429" in message or "resource_exhausted" in message:
                raise APIRateLimitError(f"Gemini rate limit hit: {e}") from e
            if "network" in message or "connection" in message or "timeout" in message:
                raise NetworkError(f"Gemini network error: {e}") from e
            raise UpstreamUnavailableError(self.provider, str(e)) from e


def create_text_client(config: dict, client: Optional[httpx.AsyncClient] = None) -> TextModelClient:
    """Build the configured text model client."""
    provider = (config.get("text_model_provider") or "openrouter").lower()
    if provider == "gemini":
        return GeminiTextClient(
            api_key=config.get("gemini_api_key", ""),
            model=config.get("gemini_model", "gemini-3-flash-preview"),
        )
    if provider == "openrouter":
        return OpenRouterClient(
            api_key=config.get("openrouter_api_key", ""),
            model=config.get("openrouter_model", "google/gemma-3-27b-it:free"),
            client=client,
        )
    raise ValueError(f"Unknown text model provider '{provider}'")


# =============================================================================
# Multimodal model
# =============================================================================


class DashScopeClient:
    """Multimodal generation on DashScope (Qwen-VL family)."""

    provider = "dashscope"

    def __init__(
        self,
        api_key: str,
        model: str = "qwen2.5-vl-72b-instruct",
        base_url: str = DASHSCOPE_BASE_URL,
        timeout_seconds: float = 300.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.url = base_url.rstrip("/") + DASHSCOPE_GENERATION_PATH
        # Video payloads are large; analysis can take minutes
        self.client = client or httpx.AsyncClient(timeout=timeout_seconds)
        logger.info(f"Initialized DashScope client with model: {model}")

    def _headers(self, stream: bool = False) -> dict:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
            "X-DashScope-DataInspection": "enable",
        }
        if stream:
            headers["X-DashScope-SSE"] = "enable"
        return headers

    def build_body(self, messages: list[dict], stream: bool = False) -> dict:
        parameters = {"result_format": "message"}
        if stream:
            parameters["incremental_output"] = True
        return {"model": self.model, "input": {"messages": messages}, "parameters": parameters}

    async def generate(self, messages: list[dict]) -> str:
        """Run one multimodal generation and return the answer text.

        Raises:
            UpstreamUnavailableError: On transport failure, non-2xx or an
                unexpected response shape
        """
        try:
            data = await self._post(self.build_body(messages))
        except RetryableError as e:
            raise UpstreamUnavailableError(self.provider, str(e)) from e
        return extract_message_text(data)

    @retry_api_call(max_retries=1, base_delay=5.0)
    async def _post(self, body: dict) -> dict:
        try:
            response = await self.client.post(self.url, json=body, headers=self._headers())
        except httpx.TransportError as e:
            raise NetworkError(f"DashScope network error: {e}") from e
        _raise_for_status(response, self.provider)
        return _decode_json(response, self.provider)

    async def stream(self, messages: list[dict]) -> AsyncIterator[str]:
        """Yield incremental answer text from the SSE endpoint.

        Closing the generator closes the upstream response.
        """
        body = self.build_body(messages, stream=True)
        try:
            async with self.client.stream(
                "POST", self.url, json=body, headers=self._headers(stream=True)
            ) as response:
                if response.status_code >= 400:
                    await response.aread()
                    _raise_for_status(response, self.provider)
                async for line in response.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    try:
                        event = json.loads(line[5:].strip())
                    except json.JSONDecodeError:
                        continue
                    text = extract_message_text(event, strict=False)
                    if text:
                        yield text
        except httpx.TransportError as e:
            raise UpstreamUnavailableError(self.provider, f"stream failed: {e}") from e
        except RetryableError as e:
            raise UpstreamUnavailableError(self.provider, str(e)) from e


def extract_message_text(data: dict, strict: bool = True) -> str:
    """Pull ``output.choices[0].message.content[0].text`` out of a response.

    Args:
        data: Decoded DashScope response or stream event
        strict: Raise on a missing path instead of returning ""
    """
    try:
        content = data["output"]["choices"][0]["message"]["content"]
        if isinstance(content, str):
            return content
        return "".join(part.get("text", "") for part in content if isinstance(part, dict))
    except (KeyError, IndexError, TypeError) as e:
        if strict:
            raise UpstreamUnavailableError("dashscope", f"unexpected response shape: {e}") from e
        return ""
