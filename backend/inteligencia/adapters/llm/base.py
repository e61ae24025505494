"""
Base Generation Adapter Interface
All generation providers must implement this interface
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

import httpx

from inteligencia.config import get_settings
from inteligencia.errors import (
    ProviderError,
    ProviderAuthenticationError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    UnsupportedCapability,
)

logger = logging.getLogger(__name__)


class GenerationType(str, Enum):
    """Output modality of a generation request"""
    TEXT = "text"
    IMAGE = "image"


# ============================================================================
# CONTEXT
# ============================================================================

@dataclass
class PreviousContent:
    """Excerpt of earlier content used as prompt context"""
    title: Optional[str] = None
    content: Optional[str] = None
    excerpt: Optional[str] = None


@dataclass
class StyleGuideContext:
    """Style guide text resolved from reference data"""
    name: Optional[str] = None
    content: Optional[str] = None
    description: Optional[str] = None


@dataclass
class GenerationContext:
    """
    Fixed-shape prompt context. Only these four fields ever reach a prompt;
    callers cannot inject arbitrary keys.
    """
    previous_content: List[PreviousContent] = field(default_factory=list)
    style_guides: List[StyleGuideContext] = field(default_factory=list)
    additional_context: Optional[str] = None
    vertical: Optional[str] = None


def build_prompt_with_context(prompt: str, context: Optional[GenerationContext] = None) -> str:
    """
    Flatten context into the prompt.

    Order is fixed: previous content, style guides, additional context,
    vertical directive.
    """
    if context is None:
        return prompt

    full_prompt = prompt

    if context.previous_content:
        lines = []
        for item in context.previous_content:
            body = item.excerpt or (item.content or "")[:200]
            lines.append(f"- {item.title or 'Untitled'}: {body}")
        full_prompt += "\n\nFor context, here is some previous content:\n" + "\n".join(lines)

    if context.style_guides:
        lines = [
            f"- {guide.name or 'Style Guide'}: {guide.content or guide.description or ''}"
            for guide in context.style_guides
        ]
        full_prompt += "\n\nPlease follow these style guidelines:\n" + "\n".join(lines)

    if context.additional_context:
        full_prompt += "\n\nAdditional context:\n" + context.additional_context

    if context.vertical:
        full_prompt += f"\n\nPlease tailor the content for the {context.vertical} industry."

    return full_prompt


# ============================================================================
# SETTINGS & CONFIG
# ============================================================================

# Accepted setting keys, with the camelCase spellings stored by the admin UI
SETTING_ALIASES = {
    "temperature": "temperature",
    "max_tokens": "max_tokens",
    "maxTokens": "max_tokens",
    "top_p": "top_p",
    "topP": "top_p",
    "frequency_penalty": "frequency_penalty",
    "frequencyPenalty": "frequency_penalty",
    "presence_penalty": "presence_penalty",
    "presencePenalty": "presence_penalty",
    "timeout": "timeout",
}


@dataclass
class GenerationSettings:
    """Sampling and transport settings passed to a vendor call"""
    temperature: float = 0.7
    max_tokens: int = 4000
    top_p: Optional[float] = None
    frequency_penalty: Optional[float] = None
    presence_penalty: Optional[float] = None
    timeout: int = 60  # seconds

    @classmethod
    def defaults(cls) -> "GenerationSettings":
        settings = get_settings()
        return cls(
            temperature=settings.LLM_DEFAULT_TEMPERATURE,
            max_tokens=settings.LLM_DEFAULT_MAX_TOKENS,
            timeout=settings.LLM_REQUEST_TIMEOUT,
        )

    def merged(self, overrides: Optional[Mapping[str, Any]]) -> "GenerationSettings":
        """Return a copy with whitelisted overrides applied; unknown keys are ignored"""
        values = {
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "top_p": self.top_p,
            "frequency_penalty": self.frequency_penalty,
            "presence_penalty": self.presence_penalty,
            "timeout": self.timeout,
        }
        values.update(normalize_settings(overrides))
        return GenerationSettings(**values)


def normalize_settings(overrides: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Whitelisted subset of a settings mapping, keyed by canonical names"""
    normalized = {}
    for key, value in (overrides or {}).items():
        target = SETTING_ALIASES.get(key)
        if target is not None and value is not None:
            normalized[target] = value
    return normalized


@dataclass
class ProviderConfig:
    """Ready-to-use provider configuration; built per request, never persisted"""
    provider: str
    api_key: str = field(repr=False)
    model: str
    settings: GenerationSettings = field(default_factory=GenerationSettings)


# ============================================================================
# REQUEST / RESULT
# ============================================================================

@dataclass
class GenerationRequest:
    """Normalized generation request"""
    prompt: str
    type: GenerationType = GenerationType.TEXT
    context: Optional[GenerationContext] = None
    output_count: int = 1
    system_prompt: Optional[str] = None

    # Image only
    size: str = "1024x1024"
    quality: str = "standard"
    style: str = "vivid"


@dataclass
class GenerationUsage:
    """Token usage information"""
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class GenerationResult:
    """Standardized generation result across all providers"""
    provider: str
    model: str
    content: Optional[str] = None
    url: Optional[str] = None
    usage: GenerationUsage = field(default_factory=GenerationUsage)
    cost: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)
    sources: List[str] = field(default_factory=list)

    @property
    def tokens(self) -> int:
        return self.usage.total_tokens

    @property
    def output(self) -> str:
        """Text content, or the image URL for image results"""
        return self.content if self.content is not None else (self.url or "")

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "provider": self.provider,
            "model": self.model,
            "tokens": self.tokens,
            "tokensInput": self.usage.input_tokens,
            "tokensOutput": self.usage.output_tokens,
            "cost": self.cost,
            "metadata": self.metadata,
        }
        if self.url is not None:
            data["url"] = self.url
        else:
            data["content"] = self.content
        if self.sources:
            data["sources"] = self.sources
        return data


def split_usage(input_tokens: int, output_tokens: int, count: int) -> List[Tuple[int, int]]:
    """Divide one call's usage across `count` results; shares sum to the totals"""
    count = max(count, 1)
    shares = []
    for i in range(count):
        shares.append((
            input_tokens // count + (1 if i < input_tokens % count else 0),
            output_tokens // count + (1 if i < output_tokens % count else 0),
        ))
    return shares


# ============================================================================
# ADAPTER
# ============================================================================

class BaseGenerationAdapter(ABC):
    """
    Abstract base class for generation adapters.
    Each provider (OpenAI, Anthropic, Google, Perplexity) implements this interface.
    A new httpx client is built for every call; nothing is cached across requests.
    """

    # Cost per 1K tokens (USD)
    PRICING: Dict[str, Dict[str, float]] = {}
    # Cost per image (USD)
    IMAGE_PRICING: Dict[str, float] = {}

    SUPPORTS_IMAGES = False

    def __init__(self, config: ProviderConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport

    @property
    @abstractmethod
    def provider(self) -> str:
        """Return the provider id"""
        pass

    @property
    def model(self) -> str:
        return self.config.model

    @property
    def settings(self) -> GenerationSettings:
        return self.config.settings

    async def generate(self, request: GenerationRequest) -> List[GenerationResult]:
        """
        Execute a normalized request.

        Returns one result per requested output, in order.
        Raises UnsupportedCapability for a modality the vendor lacks and
        ProviderError (or a subclass) for any transport or API failure,
        including a 200 response whose body does not have the expected shape.
        """
        if request.type == GenerationType.IMAGE and not self.SUPPORTS_IMAGES:
            raise UnsupportedCapability(self.provider, GenerationType.IMAGE.value)

        try:
            if request.type == GenerationType.IMAGE:
                results = await self._generate_images(request)
            else:
                results = await self._generate_text(request)
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            logger.warning(f"Malformed {self.provider} response: {type(e).__name__}")
            raise ProviderError(self.provider, "Malformed response") from e

        if len(results) != request.output_count:
            logger.warning(
                f"{self.provider} returned {len(results)} of {request.output_count} requested outputs"
            )
            raise ProviderError(
                self.provider,
                f"Returned {len(results)} of {request.output_count} requested outputs",
                {"requested": request.output_count, "returned": len(results)},
            )
        return results

    @abstractmethod
    async def _generate_text(self, request: GenerationRequest) -> List[GenerationResult]:
        pass

    async def _generate_images(self, request: GenerationRequest) -> List[GenerationResult]:
        raise UnsupportedCapability(self.provider, GenerationType.IMAGE.value)

    def estimate_tokens(self, text: str) -> int:
        """Estimate tokens (rough approximation)"""
        return len(text) // 4

    def estimate_cost(self, input_tokens: int, output_tokens: int, model: Optional[str] = None) -> float:
        """Estimate cost from the static rate table; unknown models cost 0"""
        model = model or self.model
        pricing = self.PRICING.get(model)
        if pricing is None:
            logger.warning(f"No pricing for {self.provider} model {model}; reporting zero cost")
            return 0.0
        input_cost = (input_tokens / 1000) * pricing["input"]
        output_cost = (output_tokens / 1000) * pricing["output"]
        return input_cost + output_cost

    def estimate_image_cost(self, image_count: int, model: Optional[str] = None) -> float:
        """Estimate image cost from the per-image rate table; unknown models cost 0"""
        model = model or self.model
        rate = self.IMAGE_PRICING.get(model)
        if rate is None:
            logger.warning(f"No image pricing for {self.provider} model {model}; reporting zero cost")
            return 0.0
        return rate * image_count

    async def health_check(self) -> bool:
        """
        Check if the adapter can reach the provider with its key.

        Returns:
            True if healthy, False otherwise
        """
        check_config = ProviderConfig(
            provider=self.config.provider,
            api_key=self.config.api_key,
            model=self.config.model,
            settings=self.settings.merged({"max_tokens": 10, "temperature": 0}),
        )
        adapter = type(self)(check_config, transport=self._transport)
        try:
            results = await adapter.generate(GenerationRequest(prompt="Say 'ok'"))
            return bool(results)
        except ProviderError as e:
            logger.warning(f"Health check failed for {self.provider}: {e.cause}")
            return False

    async def _post_many(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Dict[str, str],
        count: int,
    ) -> List[Dict[str, Any]]:
        """
        Issue `count` identical requests concurrently, responses in order.
        The first failure cancels the requests still in flight.
        """
        tasks = [asyncio.ensure_future(self._post_json(url, payload, headers)) for _ in range(count)]
        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise

        failed = [task for task in tasks if task in done and task.exception() is not None]
        if failed:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            raise failed[0].exception()
        return [task.result() for task in tasks]

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.settings.timeout, transport=self._transport)

    async def _post_json(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Dict[str, str],
    ) -> Dict[str, Any]:
        """POST to the vendor and map failures onto the provider error taxonomy"""
        try:
            async with self._client() as client:
                response = await client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(
                self.provider, f"Request timed out after {self.settings.timeout}s"
            ) from e
        except httpx.RequestError as e:
            raise ProviderError(self.provider, f"Request failed: {type(e).__name__}") from e

        if response.status_code in (401, 403):
            raise ProviderAuthenticationError(
                self.provider, "Invalid API key", {"status_code": response.status_code}
            )
        elif response.status_code == 429:
            raise ProviderRateLimitError(
                self.provider, "Rate limit exceeded", {"status_code": response.status_code}
            )
        elif response.status_code != 200:
            raise ProviderError(
                self.provider,
                f"API error (HTTP {response.status_code}): {self._error_message(response)}",
                {"status_code": response.status_code},
            )

        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(self.provider, "Invalid JSON in response") from e

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        """Vendor error message, truncated"""
        try:
            data = response.json()
        except ValueError:
            return response.text[:200]
        error = data.get("error") if isinstance(data, dict) else None
        if isinstance(error, dict):
            return str(error.get("message", "Unknown error"))[:200]
        if error:
            return str(error)[:200]
        return response.text[:200]
