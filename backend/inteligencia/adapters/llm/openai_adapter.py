"""
OpenAI (ChatGPT / DALL-E) Adapter
"""

from typing import Any, Dict, List

import tiktoken

from inteligencia.config import get_settings
from inteligencia.errors import ProviderError
from .base import (
    BaseGenerationAdapter,
    GenerationRequest,
    GenerationResult,
    GenerationUsage,
    build_prompt_with_context,
    split_usage,
)


class OpenAIAdapter(BaseGenerationAdapter):
    """Adapter for OpenAI chat completions and image generation"""

    API_BASE = "https://api.openai.com/v1"

    # Cost per 1K tokens (USD)
    PRICING = {
        "gpt-4o": {"input": 0.005, "output": 0.015},
        "gpt-4o-mini": {"input": 0.0001, "output": 0.0004},
        "gpt-4-turbo": {"input": 0.01, "output": 0.03},
        "gpt-4": {"input": 0.03, "output": 0.06},
        "gpt-3.5-turbo": {"input": 0.001, "output": 0.002},
    }

    # Cost per image (USD, standard quality)
    IMAGE_PRICING = {
        "dall-e-3": 0.040,
        "dall-e-2": 0.020,
    }

    SUPPORTS_IMAGES = True

    # tiktoken encodings keyed by encoding name
    _encodings: Dict[str, Any] = {}

    @property
    def provider(self) -> str:
        return "openai"

    def _get_tokenizer(self):
        """Get the tiktoken encoder for this adapter's model"""
        try:
            name = tiktoken.encoding_name_for_model(self.model)
        except KeyError:
            name = "cl100k_base"
        if name not in OpenAIAdapter._encodings:
            OpenAIAdapter._encodings[name] = tiktoken.get_encoding(name)
        return OpenAIAdapter._encodings[name]

    def estimate_tokens(self, text: str) -> int:
        """Estimate tokens using tiktoken"""
        return len(self._get_tokenizer().encode(text))

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    async def _generate_text(self, request: GenerationRequest) -> List[GenerationResult]:
        cfg = self.settings
        prompt = build_prompt_with_context(request.prompt, request.context)

        messages = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": prompt})

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": cfg.temperature,
            "max_tokens": cfg.max_tokens,
            "n": request.output_count,
        }
        if cfg.top_p is not None:
            payload["top_p"] = cfg.top_p
        if cfg.frequency_penalty is not None:
            payload["frequency_penalty"] = cfg.frequency_penalty
        if cfg.presence_penalty is not None:
            payload["presence_penalty"] = cfg.presence_penalty

        data = await self._post_json(f"{self.API_BASE}/chat/completions", payload, self._headers())

        choices = data.get("choices") or []
        if not choices:
            raise ProviderError(self.provider, "No choices returned")

        contents = [(choice.get("message") or {}).get("content") or "" for choice in choices]

        usage_data = data.get("usage") or {}
        input_tokens = usage_data.get("prompt_tokens")
        output_tokens = usage_data.get("completion_tokens")
        if input_tokens is None:
            input_tokens = self.estimate_tokens(prompt) * len(choices)
        if output_tokens is None:
            output_tokens = sum(self.estimate_tokens(c) for c in contents)

        results = []
        shares = split_usage(input_tokens, output_tokens, len(choices))
        for index, (choice, content, (tokens_in, tokens_out)) in enumerate(zip(choices, contents, shares)):
            results.append(GenerationResult(
                provider=self.provider,
                model=self.model,
                content=content,
                usage=GenerationUsage(input_tokens=tokens_in, output_tokens=tokens_out),
                cost=self.estimate_cost(tokens_in, tokens_out),
                metadata={
                    "finishReason": choice.get("finish_reason"),
                    "index": index,
                    "vendorModel": data.get("model"),
                },
            ))
        return results

    def _image_model(self) -> str:
        if self.model in self.IMAGE_PRICING:
            return self.model
        return get_settings().OPENAI_IMAGE_MODEL

    async def _generate_images(self, request: GenerationRequest) -> List[GenerationResult]:
        model = self._image_model()
        payload = {
            "model": model,
            "prompt": request.prompt,
            "n": 1,
            "size": request.size,
            "quality": request.quality,
            "style": request.style,
            "response_format": "url",
        }
        url = f"{self.API_BASE}/images/generations"

        # dall-e-3 only accepts n=1, so each image is its own request
        responses = await self._post_many(url, payload, self._headers(), request.output_count)

        rate_multiplier = 2 if request.quality == "hd" else 1
        results = []
        for index, data in enumerate(responses):
            images = data.get("data") or []
            if not images or not images[0].get("url"):
                raise ProviderError(self.provider, "No image returned")
            image = images[0]
            results.append(GenerationResult(
                provider=self.provider,
                model=model,
                url=image["url"],
                cost=self.estimate_image_cost(1, model) * rate_multiplier,
                metadata={
                    "index": index,
                    "revisedPrompt": image.get("revised_prompt"),
                    "size": request.size,
                    "quality": request.quality,
                },
            ))
        return results
