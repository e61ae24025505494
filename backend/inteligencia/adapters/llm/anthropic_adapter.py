"""
Anthropic (Claude) Adapter
"""

from typing import Any, Dict, List

from inteligencia.errors import ProviderError
from .base import (
    BaseGenerationAdapter,
    GenerationRequest,
    GenerationResult,
    GenerationUsage,
    build_prompt_with_context,
)


class AnthropicAdapter(BaseGenerationAdapter):
    """Adapter for Anthropic Claude API (text only)"""

    API_BASE = "https://api.anthropic.com/v1"
    API_VERSION = "2023-06-01"

    # Cost per 1K tokens (USD)
    PRICING = {
        "claude-3-5-sonnet-20241022": {"input": 0.003, "output": 0.015},
        "claude-3-5-haiku-20241022": {"input": 0.00025, "output": 0.00125},
        "claude-3-opus-20240229": {"input": 0.015, "output": 0.075},
        "claude-3-sonnet-20240229": {"input": 0.003, "output": 0.015},
        "claude-3-haiku-20240307": {"input": 0.00025, "output": 0.00125},
    }

    @property
    def provider(self) -> str:
        return "anthropic"

    async def _generate_text(self, request: GenerationRequest) -> List[GenerationResult]:
        cfg = self.settings
        prompt = build_prompt_with_context(request.prompt, request.context)

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": cfg.max_tokens,
            "temperature": cfg.temperature,
        }
        if cfg.top_p is not None:
            payload["top_p"] = cfg.top_p
        if request.system_prompt:
            payload["system"] = request.system_prompt

        headers = {
            "x-api-key": self.config.api_key,
            "anthropic-version": self.API_VERSION,
            "Content-Type": "application/json",
        }

        # Messages API returns one completion per call
        responses = await self._post_many(
            f"{self.API_BASE}/messages", payload, headers, request.output_count
        )

        results = []
        for index, data in enumerate(responses):
            if "content" not in data:
                raise ProviderError(self.provider, "No content returned")
            content = ""
            for block in data["content"]:
                if block.get("type") == "text":
                    content += block.get("text", "")

            usage_data = data.get("usage") or {}
            tokens_in = usage_data.get("input_tokens")
            tokens_out = usage_data.get("output_tokens")
            if tokens_in is None:
                tokens_in = self.estimate_tokens(prompt)
            if tokens_out is None:
                tokens_out = self.estimate_tokens(content)

            results.append(GenerationResult(
                provider=self.provider,
                model=self.model,
                content=content,
                usage=GenerationUsage(input_tokens=tokens_in, output_tokens=tokens_out),
                cost=self.estimate_cost(tokens_in, tokens_out),
                metadata={
                    "stopReason": data.get("stop_reason"),
                    "index": index,
                    "vendorModel": data.get("model"),
                },
            ))
        return results
