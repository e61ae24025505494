"""
Perplexity Adapter
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


class PerplexityAdapter(BaseGenerationAdapter):
    """
    Adapter for Perplexity API.
    Perplexity answers with live web search and returns source citations,
    which are surfaced as `sources` on each result.
    """

    API_BASE = "https://api.perplexity.ai"

    # Cost per 1K tokens (USD)
    PRICING = {
        "llama-3.1-sonar-large-128k-online": {"input": 0.001, "output": 0.001},
        "llama-3.1-sonar-small-128k-online": {"input": 0.0002, "output": 0.0002},
        "llama-3.1-sonar-huge-128k-online": {"input": 0.005, "output": 0.005},
    }

    @property
    def provider(self) -> str:
        return "perplexity"

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
            "return_citations": True,
        }
        if cfg.top_p is not None:
            payload["top_p"] = cfg.top_p
        if cfg.frequency_penalty is not None:
            payload["frequency_penalty"] = cfg.frequency_penalty
        if cfg.presence_penalty is not None:
            payload["presence_penalty"] = cfg.presence_penalty

        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

        responses = await self._post_many(
            f"{self.API_BASE}/chat/completions", payload, headers, request.output_count
        )

        results = []
        for index, data in enumerate(responses):
            choices = data.get("choices") or []
            if not choices:
                raise ProviderError(self.provider, "No choices returned")
            choice = choices[0]
            content = (choice.get("message") or {}).get("content") or ""

            usage_data = data.get("usage") or {}
            tokens_in = usage_data.get("prompt_tokens")
            tokens_out = usage_data.get("completion_tokens")
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
                    "finishReason": choice.get("finish_reason"),
                    "index": index,
                },
                sources=list(data.get("citations") or []),
            ))
        return results
