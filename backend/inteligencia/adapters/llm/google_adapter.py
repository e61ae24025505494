"""
Google (Gemini / Imagen) Adapter
"""

from typing import Any, Dict, List

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

# OpenAI-style sizes mapped onto Imagen aspect ratios
ASPECT_RATIOS = {
    "1024x1024": "1:1",
    "1792x1024": "16:9",
    "1024x1792": "9:16",
}


class GoogleAdapter(BaseGenerationAdapter):
    """Adapter for Google Gemini (text) and Imagen (images)"""

    API_BASE = "https://generativelanguage.googleapis.com/v1beta"

    # Cost per 1K tokens (USD)
    PRICING = {
        "gemini-1.5-pro-latest": {"input": 0.00125, "output": 0.005},
        "gemini-1.5-pro": {"input": 0.00125, "output": 0.005},
        "gemini-1.5-flash-latest": {"input": 0.000075, "output": 0.0003},
        "gemini-1.5-flash": {"input": 0.000075, "output": 0.0003},
        "gemini-1.0-pro": {"input": 0.0005, "output": 0.0015},
    }

    # Cost per image (USD)
    IMAGE_PRICING = {
        "imagen-3.0-generate-001": 0.03,
        "imagen-3.0-fast-generate-001": 0.02,
    }

    SUPPORTS_IMAGES = True

    @property
    def provider(self) -> str:
        return "google"

    def _headers(self) -> Dict[str, str]:
        # Key travels in a header so it never shows up in URLs or access logs
        return {
            "x-goog-api-key": self.config.api_key,
            "Content-Type": "application/json",
        }

    async def _generate_text(self, request: GenerationRequest) -> List[GenerationResult]:
        cfg = self.settings
        prompt = build_prompt_with_context(request.prompt, request.context)

        generation_config: Dict[str, Any] = {
            "temperature": cfg.temperature,
            "maxOutputTokens": cfg.max_tokens,
            "candidateCount": request.output_count,
        }
        if cfg.top_p is not None:
            generation_config["topP"] = cfg.top_p

        payload: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }
        if request.system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": request.system_prompt}]}

        data = await self._post_json(
            f"{self.API_BASE}/models/{self.model}:generateContent", payload, self._headers()
        )

        error = data.get("error")
        if error:
            message = error.get("message", "Unknown error") if isinstance(error, dict) else str(error)
            raise ProviderError(self.provider, str(message)[:200])

        candidates = data.get("candidates") or []
        if not candidates:
            raise ProviderError(self.provider, "No response candidates returned")

        contents = []
        for candidate in candidates:
            text = ""
            for part in (candidate.get("content") or {}).get("parts", []):
                if "text" in part:
                    text += part["text"]
            contents.append(text)

        usage_metadata = data.get("usageMetadata") or {}
        input_tokens = usage_metadata.get("promptTokenCount")
        output_tokens = usage_metadata.get("candidatesTokenCount")
        if input_tokens is None:
            input_tokens = self.estimate_tokens(prompt)
        if output_tokens is None:
            output_tokens = sum(self.estimate_tokens(c) for c in contents)

        results = []
        shares = split_usage(input_tokens, output_tokens, len(candidates))
        for index, (candidate, content, (tokens_in, tokens_out)) in enumerate(zip(candidates, contents, shares)):
            results.append(GenerationResult(
                provider=self.provider,
                model=self.model,
                content=content,
                usage=GenerationUsage(input_tokens=tokens_in, output_tokens=tokens_out),
                cost=self.estimate_cost(tokens_in, tokens_out),
                metadata={
                    "finishReason": candidate.get("finishReason"),
                    "index": index,
                },
            ))
        return results

    def _image_model(self) -> str:
        if self.model in self.IMAGE_PRICING:
            return self.model
        return get_settings().GOOGLE_IMAGE_MODEL

    async def _generate_images(self, request: GenerationRequest) -> List[GenerationResult]:
        model = self._image_model()
        payload = {
            "instances": [{"prompt": request.prompt}],
            "parameters": {
                "sampleCount": request.output_count,
                "aspectRatio": ASPECT_RATIOS.get(request.size, "1:1"),
            },
        }

        data = await self._post_json(
            f"{self.API_BASE}/models/{model}:predict", payload, self._headers()
        )

        predictions = [p for p in data.get("predictions") or [] if p.get("bytesBase64Encoded")]
        if not predictions:
            raise ProviderError(self.provider, "No images returned")

        results = []
        for index, prediction in enumerate(predictions):
            mime_type = prediction.get("mimeType", "image/png")
            results.append(GenerationResult(
                provider=self.provider,
                model=model,
                url=f"data:{mime_type};base64,{prediction['bytesBase64Encoded']}",
                cost=self.estimate_image_cost(1, model),
                metadata={
                    "index": index,
                    "aspectRatio": payload["parameters"]["aspectRatio"],
                },
            ))
        return results
