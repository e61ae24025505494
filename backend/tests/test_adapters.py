"""
Vendor adapters against a mocked HTTP transport
"""

import asyncio
import json

import httpx
import pytest

from inteligencia.adapters.llm import (
    GenerationContext,
    GenerationRequest,
    GenerationSettings,
    GenerationType,
    PreviousContent,
    ProviderConfig,
    StyleGuideContext,
    build_prompt_with_context,
    get_adapter,
    split_usage,
)
from inteligencia.errors import (
    ProviderAuthenticationError,
    ProviderError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    UnsupportedCapability,
)
from tests.fakes import FakeVendors, anthropic_message, google_content, openai_chat, perplexity_chat


def make_config(provider, model, **settings):
    keys = {
        "openai": "sk-test-openai-0123456789",
        "anthropic": "sk-ant-test-0123456789",
        "google": "AIzaTest0123456789",
        "perplexity": "pplx-test-0123456789",
    }
    return ProviderConfig(
        provider=provider,
        api_key=keys[provider],
        model=model,
        settings=GenerationSettings().merged(settings),
    )


# ============================================================================
# PROMPT CONTEXT
# ============================================================================

def test_prompt_without_context_is_unchanged():
    assert build_prompt_with_context("Write a post") == "Write a post"
    assert build_prompt_with_context("Write a post", GenerationContext()) == "Write a post"


def test_prompt_context_order():
    context = GenerationContext(
        previous_content=[PreviousContent(title="Old post", content="x" * 500)],
        style_guides=[StyleGuideContext(name="Voice", content="Be warm")],
        additional_context="Launch week",
        vertical="hospitality",
    )
    prompt = build_prompt_with_context("Write a post", context)

    previous = prompt.index("For context, here is some previous content:")
    guides = prompt.index("Please follow these style guidelines:")
    extra = prompt.index("Additional context:")
    vertical = prompt.index("Please tailor the content for the hospitality industry.")
    assert previous < guides < extra < vertical
    assert "- Old post: " + "x" * 200 + "\n" in prompt
    assert "x" * 201 not in prompt
    assert "- Voice: Be warm" in prompt


def test_split_usage_sums_to_totals():
    shares = split_usage(10, 7, 3)
    assert sum(s[0] for s in shares) == 10
    assert sum(s[1] for s in shares) == 7
    assert len(shares) == 3


def test_unknown_provider():
    with pytest.raises(ValueError):
        get_adapter(ProviderConfig(provider="mystery", api_key="k", model="m"))


def test_config_repr_hides_key():
    assert "sk-test" not in repr(make_config("openai", "gpt-4o"))


# ============================================================================
# OPENAI
# ============================================================================

async def test_openai_text_with_multiple_outputs():
    vendors = FakeVendors({
        "api.openai.com/v1/chat/completions": openai_chat(
            "one", "two", "three", prompt_tokens=1000, completion_tokens=2000
        ),
    })
    adapter = get_adapter(make_config("openai", "gpt-4o", temperature=0.3), transport=vendors.transport)

    results = await adapter.generate(GenerationRequest(prompt="Hello", output_count=3, system_prompt="Be brief"))

    assert [r.content for r in results] == ["one", "two", "three"]
    assert sum(r.usage.input_tokens for r in results) == 1000
    assert sum(r.usage.output_tokens for r in results) == 2000
    assert sum(r.cost for r in results) == pytest.approx(0.005 + 0.03)

    body = vendors.bodies("chat/completions")[0]
    assert body["n"] == 3
    assert body["temperature"] == 0.3
    assert body["messages"][0] == {"role": "system", "content": "Be brief"}
    assert vendors.requests[0].headers["Authorization"] == "Bearer sk-test-openai-0123456789"


async def test_openai_image_generation():
    vendors = FakeVendors({
        "images/generations": {"data": [{"url": "https://img.example/1.png", "revised_prompt": "A cat"}]},
    })
    adapter = get_adapter(make_config("openai", "gpt-4o"), transport=vendors.transport)

    results = await adapter.generate(GenerationRequest(
        prompt="A cat", type=GenerationType.IMAGE, output_count=2, quality="hd",
    ))

    assert [r.url for r in results] == ["https://img.example/1.png"] * 2
    assert all(r.model == "dall-e-3" for r in results)
    assert results[0].cost == pytest.approx(0.08)
    assert vendors.count("images/generations") == 2
    assert results[0].to_dict()["url"] == "https://img.example/1.png"
    assert "content" not in results[0].to_dict()


async def test_unknown_model_costs_zero():
    vendors = FakeVendors({"chat/completions": openai_chat("hi")})
    adapter = get_adapter(make_config("openai", "gpt-99"), transport=vendors.transport)

    results = await adapter.generate(GenerationRequest(prompt="Hello"))
    assert results[0].cost == 0.0


# ============================================================================
# ANTHROPIC / GOOGLE / PERPLEXITY
# ============================================================================

async def test_anthropic_runs_one_call_per_output():
    vendors = FakeVendors({"api.anthropic.com/v1/messages": anthropic_message("Claude says hi")})
    adapter = get_adapter(make_config("anthropic", "claude-3-5-sonnet-20241022"), transport=vendors.transport)

    results = await adapter.generate(GenerationRequest(prompt="Hello", output_count=2, system_prompt="sys"))

    assert [r.content for r in results] == ["Claude says hi", "Claude says hi"]
    assert vendors.count("/messages") == 2
    request = vendors.requests[0]
    assert request.headers["x-api-key"] == "sk-ant-test-0123456789"
    assert request.headers["anthropic-version"] == "2023-06-01"
    assert json.loads(request.content)["system"] == "sys"


async def test_anthropic_rejects_images():
    adapter = get_adapter(make_config("anthropic", "claude-3-5-sonnet-20241022"))
    with pytest.raises(UnsupportedCapability):
        await adapter.generate(GenerationRequest(prompt="A cat", type=GenerationType.IMAGE))


async def test_google_text_uses_header_key():
    vendors = FakeVendors({":generateContent": google_content("a", "b")})
    adapter = get_adapter(make_config("google", "gemini-1.5-pro-latest"), transport=vendors.transport)

    results = await adapter.generate(GenerationRequest(prompt="Hello", output_count=2))

    assert [r.content for r in results] == ["a", "b"]
    request = vendors.requests[0]
    assert "key=" not in str(request.url)
    assert request.headers["x-goog-api-key"] == "AIzaTest0123456789"
    assert json.loads(request.content)["generationConfig"]["candidateCount"] == 2


async def test_google_imagen_returns_data_urls():
    vendors = FakeVendors({
        ":predict": {"predictions": [{"bytesBase64Encoded": "aGVsbG8=", "mimeType": "image/png"}]},
    })
    adapter = get_adapter(make_config("google", "gemini-1.5-pro-latest"), transport=vendors.transport)

    results = await adapter.generate(GenerationRequest(prompt="A cat", type=GenerationType.IMAGE, size="1792x1024"))

    assert results[0].url == "data:image/png;base64,aGVsbG8="
    assert results[0].model == "imagen-3.0-generate-001"
    assert vendors.bodies(":predict")[0]["parameters"]["aspectRatio"] == "16:9"


async def test_perplexity_surfaces_citations():
    vendors = FakeVendors({
        "api.perplexity.ai": perplexity_chat("Answer", citations=["https://a.example", "https://b.example"]),
    })
    adapter = get_adapter(
        make_config("perplexity", "llama-3.1-sonar-large-128k-online"), transport=vendors.transport
    )

    results = await adapter.generate(GenerationRequest(prompt="What happened?"))

    assert results[0].sources == ["https://a.example", "https://b.example"]
    assert results[0].to_dict()["sources"] == ["https://a.example", "https://b.example"]
    assert vendors.bodies("chat/completions")[0]["return_citations"] is True


# ============================================================================
# ERROR MAPPING
# ============================================================================

@pytest.mark.parametrize("status,error", [
    (401, ProviderAuthenticationError),
    (403, ProviderAuthenticationError),
    (429, ProviderRateLimitError),
    (500, ProviderError),
])
async def test_http_errors_are_mapped(status, error):
    vendors = FakeVendors({"chat/completions": (status, {"error": {"message": "nope"}})})
    adapter = get_adapter(make_config("openai", "gpt-4o"), transport=vendors.transport)

    with pytest.raises(error) as exc:
        await adapter.generate(GenerationRequest(prompt="Hello"))
    assert exc.value.provider == "openai"
    assert "sk-test" not in exc.value.public_message


async def test_rate_limit_status_code():
    vendors = FakeVendors({"chat/completions": (429, {"error": {"message": "slow down"}})})
    adapter = get_adapter(make_config("openai", "gpt-4o"), transport=vendors.transport)

    with pytest.raises(ProviderRateLimitError) as exc:
        await adapter.generate(GenerationRequest(prompt="Hello"))
    assert exc.value.status_code == 429


async def test_timeout_is_mapped():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    adapter = get_adapter(make_config("openai", "gpt-4o"), transport=httpx.MockTransport(handler))
    with pytest.raises(ProviderTimeoutError):
        await adapter.generate(GenerationRequest(prompt="Hello"))


async def test_health_check():
    ok = FakeVendors({"chat/completions": openai_chat("ok")})
    assert await get_adapter(make_config("openai", "gpt-4o"), transport=ok.transport).health_check()
    assert ok.bodies("chat/completions")[0]["max_tokens"] == 10

    bad = FakeVendors({"chat/completions": (401, {"error": {"message": "bad key"}})})
    assert not await get_adapter(make_config("openai", "gpt-4o"), transport=bad.transport).health_check()


# ============================================================================
# MALFORMED RESPONSES
# ============================================================================

@pytest.mark.parametrize("provider,model,route,body", [
    ("anthropic", "claude-3-5-sonnet-20241022", "/messages", {"content": None}),
    ("openai", "gpt-4o", "chat/completions", {"choices": [None]}),
    ("openai", "gpt-4o", "chat/completions", ["not", "an", "object"]),
    ("google", "gemini-1.5-pro-latest", ":generateContent", {"candidates": ["text"]}),
    ("perplexity", "llama-3.1-sonar-large-128k-online", "chat/completions", {"choices": "bad"}),
])
async def test_malformed_success_body_is_a_provider_error(provider, model, route, body):
    vendors = FakeVendors({route: body})
    adapter = get_adapter(make_config(provider, model), transport=vendors.transport)

    with pytest.raises(ProviderError) as exc:
        await adapter.generate(GenerationRequest(prompt="Hello"))
    assert exc.value.provider == provider
    assert exc.value.cause == "Malformed response"


async def test_google_string_error_field():
    vendors = FakeVendors({":generateContent": {"error": "quota exhausted"}})
    adapter = get_adapter(make_config("google", "gemini-1.5-pro-latest"), transport=vendors.transport)

    with pytest.raises(ProviderError) as exc:
        await adapter.generate(GenerationRequest(prompt="Hello"))
    assert exc.value.cause == "quota exhausted"


async def test_non_object_prediction_is_a_provider_error():
    vendors = FakeVendors({":predict": {"predictions": ["aGVsbG8="]}})
    adapter = get_adapter(make_config("google", "gemini-1.5-pro-latest"), transport=vendors.transport)

    with pytest.raises(ProviderError) as exc:
        await adapter.generate(GenerationRequest(prompt="A cat", type=GenerationType.IMAGE))
    assert exc.value.cause == "Malformed response"


async def test_fewer_outputs_than_requested_is_an_error():
    vendors = FakeVendors({":generateContent": google_content("only one")})
    adapter = get_adapter(make_config("google", "gemini-1.5-pro-latest"), transport=vendors.transport)

    with pytest.raises(ProviderError) as exc:
        await adapter.generate(GenerationRequest(prompt="Hello", output_count=3))
    assert exc.value.details == {"requested": 3, "returned": 1}


async def test_fewer_images_than_requested_is_an_error():
    vendors = FakeVendors({
        ":predict": {"predictions": [{"bytesBase64Encoded": "aGVsbG8=", "mimeType": "image/png"}]},
    })
    adapter = get_adapter(make_config("google", "gemini-1.5-pro-latest"), transport=vendors.transport)

    with pytest.raises(ProviderError):
        await adapter.generate(GenerationRequest(prompt="A cat", type=GenerationType.IMAGE, output_count=2))


# ============================================================================
# PARALLEL CALLS
# ============================================================================

async def test_failed_call_cancels_parallel_siblings():
    calls = []
    cancelled = []

    async def handler(request):
        calls.append(request)
        if len(calls) == 1:
            # Let the siblings reach the vendor first
            await asyncio.sleep(0.05)
            return httpx.Response(500, json={"error": {"message": "overloaded"}})
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.append(request)
            raise
        return httpx.Response(200, json=anthropic_message("late"))

    adapter = get_adapter(
        make_config("anthropic", "claude-3-5-sonnet-20241022"), transport=httpx.MockTransport(handler)
    )
    with pytest.raises(ProviderError) as exc:
        await asyncio.wait_for(adapter.generate(GenerationRequest(prompt="Hello", output_count=3)), timeout=5)

    assert "HTTP 500" in exc.value.cause
    assert len(calls) == 3
    assert len(cancelled) == 2


# ============================================================================
# TOKEN COUNTING
# ============================================================================

class FakeEncoding:
    def __init__(self, name):
        self.name = name

    def encode(self, text):
        return list(text) if self.name == "o200k_base" else text.split()


async def test_tokenizer_is_cached_per_encoding(monkeypatch):
    from inteligencia.adapters.llm import openai_adapter

    names = {"gpt-4o": "o200k_base", "gpt-4": "cl100k_base"}
    loaded = []

    def encoding_name_for_model(model):
        if model not in names:
            raise KeyError(model)
        return names[model]

    def get_encoding(name):
        loaded.append(name)
        return FakeEncoding(name)

    monkeypatch.setattr(openai_adapter.tiktoken, "encoding_name_for_model", encoding_name_for_model)
    monkeypatch.setattr(openai_adapter.tiktoken, "get_encoding", get_encoding)
    monkeypatch.setattr(openai_adapter.OpenAIAdapter, "_encodings", {})

    gpt4o = get_adapter(make_config("openai", "gpt-4o"))
    gpt4 = get_adapter(make_config("openai", "gpt-4"))
    unknown = get_adapter(make_config("openai", "gpt-99"))

    assert gpt4o.estimate_tokens("two words") == 9
    assert gpt4.estimate_tokens("two words") == 2
    assert unknown.estimate_tokens("two words") == 2
    assert gpt4o.estimate_tokens("abc") == 3
    assert loaded == ["o200k_base", "cl100k_base"]
