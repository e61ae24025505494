"""
Provider Capability Registry
Static capability flags, task fallback chains and task model defaults
"""

from typing import Dict, List, Optional, Sequence

from inteligencia.config import get_settings

CAPABILITIES = ("text", "image", "research", "multimodal")

PROVIDER_CAPABILITIES: Dict[str, Dict[str, bool]] = {
    "openai": {"text": True, "image": True, "research": True, "multimodal": True},
    "anthropic": {"text": True, "image": False, "research": True, "multimodal": False},
    "google": {"text": True, "image": True, "research": True, "multimodal": True},
    "perplexity": {"text": True, "image": False, "research": True, "multimodal": False},
}

# Task-specific fallback chains (ordered by preference)
FALLBACK_CHAINS: Dict[str, List[str]] = {
    "research": ["perplexity", "anthropic", "google", "openai"],
    "writing": ["anthropic", "openai", "google"],
    "image": ["google", "openai"],
    "ideation": ["openai", "anthropic", "google"],
    "analysis": ["anthropic", "openai", "google"],
    "creative": ["openai", "anthropic", "google"],
    "multimodal": ["openai", "google"],
    "default": ["anthropic", "openai", "google", "perplexity"],
}

# Per-provider model defaults by task; "default" is resolved from settings
TASK_MODELS: Dict[str, Dict[str, str]] = {
    "openai": {
        "research": "gpt-4o",
        "writing": "gpt-4o",
        "creative": "gpt-4o",
        "ideation": "gpt-4o",
        "analysis": "gpt-4o",
        "image": "dall-e-3",
    },
    "anthropic": {
        "research": "claude-3-5-sonnet-20241022",
        "writing": "claude-3-5-sonnet-20241022",
        "creative": "claude-3-5-sonnet-20241022",
        "ideation": "claude-3-5-sonnet-20241022",
        "analysis": "claude-3-5-sonnet-20241022",
    },
    "google": {
        "research": "gemini-1.5-pro-latest",
        "writing": "gemini-1.5-pro-latest",
        "creative": "gemini-1.5-pro-latest",
        "ideation": "gemini-1.5-pro-latest",
        "analysis": "gemini-1.5-pro-latest",
        "image": "imagen-3.0-generate-001",
    },
    "perplexity": {
        "research": "llama-3.1-sonar-large-128k-online",
        "writing": "llama-3.1-sonar-large-128k-chat",
    },
}

# Capabilities a task implies on top of whatever the caller asks for
TASK_CAPABILITIES: Dict[str, List[str]] = {
    "image": ["image"],
    "research": ["research"],
    "multimodal": ["multimodal"],
}


def is_supported_provider(provider: str) -> bool:
    return provider in PROVIDER_CAPABILITIES


def get_provider_capabilities(provider: str) -> Optional[Dict[str, bool]]:
    capabilities = PROVIDER_CAPABILITIES.get(provider)
    return dict(capabilities) if capabilities else None


def list_supported_providers() -> Dict[str, Dict[str, bool]]:
    return {name: dict(caps) for name, caps in PROVIDER_CAPABILITIES.items()}


def get_fallback_chain(task_type: str) -> List[str]:
    """Ordered providers for a task; unknown tasks use the default chain"""
    return list(FALLBACK_CHAINS.get(task_type, FALLBACK_CHAINS["default"]))


def meets_requirements(provider: str, required_capabilities: Sequence[str]) -> bool:
    """Exact AND match; unknown providers and unknown capability names never match"""
    capabilities = PROVIDER_CAPABILITIES.get(provider)
    if capabilities is None:
        return False
    return all(capabilities.get(capability, False) for capability in required_capabilities)


def required_capabilities_for(task_type: str, requested: Optional[Sequence[str]] = None) -> List[str]:
    """Caller's capabilities plus those implied by the task, order preserved, deduplicated"""
    combined = list(requested or []) + TASK_CAPABILITIES.get(task_type, [])
    return list(dict.fromkeys(combined))


def get_task_default_model(provider: str, task_type: str) -> Optional[str]:
    return TASK_MODELS.get(provider, {}).get(task_type)


def get_provider_default_model(provider: str) -> Optional[str]:
    return get_settings().default_model_for(provider)
