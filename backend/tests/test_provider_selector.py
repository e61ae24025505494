"""
Capability registry and provider selection
"""

import pytest
from sqlalchemy import update

from inteligencia.errors import NoProviderAvailable
from inteligencia.models import ProviderCredential
from inteligencia.services import ProviderSelector
from inteligencia.services.provider_registry import (
    get_fallback_chain,
    meets_requirements,
    required_capabilities_for,
)
from inteligencia.services.provider_selector import merge_settings, resolve_model


# ============================================================================
# REGISTRY
# ============================================================================

def test_fallback_chains():
    assert get_fallback_chain("research")[0] == "perplexity"
    assert get_fallback_chain("writing") == ["anthropic", "openai", "google"]
    assert get_fallback_chain("image") == ["google", "openai"]
    assert get_fallback_chain("something-else") == get_fallback_chain("default")


def test_meets_requirements():
    assert meets_requirements("openai", ["text", "image"])
    assert not meets_requirements("anthropic", ["image"])
    assert not meets_requirements("openai", ["telepathy"])
    assert not meets_requirements("mystery", [])
    assert meets_requirements("perplexity", [])


def test_task_implies_capabilities():
    assert required_capabilities_for("image") == ["image"]
    assert required_capabilities_for("image", ["text", "image"]) == ["text", "image"]
    assert required_capabilities_for("writing") == []


def test_resolve_model_precedence():
    credential = ProviderCredential(
        provider="openai",
        task_models={"writing": "gpt-4-turbo"},
        default_model="gpt-4o-mini",
        fallback_model="gpt-3.5-turbo",
    )
    assert resolve_model(credential, "writing", "gpt-4") == "gpt-4"
    assert resolve_model(credential, "writing") == "gpt-4-turbo"
    assert resolve_model(credential, "research") == "gpt-4o"
    assert resolve_model(credential, "unmapped-task") == "gpt-4o-mini"


def test_merge_settings_whitelists_keys():
    merged = merge_settings({"temperature": 0.2, "maxTokens": 500}, {"evil": "x", "top_p": 0.9})
    assert merged.temperature == 0.2
    assert merged.max_tokens == 500
    assert merged.top_p == 0.9
    assert not hasattr(merged, "evil")


# ============================================================================
# SELECTION
# ============================================================================

async def test_no_providers_configured(db):
    with pytest.raises(NoProviderAvailable) as exc:
        await ProviderSelector(db).select_provider("writing")
    assert exc.value.status_code == 503


async def test_preferred_provider_wins_when_capable(db, configure_provider):
    await configure_provider("anthropic")
    await configure_provider("openai")

    config = await ProviderSelector(db).select_provider("writing", preferred_provider="openai", model="gpt-4")
    assert config.provider == "openai"
    assert config.model == "gpt-4"
    assert config.api_key == "sk-test-openai-0123456789"


async def test_explicit_model_ignored_for_non_preferred(db, configure_provider):
    await configure_provider("anthropic")

    config = await ProviderSelector(db).select_provider("writing", preferred_provider="openai", model="gpt-4")
    assert config.provider == "anthropic"
    assert config.model == "claude-3-5-sonnet-20241022"


async def test_fallback_chain_order(db, configure_provider):
    await configure_provider("openai")
    await configure_provider("google")
    await configure_provider("perplexity")

    selector = ProviderSelector(db)
    assert (await selector.select_provider("writing")).provider == "openai"
    assert (await selector.select_provider("research")).provider == "perplexity"
    assert (await selector.select_provider("image")).provider == "google"


async def test_preferred_provider_without_capability_is_skipped(db, configure_provider):
    await configure_provider("anthropic")
    await configure_provider("openai")

    config = await ProviderSelector(db).select_provider("image", preferred_provider="anthropic")
    assert config.provider == "openai"
    assert config.model == "dall-e-3"


async def test_image_task_with_only_text_providers(db, configure_provider):
    await configure_provider("anthropic")
    await configure_provider("perplexity")

    with pytest.raises(NoProviderAvailable):
        await ProviderSelector(db).select_provider("image", required_capabilities=["image"])


async def test_unavailable_providers_are_filtered(db, configure_provider):
    await configure_provider("anthropic", active=False)
    await configure_provider("openai")
    await db.execute(
        update(ProviderCredential).where(ProviderCredential.provider == "openai").values(test_success=False)
    )
    await configure_provider("google")

    config = await ProviderSelector(db).select_provider("writing")
    assert config.provider == "google"


async def test_inactive_preferred_provider_falls_through_to_chain(db, configure_provider):
    await configure_provider("google", active=False)
    await configure_provider("openai")
    await configure_provider("anthropic")

    config = await ProviderSelector(db).select_provider("writing", preferred_provider="google", model="gemini-1.5-flash")
    assert config.provider == "anthropic"
    assert config.model == "claude-3-5-sonnet-20241022"


async def test_excluded_providers(db, configure_provider):
    await configure_provider("anthropic")
    await configure_provider("openai")

    config = await ProviderSelector(db).select_provider("writing", exclude_providers={"anthropic"})
    assert config.provider == "openai"


async def test_undecryptable_credential_does_not_block_others(db, configure_provider):
    await configure_provider("anthropic")
    await configure_provider("openai")
    await db.execute(
        update(ProviderCredential)
        .where(ProviderCredential.provider == "anthropic")
        .values(encryption_salt="AAAA")
    )

    available = await ProviderSelector(db).get_available_providers()
    assert set(available) == {"openai"}


async def test_credential_settings_reach_config(db, configure_provider):
    await configure_provider("openai", settings={"temperature": 0.1, "unknown": True})

    config = await ProviderSelector(db).select_provider("writing")
    assert config.settings.temperature == 0.1


async def test_provider_status_has_no_secrets(db, configure_provider):
    await configure_provider("openai")

    status = await ProviderSelector(db).provider_status()
    assert set(status) == {"openai", "anthropic", "google", "perplexity"}
    assert status["openai"]["available"] is True
    assert status["google"]["configured"] is False
    assert "sk-test" not in repr(status)
