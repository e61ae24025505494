"""
Provider Selector
Resolves a task request to one ready-to-use provider configuration
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from inteligencia.adapters.llm import GenerationSettings, ProviderConfig
from inteligencia.errors import DecryptionError, NoProviderAvailable, PersistenceError
from inteligencia.models import ProviderCredential
from inteligencia.utils.security import decrypt_api_key
from .provider_registry import (
    get_fallback_chain,
    get_provider_capabilities,
    get_provider_default_model,
    get_task_default_model,
    is_supported_provider,
    list_supported_providers,
    meets_requirements,
)

logger = logging.getLogger(__name__)


def resolve_model(
    credential: ProviderCredential,
    task_type: str,
    explicit_model: Optional[str] = None,
) -> Optional[str]:
    """
    Model precedence: explicit override, credential per-task model,
    registry task default, credential default, registry provider default,
    credential fallback model.
    """
    task_models = credential.task_models or {}
    return (
        explicit_model
        or task_models.get(task_type)
        or get_task_default_model(credential.provider, task_type)
        or credential.default_model
        or get_provider_default_model(credential.provider)
        or credential.fallback_model
    )


def merge_settings(*layers: Optional[Mapping[str, Any]]) -> GenerationSettings:
    """Global defaults overlaid by each layer in order (whitelisted keys only)"""
    merged = GenerationSettings.defaults()
    for layer in layers:
        merged = merged.merged(layer)
    return merged


class ProviderSelector:
    """
    Pure resolution over current credential state.
    Decrypted keys live only in the returned ProviderConfig; nothing is cached.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _load_credentials(self) -> List[ProviderCredential]:
        try:
            result = await self.db.execute(
                select(ProviderCredential).order_by(ProviderCredential.provider)
            )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load provider credentials: {type(e).__name__}") from e
        return list(result.scalars().all())

    async def get_available_providers(
        self,
        exclude_providers: Optional[Iterable[str]] = None,
    ) -> Dict[str, Dict[str, Any]]:
        """
        Credentials that are active, keyed and not failing, with decrypted keys.
        A row that fails to decrypt is logged and skipped.
        """
        excluded = set(exclude_providers or ())
        available: Dict[str, Dict[str, Any]] = {}

        for credential in await self._load_credentials():
            if credential.provider in excluded or not is_supported_provider(credential.provider):
                continue
            if not credential.is_available:
                if credential.test_success is False:
                    logger.warning(f"Skipping provider {credential.provider} due to failed test")
                continue

            try:
                api_key = await asyncio.to_thread(
                    decrypt_api_key, credential.api_key_encrypted, credential.encryption_salt or ""
                )
            except DecryptionError as e:
                logger.error(
                    f"Failed to decrypt API key for provider {credential.provider} "
                    f"(has_key={credential.has_api_key}): {e.message}"
                )
                continue

            available[credential.provider] = {"credential": credential, "api_key": api_key}

        return available

    async def select_provider(
        self,
        task_type: str,
        preferred_provider: Optional[str] = None,
        required_capabilities: Optional[List[str]] = None,
        exclude_providers: Optional[Iterable[str]] = None,
        model: Optional[str] = None,
    ) -> ProviderConfig:
        """
        Select the best available provider for a task.

        Order: preferred provider (if available and capable), then the task's
        fallback chain, then any remaining capable provider.

        Raises:
            NoProviderAvailable: nothing passes filtering and capability checks
        """
        required = list(required_capabilities or [])
        available = await self.get_available_providers(exclude_providers)

        if preferred_provider and preferred_provider in available:
            if meets_requirements(preferred_provider, required):
                return self._build_config(available[preferred_provider], task_type, model)
            logger.warning(
                f"Preferred provider {preferred_provider} doesn't meet requirements for {task_type}"
            )

        for name in get_fallback_chain(task_type):
            if name in available and meets_requirements(name, required):
                return self._build_config(available[name], task_type)

        # Last resort: anything else that qualifies
        for name, entry in available.items():
            if meets_requirements(name, required):
                return self._build_config(entry, task_type)

        raise NoProviderAvailable(
            task_type,
            {"required_capabilities": required, "excluded": sorted(exclude_providers or [])},
        )

    def _build_config(
        self,
        entry: Dict[str, Any],
        task_type: str,
        explicit_model: Optional[str] = None,
    ) -> ProviderConfig:
        credential: ProviderCredential = entry["credential"]
        return ProviderConfig(
            provider=credential.provider,
            api_key=entry["api_key"],
            model=resolve_model(credential, task_type, explicit_model),
            settings=merge_settings(credential.settings),
        )

    async def provider_status(self) -> Dict[str, Dict[str, Any]]:
        """Non-secret availability summary for every supported provider"""
        credentials = {c.provider: c for c in await self._load_credentials()}
        status = {}
        for name in list_supported_providers():
            credential = credentials.get(name)
            status[name] = {
                "configured": credential is not None,
                "hasApiKey": bool(credential and credential.has_api_key),
                "active": bool(credential and credential.active),
                "testSuccess": credential.test_success if credential else None,
                "available": bool(credential and credential.is_available),
                "capabilities": get_provider_capabilities(name),
            }
        return status
