"""
Credential Store Service
Encrypted per-provider API keys, model defaults and monthly budgets

Plaintext keys exist only transiently inside this process; nothing returned
to API callers contains ciphertext, salt or the key itself.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..adapters.llm import ProviderConfig, get_adapter
from ..adapters.llm.base import normalize_settings
from ..config import get_settings
from ..errors import NotFoundError, PersistenceError, ValidationError
from ..models import ProviderCredential, utcnow
from ..utils.security import decrypt_api_key, encrypt_api_key, validate_key_format
from .provider_registry import get_provider_capabilities, is_supported_provider
from .provider_selector import merge_settings, resolve_model

logger = logging.getLogger(__name__)

UNSET = object()


class CredentialStore:
    """
    Service for managing provider credentials.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # READ
    # =========================================================================

    async def list_credentials(self) -> List[ProviderCredential]:
        result = await self.db.execute(
            select(ProviderCredential).order_by(ProviderCredential.provider)
        )
        return list(result.scalars().all())

    async def find(self, provider: str) -> Optional[ProviderCredential]:
        result = await self.db.execute(
            select(ProviderCredential)
            .where(ProviderCredential.provider == provider)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get(self, provider: str) -> ProviderCredential:
        credential = await self.find(provider)
        if credential is None:
            raise NotFoundError(f"Provider {provider} is not configured")
        return credential

    async def decrypt_key(self, provider: str) -> str:
        """Decrypt a stored key for in-process use only"""
        credential = await self.get(provider)
        if not credential.has_api_key:
            raise ValidationError(f"Provider {provider} has no API key")
        return await asyncio.to_thread(
            decrypt_api_key, credential.api_key_encrypted, credential.encryption_salt or ""
        )

    # =========================================================================
    # WRITE
    # =========================================================================

    async def configure(
        self,
        provider: str,
        api_key: Optional[str] = None,
        default_model: Any = UNSET,
        fallback_model: Any = UNSET,
        task_models: Any = UNSET,
        settings: Any = UNSET,
        monthly_limit: Any = UNSET,
        active: Any = UNSET,
    ) -> ProviderCredential:
        """
        Create or update a provider credential.
        A new key is format-checked, encrypted and resets the test status.
        """
        if not is_supported_provider(provider):
            raise ValidationError(f"Unsupported provider: {provider}")

        credential = await self.find(provider)
        if credential is None:
            credential = ProviderCredential(
                provider=provider,
                task_models={},
                settings={},
                current_usage=0.0,
                active=True,
            )
            self.db.add(credential)

        if api_key:
            if not validate_key_format(provider, api_key):
                raise ValidationError(f"Invalid API key format for {provider}")
            encrypted = await asyncio.to_thread(encrypt_api_key, api_key)
            credential.api_key_encrypted = encrypted.ciphertext
            credential.encryption_salt = encrypted.salt
            credential.last_tested = None
            credential.test_success = None

        if default_model is not UNSET:
            credential.default_model = default_model
        if fallback_model is not UNSET:
            credential.fallback_model = fallback_model
        if task_models is not UNSET:
            credential.task_models = dict(task_models or {})
        if settings is not UNSET:
            # Unknown keys are never stored
            credential.settings = normalize_settings(settings)
        if monthly_limit is not UNSET:
            credential.monthly_limit = monthly_limit
        if active is not UNSET:
            credential.active = bool(active)

        try:
            await self.db.flush()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to save provider {provider}: {type(e).__name__}") from e

        logger.info(f"Configured provider {provider} (has_key={credential.has_api_key})")
        return credential

    async def delete(self, provider: str) -> None:
        credential = await self.get(provider)
        await self.db.delete(credential)
        await self.db.flush()
        logger.info(f"Deleted provider {provider}")

    async def record_test_result(self, provider: str, success: bool) -> ProviderCredential:
        credential = await self.get(provider)
        credential.last_tested = utcnow()
        credential.test_success = success
        await self.db.flush()
        return credential

    async def test_provider(self, provider: str, transport=None) -> Dict[str, Any]:
        """Issue a minimal generation with the stored key and record the outcome"""
        credential = await self.get(provider)
        api_key = await self.decrypt_key(provider)
        config = ProviderConfig(
            provider=provider,
            api_key=api_key,
            model=resolve_model(credential, "default"),
            settings=merge_settings(credential.settings),
        )
        success = await get_adapter(config, transport=transport).health_check()
        await self.record_test_result(provider, success)
        logger.info(f"Tested provider {provider}: success={success}")
        return {
            "provider": provider,
            "model": config.model,
            "success": success,
            "message": "Connection successful" if success else "Connection failed",
        }

    # =========================================================================
    # USAGE / BUDGET
    # =========================================================================

    async def increment_usage(self, provider: str, cost: float) -> Optional[ProviderCredential]:
        """
        Add cost to the provider's monthly usage.
        Deactivates the provider once the monthly limit is reached.
        """
        if cost <= 0:
            return await self.find(provider)

        await self.db.execute(
            update(ProviderCredential)
            .where(ProviderCredential.provider == provider)
            .values(current_usage=ProviderCredential.current_usage + cost, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        credential = await self.find(provider)
        if credential is None or not credential.monthly_limit:
            return credential

        usage = float(credential.current_usage or 0)
        limit = float(credential.monthly_limit)
        warning_ratio = get_settings().PROVIDER_USAGE_WARNING_RATIO

        if usage >= limit:
            if credential.active:
                credential.active = False
                await self.db.flush()
            logger.warning(
                f"Provider {provider} disabled - monthly limit exceeded: ${usage:.2f} >= ${limit:.2f}"
            )
        elif usage >= limit * warning_ratio:
            logger.warning(
                f"Provider {provider} approaching limit: ${usage:.2f} / ${limit:.2f} "
                f"({usage / limit * 100:.1f}%)"
            )
        return credential

    async def reset_monthly_usage(self) -> int:
        """Zero current usage on every credential"""
        result = await self.db.execute(
            update(ProviderCredential)
            .values(current_usage=0.0, last_reset_date=utcnow(), updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        logger.info(f"Reset monthly usage for {result.rowcount} providers")
        return result.rowcount

    async def monthly_usage(self) -> List[Dict[str, Any]]:
        """Budget consumption per provider"""
        usage = []
        for credential in await self.list_credentials():
            limit = float(credential.monthly_limit) if credential.monthly_limit else None
            current = float(credential.current_usage or 0)
            usage.append({
                "provider": credential.provider,
                "currentUsage": round(current, 6),
                "monthlyLimit": limit,
                "percentUsed": round(current / limit * 100, 2) if limit else None,
                "active": credential.active,
                "lastResetDate": credential.last_reset_date,
            })
        return usage


def to_public_dict(credential: ProviderCredential) -> Dict[str, Any]:
    """Non-secret view of a credential"""
    return {
        "provider": credential.provider,
        "hasApiKey": credential.has_api_key,
        "isConfigured": credential.has_api_key,
        "active": credential.active,
        "available": credential.is_available,
        "defaultModel": credential.default_model,
        "fallbackModel": credential.fallback_model,
        "taskModels": credential.task_models or {},
        "settings": credential.settings or {},
        "monthlyLimit": float(credential.monthly_limit) if credential.monthly_limit is not None else None,
        "currentUsage": float(credential.current_usage or 0),
        "lastTested": credential.last_tested,
        "testSuccess": credential.test_success,
        "capabilities": get_provider_capabilities(credential.provider),
    }
