"""
Provider Credential Routes
"""

from typing import Dict, List, Optional

import httpx
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from inteligencia.errors import ValidationError
from inteligencia.schemas.provider import (
    FallbackChainResponse,
    ProviderConfigureRequest,
    ProviderResponse,
    ProviderTestResponse,
)
from inteligencia.services import CredentialStore, ProviderSelector
from inteligencia.services.credential_store import to_public_dict
from inteligencia.services.provider_registry import (
    get_fallback_chain,
    is_supported_provider,
    list_supported_providers,
)
from inteligencia.utils import get_db
from .generation import get_generation_transport

router = APIRouter()


def _check_provider(provider: str) -> None:
    if not is_supported_provider(provider):
        raise ValidationError(f"Unsupported provider: {provider}")


@router.get("", response_model=List[ProviderResponse])
async def list_providers(db: AsyncSession = Depends(get_db)):
    """List configured providers (never includes key material)"""
    store = CredentialStore(db)
    return [to_public_dict(c) for c in await store.list_credentials()]


@router.get("/capabilities")
async def get_capabilities() -> Dict[str, Dict[str, bool]]:
    """Static capability flags for every supported provider"""
    return list_supported_providers()


@router.get("/status")
async def get_status(db: AsyncSession = Depends(get_db)):
    """Availability summary for every supported provider"""
    return await ProviderSelector(db).provider_status()


@router.get("/fallback-chains/{task}", response_model=FallbackChainResponse)
async def get_task_fallback_chain(task: str):
    return {"task": task, "chain": get_fallback_chain(task)}


@router.get("/usage/monthly")
async def get_monthly_usage(db: AsyncSession = Depends(get_db)):
    """Monthly budget consumption per provider"""
    return await CredentialStore(db).monthly_usage()


@router.get("/{provider}", response_model=ProviderResponse)
async def get_provider(provider: str, db: AsyncSession = Depends(get_db)):
    _check_provider(provider)
    credential = await CredentialStore(db).get(provider)
    return to_public_dict(credential)


@router.put("/{provider}", response_model=ProviderResponse)
async def configure_provider(
    provider: str,
    body: ProviderConfigureRequest,
    db: AsyncSession = Depends(get_db),
):
    """Create or update a provider; only fields present in the body change"""
    _check_provider(provider)
    changes = body.model_dump(exclude_unset=True)
    credential = await CredentialStore(db).configure(provider, **changes)
    await db.commit()
    await db.refresh(credential)
    return to_public_dict(credential)


@router.delete("/{provider}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_provider(provider: str, db: AsyncSession = Depends(get_db)):
    _check_provider(provider)
    await CredentialStore(db).delete(provider)
    await db.commit()


@router.post("/{provider}/test", response_model=ProviderTestResponse)
async def test_provider(
    provider: str,
    db: AsyncSession = Depends(get_db),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_generation_transport),
):
    """Send a minimal request with the stored key and record the result"""
    _check_provider(provider)
    result = await CredentialStore(db).test_provider(provider, transport=transport)
    await db.commit()
    return result
