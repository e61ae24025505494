"""
Provider Credential Schemas
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ProviderConfigureRequest(BaseModel):
    """PUT /providers/{provider} body; omitted fields are left unchanged"""
    api_key: Optional[str] = Field(None, min_length=1, alias="apiKey")
    default_model: Optional[str] = Field(None, alias="defaultModel")
    fallback_model: Optional[str] = Field(None, alias="fallbackModel")
    task_models: Optional[Dict[str, str]] = Field(None, alias="taskModels")
    settings: Optional[Dict[str, Any]] = None
    monthly_limit: Optional[float] = Field(None, ge=0, alias="monthlyLimit")
    active: Optional[bool] = None

    class Config:
        populate_by_name = True


class ProviderResponse(BaseModel):
    """Non-secret view of a provider credential"""
    provider: str
    hasApiKey: bool
    isConfigured: bool
    active: bool
    available: bool
    defaultModel: Optional[str]
    fallbackModel: Optional[str]
    taskModels: Dict[str, str]
    settings: Dict[str, Any]
    monthlyLimit: Optional[float]
    currentUsage: float
    lastTested: Optional[datetime]
    testSuccess: Optional[bool]
    capabilities: Optional[Dict[str, bool]]


class ProviderTestResponse(BaseModel):
    provider: str
    model: Optional[str]
    success: bool
    message: str


class FallbackChainResponse(BaseModel):
    task: str
    chain: List[str]
