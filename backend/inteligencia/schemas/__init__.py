"""
Pydantic Schemas for API Request/Response validation
"""

from .generation import (
    ContextSelectionRequest,
    GenerateRequest,
    GenerateResponse,
    PreviousContentItem,
)
from .provider import (
    FallbackChainResponse,
    ProviderConfigureRequest,
    ProviderResponse,
    ProviderTestResponse,
)
from .tree import (
    ImagePromptEdit,
    ImagePromptItem,
    ImagePromptResponse,
    ImagePromptsUpdate,
    NodeCreate,
    NodeDetailResponse,
    NodeResponse,
    NodeUpdate,
    TreeResponse,
    VisibilityUpdate,
)
from .analytics import AnalyticsRollupResponse, CleanupRequest, UsageStatsResponse
from .context import (
    ActiveStyleGuides,
    CharacterCreate,
    CharacterResponse,
    CharacterUpdate,
    ReferenceImageCreate,
    ReferenceImageResponse,
    StyleGuideCreate,
    StyleGuideResponse,
    StyleGuideUpdate,
    TemplateCreate,
    TemplateResponse,
)

__all__ = [
    # Generation
    "ContextSelectionRequest",
    "GenerateRequest",
    "GenerateResponse",
    "PreviousContentItem",
    # Providers
    "FallbackChainResponse",
    "ProviderConfigureRequest",
    "ProviderResponse",
    "ProviderTestResponse",
    # Tree
    "ImagePromptEdit",
    "ImagePromptItem",
    "ImagePromptResponse",
    "ImagePromptsUpdate",
    "NodeCreate",
    "NodeDetailResponse",
    "NodeResponse",
    "NodeUpdate",
    "TreeResponse",
    "VisibilityUpdate",
    # Analytics
    "AnalyticsRollupResponse",
    "CleanupRequest",
    "UsageStatsResponse",
    # Reference data
    "ActiveStyleGuides",
    "CharacterCreate",
    "CharacterResponse",
    "CharacterUpdate",
    "ReferenceImageCreate",
    "ReferenceImageResponse",
    "StyleGuideCreate",
    "StyleGuideResponse",
    "StyleGuideUpdate",
    "TemplateCreate",
    "TemplateResponse",
]
