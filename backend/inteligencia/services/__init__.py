"""
Business Logic Services
"""

from .provider_selector import ProviderSelector
from .credential_store import CredentialStore
from .tree_store import TreeStore
from .analytics_service import AnalyticsService
from .context_service import ContextService, ContextSelection
from .generation_service import GenerationService, GenerationJob
from .image_prompts import ImagePromptExtractor, embed_images, extract_image_prompts

__all__ = [
    "ProviderSelector",
    "CredentialStore",
    "TreeStore",
    "AnalyticsService",
    "ContextService",
    "ContextSelection",
    "GenerationService",
    "GenerationJob",
    "ImagePromptExtractor",
    "extract_image_prompts",
    "embed_images",
]
