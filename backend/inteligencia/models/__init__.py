"""
Database Models for Inteligencia
"""

from .database import (
    Base,
    utcnow,
    # Enums
    ProviderType,
    NodeType,
    GenerationMode,
    NodeStatus,
    StyleGuideType,
    ReferenceImageType,
    # Models
    ProviderCredential,
    GenerationNode,
    ImagePrompt,
    UsageLog,
    GenerationAnalytics,
    AnalyticsRollupEntry,
    StyleGuide,
    ContextTemplate,
    Character,
    ReferenceImage,
)

__all__ = [
    "Base",
    "utcnow",
    # Enums
    "ProviderType",
    "NodeType",
    "GenerationMode",
    "NodeStatus",
    "StyleGuideType",
    "ReferenceImageType",
    # Models
    "ProviderCredential",
    "GenerationNode",
    "ImagePrompt",
    "UsageLog",
    "GenerationAnalytics",
    "AnalyticsRollupEntry",
    "StyleGuide",
    "ContextTemplate",
    "Character",
    "ReferenceImage",
]
