"""
Inteligencia Database Models
PostgreSQL with SQLAlchemy ORM (portable to SQLite for tests)
"""

from datetime import datetime, timezone
from enum import Enum as PyEnum
from uuid import uuid4

from sqlalchemy import (
    Column, String, Text, Integer, Float, Boolean, DateTime, Date,
    ForeignKey, JSON, Numeric, Index, UniqueConstraint, Uuid,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, the convention for every DateTime column"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Cost columns hold approximate USD amounts; floats are enough
Money = Numeric(14, 6, asdecimal=False)


# ============================================================================
# ENUMS
# ============================================================================

class ProviderType(str, PyEnum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    PERPLEXITY = "perplexity"


class NodeType(str, PyEnum):
    IDEA = "idea"
    RESEARCH = "research"
    TITLE = "title"
    SYNOPSIS = "synopsis"
    OUTLINE = "outline"
    BLOG = "blog"
    SOCIAL = "social"
    IMAGE = "image"


class GenerationMode(str, PyEnum):
    DIRECT = "direct"
    STRUCTURED = "structured"
    EDIT_EXISTING = "edit_existing"
    MULTI_VERTICAL = "multi_vertical"


class NodeStatus(str, PyEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class StyleGuideType(str, PyEnum):
    BRAND = "brand"
    VERTICAL = "vertical"
    WRITING_STYLE = "writing_style"
    PERSONA = "persona"


class ReferenceImageType(str, PyEnum):
    STYLE = "style"
    LOGO = "logo"
    PERSONA = "persona"


# ============================================================================
# PROVIDER CREDENTIALS
# ============================================================================

class ProviderCredential(Base):
    """Per-provider API key (AES-256-GCM encrypted) and generation defaults"""
    __tablename__ = "provider_credentials"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    provider = Column(String(50), unique=True, nullable=False, index=True)

    # Secret material - never leaves the backend
    api_key_encrypted = Column(Text)
    encryption_salt = Column(String(255))

    # Model resolution
    default_model = Column(String(100))
    fallback_model = Column(String(100))
    task_models = Column(JSON, default=dict)  # {task_type: model}
    settings = Column(JSON, default=dict)  # whitelisted generation settings

    # Budget
    monthly_limit = Column(Money)
    current_usage = Column(Money, default=0.0, nullable=False)
    last_reset_date = Column(DateTime)

    # Health
    active = Column(Boolean, default=True, nullable=False)
    last_tested = Column(DateTime)
    test_success = Column(Boolean)  # None = never tested

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key_encrypted)

    @property
    def is_available(self) -> bool:
        """Active, keyed, and not known to have failed its last test"""
        return bool(self.active) and self.has_api_key and self.test_success is not False


# ============================================================================
# GENERATION TREE
# ============================================================================

class GenerationNode(Base):
    """
    One persisted generation step.
    parent_id is a backward reference; root_id is a denormalized pointer
    to the tree origin (NULL only on the origin itself).
    """
    __tablename__ = "generation_nodes"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    type = Column(String(50), nullable=False)
    mode = Column(String(50), nullable=False, default=GenerationMode.DIRECT.value)

    content = Column(Text)
    structured_content = Column(JSON)

    parent_id = Column(Uuid(as_uuid=True), ForeignKey("generation_nodes.id"))
    root_id = Column(Uuid(as_uuid=True), ForeignKey("generation_nodes.id"))

    selected = Column(Boolean, default=False, nullable=False)
    visible = Column(Boolean, default=True, nullable=False)
    deleted = Column(Boolean, default=False, nullable=False)

    vertical = Column(String(50))
    provider = Column(String(50))
    model = Column(String(100))
    prompt = Column(Text)
    context = Column(JSON)  # id-only snapshot of reference data

    tokens_input = Column(Integer, default=0, nullable=False)
    tokens_output = Column(Integer, default=0, nullable=False)
    cost = Column(Money, default=0.0, nullable=False)
    status = Column(String(30), default=NodeStatus.COMPLETED.value, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_generation_nodes_root", "root_id"),
        Index("idx_generation_nodes_parent", "parent_id"),
        Index("idx_generation_nodes_root_selected", "root_id", "selected"),
        Index("idx_generation_nodes_created", "created_at"),
    )

    @property
    def tree_root_id(self):
        return self.root_id or self.id

    @property
    def tokens_used(self) -> int:
        return (self.tokens_input or 0) + (self.tokens_output or 0)


class ImagePrompt(Base):
    """Ordered image prompt owned by a generation node"""
    __tablename__ = "image_prompts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    generation_node_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("generation_nodes.id", ondelete="CASCADE"),
        nullable=False,
    )

    original_text = Column(Text, nullable=False)
    edited_text = Column(Text)
    final_text = Column(Text)
    position = Column(Integer, default=0, nullable=False)
    type = Column(String(30), default="inline", nullable=False)  # featured, inline

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_image_prompts_node_position", "generation_node_id", "position"),
    )


# ============================================================================
# USAGE & ANALYTICS
# ============================================================================

class UsageLog(Base):
    """Append-only record of one provider attempt"""
    __tablename__ = "usage_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    provider = Column(String(50), nullable=False)
    model = Column(String(100), nullable=False)
    task_type = Column(String(50), nullable=False)
    vertical = Column(String(50))

    tokens_input = Column(Integer, default=0, nullable=False)
    tokens_output = Column(Integer, default=0, nullable=False)
    cost = Column(Money, default=0.0, nullable=False)
    duration_ms = Column(Integer, default=0, nullable=False)
    content_length = Column(Integer, default=0, nullable=False)

    success = Column(Boolean, nullable=False)
    error_message = Column(Text)

    # Informational; logs outlive tree edits so no foreign key
    generation_node_id = Column(Uuid(as_uuid=True))

    requested_at = Column(DateTime, default=utcnow, nullable=False, index=True)


class GenerationAnalytics(Base):
    """Rollup row per (date, vertical, provider, model), incremented in place"""
    __tablename__ = "generation_analytics"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    date = Column(Date, nullable=False)
    vertical = Column(String(50), nullable=False, default="all")
    provider = Column(String(50), nullable=False)
    model = Column(String(100), nullable=False)

    total_generations = Column(Integer, default=0, nullable=False)
    successful_generations = Column(Integer, default=0, nullable=False)
    failed_generations = Column(Integer, default=0, nullable=False)
    total_tokens_input = Column(Integer, default=0, nullable=False)
    total_tokens_output = Column(Integer, default=0, nullable=False)
    total_cost = Column(Money, default=0.0, nullable=False)
    average_duration = Column(Float, default=0.0, nullable=False)
    total_content_length = Column(Integer, default=0, nullable=False)
    average_content_length = Column(Float, default=0.0, nullable=False)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("date", "vertical", "provider", "model", name="uq_generation_analytics_bucket"),
        Index("idx_generation_analytics_date", "date"),
    )


class AnalyticsRollupEntry(Base):
    """Usage logs already folded into generation_analytics"""
    __tablename__ = "analytics_rollup_entries"

    usage_log_id = Column(Uuid(as_uuid=True), primary_key=True)
    rolled_up_at = Column(DateTime, default=utcnow, nullable=False)


# ============================================================================
# REFERENCE DATA (generation context inputs)
# ============================================================================

class StyleGuide(Base):
    """Brand, vertical, writing style or persona guide"""
    __tablename__ = "style_guides"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    type = Column(String(30), nullable=False, default=StyleGuideType.BRAND.value)
    vertical = Column(String(50))
    content = Column(Text, nullable=False)
    description = Column(Text)
    active = Column(Boolean, default=True, nullable=False)

    version = Column(Integer, default=1, nullable=False)
    parent_id = Column(Uuid(as_uuid=True), ForeignKey("style_guides.id"))

    usage_count = Column(Integer, default=0, nullable=False)
    last_used = Column(DateTime)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class ContextTemplate(Base):
    """Saved combination of style guides and additional context"""
    __tablename__ = "context_templates"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    style_guide_ids = Column(JSON, default=list)
    additional_context = Column(Text)
    vertical = Column(String(50))

    usage_count = Column(Integer, default=0, nullable=False)
    last_used = Column(DateTime)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Character(Base):
    """Recurring persona referenced by generations"""
    __tablename__ = "characters"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    personality = Column(Text)
    active = Column(Boolean, default=True, nullable=False)

    usage_count = Column(Integer, default=0, nullable=False)
    last_used = Column(DateTime)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class ReferenceImage(Base):
    """Style, logo or persona reference image"""
    __tablename__ = "reference_images"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    type = Column(String(30), nullable=False, default=ReferenceImageType.STYLE.value)
    vertical = Column(String(50))
    url = Column(String(1000), nullable=False)
    description = Column(Text)

    usage_count = Column(Integer, default=0, nullable=False)
    last_used = Column(DateTime)
    created_at = Column(DateTime, default=utcnow, nullable=False)
