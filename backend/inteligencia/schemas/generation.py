"""
Generation Schemas
"""

from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from ..config import get_settings


class PreviousContentItem(BaseModel):
    """Earlier content offered as prompt context"""
    title: Optional[str] = None
    content: Optional[str] = None
    excerpt: Optional[str] = None


class ContextSelectionRequest(BaseModel):
    """Reference data and free-form context for a generation"""
    style_guide_ids: List[UUID] = Field(default=[], alias="styleGuideIds")
    template_id: Optional[UUID] = Field(None, alias="templateId")
    character_ids: List[UUID] = Field(default=[], alias="characterIds")
    reference_image_ids: List[UUID] = Field(default=[], alias="referenceImageIds")
    previous_content: List[PreviousContentItem] = Field(default=[], alias="previousContent")
    additional_context: Optional[str] = Field(None, alias="additionalContext")

    class Config:
        populate_by_name = True


class GenerateRequest(BaseModel):
    """POST /generate body"""
    mode: str = Field(default="direct", pattern="^(direct|structured|edit_existing|multi_vertical)$")
    task: str = Field(default="writing", min_length=1, max_length=50)
    prompt: Optional[str] = Field(None, max_length=20000)
    vertical: Optional[str] = None
    verticals: List[str] = []
    provider: Optional[str] = Field(None, pattern="^(openai|anthropic|google|perplexity)$")
    model: Optional[str] = None
    output_count: int = Field(default=1, ge=1, le=get_settings().MAX_OUTPUT_COUNT, alias="outputCount")
    parent_node_id: Optional[UUID] = Field(None, alias="parentNodeId")
    existing_content: Optional[str] = Field(None, alias="existingContent")
    edit_instructions: Optional[str] = Field(None, alias="editInstructions")
    skip_steps: List[str] = Field(default=[], alias="skipSteps")
    required_capabilities: List[str] = Field(default=[], alias="requiredCapabilities")
    settings: Dict[str, Any] = {}
    context: ContextSelectionRequest = ContextSelectionRequest()
    stream: bool = False

    # Image only
    size: str = Field(default="1024x1024", pattern=r"^\d+x\d+$")
    quality: str = Field(default="standard", pattern="^(standard|hd)$")
    style: str = Field(default="vivid", pattern="^(vivid|natural)$")

    class Config:
        populate_by_name = True


class GenerateResponse(BaseModel):
    """POST /generate result"""
    success: bool
    data: Dict[str, Any]
    usage: Dict[str, Any]
    timing: Dict[str, Any]
