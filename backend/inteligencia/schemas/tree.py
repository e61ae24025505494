"""
Generation Tree Schemas
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class NodeCreate(BaseModel):
    """Manual node creation"""
    type: str = Field(..., pattern="^(idea|research|title|synopsis|outline|blog|social|image)$")
    mode: str = Field(default="direct", pattern="^(direct|structured|edit_existing|multi_vertical)$")
    content: Optional[str] = None
    structured_content: Optional[Dict[str, Any]] = Field(None, alias="structuredContent")
    parent_id: Optional[UUID] = Field(None, alias="parentId")
    root_id: Optional[UUID] = Field(None, alias="rootId")
    selected: bool = False
    visible: bool = True
    vertical: Optional[str] = None
    prompt: Optional[str] = None

    class Config:
        populate_by_name = True


class NodeUpdate(BaseModel):
    content: Optional[str] = None
    structured_content: Optional[Dict[str, Any]] = Field(None, alias="structuredContent")
    status: Optional[str] = Field(None, pattern="^(pending|completed|failed)$")

    class Config:
        populate_by_name = True


class VisibilityUpdate(BaseModel):
    """Omit visible to toggle"""
    visible: Optional[bool] = None


class NodeResponse(BaseModel):
    """Generation node response"""
    id: UUID
    type: str
    mode: str
    content: Optional[str]
    structured_content: Optional[Dict[str, Any]]
    parent_id: Optional[UUID]
    root_id: Optional[UUID]
    selected: bool
    visible: bool
    deleted: bool
    vertical: Optional[str]
    provider: Optional[str]
    model: Optional[str]
    prompt: Optional[str]
    context: Optional[Dict[str, Any]]
    tokens_input: int
    tokens_output: int
    cost: float
    status: str
    created_at: datetime
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class ImagePromptItem(BaseModel):
    text: str = Field(..., min_length=1)
    type: Optional[str] = Field(None, pattern="^(featured|inline)$")


class ImagePromptsUpdate(BaseModel):
    prompts: List[ImagePromptItem]


class ImagePromptEdit(BaseModel):
    edited_text: str = Field(..., min_length=1, alias="editedText")

    class Config:
        populate_by_name = True


class ImagePromptResponse(BaseModel):
    id: UUID
    generation_node_id: UUID
    original_text: str
    edited_text: Optional[str]
    final_text: Optional[str]
    position: int
    type: str

    class Config:
        from_attributes = True


class NodeDetailResponse(BaseModel):
    """Node plus its neighbourhood"""
    node: NodeResponse
    parent: Optional[NodeResponse]
    children: List[NodeResponse]
    alternatives: List[NodeResponse]
    image_prompts: List[ImagePromptResponse]

    class Config:
        from_attributes = True


class TreeResponse(BaseModel):
    root_id: UUID
    nodes: List[NodeResponse]
    selected_node_id: Optional[UUID]
