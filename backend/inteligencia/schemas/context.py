"""
Reference Data Schemas
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class StyleGuideCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1)
    type: str = Field(default="brand", pattern="^(brand|vertical|writing_style|persona)$")
    vertical: Optional[str] = None
    description: Optional[str] = None
    active: bool = True
    parent_id: Optional[UUID] = Field(None, alias="parentId")

    class Config:
        populate_by_name = True


class StyleGuideUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    content: Optional[str] = None
    type: Optional[str] = Field(None, pattern="^(brand|vertical|writing_style|persona)$")
    vertical: Optional[str] = None
    description: Optional[str] = None
    active: Optional[bool] = None


class ActiveStyleGuides(BaseModel):
    ids: List[UUID]


class StyleGuideResponse(BaseModel):
    id: UUID
    name: str
    type: str
    vertical: Optional[str]
    content: str
    description: Optional[str]
    active: bool
    version: int
    parent_id: Optional[UUID]
    usage_count: int
    last_used: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


class TemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    style_guide_ids: List[UUID] = Field(default=[], alias="styleGuideIds")
    additional_context: Optional[str] = Field(None, alias="additionalContext")
    vertical: Optional[str] = None
    description: Optional[str] = None

    class Config:
        populate_by_name = True


class TemplateResponse(BaseModel):
    id: UUID
    name: str
    description: Optional[str]
    style_guide_ids: Optional[List[str]]
    additional_context: Optional[str]
    vertical: Optional[str]
    usage_count: int
    created_at: datetime

    class Config:
        from_attributes = True


class CharacterCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    personality: Optional[str] = None
    active: bool = True


class CharacterUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    personality: Optional[str] = None
    active: Optional[bool] = None


class CharacterResponse(BaseModel):
    id: UUID
    name: str
    description: str
    personality: Optional[str]
    active: bool
    usage_count: int
    created_at: datetime

    class Config:
        from_attributes = True


class ReferenceImageCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., min_length=1)
    type: str = Field(default="style", pattern="^(style|logo|persona)$")
    vertical: Optional[str] = None
    description: Optional[str] = None


class ReferenceImageResponse(BaseModel):
    id: UUID
    name: str
    url: str
    type: str
    vertical: Optional[str]
    description: Optional[str]
    usage_count: int
    created_at: datetime

    class Config:
        from_attributes = True
