"""
Reference Data Routes
Style guides, context templates, characters and reference images
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from inteligencia.schemas.context import (
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
from inteligencia.services import ContextService
from inteligencia.utils import get_db

router = APIRouter()


# ============================================================================
# STYLE GUIDES
# ============================================================================

@router.get("/style-guides", response_model=List[StyleGuideResponse])
async def list_style_guides(
    type: Optional[str] = None,
    vertical: Optional[str] = None,
    active_only: bool = Query(False, alias="activeOnly"),
    db: AsyncSession = Depends(get_db),
):
    return await ContextService(db).list_style_guides(type, vertical, active_only)


@router.post("/style-guides", response_model=StyleGuideResponse, status_code=status.HTTP_201_CREATED)
async def create_style_guide(body: StyleGuideCreate, db: AsyncSession = Depends(get_db)):
    """Create a guide; with parentId it becomes the next version of that guide"""
    guide = await ContextService(db).create_style_guide(**body.model_dump())
    await db.commit()
    await db.refresh(guide)
    return guide


@router.put("/style-guides/active")
async def set_active_style_guides(body: ActiveStyleGuides, db: AsyncSession = Depends(get_db)):
    """Exactly the listed guides end up active"""
    count = await ContextService(db).set_active_style_guides(body.ids)
    await db.commit()
    return {"active": count}


@router.get("/style-guides/{guide_id}", response_model=StyleGuideResponse)
async def get_style_guide(guide_id: UUID, db: AsyncSession = Depends(get_db)):
    return await ContextService(db).get_style_guide(guide_id)


@router.get("/style-guides/{guide_id}/versions", response_model=List[StyleGuideResponse])
async def get_style_guide_versions(guide_id: UUID, db: AsyncSession = Depends(get_db)):
    service = ContextService(db)
    await service.get_style_guide(guide_id)
    return await service.get_style_guide_versions(guide_id)


@router.patch("/style-guides/{guide_id}", response_model=StyleGuideResponse)
async def update_style_guide(guide_id: UUID, body: StyleGuideUpdate, db: AsyncSession = Depends(get_db)):
    guide = await ContextService(db).update_style_guide(guide_id, **body.model_dump(exclude_unset=True))
    await db.commit()
    await db.refresh(guide)
    return guide


# ============================================================================
# TEMPLATES, CHARACTERS, REFERENCE IMAGES
# ============================================================================

@router.get("/templates", response_model=List[TemplateResponse])
async def list_templates(db: AsyncSession = Depends(get_db)):
    return await ContextService(db).list_templates()


@router.post("/templates", response_model=TemplateResponse, status_code=status.HTTP_201_CREATED)
async def create_template(body: TemplateCreate, db: AsyncSession = Depends(get_db)):
    template = await ContextService(db).create_template(**body.model_dump())
    await db.commit()
    await db.refresh(template)
    return template


@router.get("/characters", response_model=List[CharacterResponse])
async def list_characters(
    active_only: bool = Query(True, alias="activeOnly"),
    db: AsyncSession = Depends(get_db),
):
    return await ContextService(db).list_characters(active_only)


@router.post("/characters", response_model=CharacterResponse, status_code=status.HTTP_201_CREATED)
async def create_character(body: CharacterCreate, db: AsyncSession = Depends(get_db)):
    character = await ContextService(db).create_character(**body.model_dump())
    await db.commit()
    await db.refresh(character)
    return character


@router.patch("/characters/{character_id}", response_model=CharacterResponse)
async def update_character(character_id: UUID, body: CharacterUpdate, db: AsyncSession = Depends(get_db)):
    character = await ContextService(db).update_character(
        character_id, **body.model_dump(exclude_unset=True)
    )
    await db.commit()
    await db.refresh(character)
    return character


@router.get("/reference-images", response_model=List[ReferenceImageResponse])
async def list_reference_images(
    type: Optional[str] = None,
    vertical: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    return await ContextService(db).list_reference_images(type, vertical)


@router.post("/reference-images", response_model=ReferenceImageResponse, status_code=status.HTTP_201_CREATED)
async def create_reference_image(body: ReferenceImageCreate, db: AsyncSession = Depends(get_db)):
    image = await ContextService(db).create_reference_image(**body.model_dump())
    await db.commit()
    await db.refresh(image)
    return image
