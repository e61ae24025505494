"""
Context Service
Reference data (style guides, templates, characters, reference images)
and its resolution into a typed generation context
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Type
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..adapters.llm import GenerationContext, PreviousContent, StyleGuideContext
from ..errors import NotFoundError, PersistenceError, ValidationError
from ..models import (
    Character,
    ContextTemplate,
    ReferenceImage,
    ReferenceImageType,
    StyleGuide,
    StyleGuideType,
    utcnow,
)

logger = logging.getLogger(__name__)

STYLE_GUIDE_FIELDS = ("name", "type", "vertical", "content", "description", "active")
CHARACTER_FIELDS = ("name", "description", "personality", "active")


@dataclass
class ContextSelection:
    """Caller's choice of reference data plus free-form context"""
    style_guide_ids: List[UUID] = field(default_factory=list)
    template_id: Optional[UUID] = None
    character_ids: List[UUID] = field(default_factory=list)
    reference_image_ids: List[UUID] = field(default_factory=list)
    previous_content: List[Dict[str, Any]] = field(default_factory=list)
    additional_context: Optional[str] = None
    vertical: Optional[str] = None


@dataclass
class ResolvedContext:
    context: GenerationContext
    snapshot: Dict[str, Any]


class ContextService:
    """
    Service for reference data used to build prompts.
    Nodes only ever store ids from here, never copies of the text.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _flush(self, action: str) -> None:
        try:
            await self.db.flush()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to {action}: {type(e).__name__}") from e

    async def _get(self, model: Type, entity_id: UUID, label: str):
        result = await self.db.execute(select(model).where(model.id == entity_id))
        entity = result.scalar_one_or_none()
        if entity is None:
            raise NotFoundError(f"{label} {entity_id} not found")
        return entity

    async def _get_many(self, model: Type, ids: Sequence[UUID], label: str) -> List[Any]:
        """Load rows in the requested order; any missing id is an error"""
        if not ids:
            return []
        result = await self.db.execute(select(model).where(model.id.in_(list(ids))))
        found = {row.id: row for row in result.scalars().all()}
        missing = [str(i) for i in ids if i not in found]
        if missing:
            raise NotFoundError(f"{label} not found: {', '.join(missing)}")
        return [found[i] for i in dict.fromkeys(ids)]

    @staticmethod
    def _touch(rows: Sequence[Any]) -> None:
        now = utcnow()
        for row in rows:
            row.usage_count = (row.usage_count or 0) + 1
            row.last_used = now

    # =========================================================================
    # STYLE GUIDES
    # =========================================================================

    async def create_style_guide(
        self,
        name: str,
        content: str,
        type: str = StyleGuideType.BRAND.value,
        vertical: Optional[str] = None,
        description: Optional[str] = None,
        active: bool = True,
        parent_id: Optional[UUID] = None,
    ) -> StyleGuide:
        if type not in {t.value for t in StyleGuideType}:
            raise ValidationError(f"Invalid style guide type: {type}")

        version = 1
        if parent_id is not None:
            parent = await self._get(StyleGuide, parent_id, "Style guide")
            version = (parent.version or 1) + 1

        guide = StyleGuide(
            name=name,
            content=content,
            type=type,
            vertical=vertical,
            description=description,
            active=active,
            parent_id=parent_id,
            version=version,
            usage_count=0,
        )
        self.db.add(guide)
        await self._flush("create style guide")
        return guide

    async def list_style_guides(
        self,
        type: Optional[str] = None,
        vertical: Optional[str] = None,
        active_only: bool = False,
    ) -> List[StyleGuide]:
        query = select(StyleGuide).order_by(StyleGuide.created_at.desc())
        if type:
            query = query.where(StyleGuide.type == type)
        if vertical:
            query = query.where(StyleGuide.vertical == vertical)
        if active_only:
            query = query.where(StyleGuide.active.is_(True))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_style_guide(self, guide_id: UUID) -> StyleGuide:
        return await self._get(StyleGuide, guide_id, "Style guide")

    async def get_style_guide_versions(self, guide_id: UUID) -> List[StyleGuide]:
        result = await self.db.execute(
            select(StyleGuide)
            .where(StyleGuide.parent_id == guide_id)
            .order_by(StyleGuide.version.desc())
        )
        return list(result.scalars().all())

    async def update_style_guide(self, guide_id: UUID, **changes: Any) -> StyleGuide:
        guide = await self.get_style_guide(guide_id)
        for key, value in changes.items():
            if key not in STYLE_GUIDE_FIELDS:
                raise ValidationError(f"Unknown style guide field: {key}")
            setattr(guide, key, value)
        await self._flush("update style guide")
        return guide

    async def set_active_style_guides(self, guide_ids: Sequence[UUID]) -> int:
        """Exactly the given guides end up active"""
        await self._get_many(StyleGuide, guide_ids, "Style guides")
        await self.db.execute(update(StyleGuide).values(active=False))
        if guide_ids:
            await self.db.execute(
                update(StyleGuide).where(StyleGuide.id.in_(list(guide_ids))).values(active=True)
            )
        await self._flush("activate style guides")
        return len(guide_ids)

    # =========================================================================
    # TEMPLATES, CHARACTERS, REFERENCE IMAGES
    # =========================================================================

    async def create_template(
        self,
        name: str,
        style_guide_ids: Sequence[UUID] = (),
        additional_context: Optional[str] = None,
        vertical: Optional[str] = None,
        description: Optional[str] = None,
    ) -> ContextTemplate:
        await self._get_many(StyleGuide, style_guide_ids, "Style guides")
        template = ContextTemplate(
            name=name,
            description=description,
            style_guide_ids=[str(i) for i in style_guide_ids],
            additional_context=additional_context,
            vertical=vertical,
            usage_count=0,
        )
        self.db.add(template)
        await self._flush("create context template")
        return template

    async def list_templates(self) -> List[ContextTemplate]:
        result = await self.db.execute(
            select(ContextTemplate).order_by(ContextTemplate.created_at.desc())
        )
        return list(result.scalars().all())

    async def create_character(
        self,
        name: str,
        description: str,
        personality: Optional[str] = None,
        active: bool = True,
    ) -> Character:
        character = Character(
            name=name,
            description=description,
            personality=personality,
            active=active,
            usage_count=0,
        )
        self.db.add(character)
        await self._flush("create character")
        return character

    async def list_characters(self, active_only: bool = True) -> List[Character]:
        query = select(Character).order_by(Character.created_at.desc())
        if active_only:
            query = query.where(Character.active.is_(True))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def update_character(self, character_id: UUID, **changes: Any) -> Character:
        character = await self._get(Character, character_id, "Character")
        for key, value in changes.items():
            if key not in CHARACTER_FIELDS:
                raise ValidationError(f"Unknown character field: {key}")
            setattr(character, key, value)
        await self._flush("update character")
        return character

    async def create_reference_image(
        self,
        name: str,
        url: str,
        type: str = ReferenceImageType.STYLE.value,
        vertical: Optional[str] = None,
        description: Optional[str] = None,
    ) -> ReferenceImage:
        if type not in {t.value for t in ReferenceImageType}:
            raise ValidationError(f"Invalid reference image type: {type}")
        image = ReferenceImage(
            name=name,
            url=url,
            type=type,
            vertical=vertical,
            description=description,
            usage_count=0,
        )
        self.db.add(image)
        await self._flush("create reference image")
        return image

    async def list_reference_images(
        self,
        type: Optional[str] = None,
        vertical: Optional[str] = None,
    ) -> List[ReferenceImage]:
        query = select(ReferenceImage).order_by(ReferenceImage.created_at.desc())
        if type:
            query = query.where(ReferenceImage.type == type)
        if vertical:
            query = query.where(ReferenceImage.vertical == vertical)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    # =========================================================================
    # CONTEXT RESOLUTION
    # =========================================================================

    async def build_context(self, selection: ContextSelection) -> ResolvedContext:
        """
        Resolve ids into a GenerationContext and an id-only snapshot.
        Usage counters are bumped for everything referenced.
        """
        template = None
        guide_ids = list(selection.style_guide_ids)
        if selection.template_id is not None:
            template = await self._get(ContextTemplate, selection.template_id, "Context template")
            guide_ids += [UUID(str(i)) for i in template.style_guide_ids or []]
        guide_ids = list(dict.fromkeys(guide_ids))

        guides = await self._get_many(StyleGuide, guide_ids, "Style guides")
        characters = await self._get_many(Character, selection.character_ids, "Characters")
        images = await self._get_many(ReferenceImage, selection.reference_image_ids, "Reference images")

        sections = []
        if template is not None and template.additional_context:
            sections.append(template.additional_context)
        if selection.additional_context:
            sections.append(selection.additional_context)
        if characters:
            sections.append("Characters:\n" + "\n".join(
                f"- {c.name}: {c.description}" + (f" ({c.personality})" if c.personality else "")
                for c in characters
            ))
        if images:
            sections.append("Reference images:\n" + "\n".join(
                f"- {img.name} ({img.type}): {img.description or img.url}" for img in images
            ))

        vertical = selection.vertical or (template.vertical if template is not None else None)

        context = GenerationContext(
            previous_content=[
                PreviousContent(
                    title=item.get("title"),
                    content=item.get("content"),
                    excerpt=item.get("excerpt"),
                )
                for item in selection.previous_content
            ],
            style_guides=[
                StyleGuideContext(name=g.name, content=g.content, description=g.description)
                for g in guides
            ],
            additional_context="\n\n".join(sections) or None,
            vertical=vertical,
        )

        if template is not None:
            self._touch([template])
        self._touch(guides)
        self._touch(characters)
        self._touch(images)
        await self._flush("record context usage")

        snapshot = {
            "styleGuideIds": [str(g.id) for g in guides],
            "templateId": str(template.id) if template is not None else None,
            "characterIds": [str(c.id) for c in characters],
            "referenceImageIds": [str(i.id) for i in images],
            "vertical": vertical,
            "hasPreviousContent": bool(selection.previous_content),
            "hasAdditionalContext": bool(selection.additional_context),
        }
        return ResolvedContext(context=context, snapshot=snapshot)
