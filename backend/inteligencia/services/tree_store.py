"""
Generation Tree Store
Branching generation history: alternatives, single selection per tree, soft delete

Nodes live in one flat table. parent_id points backwards to the node a
generation was derived from; root_id is a denormalized pointer to the tree
origin so whole-tree queries are a single indexed lookup. Rows are never
hard-deleted.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import func, or_, select, update, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import NotFoundError, PersistenceError, ValidationError
from ..models import GenerationMode, GenerationNode, ImagePrompt, NodeStatus, NodeType
from .image_prompts import extract_image_prompts

logger = logging.getLogger(__name__)

UNSET = object()


@dataclass
class NodeDetail:
    """A node with the neighbourhood needed for single-node exploration"""
    node: GenerationNode
    parent: Optional[GenerationNode] = None
    children: List[GenerationNode] = field(default_factory=list)
    alternatives: List[GenerationNode] = field(default_factory=list)
    image_prompts: List[ImagePrompt] = field(default_factory=list)


class TreeStore:
    """
    Service for persisting and navigating generation trees.
    Writes flush into the caller's transaction; commit is the caller's job.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _flush(self, action: str) -> None:
        try:
            await self.db.flush()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to {action}: {type(e).__name__}") from e

    # =========================================================================
    # NODES
    # =========================================================================

    async def find_node(self, node_id: UUID) -> Optional[GenerationNode]:
        result = await self.db.execute(
            select(GenerationNode).where(GenerationNode.id == node_id)
        )
        return result.scalar_one_or_none()

    async def get_node_row(self, node_id: UUID) -> GenerationNode:
        node = await self.find_node(node_id)
        if node is None:
            raise NotFoundError(f"Generation node {node_id} not found")
        return node

    async def create_node(
        self,
        type: str,
        mode: str = GenerationMode.DIRECT.value,
        content: Optional[str] = None,
        structured_content: Optional[Dict[str, Any]] = None,
        parent_id: Optional[UUID] = None,
        root_id: Optional[UUID] = None,
        selected: bool = False,
        visible: bool = True,
        vertical: Optional[str] = None,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        prompt: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        tokens_input: int = 0,
        tokens_output: int = 0,
        cost: float = 0.0,
        status: str = NodeStatus.COMPLETED.value,
    ) -> GenerationNode:
        """
        Insert a node.

        When parent_id is set and root_id omitted, root_id is resolved from
        the parent: the parent's root, or the parent itself if it is a root.
        """
        if parent_id is not None:
            parent = await self.find_node(parent_id)
            if parent is None:
                raise NotFoundError(f"Parent node {parent_id} not found")
            resolved_root = parent.tree_root_id
            if root_id is not None and root_id != resolved_root:
                raise ValidationError("root_id does not match the parent's tree")
            root_id = resolved_root
        elif root_id is not None:
            raise ValidationError("root_id requires parent_id")

        node = GenerationNode(
            type=type,
            mode=mode,
            content=content,
            structured_content=structured_content,
            parent_id=parent_id,
            root_id=root_id,
            selected=False,
            visible=visible,
            deleted=False,
            vertical=vertical,
            provider=provider,
            model=model,
            prompt=prompt,
            context=context,
            tokens_input=tokens_input,
            tokens_output=tokens_output,
            cost=cost,
            status=status,
        )
        self.db.add(node)
        await self._flush("create generation node")

        if selected:
            await self.set_selected(node.id, node.tree_root_id)

        if type == NodeType.BLOG.value and content:
            extraction = extract_image_prompts(content)
            if extraction.prompts:
                await self.set_image_prompts(node.id, [{"text": p.text} for p in extraction.prompts])
                logger.debug(f"Extracted {len(extraction.prompts)} image prompt(s) from node {node.id}")

        logger.debug(f"Created {type} node {node.id} (root={node.tree_root_id})")
        return node

    async def get_node(self, node_id: UUID) -> NodeDetail:
        """Node plus parent, children, same-type siblings and image prompts"""
        node = await self.get_node_row(node_id)

        children = await self.db.execute(
            select(GenerationNode)
            .where(GenerationNode.parent_id == node.id)
            .order_by(GenerationNode.created_at)
        )

        parent = None
        alternatives: Sequence[GenerationNode] = []
        if node.parent_id is not None:
            parent = await self.find_node(node.parent_id)
            result = await self.db.execute(
                select(GenerationNode)
                .where(
                    GenerationNode.parent_id == node.parent_id,
                    GenerationNode.type == node.type,
                    GenerationNode.id != node.id,
                )
                .order_by(GenerationNode.created_at)
            )
            alternatives = result.scalars().all()

        return NodeDetail(
            node=node,
            parent=parent,
            children=list(children.scalars().all()),
            alternatives=list(alternatives),
            image_prompts=await self.get_image_prompts(node.id),
        )

    async def get_tree(self, root_id: UUID) -> List[GenerationNode]:
        """Root plus every non-deleted node pointing at it, oldest first"""
        result = await self.db.execute(
            select(GenerationNode)
            .where(
                or_(GenerationNode.root_id == root_id, GenerationNode.id == root_id),
                GenerationNode.deleted.is_(False),
            )
            .order_by(GenerationNode.created_at)
        )
        return list(result.scalars().all())

    async def update_node(
        self,
        node_id: UUID,
        content: Any = UNSET,
        structured_content: Any = UNSET,
        status: Any = UNSET,
    ) -> GenerationNode:
        node = await self.get_node_row(node_id)
        if content is not UNSET:
            node.content = content
        if structured_content is not UNSET:
            node.structured_content = structured_content
        if status is not UNSET:
            node.status = status
        await self._flush("update generation node")
        return node

    async def set_selected(self, node_id: UUID, root_id: Optional[UUID] = None) -> GenerationNode:
        """
        Make node_id the single selected node of its tree.

        The root row is locked first so concurrent selections on the same
        tree serialize. Deselect and select are one UPDATE, so no interleaving
        can leave zero or two selected nodes.
        """
        node = await self.get_node_row(node_id)
        root_id = root_id or node.tree_root_id

        locked = await self.db.execute(
            select(GenerationNode.id).where(GenerationNode.id == root_id).with_for_update()
        )
        if locked.scalar_one_or_none() is None:
            raise NotFoundError(f"Tree root {root_id} not found")
        if node.tree_root_id != root_id:
            raise ValidationError(f"Node {node_id} does not belong to tree {root_id}")
        if node.deleted:
            raise ValidationError("Cannot select a deleted node")

        try:
            await self.db.execute(
                update(GenerationNode)
                .where(or_(GenerationNode.root_id == root_id, GenerationNode.id == root_id))
                .values(selected=(GenerationNode.id == node_id))
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to update selection: {type(e).__name__}") from e

        # Reload the tree rows this session already holds
        refreshed = await self.db.execute(
            select(GenerationNode)
            .where(or_(GenerationNode.root_id == root_id, GenerationNode.id == root_id))
            .execution_options(populate_existing=True)
        )
        refreshed.scalars().all()
        return node

    async def get_selected(self, root_id: UUID) -> Optional[GenerationNode]:
        result = await self.db.execute(
            select(GenerationNode).where(
                or_(GenerationNode.root_id == root_id, GenerationNode.id == root_id),
                GenerationNode.selected.is_(True),
            )
        )
        return result.scalars().first()

    async def soft_delete(self, node_id: UUID) -> GenerationNode:
        """Mark deleted; children keep their pointers and stay addressable"""
        node = await self.get_node_row(node_id)
        node.deleted = True
        await self._flush("delete generation node")
        return node

    async def toggle_visibility(self, node_id: UUID, visible: Optional[bool] = None) -> GenerationNode:
        node = await self.get_node_row(node_id)
        node.visible = (not node.visible) if visible is None else visible
        await self._flush("update visibility")
        return node

    async def get_path(self, node_id: UUID) -> List[GenerationNode]:
        """Ancestry from the tree origin down to node_id"""
        path = []
        seen = set()
        current = await self.get_node_row(node_id)
        while current is not None and current.id not in seen:
            seen.add(current.id)
            path.append(current)
            current = await self.find_node(current.parent_id) if current.parent_id else None
        path.reverse()
        return path

    async def tree_stats(self, root_id: UUID) -> Dict[str, Any]:
        nodes = await self.get_tree(root_id)
        if not nodes:
            raise NotFoundError(f"Tree {root_id} not found")

        by_id = {n.id: n for n in nodes}

        def depth(node: GenerationNode) -> int:
            d = 0
            while node.parent_id in by_id and d < len(by_id):
                node = by_id[node.parent_id]
                d += 1
            return d

        selected = next((n for n in nodes if n.selected), None)
        return {
            "rootId": str(root_id),
            "totalNodes": len(nodes),
            "byType": dict(Counter(n.type for n in nodes)),
            "byProvider": dict(Counter(n.provider for n in nodes if n.provider)),
            "totalCost": round(sum(float(n.cost or 0) for n in nodes), 6),
            "totalTokens": sum(n.tokens_used for n in nodes),
            "maxDepth": max(depth(n) for n in nodes),
            "selectedNodeId": str(selected.id) if selected else None,
        }

    async def recent_generations(self, limit: int = 10) -> List[GenerationNode]:
        result = await self.db.execute(
            select(GenerationNode)
            .where(GenerationNode.deleted.is_(False))
            .order_by(GenerationNode.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def generation_count(self) -> int:
        result = await self.db.execute(
            select(func.count(GenerationNode.id)).where(GenerationNode.deleted.is_(False))
        )
        return result.scalar_one()

    # =========================================================================
    # IMAGE PROMPTS
    # =========================================================================

    async def get_image_prompts(self, node_id: UUID) -> List[ImagePrompt]:
        result = await self.db.execute(
            select(ImagePrompt)
            .where(ImagePrompt.generation_node_id == node_id)
            .order_by(ImagePrompt.position)
        )
        return list(result.scalars().all())

    async def set_image_prompts(self, node_id: UUID, prompts: List[Dict[str, Any]]) -> List[ImagePrompt]:
        """Replace the node's prompt set; positions follow list order"""
        await self.get_node_row(node_id)
        await self.clear_image_prompts(node_id)

        created = []
        for position, item in enumerate(prompts):
            text = item.get("original_text") or item.get("text")
            if not text:
                raise ValidationError(f"Image prompt at position {position} has no text")
            prompt = ImagePrompt(
                generation_node_id=node_id,
                original_text=text,
                final_text=text,
                position=position,
                type=item.get("type") or ("featured" if position == 0 else "inline"),
            )
            self.db.add(prompt)
            created.append(prompt)

        await self._flush("save image prompts")
        return created

    async def update_image_prompt(self, prompt_id: UUID, edited_text: str) -> ImagePrompt:
        result = await self.db.execute(select(ImagePrompt).where(ImagePrompt.id == prompt_id))
        prompt = result.scalar_one_or_none()
        if prompt is None:
            raise NotFoundError(f"Image prompt {prompt_id} not found")
        prompt.edited_text = edited_text
        prompt.final_text = edited_text
        await self._flush("update image prompt")
        return prompt

    async def clear_image_prompts(self, node_id: UUID) -> int:
        try:
            result = await self.db.execute(
                delete(ImagePrompt).where(ImagePrompt.generation_node_id == node_id)
            )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to clear image prompts: {type(e).__name__}") from e
        return result.rowcount
