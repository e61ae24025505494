"""
Generation Tree Routes
"""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from inteligencia.schemas.tree import (
    ImagePromptEdit,
    ImagePromptResponse,
    ImagePromptsUpdate,
    NodeCreate,
    NodeDetailResponse,
    NodeResponse,
    NodeUpdate,
    TreeResponse,
    VisibilityUpdate,
)
from inteligencia.services import TreeStore
from inteligencia.services.tree_store import UNSET
from inteligencia.utils import get_db

router = APIRouter()


@router.get("/recent", response_model=List[NodeResponse])
async def recent_generations(
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    return await TreeStore(db).recent_generations(limit)


@router.post("/nodes", response_model=NodeResponse, status_code=status.HTTP_201_CREATED)
async def create_node(body: NodeCreate, db: AsyncSession = Depends(get_db)):
    """Create a node by hand; root is resolved from the parent"""
    store = TreeStore(db)
    node = await store.create_node(**body.model_dump())
    await db.commit()
    await db.refresh(node)
    return node


@router.get("/nodes/{node_id}", response_model=NodeDetailResponse)
async def get_node(node_id: UUID, db: AsyncSession = Depends(get_db)):
    """Node with parent, children, alternatives and image prompts"""
    return await TreeStore(db).get_node(node_id)


@router.patch("/nodes/{node_id}", response_model=NodeResponse)
async def update_node(node_id: UUID, body: NodeUpdate, db: AsyncSession = Depends(get_db)):
    changes = body.model_dump(exclude_unset=True)
    node = await TreeStore(db).update_node(
        node_id,
        content=changes.get("content", UNSET),
        structured_content=changes.get("structured_content", UNSET),
        status=changes.get("status", UNSET),
    )
    await db.commit()
    await db.refresh(node)
    return node


@router.delete("/nodes/{node_id}", response_model=NodeResponse)
async def delete_node(node_id: UUID, db: AsyncSession = Depends(get_db)):
    """Soft delete; the row stays addressable"""
    node = await TreeStore(db).soft_delete(node_id)
    await db.commit()
    await db.refresh(node)
    return node


@router.post("/nodes/{node_id}/select", response_model=NodeResponse)
async def select_node(node_id: UUID, db: AsyncSession = Depends(get_db)):
    """Make this node the single selected node of its tree"""
    node = await TreeStore(db).set_selected(node_id)
    await db.commit()
    await db.refresh(node)
    return node


@router.post("/nodes/{node_id}/visibility", response_model=NodeResponse)
async def set_visibility(
    node_id: UUID,
    body: VisibilityUpdate = VisibilityUpdate(),
    db: AsyncSession = Depends(get_db),
):
    node = await TreeStore(db).toggle_visibility(node_id, body.visible)
    await db.commit()
    await db.refresh(node)
    return node


@router.get("/nodes/{node_id}/path", response_model=List[NodeResponse])
async def get_path(node_id: UUID, db: AsyncSession = Depends(get_db)):
    return await TreeStore(db).get_path(node_id)


@router.get("/nodes/{node_id}/image-prompts", response_model=List[ImagePromptResponse])
async def get_image_prompts(node_id: UUID, db: AsyncSession = Depends(get_db)):
    store = TreeStore(db)
    await store.get_node_row(node_id)
    return await store.get_image_prompts(node_id)


@router.put("/nodes/{node_id}/image-prompts", response_model=List[ImagePromptResponse])
async def set_image_prompts(
    node_id: UUID,
    body: ImagePromptsUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Replace the node's image prompt set"""
    store = TreeStore(db)
    await store.set_image_prompts(node_id, [p.model_dump() for p in body.prompts])
    await db.commit()
    return await store.get_image_prompts(node_id)


@router.delete("/nodes/{node_id}/image-prompts")
async def clear_image_prompts(node_id: UUID, db: AsyncSession = Depends(get_db)):
    store = TreeStore(db)
    await store.get_node_row(node_id)
    removed = await store.clear_image_prompts(node_id)
    await db.commit()
    return {"removed": removed}


@router.patch("/image-prompts/{prompt_id}", response_model=ImagePromptResponse)
async def edit_image_prompt(prompt_id: UUID, body: ImagePromptEdit, db: AsyncSession = Depends(get_db)):
    prompt = await TreeStore(db).update_image_prompt(prompt_id, body.edited_text)
    await db.commit()
    await db.refresh(prompt)
    return prompt


@router.get("/{root_id}", response_model=TreeResponse)
async def get_tree(root_id: UUID, db: AsyncSession = Depends(get_db)):
    """Every non-deleted node of a tree, root included"""
    store = TreeStore(db)
    nodes = await store.get_tree(root_id)
    if not nodes:
        await store.get_node_row(root_id)
    selected = next((n.id for n in nodes if n.selected), None)
    return {"root_id": root_id, "nodes": nodes, "selected_node_id": selected}


@router.get("/{root_id}/stats")
async def get_tree_stats(root_id: UUID, db: AsyncSession = Depends(get_db)):
    return await TreeStore(db).tree_stats(root_id)
