"""
API Routes
"""

from fastapi import APIRouter

from .generation import router as generation_router
from .providers import router as providers_router
from .tree import router as tree_router
from .analytics import router as analytics_router
from .context import router as context_router

api_router = APIRouter()

api_router.include_router(generation_router, prefix="/generate", tags=["Generation"])
api_router.include_router(providers_router, prefix="/providers", tags=["Providers"])
api_router.include_router(tree_router, prefix="/tree", tags=["Generation Tree"])
api_router.include_router(analytics_router, prefix="/analytics", tags=["Usage & Analytics"])
api_router.include_router(context_router, prefix="/context", tags=["Reference Data"])
