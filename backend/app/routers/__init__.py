"""Share Link Engine - API Routers"""
from .auth import router as auth_router
from .share_links import router as share_links_router
from .public_forms import router as public_forms_router

__all__ = [
    "auth_router",
    "share_links_router",
    "public_forms_router",
]
