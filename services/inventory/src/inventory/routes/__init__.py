from .categories import router as categories_router
from .frames import router as frames_router
from .merge import router as merge_router
from .uploads import router as uploads_router
from .webhook import router as webhook_router

__all__ = ["categories_router", "frames_router", "merge_router", "uploads_router", "webhook_router"]
