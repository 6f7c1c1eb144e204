from .admin import router as admin_router
from .submissions import router as submissions_router
from .tools import router as tools_router

__all__ = ["admin_router", "submissions_router", "tools_router"]
