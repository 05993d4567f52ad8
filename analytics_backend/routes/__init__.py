"""
API路由模块
"""
from .reports import router as reports_router
from .lineage import router as lineage_router
from .users import router as users_router
from .cache import router as cache_router
from .settings import router as settings_router
from .filters import router as filters_router

__all__ = [
    "reports_router",
    "lineage_router",
    "users_router",
    "cache_router",
    "settings_router",
    "filters_router",
]
