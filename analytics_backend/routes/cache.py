"""
缓存管理API路由
"""
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from ..services.cache_service import CacheService, get_cache_service
from ..services.dto import AuthUser
from ..services.secure_report import SecureReportService, get_secure_report_service
from ..utils.logger import get_logger
from ..utils.request_helpers import require_admin

logger = get_logger(__name__)
router = APIRouter(prefix="/api/cache", tags=["cache"])


class CacheStatsResponse(BaseModel):
    """缓存统计响应"""
    size: int
    max_size: int
    hits: int
    misses: int
    hit_rate: str
    total_requests: int


@router.get("/stats", response_model=CacheStatsResponse, status_code=status.HTTP_200_OK)
async def get_cache_stats(
    admin: AuthUser = Depends(require_admin),
    cache: CacheService = Depends(get_cache_service),
):
    """
    获取缓存统计信息
    """
    try:
        stats = cache.get_stats()
        return CacheStatsResponse(**stats)

    except Exception as e:
        logger.error(f"获取缓存统计失败: {str(e)}", exc_info=True)
        raise


@router.post("/clear", status_code=status.HTTP_204_NO_CONTENT)
async def clear_cache(
    admin: AuthUser = Depends(require_admin),
    cache: CacheService = Depends(get_cache_service),
):
    """
    清空所有缓存（依赖图快照和结构目录）
    """
    try:
        cache.clear()
        logger.info(f"缓存已清空: by {admin.sis_user_id}")
        return None

    except Exception as e:
        logger.error(f"清空缓存失败: {str(e)}", exc_info=True)
        raise


@router.post("/cleanup", status_code=status.HTTP_200_OK)
async def cleanup_expired_cache(
    admin: AuthUser = Depends(require_admin),
    cache: CacheService = Depends(get_cache_service),
):
    """
    清理过期的缓存条目
    """
    try:
        count = cache.cleanup_expired()
        logger.info(f"清理过期缓存: {count} 条")
        return {"cleaned": count}

    except Exception as e:
        logger.error(f"清理过期缓存失败: {str(e)}", exc_info=True)
        raise


@router.post("/graphs/{report_id}/invalidate", status_code=status.HTTP_200_OK)
async def invalidate_report_graph(
    report_id: str,
    admin: AuthUser = Depends(require_admin),
    service: SecureReportService = Depends(get_secure_report_service),
):
    """
    发布新的依赖图后使报表的快照失效
    """
    removed = service.invalidate_report(report_id)
    return {"report_id": report_id, "invalidated": removed}


@router.post("/catalog/invalidate", status_code=status.HTTP_200_OK)
async def invalidate_schema_catalog(
    admin: AuthUser = Depends(require_admin),
    cache: CacheService = Depends(get_cache_service),
):
    """
    数据仓库结构变更后使结构目录快照失效
    """
    count = cache.invalidate_prefix("catalog:")
    logger.info(f"结构目录缓存失效: {count} 条")
    return {"invalidated": count}
