"""
筛选器候选值API路由
"""
from typing import Any, List

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from ..services.dto import AuthUser
from ..services.filter_options_service import FilterOptionsService, get_filter_options_service
from ..services.query_builder.errors import FilterSourceError, ReportQueryError
from ..utils.logger import get_logger
from ..utils.request_helpers import get_current_user
from .reports import raise_report_error

logger = get_logger(__name__)
router = APIRouter(prefix="/api/filters", tags=["filters"])


class FilterOptionsResponse(BaseModel):
    """筛选器候选值响应"""
    ok: bool = True
    filter_code: str
    count: int
    data: List[Any]


@router.get("/{filter_code}/options", response_model=FilterOptionsResponse, status_code=status.HTTP_200_OK)
async def get_filter_options(
    filter_code: str,
    user: AuthUser = Depends(get_current_user),
    service: FilterOptionsService = Depends(get_filter_options_service),
):
    """
    获取筛选器的候选值

    取值来源由筛选器目录的 table/column 决定，查询在调用方的访问范围内执行。
    """
    try:
        values = service.get_options(filter_code, user)
        return FilterOptionsResponse(filter_code=filter_code, count=len(values), data=values)

    except HTTPException:
        raise
    except FilterSourceError as e:
        logger.error(f"获取筛选器候选值失败: {e.detail} (filter_code={filter_code})")
        raise HTTPException(status_code=e.http_status, detail=e.to_payload())
    except ReportQueryError as e:
        raise_report_error(e, f"获取筛选器候选值失败 filter_code={filter_code}")
    except Exception as e:
        logger.error(f"获取筛选器候选值失败: filter_code={filter_code}, error={str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "获取筛选器候选值失败"}
        )
