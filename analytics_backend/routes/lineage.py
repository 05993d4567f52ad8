"""
血缘查询API路由（管理员）

变更表结构前查看哪些报表读取了该表，以及报表读取了哪些表。
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from ..services.dto import AuthUser, DependencyDetailRow, ReportReference, TableUsageRow
from ..services.query_builder.graph import SourceNode
from ..services.query_builder.lineage import LineageService, get_lineage_service
from ..utils.logger import get_logger
from ..utils.request_helpers import require_admin

logger = get_logger(__name__)
router = APIRouter(prefix="/api/lineage", tags=["lineage"])


class TableLineageResponse(BaseModel):
    """某个表被哪些报表使用"""
    schema_name: str
    table_name: str
    reports: List[ReportReference]
    usage: List[TableUsageRow]


class ReportLineageResponse(BaseModel):
    """某个报表读取了哪些表"""
    report_id: str
    tables: List[SourceNode]
    dependencies: List[DependencyDetailRow]


@router.get("/tables/{schema}/{table}", response_model=TableLineageResponse, status_code=status.HTTP_200_OK)
async def get_table_lineage(
    schema: str,
    table: str,
    admin: AuthUser = Depends(require_admin),
    lineage: LineageService = Depends(get_lineage_service),
):
    """
    获取读取该表的启用报表
    """
    try:
        return TableLineageResponse(
            schema_name=schema,
            table_name=table,
            reports=lineage.reports_using(schema, table),
            usage=lineage.table_usage(schema, table),
        )

    except Exception as e:
        logger.error(f"获取表血缘失败: {schema}.{table}, error={str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "获取表血缘失败"}
        )


@router.get("/reports/{report_id}", response_model=ReportLineageResponse, status_code=status.HTTP_200_OK)
async def get_report_lineage(
    report_id: str,
    admin: AuthUser = Depends(require_admin),
    lineage: LineageService = Depends(get_lineage_service),
):
    """
    获取报表读取的表（base在前）及其连接谓词
    """
    try:
        tables = lineage.tables_used_by(report_id)
        if not tables:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"error": f"报表不存在或没有启用的数据源: {report_id}"}
            )
        return ReportLineageResponse(
            report_id=report_id,
            tables=tables,
            dependencies=lineage.dependency_detail(report_id),
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"获取报表血缘失败: {report_id}, error={str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "获取报表血缘失败"}
        )
