"""
报表目录和报表运行相关API路由
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from ..services.catalog_service import CatalogService, get_catalog_service
from ..services.dto import (
    AuthUser,
    ColumnShape,
    ReportCatalogItem,
    ReportCategory,
    ReportConfig,
    ReportRunMeta,
)
from ..services.query_builder.errors import (
    AccessScopeMismatchError,
    GraphIntegrityError,
    ReportQueryError,
    ValidationIssue,
)
from ..services.report_utils import parse_bool
from ..services.secure_report import SecureReportService, get_secure_report_service
from ..utils.logger import get_logger
from ..utils.request_helpers import get_current_user, require_admin

logger = get_logger(__name__)
router = APIRouter(prefix="/api/reports", tags=["reports"])

# 不作为筛选值传给编译器的查询参数
RESERVED_QUERY_PARAMS = ("anonymize",)


# ============ Request/Response Models ============

class RunReportResponse(BaseModel):
    """报表运行响应"""
    ok: bool = True
    count: int
    data: List[Dict[str, Any]]
    columns: List[ColumnShape]
    meta: ReportRunMeta


class CompileRequest(BaseModel):
    """编译预览请求"""
    params: Dict[str, Any] = Field(default_factory=dict, description="筛选值（filter_code → 值）")
    strict_filters: bool = Field(default=True, description="未知筛选参数是否报错")


class CompileResponse(BaseModel):
    """编译预览响应"""
    report_id: str
    content_version: str
    text: str
    params: List[Any]
    placeholder_count: int
    output_shape: List[ColumnShape]
    ignored_filters: List[str]


class ValidateResponse(BaseModel):
    """依赖图校验响应"""
    report_id: str
    content_version: Optional[str] = None
    ok: bool
    existence_checked: bool
    errors: List[ValidationIssue]
    warnings: List[ValidationIssue]


def raise_report_error(e: ReportQueryError, action: str):
    """
    将报表查询错误转换为HTTPException

    依赖图损坏和访问范围不一致只返回通用信息，细节只写日志。
    """
    if isinstance(e, AccessScopeMismatchError):
        logger.error(f"{action}: 访问范围校验失败")
    elif isinstance(e, GraphIntegrityError):
        logger.error(f"{action}: 依赖图损坏: {str(e)}")
    else:
        logger.warning(f"{action}: {str(e)}")
    raise HTTPException(status_code=e.http_status, detail=e.to_payload())


def collect_filter_values(request: Request) -> Dict[str, Any]:
    """
    从查询参数收集筛选值

    同一参数出现多次时保留为列表，由编译器按逗号合并。
    """
    values: Dict[str, Any] = {}
    for key in request.query_params.keys():
        if key in RESERVED_QUERY_PARAMS or key in values:
            continue
        items = request.query_params.getlist(key)
        values[key] = items if len(items) > 1 else items[0]
    return values


# ============ API Endpoints ============

@router.get("", response_model=List[ReportCatalogItem], status_code=status.HTTP_200_OK)
async def list_reports(
    user: AuthUser = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service),
):
    """
    获取启用的报表列表
    """
    try:
        return catalog.get_active_reports()

    except Exception as e:
        logger.error(f"获取报表列表失败: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "获取报表列表失败"}
        )


@router.get("/categories", response_model=List[ReportCategory], status_code=status.HTTP_200_OK)
async def list_report_categories(
    user: AuthUser = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service),
):
    """
    获取按分类分组的报表
    """
    try:
        return catalog.get_active_categories()

    except Exception as e:
        logger.error(f"获取报表分类失败: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "获取报表分类失败"}
        )


@router.get("/config", response_model=ReportConfig, status_code=status.HTTP_200_OK)
async def get_report_config(
    route: Optional[str] = Query(None, description="报表路由"),
    user: AuthUser = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service),
):
    """
    获取报表配置及其筛选器声明
    """
    if not (route or "").strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Missing route"}
        )

    try:
        config = catalog.get_report_config(route)
        if config is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"error": "Report not found"}
            )
        return config

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"获取报表配置失败: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "获取报表配置失败"}
        )


@router.get("/run/{route:path}", response_model=RunReportResponse, status_code=status.HTTP_200_OK)
async def run_report(
    route: str,
    request: Request,
    user: AuthUser = Depends(get_current_user),
    service: SecureReportService = Depends(get_secure_report_service),
):
    """
    运行报表

    查询参数即筛选值（filter_code=值），另有 anonymize=1|true 开启PII脱敏。
    查询在调用方的访问范围内执行。
    """
    try:
        param_values = collect_filter_values(request)
        anonymize = parse_bool(request.query_params.get("anonymize"))
        logger.info(
            f"收到报表运行请求: route={route}, user={user.sis_user_id}, "
            f"filters={sorted(param_values)}, anonymize={anonymize}"
        )

        result = service.run_report(route, param_values, user, anonymize=anonymize)

        return RunReportResponse(
            count=result.count,
            data=result.data,
            columns=result.columns,
            meta=result.meta,
        )

    except HTTPException:
        raise
    except ReportQueryError as e:
        raise_report_error(e, f"运行报表失败 route={route}")
    except Exception as e:
        logger.error(f"运行报表失败: route={route}, error={str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "运行报表失败"}
        )


@router.get("/{report_id}/validate", response_model=ValidateResponse, status_code=status.HTTP_200_OK)
async def validate_report(
    report_id: str,
    admin: AuthUser = Depends(require_admin),
    service: SecureReportService = Depends(get_secure_report_service),
):
    """
    校验报表的依赖图（管理员）

    校验问题不作为错误返回，而是列在响应中。
    """
    try:
        result = service.validate_report(report_id)
        return ValidateResponse(
            report_id=result.report_id,
            content_version=result.content_version,
            ok=result.ok,
            existence_checked=result.existence_checked,
            errors=result.errors,
            warnings=result.warnings,
        )

    except HTTPException:
        raise
    except ReportQueryError as e:
        raise_report_error(e, f"校验报表失败 report_id={report_id}")
    except Exception as e:
        logger.error(f"校验报表失败: report_id={report_id}, error={str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "校验报表失败"}
        )


@router.post("/{report_id}/compile", response_model=CompileResponse, status_code=status.HTTP_200_OK)
async def compile_report(
    report_id: str,
    body: CompileRequest,
    admin: AuthUser = Depends(require_admin),
    service: SecureReportService = Depends(get_secure_report_service),
):
    """
    编译预览（管理员）

    返回参数化查询和参数，不执行。
    """
    try:
        compiled = service.compile_report(report_id, body.params, strict_filters=body.strict_filters)
        return CompileResponse(
            report_id=compiled.report_id,
            content_version=compiled.content_version,
            text=compiled.text,
            params=list(compiled.params),
            placeholder_count=compiled.placeholder_count,
            output_shape=[ColumnShape(key=key, data_type=data_type) for key, data_type in compiled.output_shape],
            ignored_filters=list(compiled.ignored_filters),
        )

    except HTTPException:
        raise
    except ReportQueryError as e:
        raise_report_error(e, f"编译报表失败 report_id={report_id}")
    except Exception as e:
        logger.error(f"编译报表失败: report_id={report_id}, error={str(e)}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "编译报表失败"}
        )
