"""
报表目录服务
启用报表的列表、分类和单个报表的筛选器配置
"""
import re
from typing import List, Optional

from sqlalchemy import func, select

from ..database import Database, get_database
from ..models.report import Report, ReportFilter
from ..utils.logger import get_logger
from .dto import ReportCatalogItem, ReportCategory, ReportConfig, ReportFilterConfig
from .query_builder.graph_loader import normalize_route

logger = get_logger(__name__)


def normalize_category(category: Optional[str]) -> str:
    """去除空白并转为小写"""
    return str(category or "").strip().lower()


def to_category_label(category: Optional[str]) -> str:
    """
    分类key → 显示名称

    Examples:
        >>> to_category_label("student_outcomes")
        'Student Outcomes'
        >>> to_category_label("")
        'Other'
    """
    cleaned = re.sub(r"[_-]+", " ", normalize_category(category)).strip()
    if not cleaned:
        return "Other"
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), cleaned)


class CatalogService:
    """报表目录服务"""

    def __init__(self, database: Database):
        """
        初始化报表目录服务

        Args:
            database: 元数据库实例
        """
        self.database = database

    def get_active_reports(self) -> List[ReportCatalogItem]:
        """
        启用的报表列表（按分类、标题排序，忽略大小写）

        Returns:
            ReportCatalogItem 列表；路由为空的报表被丢弃
        """
        with self.database.get_session() as session:
            rows = session.execute(
                select(Report)
                .where(Report.is_active.is_(True))
                .order_by(func.lower(Report.category), func.lower(Report.title))
            ).scalars().all()

            items = []
            for row in rows:
                route = normalize_route(row.route)
                if not route:
                    continue
                items.append(
                    ReportCatalogItem(
                        id=str(row.id),
                        title=str(row.title or route),
                        category=normalize_category(row.category),
                        route=route,
                        description=row.description,
                        href=f"/reports/{route}",
                    )
                )
        return items

    def get_active_categories(self) -> List[ReportCategory]:
        """按分类分组的启用报表（保持报表列表的顺序）"""
        grouped = {}
        for report in self.get_active_reports():
            key = report.category or "other"
            category = grouped.get(key)
            if category is None:
                category = ReportCategory(
                    category_key=key,
                    category_label=to_category_label(key),
                )
                grouped[key] = category
            category.reports.append(report)
        return list(grouped.values())

    def get_report_config(self, route: str) -> Optional[ReportConfig]:
        """
        根据路由获取报表配置及其筛选器声明

        Args:
            route: 报表路由（首尾斜杠和空白会被忽略）

        Returns:
            ReportConfig；路由为空或报表不存在时返回None
        """
        normalized = normalize_route(route)
        if not normalized:
            return None

        with self.database.get_session() as session:
            reports = session.execute(
                select(Report).where(Report.is_active.is_(True)).order_by(Report.route)
            ).scalars().all()
            report = next((r for r in reports if normalize_route(r.route) == normalized), None)
            if report is None:
                return None

            declarations = session.execute(
                select(ReportFilter)
                .where(ReportFilter.report_id == report.id)
                .order_by(ReportFilter.filter_code)
            ).scalars().all()

            filters = []
            for declaration in declarations:
                catalog_entry = declaration.filter
                filters.append(
                    ReportFilterConfig(
                        filter_code=declaration.filter_code,
                        type=declaration.type or (catalog_entry.type if catalog_entry else None) or "select",
                        default_value=declaration.default_value,
                        label=(catalog_entry.label if catalog_entry else None) or declaration.filter_code,
                        description=catalog_entry.description if catalog_entry else None,
                        table=catalog_entry.table if catalog_entry else None,
                        column=catalog_entry.column if catalog_entry else None,
                    )
                )

            config = ReportConfig(
                id=str(report.id),
                title=str(report.title or normalized),
                category=str(report.category or ""),
                route=normalize_route(report.route),
                description=report.description,
                filters=filters,
            )

        logger.debug(f"报表配置: route={normalized}, filters={len(config.filters)}")
        return config


# 全局报表目录服务实例
_catalog_service = None


def get_catalog_service() -> CatalogService:
    """获取全局报表目录服务实例"""
    global _catalog_service
    if _catalog_service is None:
        _catalog_service = CatalogService(get_database())
    return _catalog_service
