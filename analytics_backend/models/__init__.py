"""
数据库模型包
"""
from .base import Base, META_SCHEMA, AUTH_SCHEMA
from .report import Report, Filter, ReportFilter
from .dependency import (
    ReportDependency,
    ReportDependencyJoin,
    ReportDependencyField,
    ReportDependencyFilterBinding,
    ReportDependencyGrouping,
    ReportDependencySorting,
)
from .pii_column import PiiColumn
from .user import User
from .user_setting import UserSetting

__all__ = [
    "Base",
    "META_SCHEMA",
    "AUTH_SCHEMA",
    "Report",
    "Filter",
    "ReportFilter",
    "ReportDependency",
    "ReportDependencyJoin",
    "ReportDependencyField",
    "ReportDependencyFilterBinding",
    "ReportDependencyGrouping",
    "ReportDependencySorting",
    "PiiColumn",
    "User",
    "UserSetting",
]
