"""
服务层包
"""
from .dto import (
    AuthUser,
    ReportCatalogItem,
    ReportCategory,
    ReportConfig,
    ReportFilterConfig,
    PiiColumnRule,
    ReportRunResult,
    UserSettings,
)
from .cache_service import CacheService, get_cache_service
from .database_connector import WarehouseConnector, QueryResult, get_warehouse_connector
from .anonymize_service import AnonymizeService
from .auth_service import (
    AuthService,
    AuthError,
    AuthenticationError,
    AuthorizationError,
    get_auth_service,
)
from .catalog_service import CatalogService, get_catalog_service
from .schema_catalog import SchemaCatalogService
from .secure_report import SecureReportService, get_secure_report_service
from .user_settings_service import UserSettingsService, get_user_settings_service
from .filter_options_service import FilterOptionsService, get_filter_options_service

__all__ = [
    "AuthUser",
    "ReportCatalogItem",
    "ReportCategory",
    "ReportConfig",
    "ReportFilterConfig",
    "PiiColumnRule",
    "ReportRunResult",
    "UserSettings",
    "CacheService",
    "get_cache_service",
    "WarehouseConnector",
    "QueryResult",
    "get_warehouse_connector",
    "AnonymizeService",
    "AuthService",
    "AuthError",
    "AuthenticationError",
    "AuthorizationError",
    "get_auth_service",
    "CatalogService",
    "get_catalog_service",
    "SchemaCatalogService",
    "SecureReportService",
    "get_secure_report_service",
    "UserSettingsService",
    "get_user_settings_service",
    "FilterOptionsService",
    "get_filter_options_service",
]
