"""
数据传输对象 (Data Transfer Objects)
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any


class AuthUser(BaseModel):
    """已认证的调用方"""
    sis_user_id: str
    email: str
    display_name: Optional[str] = None
    is_admin: bool = False


class ReportCatalogItem(BaseModel):
    """报表目录项"""
    id: str
    title: str
    category: str
    route: str
    description: Optional[str] = None
    href: str


class ReportCategory(BaseModel):
    """报表分类"""
    category_key: str
    category_label: str
    reports: List[ReportCatalogItem] = Field(default_factory=list)


class ReportFilterConfig(BaseModel):
    """报表筛选器声明"""
    filter_code: str
    type: str = "select"
    default_value: Optional[str] = None
    label: str
    description: Optional[str] = None
    table: Optional[str] = None
    column: Optional[str] = None


class ReportConfig(BaseModel):
    """报表配置（含筛选器声明）"""
    id: str
    title: str
    category: str
    route: str
    description: Optional[str] = None
    filters: List[ReportFilterConfig] = Field(default_factory=list)


class UserSettings(BaseModel):
    """用户界面设置"""
    dark_mode: bool = False
    anonymize: bool = False


class PiiColumnRule(BaseModel):
    """PII列脱敏规则"""
    column_name: str
    alternate_column: Optional[str] = None
    redacted_value: Optional[str] = None


class ColumnShape(BaseModel):
    """输出列（key + 声明类型）"""
    key: str
    data_type: str


class ReportRunMeta(BaseModel):
    """报表运行的附加信息"""
    report_id: str
    route: Optional[str] = None
    content_version: Optional[str] = None
    anonymized: bool = False
    pii_columns: List[PiiColumnRule] = Field(default_factory=list)
    ignored_filters: List[str] = Field(default_factory=list)


class ReportRunResult(BaseModel):
    """报表运行结果"""
    data: List[Dict[str, Any]] = Field(default_factory=list)
    columns: List[ColumnShape] = Field(default_factory=list)
    meta: ReportRunMeta

    @property
    def count(self) -> int:
        return len(self.data)


class ReportReference(BaseModel):
    """血缘查询返回的报表"""
    id: str
    route: str
    title: str
    category: str


class TableUsageRow(BaseModel):
    """报表-表使用关系（一行对应一个启用的数据源节点）"""
    report_id: str
    route: str
    title: str
    category: str
    source_schema: str
    source_name: str
    source_alias: str
    source_kind: str
    relation_role: str
    join_type: Optional[str] = None
    join_to_alias: Optional[str] = None
    join_priority: int = 100


class DependencyDetailRow(BaseModel):
    """数据源节点及其连接谓词（没有谓词的节点谓词字段为None）"""
    report_id: str
    route: str
    source_alias: str
    source_schema: str
    source_name: str
    relation_role: str
    join_type: Optional[str] = None
    join_to_alias: Optional[str] = None
    join_priority: int = 100
    left_alias: Optional[str] = None
    left_column: Optional[str] = None
    operator: Optional[str] = None
    right_alias: Optional[str] = None
    right_column: Optional[str] = None
    predicate_order: Optional[int] = None
