"""
数据仓库结构目录快照（schema → table → column → type）

只用于校验器的存在性检查和默认排序键。快照是不可变值，
刷新时整体替换，不会原地修改。
"""
import re
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .vocabulary import DataType


class TableInfo(BaseModel):
    """单个表/视图的结构信息"""
    model_config = ConfigDict(frozen=True)

    schema_name: str
    table_name: str
    kind: str = "table"  # table / view / materialized_view
    columns: Dict[str, str] = Field(default_factory=dict)  # 列名 → 声明类型
    primary_key: Tuple[str, ...] = ()

    def has_column(self, column: str) -> bool:
        return column in self.columns


class CatalogSnapshot(BaseModel):
    """结构目录快照"""
    model_config = ConfigDict(frozen=True)

    schemas: Tuple[str, ...] = ()
    tables: Dict[str, TableInfo] = Field(default_factory=dict)  # "schema.table" → TableInfo
    loaded_at: Optional[str] = None

    @classmethod
    def from_tables(cls, tables, schemas=None, loaded_at=None) -> "CatalogSnapshot":
        table_map = {f"{t.schema_name}.{t.table_name}": t for t in tables}
        if schemas is None:
            schemas = tuple(sorted({t.schema_name for t in tables}))
        return cls(schemas=tuple(schemas), tables=table_map, loaded_at=loaded_at)

    def has_schema(self, schema: str) -> bool:
        return schema in self.schemas

    def get_table(self, schema: str, table: str) -> Optional[TableInfo]:
        return self.tables.get(f"{schema}.{table}")


# 底层列类型分类（按类型名称关键字匹配，兼容PostgreSQL/SQLite的类型写法）
_TYPE_CLASS_PATTERNS = [
    ("boolean", re.compile(r"\bbool", re.IGNORECASE)),
    ("temporal", re.compile(r"date|time|interval", re.IGNORECASE)),
    ("numeric", re.compile(r"int|numeric|decimal|real|double|float|serial|money|number", re.IGNORECASE)),
    ("json", re.compile(r"json", re.IGNORECASE)),
    ("text", re.compile(r"char|text|clob|string|uuid|citext|enum", re.IGNORECASE)),
]

# 声明的数据类型可以接受的底层类型分类；text 可以展示任何类型
_COMPATIBLE_CLASSES = {
    DataType.NUMBER: {"numeric"},
    DataType.PERCENT: {"numeric"},
    DataType.DATE: {"temporal"},
    DataType.BOOLEAN: {"boolean"},
    DataType.JSON: {"json", "text"},
}


def classify_column_type(type_name: Optional[str]) -> str:
    """
    将底层列类型归类为 numeric / temporal / boolean / json / text / unknown

    Args:
        type_name: 数据库返回的类型名称，如 "INTEGER", "timestamp with time zone"

    Returns:
        类型分类
    """
    if not type_name:
        return "unknown"
    for type_class, pattern in _TYPE_CLASS_PATTERNS:
        if pattern.search(type_name):
            return type_class
    return "unknown"


def is_type_compatible(data_type: DataType, type_name: Optional[str]) -> bool:
    """
    检查声明的数据类型是否与底层列类型兼容（软检查）

    无法识别的底层类型视为兼容，避免对新类型误报。
    """
    allowed = _COMPATIBLE_CLASSES.get(data_type)
    if allowed is None:
        return True
    type_class = classify_column_type(type_name)
    return type_class == "unknown" or type_class in allowed
