"""
依赖图的封闭词汇表

所有标识符、运算符、连接类型等只能取自这里定义的固定集合，
新增能力必须先加入词汇表，元数据中的自由文本一律不接受。
取值与meta schema中的CHECK约束逐字一致。
"""
import re
from enum import Enum
from typing import Optional, Type, TypeVar

# 标识符语法：小写字母开头，只包含小写字母、数字和下划线
IDENTIFIER_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")


def is_safe_identifier(value: Optional[str]) -> bool:
    """
    检查标识符是否满足语法要求

    Args:
        value: 别名、schema、表名、列名或输出key

    Returns:
        是否合法
    """
    return isinstance(value, str) and IDENTIFIER_PATTERN.fullmatch(value) is not None


class SourceKind(str, Enum):
    """数据源类型"""
    TABLE = "table"
    VIEW = "view"
    MATERIALIZED_VIEW = "materialized_view"


class RelationRole(str, Enum):
    """数据源角色"""
    BASE = "base"
    JOIN = "join"


class JoinType(str, Enum):
    """连接类型"""
    INNER = "inner"
    LEFT = "left"
    RIGHT = "right"
    FULL = "full"
    CROSS = "cross"

    @property
    def keyword(self) -> str:
        return JOIN_KEYWORDS[self]


JOIN_KEYWORDS = {
    JoinType.INNER: "INNER JOIN",
    JoinType.LEFT: "LEFT JOIN",
    JoinType.RIGHT: "RIGHT JOIN",
    JoinType.FULL: "FULL JOIN",
    JoinType.CROSS: "CROSS JOIN",
}


class PredicateOperator(str, Enum):
    """连接谓词运算符"""
    EQ = "="
    NE = "!="
    GT = ">"
    GE = ">="
    LT = "<"
    LE = "<="


class FilterOperator(str, Enum):
    """筛选器运算符"""
    EQ = "="
    NE = "!="
    GT = ">"
    GE = ">="
    LT = "<"
    LE = "<="
    IN = "in"
    ILIKE = "ilike"

    @property
    def binds_array(self) -> bool:
        return self is FilterOperator.IN


class DataType(str, Enum):
    """输出字段声明的数据类型"""
    TEXT = "text"
    NUMBER = "number"
    PERCENT = "percent"
    DATE = "date"
    BOOLEAN = "boolean"
    JSON = "json"


class ExpressionType(str, Enum):
    """输出字段表达式类型"""
    COLUMN = "column"
    AGGREGATE = "aggregate"


class AggregateFunction(str, Enum):
    """聚合函数"""
    COUNT = "count"
    SUM = "sum"
    AVG = "avg"
    MIN = "min"
    MAX = "max"


class ValueTransform(str, Enum):
    """筛选值转换"""
    IDENTITY = "identity"
    CSV_TO_ARRAY = "csv_to_array"
    LOWERCASE = "lowercase"
    TRIM = "trim"


class SortDirection(str, Enum):
    """排序方向"""
    ASC = "asc"
    DESC = "desc"


E = TypeVar("E", bound=Enum)


def parse_vocabulary(enum_cls: Type[E], raw: Optional[str]) -> Optional[E]:
    """
    将元数据中的原始字符串解析为词汇表成员

    Args:
        enum_cls: 词汇表枚举类
        raw: 原始值

    Returns:
        枚举成员；不在词汇表中时返回None
    """
    if raw is None:
        return None
    try:
        return enum_cls(raw)
    except ValueError:
        return None
