"""
报表服务工具函数
"""
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..utils.datetime_helper import to_iso_value


def parse_bool(value: Optional[str]) -> bool:
    """查询参数布尔值：只有 "1" 和 "true" 为真"""
    return str(value or "").strip().lower() in ("1", "true")


def to_json_value(value: Any) -> Any:
    """
    将数据库返回的值转换为可JSON序列化的值

    Decimal → float，date/datetime → ISO字符串，其余原样返回
    """
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, date):
        return to_iso_value(value)
    return value


def shape_rows(
    rows: List[Dict[str, Any]],
    output_shape: Sequence[Tuple[str, str]]
) -> List[Dict[str, Any]]:
    """
    按编译时确定的输出结构整理结果行

    只保留输出结构中的key，并按输出顺序排列；缺失的key填None。

    Args:
        rows: 原始结果行
        output_shape: (output_key, data_type) 列表

    Returns:
        整理后的新行列表
    """
    keys = [key for key, _ in output_shape]
    return [{key: to_json_value(row.get(key)) for key in keys} for row in rows]
