"""
筛选值转换

筛选参数在线上都是字符串，绑定为占位符之前按 value_transform 转换。
"""
from typing import List, Optional, Union

from .vocabulary import ValueTransform

FilterValue = Union[str, List[str]]


def split_csv(raw: str) -> List[str]:
    """按逗号拆分并去除空白，丢弃空项"""
    return [piece.strip() for piece in raw.split(",") if piece.strip()]


def apply_value_transform(transform: ValueTransform, raw: str) -> FilterValue:
    """
    对单个筛选值执行转换

    Args:
        transform: 转换类型
        raw: 调用方传入的原始字符串

    Returns:
        转换后的值（csv_to_array 返回列表，其余返回字符串）

    Examples:
        >>> apply_value_transform(ValueTransform.CSV_TO_ARRAY, "a, b ,c")
        ['a', 'b', 'c']
        >>> apply_value_transform(ValueTransform.LOWERCASE, "ACME")
        'acme'
    """
    if transform is ValueTransform.CSV_TO_ARRAY:
        return split_csv(raw)
    if transform is ValueTransform.LOWERCASE:
        return raw.lower()
    if transform is ValueTransform.TRIM:
        return raw.strip()
    return raw


def normalize_param_value(value) -> Optional[str]:
    """
    规范化调用方传入的筛选值

    None、空字符串和只包含空白的字符串视为未传入。
    非字符串值（数字、布尔值）转为字符串；列表按逗号拼接，与线上约定一致。
    """
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        value = ",".join(str(v) for v in value if v is not None)
    elif isinstance(value, bool):
        value = "true" if value else "false"
    elif not isinstance(value, str):
        value = str(value)
    if not value.strip():
        return None
    return value
