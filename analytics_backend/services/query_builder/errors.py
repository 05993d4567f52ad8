"""
报表查询编译的错误体系

每个异常携带 http_status 和可以直接返回给调用方的 public_message，
路由层据此转换为 HTTPException。
"""
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel


class ValidationIssue(BaseModel):
    """单条校验问题（定位到具体的别名/表/列）"""
    rule: str
    message: str
    severity: str = "error"  # error / warning
    stage: str = "structural"  # structural / existence
    alias: Optional[str] = None
    table: Optional[str] = None
    column: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.severity == "error"


class ReportQueryError(Exception):
    """报表查询相关错误的基类"""
    http_status = 500
    public_message = "报表查询失败"

    def to_payload(self) -> Dict[str, Any]:
        """返回给调用方的错误内容"""
        return {"error": self.public_message}


class ReportNotFoundError(ReportQueryError):
    """报表不存在或未启用"""
    http_status = 404

    def __init__(self, reference: str):
        self.reference = reference
        self.public_message = f"报表不存在: {reference}"
        super().__init__(self.public_message)


class GraphIntegrityError(ReportQueryError):
    """
    存储的依赖图元数据损坏（没有/重复的base节点、悬空的join别名、没有谓词的join等）

    细节只写日志，调用方只能看到“报表配置错误”。
    """
    http_status = 500
    public_message = "报表配置错误"

    def __init__(self, detail: str, report_id: Optional[str] = None):
        self.detail = detail
        self.report_id = report_id
        super().__init__(f"[{report_id}] {detail}" if report_id else detail)


class ValidationError(ReportQueryError):
    """依赖图校验失败"""
    http_status = 422
    public_message = "报表元数据校验失败"

    def __init__(self, issues: Sequence[ValidationIssue], report_id: Optional[str] = None):
        self.issues: List[ValidationIssue] = list(issues)
        self.report_id = report_id
        summary = "; ".join(f"{i.rule}: {i.message}" for i in self.issues[:5])
        super().__init__(summary or self.public_message)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "error": self.public_message,
            "violations": [
                issue.model_dump(exclude_none=True) for issue in self.issues
            ],
        }


class StructuralViolationError(ValidationError):
    """结构校验失败：标识符不合法、未知运算符、重复输出key等"""
    http_status = 422
    public_message = "报表元数据结构不合法"


class SchemaDriftError(ValidationError):
    """存在性校验失败：引用的表或列已不在数据仓库中"""
    http_status = 409
    public_message = "报表元数据与数据仓库结构不一致"


class GroupingMismatchError(ReportQueryError):
    """聚合字段与未分组的普通字段混用"""
    http_status = 400
    public_message = "聚合字段与未分组字段混用"

    def __init__(self, ungrouped_keys: Sequence[str], report_id: Optional[str] = None):
        self.ungrouped_keys = list(ungrouped_keys)
        self.report_id = report_id
        super().__init__(f"以下输出字段必须出现在分组中: {', '.join(self.ungrouped_keys)}")

    def to_payload(self) -> Dict[str, Any]:
        return {"error": self.public_message, "ungrouped_keys": self.ungrouped_keys}


class AccessScopeMismatchError(ReportQueryError):
    """
    访问范围回读结果与调用方身份不一致

    按安全事件处理：不重试、不降级，在读取任何数据之前中止请求。
    """
    http_status = 500
    public_message = "访问范围校验失败"

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


class UnknownFilterCodeError(ReportQueryError):
    """
    传入的筛选参数没有对应的绑定

    默认被吸收（忽略该参数并记录日志），只有严格模式下才会抛出。
    """
    http_status = 400

    def __init__(self, filter_codes: Sequence[str]):
        self.filter_codes = list(filter_codes)
        self.public_message = f"未知的筛选参数: {', '.join(self.filter_codes)}"
        super().__init__(self.public_message)


class FilterNotFoundError(ReportQueryError):
    """筛选器目录中不存在该筛选器"""
    http_status = 404

    def __init__(self, filter_code: str):
        self.filter_code = filter_code
        self.public_message = f"筛选器不存在: {filter_code}"
        super().__init__(self.public_message)


class FilterSourceError(ReportQueryError):
    """
    筛选器的取值来源（table/column）缺失或不是合法标识符

    细节只写日志，调用方只能看到“筛选器配置错误”。
    """
    http_status = 500
    public_message = "筛选器配置错误"

    def __init__(self, detail: str, filter_code: str):
        self.detail = detail
        self.filter_code = filter_code
        super().__init__(f"[{filter_code}] {detail}")
