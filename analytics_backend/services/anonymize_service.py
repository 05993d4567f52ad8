"""
PII脱敏服务
"""
from typing import List, Dict, Any

from sqlalchemy import select

from ..database import Database
from ..models.pii_column import PiiColumn
from ..utils.logger import get_logger
from .dto import PiiColumnRule

logger = get_logger(__name__)


class AnonymizeService:
    """PII脱敏服务"""

    def __init__(self, database: Database):
        """
        初始化脱敏服务

        Args:
            database: 元数据库实例
        """
        self.database = database

    def get_pii_columns(self) -> List[PiiColumnRule]:
        """
        读取PII列规则

        Returns:
            按列名排序的规则列表（列名为空的规则被丢弃）
        """
        with self.database.get_session() as session:
            rows = session.execute(
                select(PiiColumn).order_by(PiiColumn.column_name)
            ).scalars().all()

            rules = []
            for row in rows:
                column_name = (row.column_name or "").strip()
                if not column_name:
                    continue
                rules.append(
                    PiiColumnRule(
                        column_name=column_name,
                        alternate_column=row.alternate_column,
                        redacted_value=row.redacted_value,
                    )
                )

        logger.debug(f"读取PII列规则: {len(rules)} 条")
        return rules

    def anonymize_rows(
        self,
        rows: List[Dict[str, Any]],
        rules: List[PiiColumnRule],
        enabled: bool
    ) -> List[Dict[str, Any]]:
        """
        对结果行应用PII规则

        对每条规则：列不在结果中时跳过；替代列存在时用替代列的值覆盖，
        否则替换为 redacted_value（未设置时为None）。

        Args:
            rows: 原始数据列表（不会被修改）
            rules: PII列规则
            enabled: 是否启用脱敏

        Returns:
            脱敏后的新数据列表
        """
        if not enabled or not rows or not rules:
            return rows

        masked_rows = []
        for row in rows:
            masked_row = row.copy()
            for rule in rules:
                target = (rule.column_name or "").strip()
                if not target or target not in masked_row:
                    continue

                alternate = (rule.alternate_column or "").strip()
                if alternate and alternate in masked_row:
                    masked_row[target] = masked_row[alternate]
                    continue

                masked_row[target] = rule.redacted_value
            masked_rows.append(masked_row)

        logger.info(f"已脱敏: rows={len(masked_rows)}, rules={len(rules)}")
        return masked_rows
