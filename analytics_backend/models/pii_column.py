"""
PII列脱敏策略模型
"""
from sqlalchemy import Column, Text
from .base import Base, META_SCHEMA


class PiiColumn(Base):
    """PII列策略表"""
    __tablename__ = "pii_columns"
    __table_args__ = {"schema": META_SCHEMA}

    column_name = Column(Text, primary_key=True)
    alternate_column = Column(Text, nullable=True)  # 脱敏时用该列的值替换
    redacted_value = Column(Text, nullable=True)  # 没有替换列时使用的固定值

    def __repr__(self):
        return f"<PiiColumn(column_name={self.column_name})>"
