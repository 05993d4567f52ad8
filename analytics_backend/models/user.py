"""
用户模型（auth."user"）
"""
from sqlalchemy import Boolean, Column, DateTime, Text
from .base import Base, AUTH_SCHEMA


class User(Base):
    """分析平台用户表"""
    __tablename__ = "user"
    __table_args__ = {"schema": AUTH_SCHEMA}

    sis_user_id = Column(Text, primary_key=True)
    email = Column(Text, nullable=False, unique=True)
    display_name = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_admin = Column(Boolean, nullable=False, default=False)
    last_login_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<User(sis_user_id={self.sis_user_id}, email={self.email})>"
