"""
用户设置模型（auth.user_settings）
"""
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Text

from ..utils.datetime_helper import utc_now
from .base import Base, AUTH_SCHEMA


class UserSetting(Base):
    """用户界面设置表（每个用户一行）"""
    __tablename__ = "user_settings"
    __table_args__ = {"schema": AUTH_SCHEMA}

    sis_user_id = Column(
        Text,
        ForeignKey(f"{AUTH_SCHEMA}.user.sis_user_id", ondelete="CASCADE"),
        primary_key=True,
    )
    dark_mode = Column(Boolean, nullable=False, default=False)
    anonymize = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    def __repr__(self):
        return (
            f"<UserSetting(sis_user_id={self.sis_user_id}, "
            f"dark_mode={self.dark_mode}, anonymize={self.anonymize})>"
        )
