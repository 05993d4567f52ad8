"""
SQLAlchemy基础配置
"""
from sqlalchemy import BigInteger, Column, DateTime, Integer
from sqlalchemy.orm import declarative_base

from ..utils.datetime_helper import utc_now

Base = declarative_base()

# meta/auth 两个schema在SQLite上通过schema_translate_map映射为默认schema
META_SCHEMA = "meta"
AUTH_SCHEMA = "auth"

# PostgreSQL使用BIGINT IDENTITY，SQLite只有INTEGER PRIMARY KEY才会自增
IdentityKey = BigInteger().with_variant(Integer, "sqlite")


class TimestampMixin:
    """时间戳混入类"""
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)
