"""
元数据库初始化和连接管理

元数据库保存报表目录、依赖图、PII策略和用户表（meta / auth 两个schema）。
生产环境为PostgreSQL；本地开发和测试使用SQLite，此时schema通过
schema_translate_map映射为默认schema。
"""
import os
from pathlib import Path
from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker, Session as SQLAlchemySession
from sqlalchemy.pool import QueuePool, StaticPool
from contextlib import contextmanager
from typing import Generator, Optional

from .models.base import Base, META_SCHEMA, AUTH_SCHEMA


def _is_sqlite_memory(db_url: str) -> bool:
    return db_url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in db_url


class Database:
    """元数据库管理类"""

    def __init__(self, db_url: Optional[str] = None):
        """
        初始化数据库连接

        Args:
            db_url: 数据库URL，如果为None则从环境变量METADATA_DB_URL读取
        """
        if db_url is None:
            db_url = os.getenv("METADATA_DB_URL")

        if not db_url:
            # 默认使用项目根目录下的 data/metadata.db
            project_root = Path(__file__).resolve().parent.parent
            db_path = project_root / "data" / "metadata.db"
            os.makedirs(db_path.parent, exist_ok=True)
            db_url = f"sqlite:///{db_path}"

        self.db_url = db_url
        self.is_sqlite = db_url.startswith("sqlite")

        if self.is_sqlite and _is_sqlite_memory(db_url):
            # 内存库必须共享同一个连接，否则每个连接都是一个新库
            pool_config = {
                "poolclass": StaticPool,
                "connect_args": {"check_same_thread": False},
            }
        else:
            pool_config = {
                "poolclass": QueuePool,
                "pool_size": int(os.getenv("METADATA_DB_POOL_SIZE", 10)),
                "max_overflow": 20,
                "pool_timeout": 30,
                "pool_recycle": 3600,  # 1小时后回收连接，避免连接过期
                "pool_pre_ping": True,
            }
            if self.is_sqlite:
                pool_config["connect_args"] = {"check_same_thread": False}

        engine = create_engine(db_url, echo=False, **pool_config)

        if self.is_sqlite:
            # SQLite没有schema概念，且默认不执行外键级联
            event.listen(engine, "connect", _enable_sqlite_foreign_keys)
            engine = engine.execution_options(
                schema_translate_map={META_SCHEMA: None, AUTH_SCHEMA: None}
            )

        self.engine = engine
        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self.engine,
            expire_on_commit=False  # 提交后不过期对象，减少查询
        )

    def create_tables(self):
        """创建所有表（PostgreSQL上先创建 meta / auth schema）"""
        if not self.is_sqlite:
            with self.engine.begin() as connection:
                for schema in (META_SCHEMA, AUTH_SCHEMA):
                    connection.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{schema}"'))
        Base.metadata.create_all(bind=self.engine)

    def drop_tables(self):
        """删除所有表（谨慎使用）"""
        Base.metadata.drop_all(bind=self.engine)

    @contextmanager
    def get_session(self) -> Generator[SQLAlchemySession, None, None]:
        """
        获取数据库会话的上下文管理器

        Yields:
            SQLAlchemy会话对象
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# 全局数据库实例
_db_instance = None


def get_database() -> Database:
    """获取全局数据库实例"""
    global _db_instance
    if _db_instance is None:
        _db_instance = Database()
    return _db_instance


def set_database(database: Optional[Database]):
    """替换全局数据库实例（测试和脚本使用）"""
    global _db_instance
    _db_instance = database


def init_database():
    """初始化数据库（创建所有表）"""
    db = get_database()
    db.create_tables()
