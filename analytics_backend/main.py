"""
院校报表平台 - 后端主入口
"""
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv
import os

from analytics_backend.database import init_database
from analytics_backend.utils.logger import setup_logger
from analytics_backend.middleware import IdentityMiddleware
from analytics_backend.routes import (
    reports_router,
    lineage_router,
    users_router,
    cache_router,
    settings_router,
    filters_router,
)
from analytics_backend.services.database_connector import close_warehouse_connector
from analytics_backend.services.dto import AuthUser
from analytics_backend.utils.request_helpers import require_admin

# 加载环境变量
load_dotenv()

# 初始化日志
logger = setup_logger()

DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://localhost:5173"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 在多进程模式下，每个worker都会执行此代码
    worker_id = os.getpid()
    logger.info(f"Worker {worker_id} 正在启动...")

    try:
        init_database()
        logger.info(f"Worker {worker_id} 元数据库初始化成功")
    except Exception as e:
        logger.error(f"Worker {worker_id} 元数据库初始化失败: {e}", exc_info=True)
        raise

    logger.info(f"Worker {worker_id} 启动完成")

    yield

    logger.info(f"Worker {worker_id} 正在关闭...")
    close_warehouse_connector()


app = FastAPI(
    title="院校报表平台 API",
    description="元数据驱动的报表查询编译与安全执行",
    version="1.0.0",
    lifespan=lifespan
)

# 注册路由
app.include_router(users_router)
app.include_router(reports_router)
app.include_router(lineage_router)
app.include_router(cache_router)
app.include_router(settings_router)
app.include_router(filters_router)

# === MIDDLEWARE REGISTRATION ===

# Identity middleware (X-Email from the SSO gateway)
app.add_middleware(IdentityMiddleware)
logger.info("✓ Identity middleware registered")

# CORS配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        origin.strip()
        for origin in os.getenv("CORS_ORIGINS", DEFAULT_CORS_ORIGINS).split(",")
        if origin.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def root():
    return {"message": "院校报表平台 API", "status": "running"}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


@app.get("/api/system/db-pool-status")
async def get_db_pool_status(admin: AuthUser = Depends(require_admin)):
    """获取元数据库和数据仓库的连接池状态"""
    from analytics_backend.services.database_connector import get_warehouse_connector
    from analytics_backend.utils.db_monitor import get_pool_status
    return get_pool_status(get_warehouse_connector())


if __name__ == "__main__":
    import uvicorn
    host = os.getenv("BACKEND_HOST", "0.0.0.0")
    port = int(os.getenv("BACKEND_PORT", 8000))
    workers = int(os.getenv("BACKEND_WORKERS", 1))
    log_level = os.getenv("LOG_LEVEL", "info").lower()

    logger.info(f"启动服务器: {host}:{port}, workers={workers}, log_level={log_level}")

    # 使用 workers 或 reload 时都必须传递导入字符串
    if workers > 1:
        uvicorn.run(
            "analytics_backend.main:app",
            host=host,
            port=port,
            workers=workers,
            log_level=log_level,
            access_log=log_level == "debug"
        )
    else:
        uvicorn.run(
            "analytics_backend.main:app",
            host=host,
            port=port,
            log_level=log_level,
            access_log=log_level == "debug",
            reload=os.getenv("APP_ENV", "development") != "production"
        )
