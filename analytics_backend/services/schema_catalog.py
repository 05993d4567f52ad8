"""
结构目录服务
按配置的schema读取数据仓库结构目录快照，并按TTL缓存
"""
import os
from typing import List, Optional, Sequence

from .cache_service import CacheService
from .database_connector import WarehouseConnector
from .query_builder.catalog import CatalogSnapshot


def configured_schemas() -> List[str]:
    """WAREHOUSE_SCHEMAS 环境变量（逗号分隔），默认为 data"""
    raw = os.getenv("WAREHOUSE_SCHEMAS", "data")
    return [schema.strip() for schema in raw.split(",") if schema.strip()]


class SchemaCatalogService:
    """结构目录服务"""

    def __init__(self, connector: WarehouseConnector, cache: CacheService,
                 schemas: Optional[Sequence[str]] = None):
        self.connector = connector
        self.cache = cache
        self.schemas = list(schemas) if schemas is not None else configured_schemas()
        self.ttl = int(os.getenv("CATALOG_CACHE_TTL", 300))

    def _cache_key(self) -> str:
        return "catalog:" + ",".join(sorted(self.schemas))

    def get_snapshot(self) -> CatalogSnapshot:
        """获取结构目录快照（缓存）"""
        return self.cache.get_or_load(
            self._cache_key(),
            lambda: self.connector.get_structural_catalog(self.schemas),
            ttl=self.ttl,
        )
