"""
缓存服务
进程内缓存依赖图快照和结构目录快照，避免每个请求都读取元数据库
"""
import os
import threading
import time
from typing import Any, Callable, Optional, Dict
from collections import OrderedDict
from ..utils.logger import get_logger

logger = get_logger(__name__)


class CacheService:
    """
    简单的内存缓存服务（TTL + LRU策略，线程安全）

    缓存的值必须是不可变对象：读取方拿到的是同一个对象，
    更新时整体替换，不会原地修改。
    """

    def __init__(self, max_size: int = 256, default_ttl: int = 60):
        """
        初始化缓存服务

        Args:
            max_size: 最大缓存条目数
            default_ttl: 默认过期时间（秒）
        """
        self.cache: OrderedDict[str, Dict[str, Any]] = OrderedDict()
        self.max_size = max_size
        self.default_ttl = default_ttl
        self.hits = 0
        self.misses = 0
        self._lock = threading.RLock()

        logger.info(f"缓存服务初始化: max_size={max_size}, default_ttl={default_ttl}s")

    def get(self, key: str) -> Optional[Any]:
        """
        获取缓存值

        Args:
            key: 缓存键

        Returns:
            缓存的值，如果不存在或已过期则返回None
        """
        with self._lock:
            entry = self.cache.get(key)
            if entry is None:
                self.misses += 1
                logger.debug(f"缓存未命中: {key}")
                return None

            # 检查是否过期
            if time.time() > entry['expires_at']:
                del self.cache[key]
                self.misses += 1
                logger.debug(f"缓存已过期: {key}")
                return None

            # 移动到末尾（LRU）
            self.cache.move_to_end(key)
            self.hits += 1
            logger.debug(f"缓存命中: {key}")
            return entry['value']

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """
        设置缓存值

        Args:
            key: 缓存键
            value: 要缓存的值
            ttl: 过期时间（秒），如果为None则使用默认值
        """
        if ttl is None:
            ttl = self.default_ttl

        with self._lock:
            # 如果缓存已满，删除最旧的条目
            if len(self.cache) >= self.max_size and key not in self.cache:
                oldest_key, _ = self.cache.popitem(last=False)
                logger.debug(f"缓存已满，删除最旧条目: {oldest_key}")

            now = time.time()
            self.cache[key] = {
                'value': value,
                'expires_at': now + ttl,
                'created_at': now
            }
            self.cache.move_to_end(key)

        logger.debug(f"缓存已设置: {key}, ttl={ttl}s")

    def get_or_load(self, key: str, loader: Callable[[], Any], ttl: Optional[int] = None) -> Any:
        """
        获取缓存值，未命中时调用 loader 加载并缓存

        loader 在锁外执行；并发未命中时可能加载多次，以最后一次写入为准。
        loader 抛出的异常直接向上传播，不会缓存。

        Args:
            key: 缓存键
            loader: 加载函数
            ttl: 过期时间（秒）

        Returns:
            缓存的值或新加载的值
        """
        value = self.get(key)
        if value is not None:
            return value
        value = loader()
        if value is not None:
            self.set(key, value, ttl)
        return value

    def delete(self, key: str) -> bool:
        """
        删除缓存值

        Args:
            key: 缓存键

        Returns:
            是否成功删除
        """
        with self._lock:
            if key in self.cache:
                del self.cache[key]
                logger.debug(f"缓存已删除: {key}")
                return True
        return False

    def invalidate_prefix(self, prefix: str) -> int:
        """
        删除指定前缀的所有缓存

        Args:
            prefix: 键前缀，如 "graph:"

        Returns:
            删除的条目数
        """
        with self._lock:
            keys = [key for key in self.cache if key.startswith(prefix)]
            for key in keys:
                del self.cache[key]
        if keys:
            logger.info(f"缓存已失效: prefix={prefix}, {len(keys)} 条")
        return len(keys)

    def clear(self) -> None:
        """清空所有缓存"""
        with self._lock:
            count = len(self.cache)
            self.cache.clear()
        logger.info(f"缓存已清空: {count} 条")

    def get_stats(self) -> Dict[str, Any]:
        """
        获取缓存统计信息

        Returns:
            统计信息字典
        """
        with self._lock:
            total_requests = self.hits + self.misses
            hit_rate = (self.hits / total_requests * 100) if total_requests > 0 else 0
            return {
                'size': len(self.cache),
                'max_size': self.max_size,
                'hits': self.hits,
                'misses': self.misses,
                'hit_rate': f"{hit_rate:.2f}%",
                'total_requests': total_requests
            }

    def cleanup_expired(self) -> int:
        """
        清理过期的缓存条目

        Returns:
            清理的条目数
        """
        current_time = time.time()
        with self._lock:
            expired_keys = [
                key for key, entry in self.cache.items()
                if current_time > entry['expires_at']
            ]
            for key in expired_keys:
                del self.cache[key]

        if expired_keys:
            logger.info(f"清理过期缓存: {len(expired_keys)} 条")

        return len(expired_keys)


# 全局缓存服务实例
_cache_service = None


def get_cache_service() -> CacheService:
    """
    获取全局缓存服务实例

    Returns:
        CacheService实例
    """
    global _cache_service

    if _cache_service is None:
        _cache_service = CacheService(
            max_size=int(os.getenv("CACHE_MAX_SIZE", 256)),
            default_ttl=int(os.getenv("GRAPH_CACHE_TTL", 60))
        )

    return _cache_service
