"""应用启动装配：显式创建缓存与缩略图服务，由调用方持有并注入到请求路径。"""

from pathlib import Path
from typing import Iterable, Optional

from loguru import logger

from thumbserve.config import settings
from thumbserve.core.fingerprint import Fingerprinter, FingerprintMode
from thumbserve.services.async_thumbnail_service import AsyncThumbnailService
from thumbserve.services.thumbnail_cache import DiskThumbnailCache


def create_thumbnail_service(
    cache_dir: Optional[Path] = None,
    max_bytes: int = settings.THUMBNAIL_CACHE_MAX_BYTES,
    fingerprint_mode: FingerprintMode | str = settings.FINGERPRINT_MODE,
    sizes: Iterable[int] = settings.THUMBNAIL_SIZES,
    max_workers: int = settings.THUMBNAIL_WORKER_THREADS,
) -> AsyncThumbnailService:
    """创建进程内共享的缩略图服务。

    Args:
        cache_dir: 缓存目录，None 表示使用配置中的目录
        max_bytes: 缓存字节上限
        fingerprint_mode: 指纹模式
        sizes: 支持的缩略图尺寸
        max_workers: 解码/缩放线程池大小

    Returns:
        AsyncThumbnailService: 缩略图服务

    Raises:
        CacheIOError: 缓存目录不可写（启动期致命错误）
    """
    cache_dir = cache_dir or settings.THUMBNAIL_CACHE_DIR
    logger.info("Initializing thumbnail service, cache: {}", cache_dir)

    cache = DiskThumbnailCache(cache_dir, max_bytes=max_bytes)
    return AsyncThumbnailService(
        cache,
        fingerprinter=Fingerprinter(fingerprint_mode),
        sizes=sizes,
        max_workers=max_workers,
    )
