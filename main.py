"""缓存预热入口：为目录下所有图片生成各尺寸缩略图。

用法: python main.py <图片目录>
"""

import asyncio
import sys
from pathlib import Path

from loguru import logger

from thumbserve.app import create_thumbnail_service
from thumbserve.config import settings
from thumbserve.config.logging_config import setup_logging
from thumbserve.core.errors import ThumbnailError
from thumbserve.core.fingerprint import SourceIdentity
from thumbserve.services.async_thumbnail_service import AsyncThumbnailService
from thumbserve.services.image_service import list_thumbnailable_images
from thumbserve.utils.fs_utils import format_file_size


async def warm_folder(service: AsyncThumbnailService, folder: Path) -> int:
    """为目录下的图片生成所有尺寸的缩略图，返回失败数量。"""
    images = list_thumbnailable_images(folder)
    jobs = [
        (image, size)
        for image in images
        for size in sorted(service.sizes)
    ]
    results = await asyncio.gather(
        *(
            service.get_or_generate(
                SourceIdentity.from_path(image),
                size,
                timeout=settings.THUMBNAIL_GENERATION_TIMEOUT,
            )
            for image, size in jobs
        ),
        return_exceptions=True,
    )

    failed = 0
    for (image, size), result in zip(jobs, results):
        if isinstance(result, (ThumbnailError, asyncio.TimeoutError)):
            failed += 1
            logger.warning("预热失败: {} @ {}, 错误: {!r}", image.name, size, result)
        elif isinstance(result, BaseException):
            raise result
    return failed


def main() -> int:
    if len(sys.argv) != 2:
        print(__doc__, file=sys.stderr)
        return 2

    setup_logging()
    folder = Path(sys.argv[1])
    service = create_thumbnail_service()
    try:
        failed = asyncio.run(warm_folder(service, folder))
    finally:
        service.shutdown()

    stats = service.stats()
    logger.info(
        "预热完成: 请求 {}, 命中 {}, 生成 {}, 失败 {}, 缓存 {} 条 ({}/{})",
        stats.requests,
        stats.cache_hits,
        stats.generations,
        failed,
        stats.cache.count,
        format_file_size(stats.cache.used_size),
        format_file_size(stats.cache.max_size),
    )
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
