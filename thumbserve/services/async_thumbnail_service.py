"""异步缩略图服务：缓存查询、并发请求去重，解码/缩放放到线程池执行。"""

from __future__ import annotations

import asyncio
import functools
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional

from loguru import logger

from thumbserve.config import settings
from thumbserve.core.errors import CacheIOError, InvalidThumbnailSize, ThumbnailError
from thumbserve.core.fingerprint import (
    Fingerprint,
    Fingerprinter,
    SourceIdentity,
    ThumbnailKey,
)
from thumbserve.core.image_formats import OutputFormat
from thumbserve.core.resize import render_thumbnail
from thumbserve.services.thumbnail_cache import CacheStats, DiskThumbnailCache

# (源文件字节, 目标尺寸) -> 缩略图字节
Pipeline = Callable[[bytes, int], bytes]


@dataclass(frozen=True)
class Thumbnail:
    """一次请求的结果。"""

    key: ThumbnailKey
    data: bytes
    mime_type: str
    from_cache: bool = False

    @property
    def fingerprint(self) -> Fingerprint:
        return self.key.fingerprint

    @property
    def etag(self) -> str:
        return self.key.storage_name


@dataclass(frozen=True)
class ServiceStats:
    requests: int
    cache_hits: int
    generations: int
    failures: int
    in_flight: int
    waiting: int
    cache: CacheStats


class _InFlight:
    """正在生成的缩略图：生成任务 + 已登记的等待者数量。"""

    __slots__ = ("task", "waiters")

    def __init__(self, task: "asyncio.Task[bytes]"):
        self.task = task
        self.waiters = 0


class AsyncThumbnailService:
    """异步缩略图服务

    同一个缓存键同时只会有一次解码+缩放；后到的请求等待第一次生成的结果
    （成功或失败）。生成任务独立于请求运行，调用方超时或取消不会中断生成。
    失败结果不缓存，之后的请求会重新生成。

    服务绑定在创建生成任务的事件循环上，飞行表的检查与登记之间没有 await，
    由事件循环保证原子性。
    """

    def __init__(
        self,
        cache: DiskThumbnailCache,
        fingerprinter: Optional[Fingerprinter] = None,
        sizes: Iterable[int] = settings.THUMBNAIL_SIZES,
        max_workers: int = settings.THUMBNAIL_WORKER_THREADS,
        output_format: OutputFormat | str = settings.THUMBNAIL_OUTPUT_FORMAT,
        quality: int = settings.THUMBNAIL_JPEG_QUALITY,
        max_pixels: int = settings.THUMBNAIL_MAX_PIXELS,
        pipeline: Optional[Pipeline] = None,
    ):
        """初始化异步缩略图服务

        Args:
            cache: 磁盘缓存
            fingerprinter: 指纹计算器，None 表示按配置创建
            sizes: 支持的缩略图尺寸
            max_workers: 解码/缩放线程池大小（建议 2-8）
            output_format: 输出格式
            quality: 编码质量
            max_pixels: 解码像素上限
            pipeline: 自定义生成流水线，None 表示使用 render_thumbnail
        """
        self.cache = cache
        self.fingerprinter = fingerprinter or Fingerprinter(settings.FINGERPRINT_MODE)
        self.sizes = frozenset(sizes)
        if isinstance(output_format, str):
            output_format = OutputFormat.from_name(output_format)
        self.output_format = output_format
        self.executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="thumbnail-worker"
        )
        self._pipeline: Pipeline = pipeline or functools.partial(
            render_thumbnail,
            fmt=output_format,
            quality=quality,
            max_pixels=max_pixels,
        )
        self._in_flight: Dict[ThumbnailKey, _InFlight] = {}

        self._requests = 0
        self._cache_hits = 0
        self._generations = 0
        self._failures = 0

        logger.info(
            "AsyncThumbnailService 初始化, 线程池大小: {}, 尺寸: {}, 格式: {}",
            max_workers,
            sorted(self.sizes),
            output_format.pillow_name,
        )

    def _validate_size(self, size: int) -> int:
        if size not in self.sizes:
            raise InvalidThumbnailSize(
                f"unsupported thumbnail size {size}, expected one of {sorted(self.sizes)}"
            )
        return int(size)

    async def fingerprint(self, source: SourceIdentity) -> Fingerprint:
        """计算源文件指纹，可作为缩略图 URL 中的缓存失效参数。"""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.fingerprinter.fingerprint, source)

    async def get_or_generate(
        self,
        source: SourceIdentity,
        size: int,
        timeout: Optional[float] = None,
    ) -> Thumbnail:
        """获取缩略图，缓存未命中时生成。

        Args:
            source: 源文件
            size: 缩略图尺寸（长边像素）
            timeout: 本次调用的等待超时（秒），None 表示一直等待；
                超时只停止等待，生成会继续完成并写入缓存

        Returns:
            Thumbnail: 缩略图字节及 MIME 类型

        Raises:
            InvalidThumbnailSize: 尺寸不受支持
            ThumbnailError: 指纹计算或生成失败
            asyncio.TimeoutError: 等待超时
        """
        size = self._validate_size(size)
        self._requests += 1

        key = ThumbnailKey(await self.fingerprint(source), size)

        loop = asyncio.get_running_loop()
        cached = await loop.run_in_executor(None, self.cache.lookup, key)
        if cached is not None:
            self._cache_hits += 1
            data, mime_type = cached
            logger.debug("缓存命中: {} ({})", source.path.name, key)
            return Thumbnail(key=key, data=data, mime_type=mime_type, from_cache=True)

        marker = self._in_flight.get(key)
        if marker is None:
            logger.debug("缓存未命中, 开始生成: {} ({})", source.path.name, key)
            marker = _InFlight(loop.create_task(self._generate(key, source)))
            self._in_flight[key] = marker
            marker.task.add_done_callback(
                functools.partial(self._on_generation_done, key, marker)
            )
        else:
            logger.debug("等待进行中的生成: {} ({})", source.path.name, key)

        marker.waiters += 1
        try:
            data = await asyncio.wait_for(asyncio.shield(marker.task), timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "等待缩略图超时 ({}s), 生成继续在后台进行: {}", timeout, source.path
            )
            raise
        finally:
            marker.waiters -= 1
            self._retire(key, marker)

        return Thumbnail(key=key, data=data, mime_type=self.output_format.mime_type)

    async def _generate(self, key: ThumbnailKey, source: SourceIdentity) -> bytes:
        """生成缩略图并写入缓存（以独立任务运行）。"""
        loop = asyncio.get_running_loop()
        self._generations += 1
        start_time = time.perf_counter()

        try:
            data = await loop.run_in_executor(
                self.executor, self._render, source, key.size
            )
        except ThumbnailError as exc:
            self._failures += 1
            logger.warning("缩略图生成失败: {}, 错误: {}", source.path, exc)
            raise
        except Exception:
            self._failures += 1
            logger.exception("缩略图生成异常: {}", source.path)
            raise

        try:
            await loop.run_in_executor(
                None, self.cache.put, key, data, self.output_format.mime_type
            )
        except CacheIOError as exc:
            logger.warning("写入缓存失败, 仍返回生成结果: {}, 错误: {}", key, exc)

        elapsed = (time.perf_counter() - start_time) * 1000
        logger.info(
            "缩略图生成成功: {} ({}), 大小={}B, 耗时: {:.2f}ms",
            source.path.name,
            key,
            len(data),
            elapsed,
        )
        return data

    def _render(self, source: SourceIdentity, size: int) -> bytes:
        """读取源文件并执行生成流水线（在工作线程中执行）。"""
        return self._pipeline(source.read_bytes(), size)

    def _on_generation_done(
        self, key: ThumbnailKey, marker: _InFlight, task: "asyncio.Task[bytes]"
    ) -> None:
        # 所有等待者都已放弃时，由这里取走异常，避免 "exception was never retrieved"
        if not task.cancelled():
            task.exception()
        self._retire(key, marker)

    def _retire(self, key: ThumbnailKey, marker: _InFlight) -> None:
        """生成结束且所有等待者都已拿到结果后，移除飞行标记。"""
        if marker.waiters == 0 and marker.task.done():
            if self._in_flight.get(key) is marker:
                del self._in_flight[key]

    def stats(self) -> ServiceStats:
        return ServiceStats(
            requests=self._requests,
            cache_hits=self._cache_hits,
            generations=self._generations,
            failures=self._failures,
            in_flight=len(self._in_flight),
            waiting=sum(m.waiters for m in self._in_flight.values()),
            cache=self.cache.stats(),
        )

    def shutdown(self, wait: bool = True) -> None:
        """关闭线程池

        Args:
            wait: 是否等待所有任务完成
        """
        logger.info("关闭 AsyncThumbnailService, wait={}", wait)
        self.executor.shutdown(wait=wait)
