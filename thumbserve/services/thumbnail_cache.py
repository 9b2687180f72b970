"""缩略图磁盘缓存：按字节预算做 LRU 淘汰的持久化缓存。"""

from __future__ import annotations

import os
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from loguru import logger

from thumbserve.config import settings
from thumbserve.core.errors import CacheIOError
from thumbserve.core.fingerprint import Fingerprint, ThumbnailKey
from thumbserve.core.image_formats import OutputFormat
from thumbserve.utils.fs_utils import TMP_SUFFIX, atomic_write_bytes, format_file_size

# 命中率指数平滑系数
HIT_RATE_SMOOTHING: float = 0.995


@dataclass
class CacheEntry:
    """缓存索引中的一条记录（只保存元数据，字节在磁盘上）。"""

    key: ThumbnailKey
    size_bytes: int
    last_access: float
    mime_type: str
    path: Path


@dataclass(frozen=True)
class CacheStats:
    count: int
    used_size: int
    max_size: int
    hit_rate: float


class DiskThumbnailCache:
    """缩略图 LRU 磁盘缓存。

    内存中的有序字典是缓存内容的唯一依据，按最近使用顺序排列（最早的在前）。
    文件按指纹前两位分桶存放：``<root>/<fp[:2]>/<fp>_<size>.jpg``。
    锁只在更新索引和计算淘汰时持有，文件读写都在锁外进行。
    """

    def __init__(
        self,
        root: Path,
        max_bytes: int = settings.THUMBNAIL_CACHE_MAX_BYTES,
    ):
        """初始化缓存，并从磁盘重建索引。

        Args:
            root: 缓存根目录
            max_bytes: 缓存字节上限

        Raises:
            CacheIOError: 缓存目录不可写
        """
        self.root = Path(root)
        self.max_bytes = max_bytes
        self._index: OrderedDict[ThumbnailKey, CacheEntry] = OrderedDict()
        self._used_bytes = 0
        self._hit_rate = 0.5
        self._lock = threading.Lock()

        self._ensure_writable()
        self._load_index()
        logger.info(
            "DiskThumbnailCache 初始化, 目录: {}, 容量: {}, 已有 {} 条 ({})",
            self.root,
            format_file_size(max_bytes),
            len(self._index),
            format_file_size(self._used_bytes),
        )

    # === 启动 ===

    def _ensure_writable(self) -> None:
        probe = self.root / ".write_probe"
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            probe.write_bytes(b"")
            probe.unlink()
        except OSError as exc:
            raise CacheIOError(f"cache root {self.root} is not writable: {exc}") from exc

    def _load_index(self) -> None:
        """扫描缓存目录重建索引，以文件修改时间作为最近使用时间。"""
        found: List[CacheEntry] = []
        for path in self.root.glob("*/*"):
            if not path.is_file():
                continue
            if path.name.endswith(TMP_SUFFIX):
                # 上次进程退出时残留的半成品
                path.unlink(missing_ok=True)
                continue
            entry = self._entry_from_file(path)
            if entry is not None:
                found.append(entry)

        found.sort(key=lambda e: e.last_access)
        stale: List[Path] = []
        for entry in found:
            # 同一个键可能有不同扩展名的旧文件（输出格式改过），保留较新的
            previous = self._index.pop(entry.key, None)
            if previous is not None:
                self._used_bytes -= previous.size_bytes
                stale.append(previous.path)
            self._index[entry.key] = entry
            self._used_bytes += entry.size_bytes
        if stale:
            logger.info("删除 {} 个重复的缓存文件", len(stale))
            self._remove_files(stale)

        self.evict_until_within_budget()

    @staticmethod
    def _entry_from_file(path: Path) -> Optional[CacheEntry]:
        try:
            fingerprint, size = path.stem.rsplit("_", 1)
            fmt = OutputFormat.from_extension(path.suffix)
            key = ThumbnailKey(Fingerprint(fingerprint), int(size))
            st = path.stat()
        except (ValueError, OSError):
            logger.debug("跳过无法识别的缓存文件: {}", path)
            return None
        return CacheEntry(
            key=key,
            size_bytes=st.st_size,
            last_access=st.st_mtime,
            mime_type=fmt.mime_type,
            path=path,
        )

    def _path_for(self, key: ThumbnailKey, fmt: OutputFormat) -> Path:
        name = key.storage_name
        return self.root / name[:2] / f"{name}{fmt.extension}"

    # === 读写 ===

    def lookup(self, key: ThumbnailKey) -> Optional[tuple[bytes, str]]:
        """查找缓存，命中时返回 (字节, MIME 类型) 并把条目移到最近使用端。

        索引存在但文件缺失或不可读时视为未命中，并清除这条过期索引。
        """
        with self._lock:
            self._hit_rate *= HIT_RATE_SMOOTHING
            entry = self._index.get(key)
            if entry is None:
                return None
            self._index.move_to_end(key)
            entry.last_access = time.time()

        try:
            data = entry.path.read_bytes()
        except OSError as exc:
            logger.warning("缓存文件不可读, 清除索引: {}, 错误: {}", key, exc)
            self._discard(entry)
            return None

        with self._lock:
            self._hit_rate += 1.0 - HIT_RATE_SMOOTHING

        # 更新文件时间，重启后仍能恢复 LRU 顺序
        try:
            os.utime(entry.path)
        except OSError as exc:
            logger.debug("更新缓存文件时间失败: {}, 错误: {}", entry.path, exc)

        return data, entry.mime_type

    def get(self, key: ThumbnailKey) -> Optional[bytes]:
        """从缓存中获取缩略图字节，未命中返回 None。"""
        found = self.lookup(key)
        return found[0] if found is not None else None

    def put(
        self,
        key: ThumbnailKey,
        data: bytes,
        mime_type: str = OutputFormat.JPEG.mime_type,
    ) -> bool:
        """写入缩略图，并淘汰最久未使用的条目直到总大小不超过容量。

        Args:
            key: 缓存键
            data: 缩略图字节
            mime_type: 缩略图 MIME 类型

        Returns:
            bool: 是否写入了缓存（单个缩略图大于整个容量时不缓存）

        Raises:
            CacheIOError: 写入磁盘失败
        """
        size = len(data)
        if size > self.max_bytes:
            logger.debug(
                "缩略图大于缓存容量, 不缓存: {} ({} > {})",
                key,
                format_file_size(size),
                format_file_size(self.max_bytes),
            )
            return False

        path = self._path_for(key, OutputFormat.from_mime_type(mime_type))
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            atomic_write_bytes(path, data)
        except OSError as exc:
            raise CacheIOError(f"cannot write cache file {path}: {exc}") from exc

        entry = CacheEntry(
            key=key,
            size_bytes=size,
            last_access=time.time(),
            mime_type=mime_type,
            path=path,
        )
        with self._lock:
            replaced = self._index.pop(key, None)
            if replaced is not None:
                self._used_bytes -= replaced.size_bytes
            self._index[key] = entry
            self._used_bytes += size
            evicted = self._collect_evictions()

        stale_paths = [e.path for e in evicted]
        if replaced is not None and replaced.path != path:
            stale_paths.append(replaced.path)
        self._remove_files(stale_paths)

        logger.debug(
            "缓存新增: {} (当前: {} 条, {}/{})",
            key,
            len(self._index),
            format_file_size(self._used_bytes),
            format_file_size(self.max_bytes),
        )
        return True

    # === 淘汰 ===

    def _collect_evictions(self) -> List[CacheEntry]:
        """弹出最久未使用的条目直到不超过容量，调用方必须持有锁。"""
        evicted: List[CacheEntry] = []
        while self._used_bytes > self.max_bytes and self._index:
            _, entry = self._index.popitem(last=False)
            self._used_bytes -= entry.size_bytes
            evicted.append(entry)
        if evicted:
            logger.debug(
                "缓存超出容量，淘汰 {} 条最久未使用的条目: {}",
                len(evicted),
                ", ".join(str(e.key) for e in evicted),
            )
        return evicted

    def evict_until_within_budget(self) -> List[ThumbnailKey]:
        """淘汰最久未使用的条目直到不超过容量，返回被淘汰的键。"""
        with self._lock:
            evicted = self._collect_evictions()
        self._remove_files([e.path for e in evicted])
        return [e.key for e in evicted]

    def _discard(self, entry: CacheEntry) -> None:
        with self._lock:
            if self._index.get(entry.key) is entry:
                del self._index[entry.key]
                self._used_bytes -= entry.size_bytes

    @staticmethod
    def _remove_files(paths: List[Path]) -> None:
        for path in paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("删除缓存文件失败: {}, 错误: {}", path, exc)

    def invalidate(self, key: ThumbnailKey) -> bool:
        """删除指定条目，返回条目是否存在。"""
        with self._lock:
            entry = self._index.pop(key, None)
            if entry is None:
                return False
            self._used_bytes -= entry.size_bytes
        self._remove_files([entry.path])
        return True

    def clear(self) -> None:
        """清空缓存。"""
        with self._lock:
            entries = list(self._index.values())
            self._index.clear()
            self._used_bytes = 0
        self._remove_files([e.path for e in entries])
        logger.info("缓存已清空, 清除 {} 条记录", len(entries))

    # === 查询 ===

    def contains(self, key: ThumbnailKey) -> bool:
        """检查索引中是否存在指定键（不改变 LRU 顺序）。"""
        with self._lock:
            return key in self._index

    def keys(self) -> List[ThumbnailKey]:
        """按从最久未使用到最近使用的顺序返回所有键。"""
        with self._lock:
            return list(self._index)

    @property
    def used_bytes(self) -> int:
        with self._lock:
            return self._used_bytes

    def __len__(self) -> int:
        return len(self._index)

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                count=len(self._index),
                used_size=self._used_bytes,
                max_size=self.max_bytes,
                hit_rate=self._hit_rate,
            )
