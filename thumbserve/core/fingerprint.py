"""源文件指纹：为缩略图缓存和 URL 缓存失效提供稳定的标识。"""

from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from loguru import logger

from thumbserve.core.errors import SourceUnreadable

_CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class SourceIdentity:
    """源文件引用。

    ``size`` / ``mtime_ns`` 可由调用方（例如目录列表层）预先提供，
    提供后指纹计算不再访问文件系统。
    """

    path: Path
    size: Optional[int] = None
    mtime_ns: Optional[int] = None

    @classmethod
    def from_path(cls, path: Path | str) -> "SourceIdentity":
        return cls(Path(path))

    def stat(self) -> tuple[int, int]:
        """返回 (size, mtime_ns)，优先使用调用方提供的元数据。"""
        if self.size is not None and self.mtime_ns is not None:
            return self.size, self.mtime_ns
        try:
            st = self.path.stat()
        except OSError as exc:
            raise SourceUnreadable(f"cannot stat {self.path}: {exc}") from exc
        return st.st_size, st.st_mtime_ns

    def read_bytes(self) -> bytes:
        try:
            return self.path.read_bytes()
        except OSError as exc:
            raise SourceUnreadable(f"cannot read {self.path}: {exc}") from exc


@dataclass(frozen=True, order=True)
class Fingerprint:
    """不透明的源文件指纹（16 位大写十六进制）。"""

    value: str

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, order=True)
class ThumbnailKey:
    """缓存键：(指纹, 尺寸)。"""

    fingerprint: Fingerprint
    size: int

    @property
    def storage_name(self) -> str:
        return f"{self.fingerprint}_{self.size}"

    def __str__(self) -> str:
        return self.storage_name


class FingerprintMode(str, Enum):
    METADATA = "metadata"
    CONTENT = "content"


class Fingerprinter:
    """根据源文件元数据或内容计算指纹。

    默认的 METADATA 模式只使用 (绝对路径, 大小, 修改时间)，不读取文件内容；
    同大小、同修改时间的改动理论上会被漏掉。需要精确结果时使用 CONTENT 模式，
    它会完整读取文件并计算 SHA-256。
    """

    def __init__(self, mode: FingerprintMode | str = FingerprintMode.METADATA):
        self.mode = FingerprintMode(mode)
        logger.debug("Fingerprinter 初始化, 模式: {}", self.mode.value)

    def fingerprint(self, source: SourceIdentity) -> Fingerprint:
        """计算源文件指纹。

        Args:
            source: 源文件引用

        Returns:
            Fingerprint: 指纹

        Raises:
            SourceUnreadable: 无法获取元数据或内容
        """
        if self.mode is FingerprintMode.CONTENT:
            return self._content_fingerprint(source)
        return self._metadata_fingerprint(source)

    def _metadata_fingerprint(self, source: SourceIdentity) -> Fingerprint:
        size, mtime_ns = source.stat()
        hasher = hashlib.blake2b(digest_size=8)
        hasher.update(os.fsencode(os.path.abspath(source.path)))
        hasher.update(b"\0")
        hasher.update(f"{size}:{mtime_ns}".encode())
        return Fingerprint(hasher.hexdigest().upper())

    def _content_fingerprint(self, source: SourceIdentity) -> Fingerprint:
        hasher = hashlib.sha256()
        size = 0
        try:
            with open(source.path, "rb") as handle:
                while chunk := handle.read(_CHUNK_SIZE):
                    hasher.update(chunk)
                    size += len(chunk)
        except OSError as exc:
            raise SourceUnreadable(f"cannot read {source.path}: {exc}") from exc
        hasher.update(size.to_bytes(8, "big"))
        return Fingerprint(hasher.hexdigest()[:16].upper())
