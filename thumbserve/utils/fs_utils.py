"""通用文件系统工具方法。"""

import os
import uuid
from pathlib import Path

# 原子写入时使用的临时文件后缀，缓存启动扫描时会清理残留
TMP_SUFFIX = ".tmp"


def format_file_size(size_bytes: int) -> str:
    """将字节数格式化为 MB 文本。"""
    size_mb = size_bytes / (1024 * 1024)
    return f"{size_mb:.2f} MB"


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """先写临时文件再重命名，读者永远看不到写了一半的文件。"""
    tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}{TMP_SUFFIX}")
    try:
        tmp_path.write_bytes(data)
        os.replace(tmp_path, path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise
