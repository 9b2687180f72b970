"""缩略图子系统的异常类型。

除 ``CacheIOError`` 在缓存读取时被就地恢复（视为未命中）外，
其余异常都会原样传递给 ``get_or_generate`` 的调用方。失败结果不会被缓存。
"""


class ThumbnailError(Exception):
    """缩略图子系统所有异常的基类。"""


class SourceUnreadable(ThumbnailError):
    """源文件元数据或内容无法读取。"""


class UnsupportedFormat(ThumbnailError):
    """文件头签名不属于任何支持的图片格式。"""


class DecodeFailed(ThumbnailError):
    """格式已识别，但解码失败（文件损坏、截断等）。"""


class ImageTooLarge(ThumbnailError):
    """解码后的像素数超过上限。"""


class EncodeFailed(ThumbnailError):
    """缩略图编码失败。"""


class CacheIOError(ThumbnailError):
    """缓存目录读写失败。"""


class InvalidThumbnailSize(ThumbnailError, ValueError):
    """请求的尺寸不在支持的尺寸集合中。"""
