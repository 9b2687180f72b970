"""图片格式识别：根据文件头签名判断格式，不信任扩展名。"""

from __future__ import annotations

from enum import Enum

from thumbserve.core.errors import UnsupportedFormat

# 识别签名所需的最少字节数
SNIFF_LENGTH = 16


class ImageFormat(Enum):
    """支持解码的源图片格式，值为 Pillow 的格式名。"""

    JPEG = "JPEG"
    PNG = "PNG"
    GIF = "GIF"
    WEBP = "WEBP"
    BMP = "BMP"
    TIFF = "TIFF"

    @property
    def pillow_name(self) -> str:
        return self.value


def sniff_format(header: bytes) -> ImageFormat:
    """根据文件头识别格式。

    Args:
        header: 文件开头的若干字节（至少 ``SNIFF_LENGTH`` 字节效果最佳）

    Returns:
        ImageFormat: 识别出的格式

    Raises:
        UnsupportedFormat: 签名未知
    """
    if header.startswith(b"\xff\xd8\xff"):
        return ImageFormat.JPEG
    if header.startswith(b"\x89PNG\r\n\x1a\n"):
        return ImageFormat.PNG
    if header[:6] in (b"GIF87a", b"GIF89a"):
        return ImageFormat.GIF
    if header[:4] == b"RIFF" and header[8:12] == b"WEBP":
        return ImageFormat.WEBP
    if header[:2] == b"BM":
        return ImageFormat.BMP
    if header[:4] in (b"II*\x00", b"MM\x00*"):
        return ImageFormat.TIFF
    raise UnsupportedFormat(f"unknown image signature: {header[:8]!r}")


class OutputFormat(Enum):
    """缩略图输出格式：(Pillow 格式名, MIME 类型, 文件扩展名)。"""

    JPEG = ("JPEG", "image/jpeg", ".jpg")
    PNG = ("PNG", "image/png", ".png")
    WEBP = ("WEBP", "image/webp", ".webp")

    def __init__(self, pillow_name: str, mime_type: str, extension: str):
        self.pillow_name = pillow_name
        self.mime_type = mime_type
        self.extension = extension

    @property
    def supports_alpha(self) -> bool:
        return self is not OutputFormat.JPEG

    @classmethod
    def from_name(cls, name: str) -> "OutputFormat":
        try:
            return cls[name.upper()]
        except KeyError:
            raise ValueError(f"unknown output format: {name}") from None

    @classmethod
    def from_extension(cls, extension: str) -> "OutputFormat":
        for fmt in cls:
            if fmt.extension == extension.lower():
                return fmt
        raise ValueError(f"unknown output extension: {extension}")

    @classmethod
    def from_mime_type(cls, mime_type: str) -> "OutputFormat":
        for fmt in cls:
            if fmt.mime_type == mime_type:
                return fmt
        raise ValueError(f"unknown output mime type: {mime_type}")
