"""解码与方向校正：把原始字节转换成已按显示方向摆正的像素缓冲区。"""

from __future__ import annotations

import io
import time
from dataclasses import dataclass

from loguru import logger
from PIL import Image, ImageOps

from thumbserve.config import settings
from thumbserve.core.errors import DecodeFailed, ImageTooLarge
from thumbserve.core.image_formats import SNIFF_LENGTH, ImageFormat, sniff_format

# EXIF Orientation 标签
ORIENTATION_TAG = 0x0112


@dataclass
class DecodedImage:
    """已解码并摆正方向的图片。"""

    image: Image.Image  # 模式为 RGB 或 RGBA
    width: int
    height: int
    source_format: ImageFormat
    orientation: int = 1

    @property
    def longer_edge(self) -> int:
        return max(self.width, self.height)


def read_orientation(img: Image.Image) -> int:
    """读取 EXIF 方向值（1-8）。

    缺失或损坏的元数据一律视为 1（不做校正），不会抛出异常。
    """
    try:
        value = img.getexif().get(ORIENTATION_TAG, 1)
    except Exception as exc:
        logger.debug("读取 EXIF 方向失败, 忽略: {}", exc)
        return 1
    if isinstance(value, int) and 1 <= value <= 8:
        return value
    return 1


def apply_orientation(img: Image.Image, orientation: int) -> Image.Image:
    """按 EXIF 方向摆正图片，方向值为 1 或无效时原样返回。

    变换由 ``ImageOps.exif_transpose`` 完成，返回的图片不再带方向标签。
    """
    if orientation == 1:
        return img
    try:
        return ImageOps.exif_transpose(img)
    except Exception as exc:
        logger.debug("EXIF 方向校正失败, 忽略: {}", exc)
        return img


def _normalize_mode(img: Image.Image) -> Image.Image:
    if img.mode in ("RGB", "RGBA"):
        return img
    has_alpha = img.mode in ("LA", "La", "PA", "RGBa") or (
        img.mode == "P" and "transparency" in img.info
    )
    return img.convert("RGBA" if has_alpha else "RGB")


def decode_and_orient(
    data: bytes, max_pixels: int = settings.THUMBNAIL_MAX_PIXELS
) -> DecodedImage:
    """解码图片字节并校正显示方向。

    先只读取文件头获取尺寸，像素数超限时在分配完整缓冲区之前拒绝。

    Args:
        data: 源文件完整内容
        max_pixels: 解码像素数上限

    Returns:
        DecodedImage: 已摆正方向的 RGB/RGBA 图片

    Raises:
        UnsupportedFormat: 文件头签名未知
        ImageTooLarge: 像素数超过上限
        DecodeFailed: 解码失败
    """
    start_time = time.perf_counter()
    source_format = sniff_format(data[:SNIFF_LENGTH])

    try:
        img = Image.open(io.BytesIO(data), formats=[source_format.pillow_name])
    except Image.DecompressionBombError as exc:
        raise ImageTooLarge(str(exc)) from exc
    except Exception as exc:
        raise DecodeFailed(f"cannot open {source_format.value} image: {exc}") from exc

    width, height = img.size
    if width * height > max_pixels:
        img.close()
        raise ImageTooLarge(
            f"image {width}x{height} exceeds the limit of {max_pixels} pixels"
        )

    orientation = read_orientation(img)

    try:
        img.load()
    except Exception as exc:
        raise DecodeFailed(f"cannot decode {source_format.value} image: {exc}") from exc

    # 模式转换前校正，转换后 TIFF 的 EXIF 会丢失
    img = apply_orientation(img, orientation)
    try:
        img = _normalize_mode(img)
    except Exception as exc:
        raise DecodeFailed(f"cannot decode {source_format.value} image: {exc}") from exc

    elapsed = (time.perf_counter() - start_time) * 1000
    if elapsed > 50:  # 只记录耗时较长的解码
        logger.info(
            "解码图片: 格式={}, 尺寸={}x{}, 方向={}, 耗时: {:.2f}ms",
            source_format.value,
            img.width,
            img.height,
            orientation,
            elapsed,
        )

    return DecodedImage(
        image=img,
        width=img.width,
        height=img.height,
        source_format=source_format,
        orientation=orientation,
    )
