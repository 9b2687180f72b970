"""缩放与编码：把摆正后的图片缩小到目标尺寸并重新编码。"""

from __future__ import annotations

import io
import time

from loguru import logger
from PIL import Image

from thumbserve.config import settings
from thumbserve.core.decode import DecodedImage, decode_and_orient
from thumbserve.core.errors import EncodeFailed
from thumbserve.core.image_formats import OutputFormat

# 大倍率缩小时先用整数倍降采样，再用 Lanczos 精修
_REDUCING_GAP = 3.0


def target_dimensions(width: int, height: int, target: int) -> tuple[int, int]:
    """计算缩放后的尺寸：长边等于 target，保持宽高比，不放大。

    Args:
        width: 原始宽度
        height: 原始高度
        target: 目标长边

    Returns:
        tuple[int, int]: (宽, 高)，每边至少 1 像素
    """
    longer = max(width, height)
    if longer <= target:
        return width, height
    if width >= height:
        return target, max(1, round(height * target / width))
    return max(1, round(width * target / height)), target


def resize(decoded: DecodedImage, target: int) -> Image.Image:
    """等比缩放到长边为 target；源图长边不超过 target 时返回原尺寸的副本。"""
    size = target_dimensions(decoded.width, decoded.height, target)
    if size == (decoded.width, decoded.height):
        return decoded.image.copy()
    return decoded.image.resize(
        size, Image.Resampling.LANCZOS, reducing_gap=_REDUCING_GAP
    )


def _flatten_alpha(
    img: Image.Image, background: tuple[int, int, int]
) -> Image.Image:
    """把带透明通道的图片合成到纯色背景上。"""
    if img.mode != "RGBA":
        return img.convert("RGB") if img.mode != "RGB" else img
    rgb_img = Image.new("RGB", img.size, background)
    rgb_img.paste(img, mask=img.split()[3])
    return rgb_img


def encode(
    img: Image.Image,
    fmt: OutputFormat = OutputFormat.JPEG,
    quality: int = settings.THUMBNAIL_JPEG_QUALITY,
    background: tuple[int, int, int] = settings.THUMBNAIL_BACKGROUND_COLOR,
) -> bytes:
    """编码图片。

    Args:
        img: RGB/RGBA 图片
        fmt: 输出格式
        quality: 压缩质量（JPEG/WEBP 有效）
        background: 输出格式不支持透明时使用的背景色

    Returns:
        bytes: 编码结果

    Raises:
        EncodeFailed: 编码器失败
    """
    buffer = io.BytesIO()
    try:
        if not fmt.supports_alpha:
            img = _flatten_alpha(img, background)
        if fmt is OutputFormat.PNG:
            img.save(buffer, format=fmt.pillow_name)
        else:
            img.save(buffer, format=fmt.pillow_name, quality=quality)
    except Exception as exc:
        raise EncodeFailed(f"{fmt.pillow_name} encoding failed: {exc}") from exc
    return buffer.getvalue()


def render_thumbnail(
    data: bytes,
    size: int,
    fmt: OutputFormat = OutputFormat.JPEG,
    quality: int = settings.THUMBNAIL_JPEG_QUALITY,
    max_pixels: int = settings.THUMBNAIL_MAX_PIXELS,
    background: tuple[int, int, int] = settings.THUMBNAIL_BACKGROUND_COLOR,
) -> bytes:
    """完整的缩略图流水线：解码 -> 摆正方向 -> 缩放 -> 编码。

    在工作线程中执行，属于 CPU 密集型操作。
    """
    start_time = time.perf_counter()

    decoded = decode_and_orient(data, max_pixels=max_pixels)
    decode_elapsed = (time.perf_counter() - start_time) * 1000

    step_start = time.perf_counter()
    thumbnail = resize(decoded, size)
    resize_elapsed = (time.perf_counter() - step_start) * 1000

    step_start = time.perf_counter()
    encoded = encode(thumbnail, fmt=fmt, quality=quality, background=background)
    encode_elapsed = (time.perf_counter() - step_start) * 1000

    total_elapsed = (time.perf_counter() - start_time) * 1000
    logger.debug(
        "生成缩略图: {}x{} -> {}x{}, 大小={}B, 总耗时: {:.2f}ms "
        "(解码: {:.2f}ms, 缩放: {:.2f}ms, 编码: {:.2f}ms)",
        decoded.width,
        decoded.height,
        thumbnail.width,
        thumbnail.height,
        len(encoded),
        total_elapsed,
        decode_elapsed,
        resize_elapsed,
        encode_elapsed,
    )
    return encoded
