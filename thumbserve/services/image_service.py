"""图片相关服务：判断文件是否可生成缩略图、扫描目录下的图片。"""

from pathlib import Path
from typing import List

from loguru import logger

from thumbserve.config import settings


def is_thumbnailable(
    filename: str,
    supported_formats: tuple[str, ...] = settings.SUPPORTED_IMAGE_FORMATS,
) -> bool:
    """根据扩展名判断是否应为文件展示缩略图。

    只用于列表页决定是否生成缩略图链接；真正的格式由解码阶段根据文件头判断。
    """
    suffix = Path(filename).suffix.lower()
    return bool(suffix) and suffix in supported_formats


def list_thumbnailable_images(
    folder: Path,
    supported_formats: tuple[str, ...] = settings.SUPPORTED_IMAGE_FORMATS,
) -> List[Path]:
    """扫描文件夹下所有可生成缩略图的文件，按文件名排序返回。"""
    images: List[Path] = []
    for file in folder.iterdir():
        # 过滤隐藏文件（以 . 开头）
        if file.name.startswith('.'):
            continue

        if file.is_file() and is_thumbnailable(file.name, supported_formats):
            images.append(file)

    images.sort(key=lambda x: x.name.lower())
    logger.info("扫描文件夹: {}, 得到 {} 张图片", folder, len(images))
    return images
