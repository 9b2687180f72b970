"""全局配置与常量定义。"""

from pathlib import Path

# 可生成缩略图的文件扩展名（仅用于列表展示，真正的格式以文件头为准）
SUPPORTED_IMAGE_FORMATS: tuple[str, ...] = (
    ".jpg",
    ".jpeg",
    ".png",
    ".gif",
    ".webp",
    ".bmp",
    ".tif",
    ".tiff",
)

# ==================== 缩略图配置 ====================

# 支持的缩略图尺寸（长边像素）
THUMBNAIL_SIZES: tuple[int, ...] = (64, 128, 256)

THUMBNAIL_OUTPUT_FORMAT: str = "JPEG"  # 输出格式：JPEG / PNG / WEBP
THUMBNAIL_JPEG_QUALITY: int = 85  # 编码质量（1-100）
THUMBNAIL_BACKGROUND_COLOR: tuple[int, int, int] = (0xDA, 0xE1, 0xE4)  # 透明像素的背景色
THUMBNAIL_MAX_PIXELS: int = 80_000_000  # 解码像素上限，超出视为 ImageTooLarge

# 线程池配置
THUMBNAIL_WORKER_THREADS: int = 4  # 解码/缩放线程池大小（建议 2-8）
THUMBNAIL_GENERATION_TIMEOUT: int = 5  # 单次请求等待超时（秒），超时不会取消生成

# ==================== 缓存配置 ====================

THUMBNAIL_CACHE_DIR: Path = Path.home() / ".cache" / "thumbserve"
THUMBNAIL_CACHE_MAX_BYTES: int = 20 * 1024 * 1024  # 缓存字节上限

# 指纹模式："metadata"（大小+修改时间，默认）或 "content"（完整内容哈希）
FINGERPRINT_MODE: str = "metadata"
