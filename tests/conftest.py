import io
from pathlib import Path
from typing import Callable, Optional

import pytest
from PIL import Image


def encode_image(
    width: int,
    height: int,
    fmt: str = "JPEG",
    mode: str = "RGB",
    color=(200, 40, 40),
    orientation: Optional[int] = None,
    exif: Optional[bytes] = None,
) -> bytes:
    img = Image.new(mode, (width, height), color)
    buffer = io.BytesIO()
    params = {}
    if orientation is not None:
        exif_data = Image.Exif()
        exif_data[0x0112] = orientation
        params["exif"] = exif_data
    elif exif is not None:
        params["exif"] = exif
    img.save(buffer, format=fmt, **params)
    return buffer.getvalue()


@pytest.fixture
def image_bytes() -> Callable[..., bytes]:
    """Factory producing encoded images in memory."""
    return encode_image


@pytest.fixture
def image_file(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing encoded images below ``tmp_path / "src"``."""
    src = tmp_path / "src"
    src.mkdir()

    def _make(name: str = "photo.jpg", width: int = 400, height: int = 300, **kwargs) -> Path:
        path = src / name
        path.write_bytes(encode_image(width, height, **kwargs))
        return path

    return _make
