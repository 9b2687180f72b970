"""Tests for thumbnailable-file helpers."""

from __future__ import annotations

from pathlib import Path

import pytest

from thumbserve.services.image_service import is_thumbnailable, list_thumbnailable_images


@pytest.mark.parametrize(
    "name, expected",
    [
        ("photo.jpg", True),
        ("PHOTO.JPEG", True),
        ("scan.tiff", True),
        ("anim.gif", True),
        ("notes.txt", False),
        ("archive.tar.gz", False),
        ("README", False),
        (".jpg", False),
    ],
)
def test_is_thumbnailable(name: str, expected: bool):
    assert is_thumbnailable(name) is expected


def test_list_thumbnailable_images(tmp_path: Path):
    for name in ("b.png", "A.jpg", ".hidden.jpg", "doc.pdf"):
        (tmp_path / name).write_bytes(b"")
    (tmp_path / "dir.jpg").mkdir()

    images = list_thumbnailable_images(tmp_path)
    assert [p.name for p in images] == ["A.jpg", "b.png"]
