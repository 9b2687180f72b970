"""Tests for format sniffing and the decode & orient stage."""

from __future__ import annotations

import io

import pytest
from PIL import Image

from thumbserve.core.decode import decode_and_orient
from thumbserve.core.errors import DecodeFailed, ImageTooLarge, UnsupportedFormat
from thumbserve.core.image_formats import ImageFormat, OutputFormat, sniff_format


class TestSniffFormat:
    @pytest.mark.parametrize(
        "fmt, expected",
        [
            ("JPEG", ImageFormat.JPEG),
            ("PNG", ImageFormat.PNG),
            ("GIF", ImageFormat.GIF),
            ("WEBP", ImageFormat.WEBP),
            ("BMP", ImageFormat.BMP),
            ("TIFF", ImageFormat.TIFF),
        ],
    )
    def test_detects_encoded_images(self, image_bytes, fmt, expected):
        assert sniff_format(image_bytes(8, 8, fmt=fmt)[:16]) is expected

    def test_unknown_signature(self):
        with pytest.raises(UnsupportedFormat):
            sniff_format(b"hello, world! this is text")

    def test_empty_input(self):
        with pytest.raises(UnsupportedFormat):
            sniff_format(b"")

    def test_output_format_lookup(self):
        assert OutputFormat.from_name("jpeg") is OutputFormat.JPEG
        assert OutputFormat.from_extension(".PNG") is OutputFormat.PNG
        assert OutputFormat.from_mime_type("image/webp") is OutputFormat.WEBP
        with pytest.raises(ValueError):
            OutputFormat.from_name("gif")


class TestDecodeAndOrient:
    def test_decodes_dimensions(self, image_bytes):
        decoded = decode_and_orient(image_bytes(40, 30))
        assert (decoded.width, decoded.height) == (40, 30)
        assert decoded.source_format is ImageFormat.JPEG
        assert decoded.image.mode == "RGB"

    def test_signature_wins_over_content_type_guess(self, image_bytes):
        # PNG bytes are decoded as PNG regardless of any filename
        decoded = decode_and_orient(image_bytes(10, 5, fmt="PNG"))
        assert decoded.source_format is ImageFormat.PNG

    def test_rotate_90_orientation_swaps_dimensions(self, image_bytes):
        decoded = decode_and_orient(image_bytes(40, 30, orientation=6))
        assert (decoded.width, decoded.height) == (30, 40)
        assert decoded.orientation == 6

    def test_rotate_90_moves_left_edge_to_top(self):
        img = Image.new("RGB", (40, 30), (0, 0, 255))
        img.paste((255, 0, 0), (0, 0, 20, 30))  # left half red
        exif = Image.Exif()
        exif[0x0112] = 6
        buffer = io.BytesIO()
        img.save(buffer, format="JPEG", quality=95, exif=exif)

        decoded = decode_and_orient(buffer.getvalue())
        top = decoded.image.getpixel((15, 5))
        bottom = decoded.image.getpixel((15, 35))
        assert top[0] > 200 and top[2] < 60
        assert bottom[2] > 200 and bottom[0] < 60

    @pytest.mark.parametrize("orientation, size", [(1, (40, 30)), (3, (40, 30)), (8, (30, 40))])
    def test_orientation_values(self, image_bytes, orientation, size):
        decoded = decode_and_orient(image_bytes(40, 30, orientation=orientation))
        assert decoded.image.size == size

    def test_png_exif_orientation(self, image_bytes):
        decoded = decode_and_orient(image_bytes(40, 20, fmt="PNG", orientation=6))
        assert decoded.image.size == (20, 40)
        assert decoded.image.getexif().get(0x0112, 1) == 1

    def test_out_of_range_orientation_is_ignored(self, image_bytes):
        decoded = decode_and_orient(image_bytes(40, 30, orientation=42))
        assert decoded.image.size == (40, 30)
        assert decoded.orientation == 1

    def test_malformed_exif_is_ignored(self, image_bytes):
        decoded = decode_and_orient(image_bytes(40, 30, exif=b"Exif\x00\x00garbage"))
        assert decoded.image.size == (40, 30)

    def test_too_many_pixels(self, image_bytes):
        with pytest.raises(ImageTooLarge):
            decode_and_orient(image_bytes(100, 100), max_pixels=9_999)

    def test_pixel_limit_is_inclusive(self, image_bytes):
        decoded = decode_and_orient(image_bytes(100, 100), max_pixels=10_000)
        assert decoded.longer_edge == 100

    def test_non_image_is_unsupported(self):
        with pytest.raises(UnsupportedFormat):
            decode_and_orient(b"#!/bin/sh\necho not an image\n")

    def test_truncated_image_fails(self, image_bytes):
        data = image_bytes(200, 200, color=(10, 120, 250))
        with pytest.raises(DecodeFailed):
            decode_and_orient(data[:200])

    def test_palette_transparency_keeps_alpha(self):
        img = Image.new("P", (10, 10), 0)
        img.info["transparency"] = 0
        buffer = io.BytesIO()
        img.save(buffer, format="PNG", transparency=0)
        decoded = decode_and_orient(buffer.getvalue())
        assert decoded.image.mode == "RGBA"

    def test_grayscale_becomes_rgb(self, image_bytes):
        decoded = decode_and_orient(image_bytes(10, 10, fmt="PNG", mode="L", color=128))
        assert decoded.image.mode == "RGB"
