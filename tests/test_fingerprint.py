"""Tests for source fingerprinting."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from thumbserve.core.errors import SourceUnreadable
from thumbserve.core.fingerprint import (
    Fingerprint,
    Fingerprinter,
    FingerprintMode,
    SourceIdentity,
    ThumbnailKey,
)


class TestMetadataFingerprint:
    def test_stable_for_unchanged_source(self, tmp_path: Path):
        path = tmp_path / "a.jpg"
        path.write_bytes(b"abc")
        fingerprinter = Fingerprinter()
        source = SourceIdentity.from_path(path)
        assert fingerprinter.fingerprint(source) == fingerprinter.fingerprint(source)

    def test_token_is_hex_string(self, tmp_path: Path):
        path = tmp_path / "a.jpg"
        path.write_bytes(b"abc")
        token = str(Fingerprinter().fingerprint(SourceIdentity.from_path(path)))
        assert len(token) == 16
        int(token, 16)

    def test_changes_when_size_changes(self, tmp_path: Path):
        path = tmp_path / "a.jpg"
        path.write_bytes(b"abc")
        fingerprinter = Fingerprinter()
        before = fingerprinter.fingerprint(SourceIdentity.from_path(path))
        path.write_bytes(b"abcdef")
        after = fingerprinter.fingerprint(SourceIdentity.from_path(path))
        assert before != after

    def test_changes_when_mtime_changes(self, tmp_path: Path):
        path = tmp_path / "a.jpg"
        path.write_bytes(b"abc")
        fingerprinter = Fingerprinter()
        os.utime(path, ns=(1_000_000_000, 1_000_000_000))
        before = fingerprinter.fingerprint(SourceIdentity.from_path(path))
        os.utime(path, ns=(2_000_000_000, 2_000_000_000))
        after = fingerprinter.fingerprint(SourceIdentity.from_path(path))
        assert before != after

    def test_different_paths_differ(self, tmp_path: Path):
        (tmp_path / "a.jpg").write_bytes(b"abc")
        (tmp_path / "b.jpg").write_bytes(b"abc")
        os.utime(tmp_path / "a.jpg", ns=(1, 1))
        os.utime(tmp_path / "b.jpg", ns=(1, 1))
        fingerprinter = Fingerprinter()
        assert fingerprinter.fingerprint(
            SourceIdentity.from_path(tmp_path / "a.jpg")
        ) != fingerprinter.fingerprint(SourceIdentity.from_path(tmp_path / "b.jpg"))

    def test_caller_supplied_metadata_skips_stat(self, tmp_path: Path):
        source = SourceIdentity(tmp_path / "missing.jpg", size=10, mtime_ns=123)
        fingerprint = Fingerprinter().fingerprint(source)
        assert isinstance(fingerprint, Fingerprint)

    def test_missing_source_is_unreadable(self, tmp_path: Path):
        with pytest.raises(SourceUnreadable):
            Fingerprinter().fingerprint(SourceIdentity.from_path(tmp_path / "nope.jpg"))


class TestContentFingerprint:
    def test_ignores_mtime(self, tmp_path: Path):
        path = tmp_path / "a.jpg"
        path.write_bytes(b"same content")
        fingerprinter = Fingerprinter(FingerprintMode.CONTENT)
        os.utime(path, ns=(1_000_000_000, 1_000_000_000))
        before = fingerprinter.fingerprint(SourceIdentity.from_path(path))
        os.utime(path, ns=(2_000_000_000, 2_000_000_000))
        assert fingerprinter.fingerprint(SourceIdentity.from_path(path)) == before

    def test_detects_same_size_edit(self, tmp_path: Path):
        path = tmp_path / "a.jpg"
        fingerprinter = Fingerprinter("content")
        path.write_bytes(b"aaaa")
        before = fingerprinter.fingerprint(SourceIdentity.from_path(path))
        path.write_bytes(b"aaab")
        assert fingerprinter.fingerprint(SourceIdentity.from_path(path)) != before

    def test_missing_source_is_unreadable(self, tmp_path: Path):
        with pytest.raises(SourceUnreadable):
            Fingerprinter("content").fingerprint(SourceIdentity.from_path(tmp_path / "x"))


def test_thumbnail_key_is_hashable_and_named():
    key = ThumbnailKey(Fingerprint("ABCDEF0123456789"), 128)
    assert {key: 1}[ThumbnailKey(Fingerprint("ABCDEF0123456789"), 128)] == 1
    assert key.storage_name == "ABCDEF0123456789_128"
    assert key != ThumbnailKey(Fingerprint("ABCDEF0123456789"), 64)
