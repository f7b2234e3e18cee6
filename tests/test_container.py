"""Tests for the .apkg ZIP container."""

import io
import zipfile

import pytest

from deckport import container
from deckport.container import DATABASE_ENTRY, is_supported, open_package
from deckport.errors import UnsupportedPackage


def test_entries(apkg_bytes):
    with open_package(apkg_bytes) as archive:
        assert archive.has_entry(DATABASE_ENTRY)
        assert "media" in archive.names()
        assert archive.entry("does-not-exist") is None
        assert archive.entry("1") == b"ID3fake-audio-data"


def test_not_a_zip():
    with pytest.raises(UnsupportedPackage):
        open_package(b"definitely not a zip")


def test_is_supported(apkg_bytes, make_apkg):
    assert is_supported(apkg_bytes)
    assert not is_supported(make_apkg(include_db=False))
    assert not is_supported(b"junk")


def test_entry_size_limit(apkg_bytes, monkeypatch):
    monkeypatch.setattr(container, "MAX_ENTRY_SIZE", 4)
    with open_package(apkg_bytes) as archive:
        with pytest.raises(UnsupportedPackage):
            archive.entry("1")


def test_compression_ratio_limit(monkeypatch):
    monkeypatch.setattr(container, "MAX_COMPRESSION_RATIO", 10)
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("bomb", b"\x00" * 100000)

    with open_package(buffer.getvalue()) as archive:
        with pytest.raises(UnsupportedPackage, match="compression ratio"):
            archive.entry("bomb")


def test_is_supported_ignores_compression(make_apkg):
    assert is_supported(make_apkg(compress_db=False))
