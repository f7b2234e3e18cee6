#!/usr/bin/env python3
"""
# deckport
# Copyright (c) 2026 deckport contributors
# Licensed under the MIT License. See LICENSE in the project root.

compression.py (deckport)

zstd detection and decompression for .apkg entries.

Anki 2.1.50+ compresses the collection database, the media manifest and
(optionally) individual media payloads with zstd. Whether a buffer is
compressed is decided only by the 4-byte zstd frame magic.

The database entry must be compressed: only the zstd container variant is
supported, so a plain buffer there is an UnsupportedPackage. Everything
else passes through unchanged when the magic is absent.
"""

from __future__ import annotations

import io

import zstandard

from deckport.errors import MediaError, UnsupportedPackage


ZSTD_MAGIC = b"\x28\xb5\x2f\xfd"


def is_compressed(data: bytes) -> bool:
    """Check for the zstd frame magic."""
    return len(data) >= 4 and data[:4] == ZSTD_MAGIC


def decompress(data: bytes) -> bytes:
    """
    Decompress a zstd buffer.

    Uses the streaming reader so frames written without a content size
    in the header still decode.
    """
    dctx = zstandard.ZstdDecompressor()
    with dctx.stream_reader(io.BytesIO(data)) as reader:
        return reader.read()


def decode_if_compressed(data: bytes, mandatory: bool = False) -> bytes:
    """
    Return the decompressed buffer if it carries the zstd magic.

    Args:
        data: Raw entry bytes
        mandatory: Treat an uncompressed buffer as an unsupported package

    Returns:
        Decompressed bytes, or the input unchanged

    Raises:
        UnsupportedPackage: Not compressed (mandatory), or corrupt (mandatory)
        MediaError: Corrupt frame where compression was optional
    """
    if not is_compressed(data):
        if mandatory:
            raise UnsupportedPackage(
                message="Unsupported Anki export. Expected zstd-compressed collection.anki21b",
                suggestion="Export the deck again from Anki 2.1.50 or newer",
                context={"prefix": data[:4].hex()},
            )
        return data

    try:
        return decompress(data)
    except zstandard.ZstdError as e:
        if mandatory:
            raise UnsupportedPackage(
                message="Compressed collection could not be decompressed",
                context={"size": len(data)},
                cause=e,
            )
        raise MediaError(
            message="Compressed entry could not be decompressed",
            context={"size": len(data)},
            cause=e,
        )
