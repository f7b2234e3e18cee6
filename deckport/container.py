#!/usr/bin/env python3
"""
# deckport
# Copyright (c) 2026 deckport contributors
# Licensed under the MIT License. See LICENSE in the project root.

container.py (deckport)

Open the outer ZIP container of an .apkg export and hand out entries.

An .apkg is a plain ZIP archive:
- collection.anki21b  zstd-compressed SQLite database (required)
- media               protobuf manifest mapping numeric keys to filenames
- 0, 1, 2, ...        media payloads stored under their numeric key

Entries are read in memory on demand. Nothing is extracted to disk here.

SECURITY: Entry size and compression ratio are checked before reading to
avoid zip bombs.
"""

from __future__ import annotations

import io
import zipfile
from typing import List, Optional

from deckport.errors import UnsupportedPackage


DATABASE_ENTRY = "collection.anki21b"
MEDIA_MANIFEST_ENTRY = "media"

# SECURITY: Size limits to prevent zip bombs and DoS
MAX_ENTRY_SIZE = 1024 * 1024 * 1024     # 1 GB per entry
MAX_COMPRESSION_RATIO = 1000            # Maximum compression ratio


class Archive:
    """
    Read-only view over the entries of an .apkg container.

    Usage:
        with open_package(data) as archive:
            db_bytes = archive.entry(DATABASE_ENTRY)
    """

    def __init__(self, zf: zipfile.ZipFile):
        self._zf = zf
        self._names = set(zf.namelist())

    def __enter__(self) -> "Archive":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        self._zf.close()

    def names(self) -> List[str]:
        return sorted(self._names)

    def has_entry(self, name: str) -> bool:
        return name in self._names

    def entry(self, name: str) -> Optional[bytes]:
        """
        Read one entry.

        Returns:
            Entry bytes, or None if the container has no such entry

        Raises:
            UnsupportedPackage: Entry exceeds the size or ratio limits
        """
        if name not in self._names:
            return None

        info = self._zf.getinfo(name)

        # SECURITY: Check individual entry size
        if info.file_size > MAX_ENTRY_SIZE:
            raise UnsupportedPackage(
                message=f"Package entry too large: {name}",
                context={"size_mb": f"{info.file_size / (1024 * 1024):.1f}"},
            )

        # SECURITY: Check compression ratio (zip bomb detection)
        if info.file_size > 0 and info.compress_size > 0:
            ratio = info.file_size / info.compress_size
            if ratio > MAX_COMPRESSION_RATIO:
                raise UnsupportedPackage(
                    message=f"Suspicious compression ratio for entry: {name}",
                    context={"ratio": f"{ratio:.0f}x"},
                )

        try:
            return self._zf.read(name)
        except (zipfile.BadZipFile, OSError) as e:
            raise UnsupportedPackage(
                message=f"Failed to read package entry: {name}",
                cause=e,
            )


def open_package(data: bytes) -> Archive:
    """
    Open package bytes as an Archive.

    Raises:
        UnsupportedPackage: The bytes are not a ZIP container
    """
    try:
        zf = zipfile.ZipFile(io.BytesIO(data), "r")
    except (zipfile.BadZipFile, OSError) as e:
        raise UnsupportedPackage(
            message="File is not a valid .apkg package (not a ZIP archive)",
            suggestion="Export the deck from Anki as 'Anki Deck Package (*.apkg)'",
            cause=e,
        )
    return Archive(zf)


def is_supported(data: bytes) -> bool:
    """Check that the package contains the anki21b collection entry."""
    try:
        with open_package(data) as archive:
            return archive.has_entry(DATABASE_ENTRY)
    except UnsupportedPackage:
        return False
