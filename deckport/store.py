#!/usr/bin/env python3
"""
# deckport
# Copyright (c) 2026 deckport contributors
# Licensed under the MIT License. See LICENSE in the project root.

store.py (deckport)

Write import artifacts to a destination folder.

The import pipeline only decides what to write and under which relative
path ("flashcards/Spanish/Verbs/1699999.md", "attachments/photo.png").
FilesystemStore is the thin layer that puts those files on disk under a
root directory. Any object with the same four methods can stand in for it.

SECURITY: Paths are validated so a crafted deck or media name cannot write
outside the root.
"""

from __future__ import annotations

from pathlib import Path, PurePosixPath
from typing import Any, Dict

import frontmatter

from deckport.errors import UnsafePathError


def is_safe_relative_path(path: str) -> bool:
    """
    Validate a destination path.

    Blocks:
        - Absolute paths (/, C:, etc.)
        - Parent directory references (..)
        - Null bytes
    """
    if not path or '\0' in path:
        return False

    if path.startswith('/') or path.startswith('\\'):
        return False

    if len(path) >= 2 and path[1] == ':':
        return False

    parts = path.replace('\\', '/').split('/')
    return '..' not in parts


class FilesystemStore:
    """Document and attachment store rooted at a local directory."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def _resolve(self, path: str) -> Path:
        if not is_safe_relative_path(path):
            raise UnsafePathError(
                message=f"Refusing to write outside the destination: {path}",
                context={"root": str(self.root)},
            )
        return self.root / PurePosixPath(path)

    def exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    def ensure_folder(self, path: str) -> None:
        self._resolve(path).mkdir(parents=True, exist_ok=True)

    def create_or_overwrite_text_file(self, path: str, content: str) -> None:
        target = self._resolve(path)
        if target.is_dir():
            raise IsADirectoryError(f"Cannot overwrite non-file path: {path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")

    def write_binary(self, path: str, data: bytes) -> None:
        target = self._resolve(path)
        if target.is_dir():
            raise IsADirectoryError(f"Cannot overwrite non-file path: {path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)


def render_card_document(metadata: Dict[str, Any], body: str) -> str:
    """Serialize frontmatter and body into a flashcard document."""
    # Field names like "content" would clash with Post's own arguments
    post = frontmatter.Post(body)
    post.metadata.update(metadata)
    return frontmatter.dumps(post, sort_keys=False) + "\n"


def write_card_document(store, path: str, metadata: Dict[str, Any], body: str) -> None:
    """Write a flashcard document with YAML frontmatter."""
    store.create_or_overwrite_text_file(path, render_card_document(metadata, body))
