"""Tests for the filesystem destination."""

import frontmatter
import pytest

from deckport.errors import UnsafePathError
from deckport.store import FilesystemStore, is_safe_relative_path, render_card_document, write_card_document


def test_safe_paths():
    assert is_safe_relative_path("flashcards/Spanish/1.md")
    assert not is_safe_relative_path("../outside.md")
    assert not is_safe_relative_path("flashcards/../../x.md")
    assert not is_safe_relative_path("/etc/passwd")
    assert not is_safe_relative_path("C:/windows")
    assert not is_safe_relative_path("a\0b")
    assert not is_safe_relative_path("")


def test_write_and_exists(tmp_path):
    store = FilesystemStore(tmp_path)
    store.create_or_overwrite_text_file("templates/Basic.md", "body")
    assert store.exists("templates/Basic.md")
    assert (tmp_path / "templates" / "Basic.md").read_text(encoding="utf-8") == "body"

    store.create_or_overwrite_text_file("templates/Basic.md", "new body")
    assert (tmp_path / "templates" / "Basic.md").read_text(encoding="utf-8") == "new body"


def test_write_binary(tmp_path):
    store = FilesystemStore(tmp_path)
    store.write_binary("attachments/a.png", b"\x89PNG")
    assert (tmp_path / "attachments" / "a.png").read_bytes() == b"\x89PNG"


def test_refuses_to_escape_root(tmp_path):
    store = FilesystemStore(tmp_path / "root")
    with pytest.raises(UnsafePathError):
        store.write_binary("../escape.bin", b"x")


def test_refuses_to_overwrite_folder(tmp_path):
    store = FilesystemStore(tmp_path)
    store.ensure_folder("flashcards/1.md")
    with pytest.raises(IsADirectoryError):
        store.create_or_overwrite_text_file("flashcards/1.md", "x")


def test_card_document_keeps_key_order_and_body(tmp_path):
    metadata = {"_type": "flashcard", "_template": "[[templates/Basic.md]]", "Front": "Hola", "Back": "Hello"}
    text = render_card_document(metadata, "<!-- body -->")
    assert text.index("_type") < text.index("_template") < text.index("Front")

    store = FilesystemStore(tmp_path)
    write_card_document(store, "flashcards/1.md", metadata, "<!-- body -->")
    post = frontmatter.load(str(tmp_path / "flashcards" / "1.md"))
    assert post.metadata == metadata
    assert post.content.strip() == "<!-- body -->"
