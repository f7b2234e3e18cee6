"""Tests for reading the anki21b collection."""

import pytest

from conftest import BASIC_ID, CLOZE_ID, COMER_MP3, HOLA_PNG, pb_bytes
from deckport.collection import extract_media_file, parse_package
from deckport.container import open_package
from deckport.errors import UnsupportedPackage
from deckport.models import ModelKind


def test_models(package):
    basic = package.models[str(BASIC_ID)]
    assert basic.name == "Basic"
    assert basic.kind == ModelKind.STANDARD
    assert basic.field_names == ["Front", "Back"]
    assert basic.templates[0].question_format == "{{Front}}"
    assert basic.templates[0].answer_format == "{{FrontSide}}<hr id=answer>{{Back}}"

    cloze = package.models[str(CLOZE_ID)]
    assert cloze.is_cloze
    assert [t.name for t in cloze.templates] == ["Cloze"]


def test_decks(package):
    assert package.decks[11].path_parts == ["Spanish", "Verbs"]
    assert package.decks[11].display_name == "Spanish::Verbs"
    assert package.decks[12].is_filtered
    assert not package.decks[10].is_filtered


def test_notes_in_source_order(package):
    assert [n.id for n in package.notes] == [100, 101, 102]
    first = package.notes[0]
    assert first.model_id == str(BASIC_ID)
    assert first.field_values == ["Hola", 'Hello <img src="hola.png">']
    assert first.tags == ["greeting"]
    assert package.notes[2].tags == ["geo", "capitals"]


def test_cards(package):
    assert [(c.id, c.note_id, c.deck_id) for c in package.cards] == [
        (1000, 100, 10), (1001, 101, 11), (1002, 102, 11),
    ]
    assert package.cards[0].scheduling["ivl"] == 0


def test_media_manifest(package):
    assert dict(package.media) == {"0": "hola.png", "1": "comer.mp3"}


def test_snapshot_is_read_only(package):
    with pytest.raises(TypeError):
        package.models["x"] = None


def test_extract_media_file(apkg_bytes):
    assert extract_media_file(apkg_bytes, "0") == HOLA_PNG
    with open_package(apkg_bytes) as archive:
        assert extract_media_file(archive, "1") == COMER_MP3
        assert extract_media_file(archive, "7") is None


def test_uncompressed_collection_rejected(make_apkg):
    with pytest.raises(UnsupportedPackage):
        parse_package(make_apkg(compress_db=False))


def test_missing_collection_rejected(make_apkg):
    with pytest.raises(UnsupportedPackage, match="2.1.50"):
        parse_package(make_apkg(include_db=False))


def test_undecodable_template_is_kept_empty(make_apkg, monkeypatch):
    from deckport import collection

    real = collection.decode_template_format

    def broken(blob):
        if b"{{Front}}" in blob:
            return real(b"\x0a\xff")
        return real(blob)

    monkeypatch.setattr(collection, "decode_template_format", broken)
    package = parse_package(make_apkg())
    template = package.models[str(BASIC_ID)].templates[0]
    assert template.question_format == ""
    assert template.answer_format == ""


def test_note_without_cards_has_no_deck(make_apkg):
    from conftest import DEFAULT_NOTES
    notes = DEFAULT_NOTES + [(103, BASIC_ID, ["Orphan", "No cards"], "")]
    package = parse_package(make_apkg(notes=notes))
    assert len(package.notes) == 4
    assert all(card.note_id != 103 for card in package.cards)


def test_pb_helper_sanity():
    assert pb_bytes(1, "a") == b"\x0a\x01a"
