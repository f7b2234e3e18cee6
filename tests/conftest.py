"""
Shared fixtures: build real .apkg packages in memory.

The packages mirror what Anki 2.1.50+ exports: a ZIP holding a
zstd-compressed SQLite collection (collection.anki21b), a zstd-compressed
protobuf media manifest and media payloads stored under numeric names.
"""

import io
import os
import sqlite3
import tempfile
import zipfile

import pytest
import zstandard


# ============================================================================
# Protobuf helpers
# ============================================================================

def varint(value):
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def pb_varint(field_number, value):
    return varint(field_number << 3) + varint(value)


def pb_bytes(field_number, payload):
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    return varint(field_number << 3 | 2) + varint(len(payload)) + payload


def template_config(question, answer):
    return pb_bytes(1, question) + pb_bytes(2, answer) + pb_bytes(3, "")


def notetype_config(kind):
    return pb_varint(1, kind) + pb_bytes(3, ".card { font-family: arial; }")


def deck_kind(filtered):
    if filtered:
        return pb_bytes(2, pb_varint(1, 1))
    return pb_bytes(1, pb_varint(1, 1))


def media_manifest(names):
    entries = [
        pb_bytes(1, pb_bytes(1, name) + pb_varint(2, 0))
        for name in names
    ]
    return b"".join(entries)


# ============================================================================
# Default collection
# ============================================================================

BASIC_ID = 1001
CLOZE_ID = 1002

DEFAULT_MODELS = [
    {
        "id": BASIC_ID,
        "name": "Basic",
        "kind": 0,
        "fields": ["Front", "Back"],
        "templates": [("Card 1", "{{Front}}", "{{FrontSide}}<hr id=answer>{{Back}}")],
    },
    {
        "id": CLOZE_ID,
        "name": "Cloze",
        "kind": 1,
        "fields": ["Text", "Extra"],
        "templates": [("Cloze", "{{cloze:Text}}", "{{cloze:Text}}<br>{{Extra}}")],
    },
]

# (id, name, filtered)
DEFAULT_DECKS = [
    (1, "Default", False),
    (10, "Spanish", False),
    (11, "Spanish\x1fVerbs", False),
    (12, "Review Today", True),
]

# (id, model id, field values, tags)
DEFAULT_NOTES = [
    (100, BASIC_ID, ["Hola", 'Hello <img src="hola.png">'], "greeting"),
    (101, BASIC_ID, ["Comer", "To eat [sound:comer.mp3]"], ""),
    (102, CLOZE_ID, ["{{c1::Madrid}} is the capital", ""], "geo capitals"),
]

# (id, note id, deck id, ord)
DEFAULT_CARDS = [
    (1000, 100, 10, 0),
    (1001, 101, 11, 0),
    (1002, 102, 11, 0),
]

HOLA_PNG = b"\x89PNG\r\n\x1a\nfake-image-data"
COMER_MP3 = b"ID3fake-audio-data"

# (filename, payload or None for a missing entry, compress)
DEFAULT_MEDIA = [
    ("hola.png", HOLA_PNG, True),
    ("comer.mp3", COMER_MP3, False),
]


def build_collection(models, decks, notes, cards):
    """Create the SQLite collection and return its bytes."""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    try:
        conn = sqlite3.connect(path)
        conn.executescript("""
            CREATE TABLE notetypes (id INTEGER PRIMARY KEY, name TEXT, mtime_secs INTEGER, usn INTEGER, config BLOB);
            CREATE TABLE fields (ntid INTEGER, ord INTEGER, name TEXT, config BLOB);
            CREATE TABLE templates (ntid INTEGER, ord INTEGER, name TEXT, mtime_secs INTEGER, usn INTEGER, config BLOB);
            CREATE TABLE decks (id INTEGER PRIMARY KEY, name TEXT, mtime_secs INTEGER, usn INTEGER, common BLOB, kind BLOB);
            CREATE TABLE notes (id INTEGER PRIMARY KEY, guid TEXT, mid INTEGER, mod INTEGER, usn INTEGER,
                                tags TEXT, flds TEXT, sfld TEXT, csum INTEGER, flags INTEGER, data TEXT);
            CREATE TABLE cards (id INTEGER PRIMARY KEY, nid INTEGER, did INTEGER, ord INTEGER, mod INTEGER,
                                usn INTEGER, type INTEGER, queue INTEGER, due INTEGER, ivl INTEGER,
                                factor INTEGER, reps INTEGER, lapses INTEGER, left INTEGER, odue INTEGER,
                                odid INTEGER, flags INTEGER, data TEXT);
        """)

        for model in models:
            conn.execute(
                "INSERT INTO notetypes VALUES (?, ?, 0, 0, ?)",
                (model["id"], model["name"], notetype_config(model["kind"])),
            )
            for ordinal, name in enumerate(model["fields"]):
                conn.execute("INSERT INTO fields VALUES (?, ?, ?, ?)", (model["id"], ordinal, name, b""))
            for ordinal, (name, question, answer) in enumerate(model["templates"]):
                conn.execute(
                    "INSERT INTO templates VALUES (?, ?, ?, 0, 0, ?)",
                    (model["id"], ordinal, name, template_config(question, answer)),
                )

        for deck_id, name, filtered in decks:
            conn.execute("INSERT INTO decks VALUES (?, ?, 0, 0, ?, ?)", (deck_id, name, b"", deck_kind(filtered)))

        for note_id, model_id, values, tags in notes:
            conn.execute(
                "INSERT INTO notes VALUES (?, ?, ?, 0, 0, ?, ?, ?, 0, 0, '')",
                (note_id, f"guid{note_id}", model_id, f" {tags} " if tags else "",
                 "\x1f".join(values), values[0]),
            )

        for card_id, note_id, deck_id, ordinal in cards:
            conn.execute(
                "INSERT INTO cards VALUES (?, ?, ?, ?, 0, 0, 0, 0, ?, 0, 0, 0, 0, 0, 0, 0, 0, '')",
                (card_id, note_id, deck_id, ordinal, note_id),
            )

        conn.commit()
        conn.close()

        with open(path, "rb") as f:
            return f.read()
    finally:
        os.remove(path)


def build_apkg(
    models=None,
    decks=None,
    notes=None,
    cards=None,
    media=None,
    compress_db=True,
    include_db=True,
):
    """Build a complete .apkg file and return its bytes."""
    models = DEFAULT_MODELS if models is None else models
    decks = DEFAULT_DECKS if decks is None else decks
    notes = DEFAULT_NOTES if notes is None else notes
    cards = DEFAULT_CARDS if cards is None else cards
    media = DEFAULT_MEDIA if media is None else media

    compressor = zstandard.ZstdCompressor()
    buffer = io.BytesIO()

    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_STORED) as zf:
        if include_db:
            db = build_collection(models, decks, notes, cards)
            zf.writestr("collection.anki21b", compressor.compress(db) if compress_db else db)

        # Legacy placeholder every modern export carries
        zf.writestr("collection.anki2", b"placeholder")

        zf.writestr("media", compressor.compress(media_manifest([name for name, _, _ in media])))
        for index, (_, payload, compress) in enumerate(media):
            if payload is None:
                continue
            zf.writestr(str(index), compressor.compress(payload) if compress else payload)

    return buffer.getvalue()


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def make_apkg():
    return build_apkg


@pytest.fixture
def apkg_bytes():
    return build_apkg()


@pytest.fixture
def package(apkg_bytes):
    from deckport.collection import parse_package
    return parse_package(apkg_bytes)
