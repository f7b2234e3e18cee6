#!/usr/bin/env python3
"""
# deckport
# Copyright (c) 2026 deckport contributors
# Licensed under the MIT License. See LICENSE in the project root.

collection.py (deckport)

Read note types, decks, notes and cards out of an .apkg export.

Only the Anki 2.1.50+ schema (collection.anki21b) is supported:
- notetypes(id, name, config)       config = protobuf, see wire_format
- fields(ntid, ord, name)
- templates(ntid, ord, name, config)
- decks(id, name, kind)
- notes(id, guid, mid, tags, flds, sfld)
- cards(id, nid, did, ord, mod, type, queue, due, ivl, factor, reps, lapses)

Usage:
    from deckport.collection import parse_package

    package = parse_package(Path("deck.apkg").read_bytes())
    for model in package.models.values():
        print(model.name, [f.name for f in model.fields])
"""

from __future__ import annotations

import os
import sqlite3
import tempfile
from collections import defaultdict
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Set, Union

from deckport.compression import decode_if_compressed
from deckport.container import (
    DATABASE_ENTRY,
    MEDIA_MANIFEST_ENTRY,
    Archive,
    open_package,
)
from deckport.errors import DecodeWarning, MediaError, UnsupportedPackage
from deckport.icons import WARNING
from deckport.models import (
    Card,
    Deck,
    FieldDef,
    Model,
    ModelKind,
    Note,
    PackageData,
    TemplateDef,
)
from deckport.wire_format import (
    TemplateFormat,
    decode_deck_kind,
    decode_media_manifest,
    decode_notetype_kind,
    decode_template_format,
)


REQUIRED_TABLES = ("notetypes", "notes", "cards")

SCHEDULING_COLUMNS = ("mod", "type", "queue", "due", "ivl", "factor", "reps", "lapses")


# ============================================================================
# Database Access
# ============================================================================

@contextmanager
def open_collection(db_bytes: bytes) -> Iterator[sqlite3.Connection]:
    """
    Open a decompressed collection snapshot read-only.

    sqlite3 needs a file, so the snapshot is written to a temporary file
    that is removed when the context exits.
    """
    fd, db_path = tempfile.mkstemp(prefix="deckport_", suffix=".db")
    conn = None
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(db_bytes)

        try:
            conn = sqlite3.connect(f"file:{db_path}?mode=ro", uri=True)
            conn.row_factory = sqlite3.Row
            # Fails here, not on first query, if this is not a database
            conn.execute("SELECT name FROM sqlite_master LIMIT 1").fetchall()
        except sqlite3.DatabaseError as e:
            raise UnsupportedPackage(
                message="Collection is not a readable SQLite database",
                cause=e,
            )

        yield conn
    finally:
        if conn is not None:
            conn.close()
        if os.path.exists(db_path):
            os.remove(db_path)


def list_tables(conn: sqlite3.Connection) -> Set[str]:
    """Names of all tables in the collection."""
    rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    return {row["name"] for row in rows}


def check_schema(conn: sqlite3.Connection) -> None:
    """
    Raise UnsupportedPackage if a required table is missing.
    """
    tables = list_tables(conn)
    missing = [t for t in REQUIRED_TABLES if t not in tables]
    if missing:
        raise UnsupportedPackage(
            message="Unsupported Anki export. Missing required tables.",
            suggestion="Export the deck again from Anki 2.1.50 or newer",
            context={"missing": ", ".join(missing)},
        )


def _blob(value) -> bytes:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    return b""


# ============================================================================
# Note Types
# ============================================================================

def _decode_template(row: sqlite3.Row, model_id: str) -> TemplateFormat:
    try:
        return decode_template_format(_blob(row["config"]))
    except DecodeWarning as e:
        print(f"[collection:warn] {WARNING} Template '{row['name']}' of note type {model_id}: {e.message}")
        return TemplateFormat("", "")


def _decode_kind(row: sqlite3.Row) -> ModelKind:
    try:
        kind = decode_notetype_kind(_blob(row["config"]))
    except DecodeWarning as e:
        print(f"[collection:warn] {WARNING} Note type '{row['name']}': {e.message}")
        return ModelKind.STANDARD
    return ModelKind.CLOZE if kind == ModelKind.CLOZE else ModelKind.STANDARD


def extract_models(conn: sqlite3.Connection) -> Dict[str, Model]:
    """
    Extract note types with their fields and templates.

    Fields and templates are kept in ordinal order, since note field
    values are split positionally.
    """
    tables = list_tables(conn)
    if "notetypes" not in tables:
        raise UnsupportedPackage(
            message="Unsupported Anki export. Missing notetypes table.",
        )

    fields_by_model: Dict[str, List[FieldDef]] = defaultdict(list)
    if "fields" in tables:
        for row in conn.execute("SELECT ntid, ord, name FROM fields ORDER BY ntid, ord"):
            fields_by_model[str(row["ntid"])].append(
                FieldDef(name=row["name"], ordinal=row["ord"])
            )

    templates_by_model: Dict[str, List[TemplateDef]] = defaultdict(list)
    if "templates" in tables:
        for row in conn.execute("SELECT ntid, ord, name, config FROM templates ORDER BY ntid, ord"):
            model_id = str(row["ntid"])
            fmt = _decode_template(row, model_id)
            templates_by_model[model_id].append(
                TemplateDef(
                    name=row["name"],
                    ordinal=row["ord"],
                    question_format=fmt.question_format,
                    answer_format=fmt.answer_format,
                )
            )

    models: Dict[str, Model] = {}
    for row in conn.execute("SELECT id, name, config FROM notetypes"):
        model_id = str(row["id"])
        models[model_id] = Model(
            id=model_id,
            name=row["name"],
            kind=_decode_kind(row),
            fields=tuple(fields_by_model.get(model_id, [])),
            templates=tuple(templates_by_model.get(model_id, [])),
        )

    return models


# ============================================================================
# Decks, Notes, Cards
# ============================================================================

def extract_decks(conn: sqlite3.Connection) -> Dict[int, Deck]:
    """Extract decks. A missing decks table yields no decks."""
    if "decks" not in list_tables(conn):
        return {}

    columns = {row["name"] for row in conn.execute("PRAGMA table_info(decks)")}
    has_kind = "kind" in columns

    query = "SELECT id, name, kind FROM decks" if has_kind else "SELECT id, name FROM decks"

    decks: Dict[int, Deck] = {}
    for row in conn.execute(query):
        is_filtered = False
        if has_kind:
            try:
                is_filtered = decode_deck_kind(_blob(row["kind"]))
            except DecodeWarning as e:
                print(f"[collection:warn] {WARNING} Deck '{row['name']}': {e.message}")

        deck_id = int(row["id"])
        decks[deck_id] = Deck(id=deck_id, name=row["name"], is_filtered=is_filtered)

    return decks


def extract_notes(conn: sqlite3.Connection) -> List[Note]:
    """Extract notes in source order."""
    notes = []
    for row in conn.execute("SELECT id, guid, mid, tags, flds, sfld FROM notes ORDER BY rowid"):
        sort_field = row["sfld"]
        notes.append(Note(
            id=int(row["id"]),
            guid=row["guid"] or "",
            model_id=str(row["mid"]),
            tags_raw=(row["tags"] or "").strip(),
            field_values_raw=row["flds"] or "",
            sort_field="" if sort_field is None else str(sort_field),
        ))
    return notes


def extract_cards(conn: sqlite3.Connection) -> List[Card]:
    """Extract cards in source order. Scheduling columns are copied as-is."""
    columns = ", ".join(("id", "nid", "did", "ord") + SCHEDULING_COLUMNS)
    cards = []
    for row in conn.execute(f"SELECT {columns} FROM cards ORDER BY rowid"):
        cards.append(Card(
            id=int(row["id"]),
            note_id=int(row["nid"]),
            deck_id=int(row["did"]),
            template_ordinal=int(row["ord"]),
            scheduling={name: row[name] for name in SCHEDULING_COLUMNS},
        ))
    return cards


# ============================================================================
# Package Parsing
# ============================================================================

def read_media_manifest(archive: Archive) -> Dict[str, str]:
    """Decode the media manifest; an absent or unreadable one maps nothing."""
    raw = archive.entry(MEDIA_MANIFEST_ENTRY)
    if raw is None:
        return {}

    try:
        return decode_media_manifest(decode_if_compressed(raw))
    except (DecodeWarning, MediaError) as e:
        print(f"[collection:warn] {WARNING} Media manifest could not be decoded: {e.message}")
        return {}


def parse_package(data: bytes) -> PackageData:
    """
    Parse a complete .apkg export.

    Raises:
        UnsupportedPackage: Not an anki21b package, or the schema is unknown
    """
    with open_package(data) as archive:
        db_raw = archive.entry(DATABASE_ENTRY)
        if db_raw is None:
            raise UnsupportedPackage(
                message="Unsupported Anki export. Please export using Anki 2.1.50+ (.anki21b)",
                suggestion="In Anki, uncheck 'Support older Anki versions' when exporting",
                context={"entries": ", ".join(archive.names()[:10])},
            )

        media = read_media_manifest(archive)
        db_bytes = decode_if_compressed(db_raw, mandatory=True)

    with open_collection(db_bytes) as conn:
        check_schema(conn)
        try:
            models = extract_models(conn)
            decks = extract_decks(conn)
            notes = extract_notes(conn)
            cards = extract_cards(conn)
        except sqlite3.DatabaseError as e:
            raise UnsupportedPackage(
                message="Unsupported Anki export. Collection schema not recognized.",
                suggestion="Export the deck again from Anki 2.1.50 or newer",
                cause=e,
            )

    print(f"[collection] {len(models)} note types, {len(decks)} decks, "
          f"{len(notes)} notes, {len(cards)} cards, {len(media)} media files")

    return PackageData.build(models, decks, notes, cards, media)


def extract_media_file(source: Union[Archive, bytes], numeric_key: str) -> Optional[bytes]:
    """
    Read one media payload by its numeric key, decompressing if needed.

    Returns:
        Payload bytes, or None if the container has no such entry
    """
    if isinstance(source, Archive):
        raw = source.entry(numeric_key)
    else:
        with open_package(source) as archive:
            raw = archive.entry(numeric_key)

    if raw is None:
        return None
    return decode_if_compressed(raw)
