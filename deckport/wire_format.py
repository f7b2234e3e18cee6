#!/usr/bin/env python3
"""
# deckport
# Copyright (c) 2026 deckport contributors
# Licensed under the MIT License. See LICENSE in the project root.

wire_format.py (deckport)

Minimal protobuf wire-format walkers for the config blobs in anki21b.

Anki stores note type, template and deck settings as protobuf messages in
BLOB columns. We only need a handful of fields, and the messages carry
many fields that vary between Anki versions, so instead of a generated
schema each blob kind gets a small function that walks (field, wire type)
tags, picks out the fields it knows and skips everything else.

Wire format::

    tag     = varint(field_number << 3 | wire_type)
    type 0  = varint value
    type 2  = varint length, then that many bytes

Blobs handled:
    templates.config  field 1 = question format, field 2 = answer format
    notetypes.config  field 1 = kind (0 = standard, 1 = cloze)
    decks.kind        oneof: field 1 = normal, field 2 = filtered
    media manifest    repeated field 1 = {name = 1, size = 2, sha1 = 3}
"""

from __future__ import annotations

from typing import Dict, Iterator, NamedTuple, Tuple

from deckport.errors import DecodeWarning


WIRE_VARINT = 0
WIRE_LENGTH_DELIMITED = 2


class TemplateFormat(NamedTuple):
    question_format: str
    answer_format: str


def read_varint(data: bytes, pos: int) -> Tuple[int, int]:
    """
    Read a varint starting at pos.

    Varints use 7 bits per byte, least significant group first, with the
    high bit as continuation flag.

    Returns:
        (value, position after the varint)

    Raises:
        DecodeWarning: The buffer ends inside the varint
    """
    result = 0
    shift = 0
    while pos < len(data):
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result, pos
        shift += 7
    raise DecodeWarning(
        message="Truncated varint in config blob",
        context={"position": pos, "length": len(data)},
    )


def _walk(data: bytes) -> Iterator[Tuple[int, int, object]]:
    """
    Yield (field_number, wire_type, value) for each field.

    Varint values are ints, length-delimited values are bytes. A wire type
    other than varint or length-delimited ends the walk; whatever follows
    is not needed by any caller.
    """
    pos = 0
    while pos < len(data):
        tag, pos = read_varint(data, pos)
        field_number = tag >> 3
        wire_type = tag & 0x07

        if wire_type == WIRE_VARINT:
            value, pos = read_varint(data, pos)
            yield field_number, wire_type, value
        elif wire_type == WIRE_LENGTH_DELIMITED:
            length, pos = read_varint(data, pos)
            value = bytes(data[pos:pos + length])
            pos += length
            yield field_number, wire_type, value
        else:
            return


def decode_template_format(blob: bytes) -> TemplateFormat:
    """
    Decode the question/answer format strings of a card template.

    Field 1 is the question format, field 2 the answer format. Unknown
    fields are skipped. Empty input yields empty strings.
    """
    question_format = ""
    answer_format = ""

    for field_number, wire_type, value in _walk(blob or b""):
        if wire_type != WIRE_LENGTH_DELIMITED:
            continue
        if field_number == 1:
            question_format = value.decode("utf-8", errors="replace")
        elif field_number == 2:
            answer_format = value.decode("utf-8", errors="replace")

    return TemplateFormat(question_format, answer_format)


def decode_notetype_kind(blob: bytes) -> int:
    """
    Decode the kind of a note type: 0 = standard, 1 = cloze.

    Returns the first varint found at field 1, or 0 if there is none.
    """
    for field_number, wire_type, value in _walk(blob or b""):
        if field_number == 1 and wire_type == WIRE_VARINT:
            return value
    return 0


def decode_deck_kind(blob: bytes) -> bool:
    """
    Decode whether a deck is filtered.

    The kind blob is a oneof of a normal (field 1) and a filtered
    (field 2) sub-message.
    """
    for field_number, wire_type, _ in _walk(blob or b""):
        if field_number == 2 and wire_type == WIRE_LENGTH_DELIMITED:
            return True
        if field_number == 1:
            return False
    return False


def decode_media_manifest(data: bytes) -> Dict[str, str]:
    """
    Decode the media manifest into numeric key -> original filename.

    The manifest is a repeated message at field 1; the position of each
    entry is the name of its payload inside the container. Entries with an
    empty name still use up a position but are left out of the mapping.

    Example:
        >>> decode_media_manifest(b"\\x0a\\x07\\x0a\\x05a.png")
        {'0': 'a.png'}
    """
    mapping: Dict[str, str] = {}
    index = 0

    for field_number, wire_type, value in _walk(data or b""):
        if field_number != 1 or wire_type != WIRE_LENGTH_DELIMITED:
            continue

        name = ""
        for inner_number, inner_type, inner_value in _walk(value):
            if inner_number == 1 and inner_type == WIRE_LENGTH_DELIMITED:
                name = inner_value.decode("utf-8", errors="replace")

        if name:
            mapping[str(index)] = name
        index += 1

    return mapping
