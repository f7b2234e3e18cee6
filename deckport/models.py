#!/usr/bin/env python3
"""
# deckport
# Copyright (c) 2026 deckport contributors
# Licensed under the MIT License. See LICENSE in the project root.

models.py (deckport)

Data classes for a parsed Anki package and for the artifacts the import
produces from it.

PackageData is the snapshot built once per import attempt from the
collection database and media manifest. It is never mutated afterwards;
everything downstream (ConvertedTemplate, ConvertedContent, the artifacts)
is derived from it one note type / note at a time.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple


# Separator between field values in notes.flds
FIELD_SEPARATOR = "\x1f"

# anki21b stores nested deck names with \x1f, older exports and the UI use ::
DECK_SEPARATORS = ("\x1f", "::")
DISPLAY_DECK_SEPARATOR = "::"

DEFAULT_DECK_ID = 1


class ModelKind(enum.IntEnum):
    STANDARD = 0
    CLOZE = 1


# ============================================================================
# Package Snapshot
# ============================================================================

@dataclass(frozen=True)
class FieldDef:
    """A field of a note type."""
    name: str
    ordinal: int


@dataclass(frozen=True)
class TemplateDef:
    """A card template of a note type."""
    name: str
    ordinal: int
    question_format: str = ""
    answer_format: str = ""


@dataclass(frozen=True)
class Model:
    """A note type (Anki calls these models or notetypes)."""
    id: str
    name: str
    kind: ModelKind = ModelKind.STANDARD
    fields: Tuple[FieldDef, ...] = ()
    templates: Tuple[TemplateDef, ...] = ()

    @property
    def is_cloze(self) -> bool:
        return self.kind == ModelKind.CLOZE

    @property
    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]


@dataclass(frozen=True)
class Deck:
    """A deck. Nested decks embed the hierarchy in the name."""
    id: int
    name: str
    is_filtered: bool = False

    @property
    def path_parts(self) -> List[str]:
        name = self.name
        for sep in DECK_SEPARATORS[1:]:
            name = name.replace(sep, DECK_SEPARATORS[0])
        return [part for part in name.split(DECK_SEPARATORS[0])]

    @property
    def display_name(self) -> str:
        return DISPLAY_DECK_SEPARATOR.join(self.path_parts)

    @property
    def depth(self) -> int:
        return len(self.path_parts) - 1


@dataclass(frozen=True)
class Note:
    """A note row. Field values are kept raw until conversion."""
    id: int
    guid: str
    model_id: str
    tags_raw: str = ""
    field_values_raw: str = ""
    sort_field: str = ""

    @property
    def field_values(self) -> List[str]:
        return self.field_values_raw.split(FIELD_SEPARATOR)

    @property
    def tags(self) -> List[str]:
        return self.tags_raw.split()


@dataclass(frozen=True)
class Card:
    """A card row. Scheduling columns are passed through untouched."""
    id: int
    note_id: int
    deck_id: int
    template_ordinal: int
    scheduling: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PackageData:
    """Everything read from one .apkg file."""
    models: Mapping[str, Model]
    decks: Mapping[int, Deck]
    notes: Tuple[Note, ...]
    cards: Tuple[Card, ...]
    media: Mapping[str, str]

    @classmethod
    def build(
        cls,
        models: Dict[str, Model],
        decks: Dict[int, Deck],
        notes: List[Note],
        cards: List[Card],
        media: Dict[str, str],
    ) -> "PackageData":
        return cls(
            models=MappingProxyType(dict(models)),
            decks=MappingProxyType(dict(decks)),
            notes=tuple(notes),
            cards=tuple(cards),
            media=MappingProxyType(dict(media)),
        )


# ============================================================================
# Conversion Results
# ============================================================================

@dataclass
class ConvertedTemplate:
    """A note type template rewritten as a single Markdown template."""
    name: str
    body: str
    variable_names: FrozenSet[str]
    source_model_id: str
    template_ordinal: int


@dataclass
class ConvertedContent:
    """A field value rewritten as Markdown."""
    markup: str
    referenced_media: FrozenSet[str] = frozenset()


@dataclass
class DeckSelection:
    """A deck as offered for selection before import."""
    deck: Deck
    depth: int
    note_count: int
    selected: bool = False


# ============================================================================
# Import Artifacts
# ============================================================================

@dataclass
class TemplateArtifact:
    """A template document to create in the destination."""
    path: str
    template: ConvertedTemplate


@dataclass
class CardArtifact:
    """A flashcard document to create in the destination."""
    path: str
    note_id: int
    card_id: int
    template_path: str
    metadata: Dict[str, Any]
    fields: Dict[str, str]
    body: str = ""


@dataclass
class MediaArtifact:
    """A media payload to write into the attachment folder."""
    path: str
    filename: str
    numeric_key: str
    data: bytes


@dataclass
class ImportResult:
    """Counters and non-fatal errors of one import run."""
    cards_imported: int = 0
    templates_created: int = 0
    media_imported: int = 0
    errors: List[str] = field(default_factory=list)
    cancelled: bool = False


@dataclass
class ImportPlan:
    """Everything an import would write, computed without writing."""
    templates: List[TemplateArtifact] = field(default_factory=list)
    media: List[MediaArtifact] = field(default_factory=list)
    cards: List[CardArtifact] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    conflicts: List[str] = field(default_factory=list)
    template_paths: Dict[Tuple[str, int], str] = field(default_factory=dict)
    notes_total: Optional[int] = None
