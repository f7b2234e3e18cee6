#!/usr/bin/env python3
"""
# deckport
# Copyright (c) 2026 deckport contributors
# Licensed under the MIT License. See LICENSE in the project root.

import_apkg.py (deckport)

Import an Anki .apkg export (Anki 2.1.50+) into markdown flashcards.

The import creates:
- Note types       -> templates/<name>.md        (question --- answer)
- Notes            -> flashcards/<deck>/<card id>.md  (YAML frontmatter)
- Referenced media -> attachments/<filename>

Nested decks become nested folders. Each note becomes one flashcard whose
frontmatter holds the converted field values, a link to its template and
a fresh review state.

Usage:
    deckport <deck.apkg> [--output PATH] [--deck ID ...] [--dry-run]

Options:
    --output               Destination root (default: current directory)
    --config               Settings file (default: <output>/deckport.yaml)
    --deck                 Deck id to import (repeatable, default: all)
    --list-decks           Show the decks in the package and exit
    --overwrite-templates  Replace template files that already exist
    --dry-run              Show what would be imported without writing
"""

from __future__ import annotations

import argparse
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import (
    Callable,
    Collection,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Set,
    Tuple,
    Union,
)

from deckport.collection import extract_media_file, parse_package
from deckport.config import CONFIG_FILENAME, ImportSettings, load_settings
from deckport.container import Archive, is_supported, open_package
from deckport.content_converter import ContentConverter
from deckport.errors import (
    ConversionError,
    DeckportError,
    MediaError,
)
from deckport.icons import ERROR, SUCCESS, WARNING
from deckport.models import (
    DEFAULT_DECK_ID,
    Card,
    CardArtifact,
    Deck,
    DeckSelection,
    ImportPlan,
    ImportResult,
    MediaArtifact,
    Model,
    Note,
    PackageData,
    TemplateArtifact,
    TemplateDef,
)
from deckport.store import FilesystemStore, is_safe_relative_path, write_card_document
from deckport.template_converter import (
    RESERVED_NAMES,
    convert_template,
    template_name_for,
)


# ============================================================================
# Constants
# ============================================================================

DEFAULT_OUTPUT_DIR = Path(".")

PROTECTION_COMMENT = (
    "<!-- flashcard-content: DO NOT EDIT BELOW - edit the template or frontmatter instead -->"
)

ProgressCallback = Callable[[int, int, str], None]
CancelCheck = Callable[[], bool]
BodyRenderer = Callable[[str, Dict[str, str]], str]


# ============================================================================
# Field Names
# ============================================================================

def normalize_field_name(name: str, used: Set[str]) -> str:
    """
    Turn an Anki field name into a frontmatter key / template identifier.

    Args:
        name: Original field name ("Front", "Extra Info", "2nd-side")
        used: Identifiers already taken in this note type

    Returns:
        A name not in used; the caller adds it

    Example:
        >>> normalize_field_name("Extra Info", set())
        'Extra_Info'
        >>> normalize_field_name("a-b", {"a_b"})
        'a_b_2'
    """
    normalized = re.sub(r'[^a-zA-Z0-9_]+', '_', name.strip())
    normalized = re.sub(r'_+', '_', normalized).strip('_')

    if not normalized:
        normalized = "field"

    if normalized[0].isdigit():
        normalized = f"field_{normalized}"

    if normalized in RESERVED_NAMES:
        normalized = f"field_{normalized}"

    candidate = normalized
    counter = 2
    while candidate in used:
        candidate = f"{normalized}_{counter}"
        counter += 1

    return candidate


def build_field_name_map(model: Model) -> Dict[str, str]:
    """Map each field name of a note type to a unique identifier."""
    mapping: Dict[str, str] = {}
    used: Set[str] = set()
    for field_def in model.fields:
        normalized = normalize_field_name(field_def.name, used)
        mapping[field_def.name] = normalized
        used.add(normalized)
    return mapping


# ============================================================================
# Decks
# ============================================================================

def resolve_first_cards(cards: Iterable[Card]) -> Dict[int, Card]:
    """First card of every note, in source order."""
    first: Dict[int, Card] = {}
    for card in cards:
        if card.note_id not in first:
            first[card.note_id] = card
    return first


def resolve_note_decks(cards: Iterable[Card]) -> Dict[int, int]:
    """
    Deck of every note.

    A note with cards in several decks is placed in the deck of its first
    card.
    """
    return {note_id: card.deck_id for note_id, card in resolve_first_cards(cards).items()}


def resolve_note_deck(package: PackageData, note: Note) -> Optional[int]:
    """Deck id of one note, or None if it has no cards."""
    for card in package.cards:
        if card.note_id == note.id:
            return card.deck_id
    return None


def build_deck_hierarchy(
    package: PackageData,
    selected_ids: Optional[Collection[int]] = None,
) -> List[DeckSelection]:
    """
    List the importable decks with depth and note counts.

    The empty Default deck and filtered decks are left out.
    """
    note_decks = resolve_note_decks(package.cards)
    note_ids = {note.id for note in package.notes}

    note_count: Dict[int, int] = {}
    for note_id, deck_id in note_decks.items():
        if note_id in note_ids:
            note_count[deck_id] = note_count.get(deck_id, 0) + 1

    decks = [
        deck for deck in package.decks.values()
        if not deck.is_filtered
        and not (deck.id == DEFAULT_DECK_ID and note_count.get(deck.id, 0) == 0)
    ]
    decks.sort(key=lambda d: d.display_name.lower())

    return [
        DeckSelection(
            deck=deck,
            depth=deck.depth,
            note_count=note_count.get(deck.id, 0),
            selected=bool(selected_ids) and deck.id in selected_ids,
        )
        for deck in decks
    ]


def select_notes(package: PackageData, selected_deck_ids: Collection[int]) -> List[Note]:
    """Notes whose deck is selected, in source order."""
    note_decks = resolve_note_decks(package.cards)
    return [
        note for note in package.notes
        if note_decks.get(note.id) in selected_deck_ids
    ]


def sanitize_path_component(name: str) -> str:
    """Make one folder or file name safe for the destination."""
    name = re.sub(r'[\\/:*?"<>|\x00-\x1f]', '-', name)
    name = re.sub(r'-+', '-', name)
    name = name.strip().strip('-').strip('.').strip()
    return name or "untitled"


def deck_folder(settings: ImportSettings, deck: Deck) -> str:
    """Destination folder of a deck: one folder per hierarchy level."""
    parts = [sanitize_path_component(part) for part in deck.path_parts]
    return "/".join([settings.destination_folder] + parts)


# ============================================================================
# Templates
# ============================================================================

def template_for_card(model: Model, card: Optional[Card]) -> Optional[TemplateDef]:
    """
    Card template a note is rendered with.

    Cloze note types have a single template; their card ordinal is the
    cloze number, not a template ordinal.
    """
    if not model.templates:
        return None
    if card is not None and not model.is_cloze:
        for tmpl in model.templates:
            if tmpl.ordinal == card.template_ordinal:
                return tmpl
    return model.templates[0]


def template_path(settings: ImportSettings, name: str) -> str:
    return f"{settings.template_folder}/{name}.md"


def used_templates(package: PackageData, notes: Iterable[Note]) -> Dict[str, List[TemplateDef]]:
    """Templates needed for the given notes, grouped by note type, in first-use order."""
    first_cards = resolve_first_cards(package.cards)
    needed: Dict[str, List[TemplateDef]] = {}

    for note in notes:
        model = package.models.get(note.model_id)
        if model is None:
            continue
        tmpl = template_for_card(model, first_cards.get(note.id))
        templates = needed.setdefault(note.model_id, [])
        if tmpl is not None and tmpl not in templates:
            templates.append(tmpl)

    return needed


def get_template_conflicts(
    package: PackageData,
    selected_deck_ids: Collection[int],
    existing: Union[Collection[str], Callable[[str], bool]],
) -> List[str]:
    """
    Template names the import would create that already exist.

    Args:
        package: Parsed package
        selected_deck_ids: Decks to import
        existing: Existing template names, or a predicate on names

    Returns:
        Sorted conflicting names
    """
    exists = existing if callable(existing) else (lambda name: name in existing)
    notes = select_notes(package, selected_deck_ids)

    conflicts: Set[str] = set()
    for model_id, templates in used_templates(package, notes).items():
        model = package.models[model_id]
        for tmpl in templates:
            name = template_name_for(model, tmpl)
            if exists(name):
                conflicts.add(name)

    return sorted(conflicts, key=str.lower)


def convert_note_templates(
    package: PackageData,
    notes: List[Note],
    settings: ImportSettings,
    field_name_maps: Dict[str, Dict[str, str]],
    on_progress: Optional[ProgressCallback] = None,
    total_steps: int = 0,
) -> Tuple[List[TemplateArtifact], List[str]]:
    """Convert the templates the notes need. Progress is reported once per note type."""
    artifacts: List[TemplateArtifact] = []
    errors: List[str] = []

    for step, (model_id, templates) in enumerate(used_templates(package, notes).items(), 1):
        model = package.models[model_id]
        if on_progress:
            on_progress(step, total_steps, f"Creating template: {model.name}")

        if not templates:
            errors.append(f"Failed to create template for {model.name}: note type has no card templates")
            continue

        for tmpl in templates:
            try:
                converted = convert_template(model, tmpl, field_name_maps[model_id])
            except ConversionError as e:
                errors.append(f"Failed to create template for {model.name}: {e.message}")
                continue
            artifacts.append(TemplateArtifact(
                path=template_path(settings, converted.name),
                template=converted,
            ))

    return artifacts, errors


# ============================================================================
# Media
# ============================================================================

def detect_referenced_media(
    notes: Iterable[Note],
    models: Mapping[str, Model],
    media_lookup: Mapping[str, str],
    converter: Optional[ContentConverter] = None,
) -> Set[str]:
    """
    Filenames referenced by any field of the notes.

    Fields that fail to convert are skipped here; the failure is reported
    when the note itself is imported.
    """
    converter = converter or ContentConverter(media_lookup)
    referenced: Set[str] = set()

    for note in notes:
        if note.model_id not in models:
            continue
        for value in note.field_values:
            try:
                referenced.update(converter.convert(value).referenced_media)
            except ConversionError:
                continue

    return referenced


def plan_media(
    package: PackageData,
    archive: Archive,
    filenames: Iterable[str],
    attachment_folder: str,
) -> Tuple[List[MediaArtifact], List[str]]:
    """
    Read the payloads of referenced media files.

    Returns:
        (artifacts, error strings) - a missing file never stops the import
    """
    key_by_name: Dict[str, str] = {}
    for key, name in package.media.items():
        key_by_name.setdefault(name, key)

    artifacts: List[MediaArtifact] = []
    errors: List[str] = []

    for filename in sorted(filenames):
        try:
            numeric_key = key_by_name.get(filename)
            if numeric_key is None:
                raise MediaError(message="not listed in the media manifest")

            path = f"{attachment_folder}/{filename}"
            if "/" in filename or "\\" in filename or not is_safe_relative_path(path):
                raise MediaError(message="unsafe file name")

            data = extract_media_file(archive, numeric_key)
            if data is None:
                raise MediaError(message=f"entry {numeric_key} missing from package")

        except DeckportError as e:
            errors.append(f"Failed to import media {filename}: {e.message}")
            continue

        artifacts.append(MediaArtifact(path=path, filename=filename, numeric_key=numeric_key, data=data))

    return artifacts, errors


# ============================================================================
# Cards
# ============================================================================

def initial_review_state(now: Optional[datetime] = None) -> Dict[str, object]:
    """Review state of a card that has never been reviewed."""
    now = now or datetime.now(timezone.utc)
    return {
        "due": now.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        "stability": 0,
        "difficulty": 0,
        "elapsed_days": 0,
        "scheduled_days": 0,
        "reps": 0,
        "lapses": 0,
        "state": 0,
    }


def normalize_frontmatter_value(field_name: str, value: str) -> Union[str, List[str]]:
    """A comma-separated tags field becomes a YAML list."""
    if field_name.lower() == "tags":
        parts = [part.strip() for part in value.split(",") if part.strip()]
        if len(parts) > 1:
            return parts
    return value


def build_card_document(
    note: Note,
    package: PackageData,
    first_card: Card,
    template_paths: Mapping[Tuple[str, int], str],
    field_name_maps: Mapping[str, Mapping[str, str]],
    converter: ContentConverter,
    settings: ImportSettings,
    template_bodies: Optional[Mapping[str, str]] = None,
    render_body: Optional[BodyRenderer] = None,
) -> CardArtifact:
    """
    Convert one note into a flashcard document.

    Raises:
        ConversionError: Missing note type / deck / template, field count
            mismatch, or a field that cannot be converted
    """
    model = package.models.get(note.model_id)
    if model is None:
        raise ConversionError(message=f"note type {note.model_id} not found")

    deck = package.decks.get(first_card.deck_id)
    if deck is None:
        raise ConversionError(message=f"deck {first_card.deck_id} not found")

    tmpl = template_for_card(model, first_card)
    path_of_template = template_paths.get((model.id, tmpl.ordinal)) if tmpl else None
    if path_of_template is None:
        raise ConversionError(message=f"no template available for note type {model.name}")

    values = note.field_values
    if len(values) != len(model.fields):
        raise ConversionError(
            message=f"expected {len(model.fields)} fields for {model.name}, found {len(values)}",
        )

    field_name_map = field_name_maps.get(model.id, {})
    fields: Dict[str, str] = {}
    metadata: Dict[str, object] = {
        "_type": "flashcard",
        "_template": f"[[{path_of_template}]]",
        "_review": initial_review_state(),
    }

    for field_def, value in zip(model.fields, values):
        markup = converter.convert(value).markup
        name = field_name_map.get(field_def.name, field_def.name)
        fields[name] = markup
        metadata[name] = normalize_frontmatter_value(name, markup)

    body = PROTECTION_COMMENT
    if render_body is not None and template_bodies and path_of_template in template_bodies:
        body = f"{PROTECTION_COMMENT}\n\n{render_body(template_bodies[path_of_template], fields)}"

    return CardArtifact(
        path=f"{deck_folder(settings, deck)}/{first_card.id}.md",
        note_id=note.id,
        card_id=first_card.id,
        template_path=path_of_template,
        metadata=metadata,
        fields=fields,
        body=body,
    )


# ============================================================================
# Import Orchestration
# ============================================================================

def plan_import(
    data: bytes,
    selected_deck_ids: Collection[int],
    settings: Optional[ImportSettings] = None,
    package: Optional[PackageData] = None,
    existing_templates: Union[Collection[str], Callable[[str], bool]] = (),
) -> ImportPlan:
    """
    Compute everything an import would write, without writing it.
    """
    settings = settings or ImportSettings()
    package = package or parse_package(data)
    plan = ImportPlan()

    notes = select_notes(package, selected_deck_ids)
    plan.notes_total = len(notes)
    plan.conflicts = get_template_conflicts(package, selected_deck_ids, existing_templates)

    field_name_maps = {mid: build_field_name_map(m) for mid, m in package.models.items()}
    plan.templates, plan.errors = convert_note_templates(package, notes, settings, field_name_maps)
    plan.template_paths = {
        (a.template.source_model_id, a.template.template_ordinal): a.path for a in plan.templates
    }

    converter = ContentConverter(package.media)
    referenced = detect_referenced_media(notes, package.models, package.media, converter)
    with open_package(data) as archive:
        plan.media, media_errors = plan_media(
            package, archive, referenced, settings.attachment_folder
        )
    plan.errors.extend(media_errors)

    first_cards = resolve_first_cards(package.cards)
    for note in notes:
        try:
            plan.cards.append(build_card_document(
                note, package, first_cards[note.id], plan.template_paths,
                field_name_maps, converter, settings,
            ))
        except ConversionError as e:
            plan.errors.append(f"Failed to import note {note.id}: {e.message}")

    return plan


def import_package(
    data: bytes,
    selected_deck_ids: Collection[int],
    store,
    settings: Optional[ImportSettings] = None,
    on_progress: Optional[ProgressCallback] = None,
    should_cancel: Optional[CancelCheck] = None,
    package: Optional[PackageData] = None,
    render_body: Optional[BodyRenderer] = None,
) -> ImportResult:
    """
    Import the selected decks of a package into a destination store.

    Args:
        data: Raw .apkg bytes
        selected_deck_ids: Deck ids to import
        store: Destination with exists/ensure_folder/create_or_overwrite_text_file/write_binary
        settings: Destination folders and template overwrite policy
        on_progress: Called as (current, total, message) once per note type
            and once per note
        should_cancel: Checked between notes; returning True stops the import
        package: Already parsed package data (parsed from data otherwise)
        render_body: Optional (template body, fields) -> card body renderer

    Returns:
        ImportResult with counters and non-fatal errors

    Raises:
        UnsupportedPackage: The package cannot be imported at all
    """
    settings = settings or ImportSettings()
    package = package or parse_package(data)
    result = ImportResult()

    notes = select_notes(package, selected_deck_ids)
    used = used_templates(package, notes)
    total_steps = len(notes) + len(used)

    # Step 1: Templates
    print(f"[apkg] Creating templates for {len(used)} note types...")
    field_name_maps = {mid: build_field_name_map(m) for mid, m in package.models.items()}
    template_artifacts, errors = convert_note_templates(
        package, notes, settings, field_name_maps, on_progress, total_steps
    )
    result.errors.extend(errors)

    template_paths: Dict[Tuple[str, int], str] = {}
    template_bodies: Dict[str, str] = {}
    for artifact in template_artifacts:
        converted = artifact.template
        try:
            if store.exists(artifact.path) and not settings.overwrite_templates:
                print(f"[apkg] Using existing template: {artifact.path}")
            else:
                store.ensure_folder(settings.template_folder)
                store.create_or_overwrite_text_file(artifact.path, converted.body)
                print(f"[apkg] Created template: {artifact.path}")
        except DeckportError as e:
            result.errors.append(f"Failed to create template for {converted.name}: {e.message}")
            continue
        except OSError as e:
            result.errors.append(f"Failed to create template for {converted.name}: {e}")
            continue
        template_paths[(converted.source_model_id, converted.template_ordinal)] = artifact.path
        template_bodies[artifact.path] = converted.body
        result.templates_created += 1

    # Step 2: Media
    converter = ContentConverter(package.media)
    referenced = detect_referenced_media(notes, package.models, package.media, converter)
    print(f"[apkg] {len(referenced)} media files referenced")

    with open_package(data) as archive:
        media_artifacts, errors = plan_media(
            package, archive, referenced, settings.attachment_folder
        )
    result.errors.extend(errors)

    for media in media_artifacts:
        try:
            store.ensure_folder(settings.attachment_folder)
            store.write_binary(media.path, media.data)
            result.media_imported += 1
        except DeckportError as e:
            result.errors.append(f"Failed to import media {media.filename}: {e.message}")
        except OSError as e:
            result.errors.append(f"Failed to import media {media.filename}: {e}")

    # Step 3: Flashcards
    first_cards = resolve_first_cards(package.cards)
    current_step = len(used)
    for note in notes:
        if should_cancel is not None and should_cancel():
            result.cancelled = True
            print(f"[apkg:warn] {WARNING} Import cancelled after {result.cards_imported} cards")
            break

        current_step += 1
        if on_progress:
            on_progress(current_step, total_steps,
                        f"Importing card {result.cards_imported + 1} of {len(notes)}")

        try:
            card = build_card_document(
                note, package, first_cards[note.id], template_paths, field_name_maps,
                converter, settings, template_bodies, render_body,
            )
            store.ensure_folder(card.path.rsplit("/", 1)[0])
            write_card_document(store, card.path, card.metadata, card.body)
            result.cards_imported += 1
        except DeckportError as e:
            result.errors.append(f"Failed to import note {note.id}: {e.message}")
        except OSError as e:
            result.errors.append(f"Failed to import note {note.id}: {e}")

    return result


# ============================================================================
# Main Entry Point
# ============================================================================

def print_deck_list(selections: List[DeckSelection]) -> None:
    for selection in selections:
        indent = "  " * selection.depth
        name = selection.deck.path_parts[-1]
        print(f"  {selection.deck.id:>15}  {indent}{name} ({selection.note_count} notes)")


def console_progress(current: int, total: int, message: str) -> None:
    if message.startswith("Creating template") or current == total or current % 100 == 0:
        print(f"[apkg] ({current}/{total}) {message}")


def main():
    parser = argparse.ArgumentParser(
        description="Import an Anki .apkg export as markdown flashcards"
    )
    parser.add_argument(
        "apkg",
        type=Path,
        help="Path to .apkg file"
    )
    parser.add_argument(
        "--output", "-o",
        type=Path,
        default=DEFAULT_OUTPUT_DIR,
        help="Destination root (default: current directory)"
    )
    parser.add_argument(
        "--config",
        type=Path,
        help=f"Settings file (default: <output>/{CONFIG_FILENAME})"
    )
    parser.add_argument(
        "--deck",
        type=int,
        action="append",
        dest="decks",
        help="Deck id to import (repeatable, default: all decks)"
    )
    parser.add_argument(
        "--list-decks",
        action="store_true",
        help="List the decks in the package and exit"
    )
    parser.add_argument(
        "--overwrite-templates",
        action="store_true",
        default=None,
        help="Replace template files that already exist"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be imported without making changes"
    )

    args = parser.parse_args()

    if not args.apkg.is_file():
        print(f"{ERROR} Package file not found: {args.apkg}")
        return 1

    if args.apkg.suffix.lower() != ".apkg":
        print(f"{WARNING} Warning: File does not have .apkg extension")

    try:
        settings = load_settings(args.config or args.output / CONFIG_FILENAME)
        settings = settings.with_overrides(overwrite_templates=args.overwrite_templates)

        data = args.apkg.read_bytes()
        if not is_supported(data):
            print(f"{ERROR} Unsupported Anki export. Please export using Anki 2.1.50+ (.anki21b)")
            return 1

        print(f"[apkg] Importing package: {args.apkg}")
        package = parse_package(data)
        selections = build_deck_hierarchy(package, args.decks)

        if args.list_decks:
            print_deck_list(selections)
            return 0

        selected = set(args.decks) if args.decks else {s.deck.id for s in selections}
        store = FilesystemStore(args.output)

        conflicts = get_template_conflicts(
            package, selected,
            lambda name: store.exists(template_path(settings, name)),
        )
        if conflicts and not settings.overwrite_templates:
            print(f"[apkg:warn] {WARNING} Existing templates will be reused: {', '.join(conflicts)}")
            print("[apkg:warn] Use --overwrite-templates to replace them")

        if args.dry_run:
            plan = plan_import(data, selected, settings, package=package)
            print("\n[apkg] DRY RUN - No files written")
            print(f"[apkg] Would create {len(plan.templates)} templates")
            print(f"[apkg] Would create {len(plan.cards)} flashcards")
            print(f"[apkg] Would copy {len(plan.media)} media files")
            errors = plan.errors
        else:
            args.output.mkdir(parents=True, exist_ok=True)
            result = import_package(
                data, selected, store, settings,
                on_progress=console_progress, package=package,
            )
            print(f"\n[apkg] {SUCCESS} Import complete!")
            print(f"[apkg]   {result.templates_created} templates")
            print(f"[apkg]   {result.cards_imported} flashcards")
            print(f"[apkg]   {result.media_imported} media files")
            errors = result.errors

        if errors:
            print(f"\n[apkg:warn] {WARNING} {len(errors)} problem(s):")
            for error in errors:
                print(f"[apkg:warn]   {error}")

        return 0

    except DeckportError as e:
        print(f"\n{ERROR} Import failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
