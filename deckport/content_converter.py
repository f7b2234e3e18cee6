#!/usr/bin/env python3
"""
# deckport
# Copyright (c) 2026 deckport contributors
# Licensed under the MIT License. See LICENSE in the project root.

content_converter.py (deckport)

Convert one Anki note field from HTML to flashcard markdown.

Pipeline, in order:
1. <img>, <video>, <audio> with a src  -> ![[filename]]  (src URL-decoded)
2. [sound:filename]                     -> ![[filename]]
3. HTML -> markdown (see html_to_markdown)
4. {{c1::answer}} / {{c1::answer::hint}} -> ==answer==   (hint dropped)
5. Blank-line cleanup

Every embedded filename is reported in ConvertedContent.referenced_media so
the importer knows which media payloads to extract. Conversion is a pure
function of its inputs; running it again on its own output leaves embeds
and highlights as they are.
"""

from __future__ import annotations

import re
from typing import Dict, Mapping, Optional, Set, Tuple
from urllib.parse import unquote

from bs4 import BeautifulSoup

from deckport.html_to_markdown import cleanup_markdown, convert_html_to_markdown
from deckport.models import ConvertedContent


MEDIA_TAGS = ("img", "video", "audio")

SOUND_PATTERN = re.compile(r'\[sound:([^\]]+)\]')

# {{c1::answer}} or {{c1::answer::hint}}
CLOZE_PATTERN = re.compile(r'\{\{c\d+::([^:}]+)(?:::[^}]*)?\}\}')


def embed(filename: str) -> str:
    """Embed reference for a media file."""
    return f"![[{filename}]]"


def rewrite_media_tags(html: str, referenced: Set[str]) -> str:
    """Replace media elements that have a src with embed references."""
    if not re.search(r'<(?:img|video|audio)\b', html, re.IGNORECASE):
        return html

    soup = BeautifulSoup(html, 'html.parser')
    for tag in soup.find_all(MEDIA_TAGS):
        src = tag.get('src', '')
        if not src:
            continue
        filename = unquote(src)
        referenced.add(filename)
        tag.replace_with(embed(filename))

    return str(soup)


def rewrite_sound_references(html: str, referenced: Set[str]) -> str:
    """Replace [sound:name] with embed references."""
    def replace(match):
        filename = match.group(1)
        referenced.add(filename)
        return embed(filename)

    return SOUND_PATTERN.sub(replace, html)


def convert_clozes(markdown: str) -> str:
    """{{c1::answer::hint}} -> ==answer=="""
    return CLOZE_PATTERN.sub(lambda m: f"=={m.group(1).strip()}==", markdown)


def convert_field(field_html: str, media_lookup: Optional[Mapping[str, str]] = None) -> ConvertedContent:
    """
    Convert one field value to markdown.

    Args:
        field_html: Raw field HTML from notes.flds
        media_lookup: Numeric key -> filename map from the media manifest.
            Anki fields already reference media by filename, so the lookup
            is only carried for callers that key on it.

    Returns:
        ConvertedContent with the markdown and the referenced filenames

    Raises:
        ConversionError: If the HTML cannot be converted

    Example:
        >>> convert_field('{{c1::Paris}} <img src="a%20b.png">').markup
        '==Paris== ![[a b.png]]'
    """
    referenced: Set[str] = set()

    if not field_html or not field_html.strip():
        return ConvertedContent(markup="", referenced_media=frozenset())

    processed = rewrite_media_tags(field_html, referenced)
    processed = rewrite_sound_references(processed, referenced)

    markdown = convert_html_to_markdown(processed)
    markdown = convert_clozes(markdown)
    markdown = cleanup_markdown(markdown)

    return ConvertedContent(markup=markdown, referenced_media=frozenset(referenced))


class ContentConverter:
    """
    Field converter with a memo table.

    The importer converts every field twice: once to find referenced media
    before anything is written, once to build the card. Both calls go
    through the same memo so the second one is a lookup.
    """

    def __init__(self, media_lookup: Optional[Mapping[str, str]] = None):
        self.media_lookup: Dict[str, str] = dict(media_lookup or {})
        self._memo: Dict[Tuple[str, Tuple[Tuple[str, str], ...]], ConvertedContent] = {}
        self._lookup_key = tuple(sorted(self.media_lookup.items()))

    def convert(self, field_html: str) -> ConvertedContent:
        key = (field_html, self._lookup_key)
        cached = self._memo.get(key)
        if cached is None:
            cached = convert_field(field_html, self.media_lookup)
            self._memo[key] = cached
        return cached

    def clear(self) -> None:
        self._memo.clear()
