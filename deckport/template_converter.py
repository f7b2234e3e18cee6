#!/usr/bin/env python3
"""
# deckport
# Copyright (c) 2026 deckport contributors
# Licensed under the MIT License. See LICENSE in the project root.

template_converter.py (deckport)

Convert Anki card templates to markdown flashcard templates.

Anki templates are HTML with mustache-like placeholders. The destination
template language uses Jinja-style syntax:

    {{Field}}         -> {{ Field }}
    {{{Field}}}       -> {{ Field }}
    {{#Field}}        -> {% if Field %}
    {{^Field}}        -> {% if not Field %}
    {{/Field}}        -> {% endif %}
    {{cloze:Field}}   -> {{ Field }}      (cloze markup is handled per field)
    {{type:Field}}    -> {{ Field }}
    {{FrontSide}}     -> replaced with the converted question

A note type's question and answer templates become one document: the
question, a --- separator, then the answer.

Conversion pipeline per template side:
1. Replace every placeholder with an opaque token, so the HTML parser and
   html2text never see (and never mangle) mustache syntax
2. Convert the HTML to markdown
3. Put the placeholders back, transpiled to the destination syntax
"""

from __future__ import annotations

import re
from typing import Dict, List, Mapping, Optional, Tuple

from deckport.html_to_markdown import cleanup_markdown, convert_html_to_markdown
from deckport.models import ConvertedTemplate, Model, TemplateDef


TOKEN_PREFIX = "DECKPORTTOKEN"
TOKEN_SUFFIX = "END"
ANSWER_MARKER = "DECKPORTANSWERSEPARATOR"

SECTION_SEPARATOR = "---"

FRONT_SIDE = "FrontSide"

# Names never reported as template variables
RESERVED_NAMES = frozenset({"loop", "super", "self", "true", "false", "none", FRONT_SIDE})

# Triple braces first (including the 3-open/2-close variant some exports
# contain), then the plain and prefixed double-brace forms
PLACEHOLDER_PATTERN = re.compile(
    r'\{\{\{([^{}]+)\}\}\}'
    r'|\{\{\{([^{}]+)\}\}'
    r'|\{\{([#^/])?([^{}]+)\}\}'
)

_PARTS_PATTERN = re.compile(r'\{\{([#^/])?([^{}]+)\}\}')
_FRONT_SIDE_PATTERN = re.compile(r'\{\{\s*FrontSide\s*\}\}', re.IGNORECASE)
_SEPARATOR_LINE = re.compile(r'^---$', re.MULTILINE)
_VARIABLE_PATTERN = re.compile(r'\{\{\s*([a-zA-Z_][a-zA-Z0-9_\s]*?)\s*(?:\|[^}]*)?\}\}')


# ============================================================================
# Placeholders
# ============================================================================

def tokenize_placeholders(html: str) -> Tuple[str, Dict[str, str]]:
    """
    Replace Anki placeholders with opaque tokens.

    Triple-brace forms are normalized to double braces in the token map.

    Returns:
        (tokenized html, token -> original placeholder)
    """
    tokens: Dict[str, str] = {}

    def replace(match):
        token = f"{TOKEN_PREFIX}{len(tokens)}{TOKEN_SUFFIX}"
        triple, malformed_triple = match.group(1), match.group(2)
        if triple is not None:
            tokens[token] = "{{" + triple.strip() + "}}"
        elif malformed_triple is not None:
            tokens[token] = "{{" + malformed_triple.strip() + "}}"
        else:
            tokens[token] = match.group(0)
        return token

    return PLACEHOLDER_PATTERN.sub(replace, html), tokens


def map_field_name(name: str, field_name_map: Optional[Mapping[str, str]] = None) -> str:
    name = name.strip()
    if field_name_map:
        return field_name_map.get(name, name)
    return name


def transpile_placeholder(placeholder: str, field_name_map: Optional[Mapping[str, str]] = None) -> str:
    """
    Translate one Anki placeholder to the destination syntax.

    Unrecognized text is returned unchanged.
    """
    match = _PARTS_PATTERN.fullmatch(placeholder)
    if not match:
        return placeholder

    prefix = match.group(1)
    content = match.group(2).strip()

    if prefix == "#":
        return f"{{% if {map_field_name(content, field_name_map)} %}}"
    if prefix == "^":
        return f"{{% if not {map_field_name(content, field_name_map)} %}}"
    if prefix == "/":
        return "{% endif %}"

    if content.lower() == FRONT_SIDE.lower():
        return "{{ " + FRONT_SIDE + " }}"

    # Filters and directives: cloze:Text, type:Back, hint:Extra
    if ":" in content:
        content = content.split(":")[-1].strip() or content

    return "{{ " + map_field_name(content, field_name_map) + " }}"


def restore_placeholders(
    markdown: str,
    tokens: Mapping[str, str],
    field_name_map: Optional[Mapping[str, str]] = None,
) -> str:
    # Longest tokens first so TOKEN1END never clips TOKEN11END
    for token in sorted(tokens, key=len, reverse=True):
        markdown = markdown.replace(token, transpile_placeholder(tokens[token], field_name_map))
    return markdown


# ============================================================================
# Template Conversion
# ============================================================================

def convert_template_html(html: str, field_name_map: Optional[Mapping[str, str]] = None) -> str:
    """Convert one side of a card template to markdown."""
    tokenized, tokens = tokenize_placeholders(html or "")
    markdown = convert_html_to_markdown(tokenized, answer_marker=ANSWER_MARKER)
    markdown = markdown.replace(ANSWER_MARKER, f"\n\n{SECTION_SEPARATOR}\n\n")
    markdown = restore_placeholders(markdown, tokens, field_name_map)
    return cleanup_markdown(markdown)


def extract_variables(body: str) -> List[str]:
    """Names used in {{ name }} expressions, minus reserved names."""
    names: List[str] = []
    for match in _VARIABLE_PATTERN.finditer(body):
        name = match.group(1).strip()
        if name and name not in RESERVED_NAMES and name not in names:
            names.append(name)
    return names


def sanitize_template_name(name: str) -> str:
    """Make a template name safe to use as a file name."""
    name = re.sub(r'[\\/:*?"<>|]', '-', name)
    name = re.sub(r'-+', '-', name)
    return name.strip('-').strip()


def template_name_for(model: Model, template: TemplateDef) -> str:
    """Name of the converted template: the note type, plus the card type if there are several."""
    if len(model.templates) > 1:
        name = f"{model.name} - {template.name}"
    else:
        name = model.name
    return sanitize_template_name(name)


def convert_template(
    model: Model,
    template: TemplateDef,
    field_name_map: Optional[Mapping[str, str]] = None,
) -> ConvertedTemplate:
    """
    Convert one card template into a single question/answer document.

    Raises:
        ConversionError: If the template HTML cannot be converted
    """
    question = convert_template_html(template.question_format, field_name_map).strip()
    answer = convert_template_html(template.answer_format, field_name_map)

    answer = _FRONT_SIDE_PATTERN.sub(lambda _: question, answer)

    if _SEPARATOR_LINE.search(answer):
        body = answer.strip()
    else:
        body = f"{question}\n\n{SECTION_SEPARATOR}\n\n{answer.strip()}"

    return ConvertedTemplate(
        name=template_name_for(model, template),
        body=body,
        variable_names=frozenset(extract_variables(body)),
        source_model_id=model.id,
        template_ordinal=template.ordinal,
    )


def convert_model(model: Model, field_name_map: Optional[Mapping[str, str]] = None) -> List[ConvertedTemplate]:
    """Convert every card template of a note type."""
    return [convert_template(model, tmpl, field_name_map) for tmpl in model.templates]
