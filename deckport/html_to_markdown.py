#!/usr/bin/env python3
"""
# deckport
# Copyright (c) 2026 deckport contributors
# Licensed under the MIT License. See LICENSE in the project root.

html_to_markdown.py (deckport)

Convert Anki field and template HTML to clean markdown.

This module handles:
1. Stripping <style> and <script> blocks entirely
2. Unwrapping <div>/<span> wrappers Anki's editor leaves behind
3. Marking the <hr id=answer> separator so template conversion can find it
4. Converting the remaining HTML to markdown using html2text
5. Cleaning up html2text artifacts (code tags, escaped embeds, blank lines)

Both the field converter and the template converter run their HTML
through convert_html_to_markdown(), so cards and templates come out with
the same structure.

Usage:
    from deckport.html_to_markdown import convert_html_to_markdown

    markdown = convert_html_to_markdown("<div><b>Paris</b></div>")

Command-line usage:
    python -m deckport.html_to_markdown input.html
    python -m deckport.html_to_markdown --stdin < input.html
"""

from __future__ import annotations

import argparse
import re
import sys
from typing import Optional

import html2text
from bs4 import BeautifulSoup

from deckport.errors import ConversionError


# Elements removed together with their content
STRIPPED_ELEMENTS = ("style", "script")

# List item lines, html2text indents each level by two spaces
LIST_ITEM_PATTERN = re.compile(r"^  (\s*(?:[-*+]|\d+\.)\s)")

# One leading space before text; two or more are list or code indentation
STRAY_SPACE_PATTERN = re.compile(r"^ (?=\S)")


# ============================================================================
# HTML Preprocessing
# ============================================================================

def configure_html2text() -> html2text.HTML2Text:
    """
    Configure html2text converter for flashcard content.

    Returns:
        Configured HTML2Text instance
    """
    h = html2text.HTML2Text()

    # Basic options
    h.body_width = 0  # Don't wrap lines
    h.unicode_snob = True  # Use unicode instead of ASCII
    h.ignore_links = False  # Keep links
    h.ignore_images = False  # Keep images
    h.ignore_emphasis = False  # Keep bold/italic

    # Formatting options
    h.inline_links = True  # Use inline [text](url) format
    h.protect_links = True  # Don't modify URLs
    h.wrap_links = False
    h.mark_code = True  # Mark code blocks properly

    # List and table handling
    h.ul_item_mark = '-'  # Use - for unordered lists
    h.emphasis_mark = '*'  # Use * for emphasis
    h.strong_mark = '**'  # Use ** for strong
    h.pad_tables = False

    # Leave {{ }}, [[ ]] and == alone
    h.escape_snob = False

    return h


def prepare_html(html: str, answer_marker: Optional[str] = None) -> str:
    """
    Clean up Anki HTML before markdown conversion.

    Args:
        html: Field or template HTML
        answer_marker: If given, <hr id="answer"> is replaced by this text

    Returns:
        HTML with scripts, styles and wrapper elements removed

    Example:
        >>> prepare_html('<div><span class="x">Hi</span></div><style>b{}</style>')
        'Hi<br/>'
    """
    soup = BeautifulSoup(html, 'html.parser')

    for tag in soup.find_all(STRIPPED_ELEMENTS):
        tag.decompose()

    if answer_marker is not None:
        for hr in soup.find_all('hr'):
            if hr.get('id') == 'answer':
                hr.replace_with(answer_marker)

    for span in soup.find_all('span'):
        span.unwrap()

    # Keep the line break a block wrapper implied
    for div in soup.find_all('div'):
        div.append(soup.new_tag('br'))
        div.unwrap()

    return str(soup)


# ============================================================================
# HTML to Markdown Conversion
# ============================================================================

def convert_html_to_markdown(html: str, answer_marker: Optional[str] = None) -> str:
    """
    Convert Anki HTML to markdown.

    Args:
        html: HTML content to convert
        answer_marker: Text to put where <hr id="answer"> was

    Returns:
        Markdown formatted text

    Raises:
        ConversionError: If conversion fails
    """
    if not html or not html.strip():
        return ""

    try:
        prepared = prepare_html(html, answer_marker=answer_marker)

        converter = configure_html2text()
        markdown = converter.handle(prepared)

        markdown = convert_code_tags_to_fences(markdown)
        markdown = outdent_list_items(markdown)
        markdown = unescape_embeds(markdown)
        return cleanup_markdown(markdown)

    except Exception as e:
        raise ConversionError(
            message="Failed to convert HTML to markdown",
            suggestion="Check that the field HTML is well-formed",
            context={
                "html_length": len(html),
                "html_preview": html[:200] + "..." if len(html) > 200 else html
            },
            cause=e
        )


def convert_code_tags_to_fences(markdown_text: str) -> str:
    """
    Convert html2text's [code]...[/code] tags to fenced code blocks.
    """
    pattern = r'\[code\](.*?)\[/code\]'

    def replace_with_fence(match):
        code = match.group(1).strip('\n')
        return f'```\n{code}\n```'

    return re.sub(pattern, replace_with_fence, markdown_text, flags=re.DOTALL)


def outdent_list_items(markdown: str) -> str:
    """
    Move html2text list items back to the left margin.

    html2text indents every list level by two spaces, top level included.
    Left as is, trimming the output would leave only the first item at the
    margin and nest the rest under it.

    Example:
        >>> outdent_list_items("  - one\\n  - two\\n    - nested")
        '- one\\n- two\\n  - nested'
    """
    lines = []
    in_fence = False
    for line in markdown.split('\n'):
        if line.startswith('```'):
            in_fence = not in_fence
        elif not in_fence:
            line = LIST_ITEM_PATTERN.sub(r'\1', line)
        lines.append(line)
    return '\n'.join(lines)


def unescape_embeds(markdown: str) -> str:
    """
    Undo markdown escaping inside embeds: !\\[\\[a\\_b.png\\]\\] -> ![[a_b.png]]
    """
    markdown = markdown.replace('!\\[\\[', '![[').replace('\\]\\]', ']]')

    def clean_target(match):
        return '![[' + match.group(1).replace('\\_', '_') + ']]'

    return re.sub(r'!\[\[([^\]]+)\]\]', clean_target, markdown)


def cleanup_markdown(markdown: str) -> str:
    """
    Clean up markdown output from html2text.

    Normalizes line endings, strips trailing whitespace per line, drops the
    stray single space html2text leaves where collapsed whitespace started
    a line, collapses runs of blank lines to one and trims the result.
    Fenced code is left alone apart from trailing whitespace.
    """
    if not markdown:
        return ""

    markdown = markdown.replace('\r\n', '\n')

    lines = []
    in_fence = False
    for line in markdown.split('\n'):
        line = line.rstrip()
        if line.startswith('```'):
            in_fence = not in_fence
        elif not in_fence:
            line = STRAY_SPACE_PATTERN.sub('', line)
        lines.append(line)
    markdown = '\n'.join(lines)

    markdown = re.sub(r'\n{3,}', '\n\n', markdown)

    return markdown.strip()


# ============================================================================
# CLI Interface
# ============================================================================

def main():
    """Command-line interface for HTML to Markdown conversion."""
    parser = argparse.ArgumentParser(
        description="Convert Anki field HTML to Markdown",
    )
    parser.add_argument(
        'input',
        nargs='?',
        help='Input HTML file (or use --stdin)'
    )
    parser.add_argument(
        '--stdin',
        action='store_true',
        help='Read HTML from stdin'
    )

    args = parser.parse_args()

    if args.stdin:
        html = sys.stdin.read()
    elif args.input:
        try:
            with open(args.input, 'r', encoding='utf-8') as f:
                html = f.read()
        except OSError as e:
            print(f"Error reading input file: {e}", file=sys.stderr)
            return 1
    else:
        parser.print_help()
        return 1

    try:
        print(convert_html_to_markdown(html))
    except ConversionError as e:
        print(f"\n{e}", file=sys.stderr)
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
