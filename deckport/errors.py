#!/usr/bin/env python3
"""
# deckport
# Copyright (c) 2026 deckport contributors
# Licensed under the MIT License. See LICENSE in the project root.

errors.py (deckport)

Structured exceptions for the .apkg import pipeline.

Every error carries a human-readable message plus optional suggestion,
context and underlying cause, so the CLI can print something useful and
the import summary can list non-fatal problems as plain strings.

Fatal:
    UnsupportedPackage  - the package cannot be imported at all

Non-fatal (collected into ImportResult.errors):
    DecodeWarning       - a note type's config blob could not be decoded
    ConversionError     - a single note could not be converted
    MediaError          - a single media file could not be extracted
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class DeckportError(Exception):
    """Base error for deckport."""

    def __init__(
        self,
        message: str,
        suggestion: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion
        self.context = context or {}
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        lines = [self.message]
        if self.context:
            for key, value in self.context.items():
                lines.append(f"  {key}: {value}")
        if self.cause is not None:
            lines.append(f"  cause: {self.cause}")
        if self.suggestion:
            lines.append(f"  suggestion: {self.suggestion}")
        return "\n".join(lines)


class ConfigurationError(DeckportError):
    """Invalid or unreadable configuration file."""
    pass


class UnsupportedPackage(DeckportError):
    """The package is not an importable Anki 2.1.50+ export."""
    pass


class DecodeWarning(DeckportError):
    """A config blob did not yield the expected fields."""
    pass


class ConversionError(DeckportError):
    """A note, field or template could not be converted."""
    pass


class MediaError(DeckportError):
    """A referenced media file could not be located or extracted."""
    pass


class UnsafePathError(DeckportError):
    """A destination path would escape the store root."""
    pass
