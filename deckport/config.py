#!/usr/bin/env python3
"""
# deckport
# Copyright (c) 2026 deckport contributors
# Licensed under the MIT License. See LICENSE in the project root.

config.py (deckport)

Import settings, optionally loaded from a deckport.yaml file.

Example deckport.yaml:

    destination_folder: flashcards/imported
    template_folder: templates
    attachment_folder: attachments
    overwrite_templates: false
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from deckport.errors import ConfigurationError
from deckport.icons import WARNING


CONFIG_FILENAME = "deckport.yaml"


@dataclass(frozen=True)
class ImportSettings:
    """Where imported files go, relative to the destination root."""
    destination_folder: str = "flashcards"
    template_folder: str = "templates"
    attachment_folder: str = "attachments"
    overwrite_templates: bool = False

    def with_overrides(self, **overrides: Any) -> "ImportSettings":
        """Copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def _known_keys() -> Dict[str, type]:
    return {f.name: type(getattr(ImportSettings(), f.name)) for f in fields(ImportSettings)}


def load_settings(path: Optional[Path] = None) -> ImportSettings:
    """
    Load settings from a YAML file.

    A missing file gives the defaults. Unknown keys are reported and ignored.

    Raises:
        ConfigurationError: The file is not valid YAML or a value has the wrong type
    """
    settings = ImportSettings()
    if path is None or not Path(path).is_file():
        return settings

    try:
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    except (yaml.YAMLError, OSError) as e:
        raise ConfigurationError(
            message=f"Could not read configuration file: {path}",
            suggestion="Check the YAML syntax",
            cause=e,
        )

    if not isinstance(data, dict):
        raise ConfigurationError(
            message=f"Configuration file must contain a mapping: {path}",
            context={"found": type(data).__name__},
        )

    known = _known_keys()
    values: Dict[str, Any] = {}
    for key, value in data.items():
        if key not in known:
            print(f"[config:warn] {WARNING} Ignoring unknown setting: {key}")
            continue
        if value is None:
            continue
        if not isinstance(value, known[key]):
            raise ConfigurationError(
                message=f"Setting '{key}' has the wrong type",
                context={"expected": known[key].__name__, "found": type(value).__name__},
            )
        if isinstance(value, str):
            value = value.strip().strip("/")
        values[key] = value

    return settings.with_overrides(**values)
