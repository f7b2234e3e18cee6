"""
# deckport
# Copyright (c) 2026 deckport contributors
# Licensed under the MIT License. See LICENSE in the project root.

icons.py (deckport)

Status markers shared by console output.
"""

SUCCESS = "✅"
WARNING = "⚠️"
ERROR = "❌"
