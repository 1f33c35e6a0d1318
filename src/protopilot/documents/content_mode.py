"""Structural classification of document text."""

from __future__ import annotations

import json
from enum import Enum
from typing import Any

__all__ = ["ContentMode", "classify_value", "detect_content_mode"]


class ContentMode(str, Enum):
    """How the editing surface should present a document."""

    STRUCTURED_PROJECT = "structured_project"
    FLAT_CODE = "flat_code"


def classify_value(value: Any) -> ContentMode:
    """Ordered sequences are multi-file projects; anything else is flat code."""

    if isinstance(value, (list, tuple)):
        return ContentMode.STRUCTURED_PROJECT
    return ContentMode.FLAT_CODE


def detect_content_mode(text: str | None) -> ContentMode:
    if not text or not text.strip():
        return ContentMode.FLAT_CODE
    try:
        value = json.loads(text)
    except ValueError:
        return ContentMode.FLAT_CODE
    return classify_value(value)
