"""Classify raw transcript text into one of the known export layouts."""

from __future__ import annotations

import logging
import re

from rapport.services.models import TranscriptFormat

_logger = logging.getLogger("rapport.format")

# Order matters: the first pattern that matches anywhere wins.
SPEAKER_LINE_PATTERNS = (
    re.compile(r"^[A-Za-z ]+:", re.MULTILINE),
    re.compile(r"\[[A-Za-z ]+\]"),
    re.compile(r"^[A-Za-z ]+\s*-", re.MULTILINE),
)

_ZOOM_MARKERS_CASELESS = ("zoom",)
_ZOOM_MARKERS_LITERAL = ("00:", "PM", "AM")
_TEAMS_MARKERS_CASELESS = ("teams", "microsoft")


def detect_format(text: str) -> TranscriptFormat:
    """Return the layout of ``text``.

    Precedence is fixed: Zoom markers, then generic speaker lines, then
    Teams markers, then manual notes.
    """
    lower_text = text.lower()

    if any(marker in lower_text for marker in _ZOOM_MARKERS_CASELESS) or any(
        marker in text for marker in _ZOOM_MARKERS_LITERAL
    ):
        _logger.debug("Detected format=zoom")
        return TranscriptFormat.ZOOM

    for pattern in SPEAKER_LINE_PATTERNS:
        if pattern.search(text):
            _logger.debug("Detected format=generic (pattern=%s)", pattern.pattern)
            return TranscriptFormat.GENERIC

    if any(marker in lower_text for marker in _TEAMS_MARKERS_CASELESS):
        _logger.debug("Detected format=teams")
        return TranscriptFormat.TEAMS

    _logger.debug("Detected format=manual")
    return TranscriptFormat.MANUAL
