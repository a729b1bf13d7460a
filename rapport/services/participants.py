"""Speaker detection: AI extraction with regex fallbacks, then identity linking."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Iterable, Optional

from rapport.config import UserIdentity
from rapport.services.identity import IdentityResolver
from rapport.services.llm import LLMProviderError
from rapport.services.models import ParticipantRecord, TranscriptFormat, TranscriptInput
from rapport.services.transcript_format import detect_format

_logger = logging.getLogger("rapport.participants")

WORDS_PER_MINUTE = 150

BLACKLIST = frozenset(
    {
        "meeting",
        "transcript",
        "zoom",
        "teams",
        "recording",
        "host",
        "participant",
        "unknown",
        "system",
        "admin",
        "moderator",
    }
)

_FORBIDDEN_CHARS = ('"', "'", "?", "!", ".")

_CAPITALIZED_NAME = r"[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*"
MANUAL_NAME_PATTERNS = (
    re.compile(rf"^({_CAPITALIZED_NAME}):", re.MULTILINE),
    re.compile(rf"^({_CAPITALIZED_NAME}) -", re.MULTILINE),
    re.compile(rf"^\(({_CAPITALIZED_NAME})\)", re.MULTILINE),
)
BRACKET_NAME_PATTERN = re.compile(r"\[([A-Za-z ]+)\]")
VOICE_ANALYSIS_PATTERN = re.compile(r"\[Voice Analysis: (\d+) speaker")


def is_valid_participant_name(name: str) -> bool:
    cleaned = name.strip()
    if len(cleaned) < 2 or len(cleaned) > 30:
        return False
    if cleaned.lower() in BLACKLIST:
        return False
    lowered = cleaned.lower()
    if "@" in cleaned or "http" in lowered or cleaned.isdigit():
        return False
    if not any(ch.isalpha() for ch in cleaned):
        return False
    if any(ch in cleaned for ch in _FORBIDDEN_CHARS):
        return False
    return True


def _colon_prefixes(text: str) -> list[str]:
    names = []
    for line in text.splitlines():
        line = line.strip()
        if ":" not in line:
            continue
        prefix = line.split(":", 1)[0].strip()
        if prefix:
            names.append(prefix)
    return names


def extract_names_heuristically(text: str, fmt: TranscriptFormat) -> list[str]:
    """Pull speaker labels out of ``text`` using the layout of ``fmt``."""
    names: set[str] = set()
    if fmt in (TranscriptFormat.ZOOM, TranscriptFormat.GENERIC):
        names.update(_colon_prefixes(text))
        if fmt is TranscriptFormat.GENERIC:
            names.update(m.strip() for m in BRACKET_NAME_PATTERN.findall(text))
    elif fmt is TranscriptFormat.TEAMS:
        names.update(m.strip() for m in BRACKET_NAME_PATTERN.findall(text))
    else:
        for pattern in MANUAL_NAME_PATTERNS:
            names.update(m.strip() for m in pattern.findall(text))
    return sorted(name for name in names if name)


def estimate_duration(text: str) -> float:
    """Seconds of speech at a typical speaking rate."""
    words = len(text.split())
    return words / WORDS_PER_MINUTE * 60


def parse_transcript(raw_text: str, now: Optional[datetime] = None) -> TranscriptInput:
    fmt = detect_format(raw_text)
    names = extract_names_heuristically(raw_text, fmt)
    _logger.info("Detected %s transcript with %d labelled speakers", fmt.value, len(names))
    return TranscriptInput(
        raw_text=raw_text,
        detected_format=fmt,
        participants=tuple(names),
        timestamp=now or datetime.now(),
        estimated_duration=estimate_duration(raw_text),
    )


def speaking_stats(text: str, name: str) -> tuple[float, int]:
    """Speaking time (seconds) and line count for lines ``name`` prefixes."""
    prefixes = (f"{name}:", f"[{name}]", f"{name} -", f"({name})")
    words = 0
    lines = 0
    for line in text.splitlines():
        stripped = line.strip()
        for prefix in prefixes:
            if stripped.startswith(prefix):
                lines += 1
                words += len(stripped[len(prefix):].split())
                break
    return words / WORDS_PER_MINUTE * 60, lines


def _single_speaker_name(text: str) -> str:
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("["):
            continue
        if ":" in stripped:
            candidate = stripped.split(":", 1)[0].strip()
            if candidate:
                return candidate
        break
    return "Speaker"


def _dedupe(names: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    unique = []
    for name in names:
        if name not in seen:
            seen.add(name)
            unique.append(name)
    return unique


class ParticipantExtractor:
    def __init__(self, orchestrator, resolver: Optional[IdentityResolver] = None, user: Optional[UserIdentity] = None) -> None:
        self._orchestrator = orchestrator
        self._resolver = resolver
        self._user = user or UserIdentity()

    async def extract(self, transcript: TranscriptInput) -> list[ParticipantRecord]:
        text = transcript.raw_text

        voice = VOICE_ANALYSIS_PATTERN.search(text)
        if voice and int(voice.group(1)) == 1:
            name = _single_speaker_name(text)
            if self._user.is_current_user(name):
                _logger.info("Voice analysis reports only the current user '%s'", name)
                return []
            if not is_valid_participant_name(name):
                _logger.info("Single speaker label '%s' rejected; using 'Speaker'", name)
                name = "Speaker"
            _logger.info("Voice analysis reports one speaker; using '%s'", name)
            return [self._build_record(name, text)]

        names = await self._candidate_names(transcript)
        names = [name.strip() for name in names if is_valid_participant_name(name)]
        names = _dedupe(names)

        filtered = []
        for name in names:
            if self._user.is_current_user(name):
                _logger.info("Skipping current user '%s'", name)
                continue
            filtered.append(name)

        return [self._build_record(name, text) for name in filtered]

    async def _candidate_names(self, transcript: TranscriptInput) -> list[str]:
        try:
            names = await self._orchestrator.extract_participants(transcript.raw_text)
        except LLMProviderError as exc:
            _logger.warning("AI participant extraction failed (%s); using heuristics", exc)
            names = []
        else:
            if names:
                _logger.info("Participants from AI: %s", names)
                return names
            _logger.info("AI returned no participants; using heuristics")

        names = extract_names_heuristically(transcript.raw_text, transcript.detected_format)
        _logger.info("Participants from heuristics: %s", names)
        return names

    def _build_record(self, name: str, text: str) -> ParticipantRecord:
        speaking_time, message_count = speaking_stats(text, name)
        record = ParticipantRecord(
            name=name, speaking_time=speaking_time, message_count=message_count
        )
        if self._resolver is not None:
            match = self._resolver.resolve(name)
            if match is not None:
                record.person_id = match.person.id
                record.confidence = match.score
        return record
