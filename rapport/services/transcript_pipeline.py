"""Phase-by-phase conversion of a raw transcript into an AnalysisResult."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from rapport.services.llm import LLMProviderError
from rapport.services.models import (
    AnalysisResult,
    ParticipantRecord,
    PreIdentifiedParticipant,
)
from rapport.services.participants import ParticipantExtractor, parse_transcript

MAX_KEY_POINTS = 5
UNABLE_TO_SUMMARIZE = "Unable to generate summary"


class PipelineStateError(RuntimeError):
    pass


class PipelinePhase(str, Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    PARTICIPANTS = "participants"
    SUMMARY = "summary"
    ACTIONS = "actions"
    SENTIMENT = "sentiment"
    FINALIZING = "finalizing"
    COMPLETE = "complete"

    @property
    def status_title(self) -> str:
        return _PHASE_TITLES[self]


_PHASE_TITLES = {
    PipelinePhase.IDLE: "Ready",
    PipelinePhase.ANALYZING: "Analyzing transcript format...",
    PipelinePhase.PARTICIPANTS: "Identifying participants...",
    PipelinePhase.SUMMARY: "Generating summary...",
    PipelinePhase.ACTIONS: "Extracting action items...",
    PipelinePhase.SENTIMENT: "Analyzing sentiment...",
    PipelinePhase.FINALIZING: "Finalizing...",
    PipelinePhase.COMPLETE: "Complete",
}

_ORDER = list(PipelinePhase)

TRANSITIONS: dict[PipelinePhase, frozenset[PipelinePhase]] = {
    phase: frozenset(
        ({_ORDER[i + 1]} if i + 1 < len(_ORDER) else set())
        | ({PipelinePhase.IDLE} if phase is not PipelinePhase.IDLE else set())
    )
    for i, phase in enumerate(_ORDER)
}
TRANSITIONS[PipelinePhase.COMPLETE] = frozenset({PipelinePhase.IDLE, PipelinePhase.ANALYZING})

_BULLET_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+(.+?)\s*$")


class PipelineCancelled(Exception):
    pass


def derive_key_points(summary: str, limit: int = MAX_KEY_POINTS) -> list[str]:
    points = []
    for line in summary.splitlines():
        match = _BULLET_RE.match(line)
        if not match:
            continue
        point = match.group(1).strip().strip("*").strip()
        if point and point not in points:
            points.append(point)
        if len(points) >= limit:
            break
    return points


def fallback_title(participants: list[ParticipantRecord]) -> str:
    names = [p.name for p in participants]
    if 1 <= len(names) <= 2:
        return f"Meeting with {' and '.join(names)}"
    return "Team Meeting"


class PipelineController:
    """Runs one transcript through every phase, strictly in order.

    Create one controller per transcript. A failure in any phase discards
    everything produced so far and returns the controller to IDLE.
    """

    def __init__(
        self,
        orchestrator,
        extractor: ParticipantExtractor,
        on_progress: Optional[Callable[[PipelinePhase, str], None]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._orchestrator = orchestrator
        self._extractor = extractor
        self._on_progress = on_progress
        self._clock = clock
        self._phase = PipelinePhase.IDLE
        self._status = PipelinePhase.IDLE.status_title
        self._cancelled = False
        self._last_error: Optional[BaseException] = None
        self._logger = logging.getLogger("rapport.pipeline")

    @property
    def phase(self) -> PipelinePhase:
        return self._phase

    @property
    def status(self) -> str:
        return self._status

    @property
    def is_processing(self) -> bool:
        return self._phase not in (PipelinePhase.IDLE, PipelinePhase.COMPLETE)

    @property
    def last_error(self) -> Optional[BaseException]:
        return self._last_error

    def cancel(self) -> None:
        self._cancelled = True

    def _transition(self, phase: PipelinePhase) -> None:
        if phase not in TRANSITIONS[self._phase]:
            raise PipelineStateError(f"Illegal transition {self._phase.value} -> {phase.value}")
        self._phase = phase
        self._status = phase.status_title
        self._logger.info("Phase: %s", phase.value)
        if self._on_progress is not None:
            self._on_progress(phase, self._status)

    def _advance(self, phase: PipelinePhase) -> None:
        if self._cancelled:
            raise PipelineCancelled()
        self._transition(phase)

    async def run(
        self,
        raw_text: str,
        pre_identified: Optional[list[PreIdentifiedParticipant]] = None,
        user_notes: Optional[str] = None,
    ) -> Optional[AnalysisResult]:
        if self.is_processing:
            raise PipelineStateError("Pipeline is already running")
        self._last_error = None
        self._cancelled = False
        try:
            return await self._run_phases(raw_text, pre_identified, user_notes)
        except PipelineCancelled:
            self._logger.info("Pipeline cancelled during %s", self._phase.value)
            self._abort()
            return None
        except Exception as exc:
            self._logger.exception("Pipeline failed during %s", self._phase.value)
            self._last_error = exc
            self._abort()
            return None

    def _abort(self) -> None:
        if self._phase is not PipelinePhase.IDLE:
            self._transition(PipelinePhase.IDLE)

    async def _run_phases(
        self,
        raw_text: str,
        pre_identified: Optional[list[PreIdentifiedParticipant]],
        user_notes: Optional[str],
    ) -> AnalysisResult:
        self._advance(PipelinePhase.ANALYZING)
        transcript = parse_transcript(raw_text, self._clock())

        self._advance(PipelinePhase.PARTICIPANTS)
        if pre_identified:
            self._logger.info("Using %d pre-identified participants", len(pre_identified))
            participants = [ParticipantRecord.from_pre_identified(p) for p in pre_identified]
        else:
            participants = await self._extractor.extract(transcript)
        # records compare by name; keep the first of each
        participants = list(dict.fromkeys(participants))
        names = [p.name for p in participants]

        self._advance(PipelinePhase.SUMMARY)
        summary = (await self._orchestrator.summarize(raw_text, user_notes)).strip()
        if not summary:
            summary = UNABLE_TO_SUMMARIZE

        self._advance(PipelinePhase.ACTIONS)
        action_items = await self._orchestrator.extract_action_items(raw_text)

        self._advance(PipelinePhase.SENTIMENT)
        sentiment = await self._orchestrator.analyze_sentiment(raw_text, names)

        self._advance(PipelinePhase.FINALIZING)
        try:
            title = await self._orchestrator.generate_title(summary, names)
        except LLMProviderError as exc:
            self._logger.warning("Title generation failed (%s); using default title", exc)
            title = fallback_title(participants)
        key_points = derive_key_points(summary)

        result = AnalysisResult(
            summary=summary,
            participants=participants,
            key_points=key_points,
            action_items=action_items,
            sentiment=sentiment,
            suggested_title=title,
            transcript=transcript,
            user_notes=user_notes,
            pre_identified_participants=list(pre_identified) if pre_identified else None,
        )

        self._advance(PipelinePhase.COMPLETE)
        return result
