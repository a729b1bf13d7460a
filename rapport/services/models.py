"""Domain records produced by the transcript analysis pipeline."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class TranscriptFormat(Enum):
    ZOOM = "zoom"
    TEAMS = "teams"
    GENERIC = "generic"
    MANUAL = "manual"

    @property
    def display_name(self) -> str:
        return {
            TranscriptFormat.ZOOM: "Zoom",
            TranscriptFormat.TEAMS: "Microsoft Teams",
            TranscriptFormat.GENERIC: "Generic Format",
            TranscriptFormat.MANUAL: "Manual Notes",
        }[self]


@dataclass(frozen=True)
class TranscriptInput:
    raw_text: str
    detected_format: TranscriptFormat
    participants: tuple[str, ...]
    timestamp: datetime
    estimated_duration: float

    def to_dict(self) -> dict:
        return {
            "detected_format": self.detected_format.value,
            "participants": list(self.participants),
            "timestamp": self.timestamp.isoformat(),
            "estimated_duration": self.estimated_duration,
            "characters": len(self.raw_text),
        }


@dataclass(eq=False)
class ParticipantRecord:
    """A speaker detected in one transcript.

    Two records are the same participant when their display names match;
    the rest of the fields are estimates that may differ between passes.
    """

    name: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    speaking_time: float = 0.0
    message_count: int = 0
    detected_sentiment: str = "neutral"
    person_id: Optional[str] = None
    confidence: float = 0.0
    speaker_index: Optional[int] = None
    voice_embedding: Optional[list[float]] = None
    is_current_user: bool = False

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ParticipantRecord):
            return NotImplemented
        return self.name == other.name

    def __hash__(self) -> int:
        return hash(self.name)

    @classmethod
    def from_pre_identified(cls, item: "PreIdentifiedParticipant") -> "ParticipantRecord":
        return cls(
            id=item.id,
            name=item.display_name,
            speaking_time=item.total_speaking_time,
            message_count=0,
            detected_sentiment="neutral",
            person_id=item.person_id,
            confidence=item.confidence,
            speaker_index=item.speaker_index,
            voice_embedding=item.voice_embedding,
            is_current_user=item.is_current_user,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "speaking_time": self.speaking_time,
            "message_count": self.message_count,
            "detected_sentiment": self.detected_sentiment,
            "person_id": self.person_id,
            "confidence": self.confidence,
            "speaker_index": self.speaker_index,
            "voice_embedding": self.voice_embedding,
            "is_current_user": self.is_current_user,
        }


@dataclass
class PreIdentifiedParticipant:
    """A speaker already identified by the caller (e.g. during recording)."""

    display_name: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    total_speaking_time: float = 0.0
    person_id: Optional[str] = None
    confidence: float = 0.0
    speaker_index: Optional[int] = None
    voice_embedding: Optional[list[float]] = None
    is_current_user: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "total_speaking_time": self.total_speaking_time,
            "person_id": self.person_id,
            "confidence": self.confidence,
            "speaker_index": self.speaker_index,
            "voice_embedding": self.voice_embedding,
            "is_current_user": self.is_current_user,
        }


@dataclass
class ParticipantDynamics:
    dominant_speaker: str = "balanced"
    collaboration_level: str = "medium"
    conflict_indicators: str = "none"

    def to_dict(self) -> dict:
        return {
            "dominant_speaker": self.dominant_speaker,
            "collaboration_level": self.collaboration_level,
            "conflict_indicators": self.conflict_indicators,
        }


def _clamp_unit(value: Any, default: float) -> float:
    """Coerce a score to [0, 1]; values reported as percentages are rescaled."""
    try:
        score = float(value)
    except (TypeError, ValueError):
        return default
    if score > 1.0:
        score = score / 100.0
    return max(0.0, min(1.0, score))


def _string_list(value: Any, default: list[str]) -> list[str]:
    if not isinstance(value, list):
        return list(default)
    return [str(item).strip() for item in value if str(item).strip()]


@dataclass
class SentimentAnalysis:
    overall_sentiment: str
    sentiment_score: float
    confidence: float
    engagement_level: str
    relationship_health: str
    communication_style: str
    energy_level: str
    participant_dynamics: ParticipantDynamics
    key_observations: list[str]
    support_needs: list[str]
    follow_up_recommendations: list[str]
    risk_factors: list[str]
    strengths: list[str]

    @classmethod
    def neutral(cls) -> "SentimentAnalysis":
        """Default used whenever the AI gives no usable analysis."""
        return cls(
            overall_sentiment="neutral",
            sentiment_score=0.5,
            confidence=0.5,
            engagement_level="medium",
            relationship_health="good",
            communication_style="collaborative",
            energy_level="medium",
            participant_dynamics=ParticipantDynamics(),
            key_observations=["Analysis unavailable"],
            support_needs=[],
            follow_up_recommendations=[],
            risk_factors=[],
            strengths=[],
        )

    @classmethod
    def from_payload(cls, payload: dict) -> "SentimentAnalysis":
        """Build from a decoded AI reply, backfilling missing fields from neutral()."""
        base = cls.neutral()

        def text(key: str, default: str) -> str:
            value = payload.get(key)
            if value is None or not str(value).strip():
                return default
            return str(value).strip()

        dynamics_raw = payload.get("participantDynamics")
        if not isinstance(dynamics_raw, dict):
            dynamics_raw = {}
        dynamics = ParticipantDynamics(
            dominant_speaker=str(dynamics_raw.get("dominantSpeaker") or "balanced"),
            collaboration_level=str(dynamics_raw.get("collaborationLevel") or "medium"),
            conflict_indicators=str(dynamics_raw.get("conflictIndicators") or "none"),
        )

        return cls(
            overall_sentiment=text("overallSentiment", base.overall_sentiment).lower(),
            sentiment_score=_clamp_unit(payload.get("sentimentScore"), base.sentiment_score),
            confidence=_clamp_unit(payload.get("confidence"), base.confidence),
            engagement_level=text("engagementLevel", base.engagement_level).lower(),
            relationship_health=text("relationshipHealth", base.relationship_health).lower(),
            communication_style=text("communicationStyle", base.communication_style).lower(),
            energy_level=text("energyLevel", base.energy_level).lower(),
            participant_dynamics=dynamics,
            key_observations=_string_list(payload.get("keyObservations"), base.key_observations),
            support_needs=_string_list(payload.get("supportNeeds"), base.support_needs),
            follow_up_recommendations=_string_list(
                payload.get("followUpRecommendations"), base.follow_up_recommendations
            ),
            risk_factors=_string_list(payload.get("riskFactors"), base.risk_factors),
            strengths=_string_list(payload.get("strengths"), base.strengths),
        )

    def to_dict(self) -> dict:
        return {
            "overall_sentiment": self.overall_sentiment,
            "sentiment_score": self.sentiment_score,
            "confidence": self.confidence,
            "engagement_level": self.engagement_level,
            "relationship_health": self.relationship_health,
            "communication_style": self.communication_style,
            "energy_level": self.energy_level,
            "participant_dynamics": self.participant_dynamics.to_dict(),
            "key_observations": list(self.key_observations),
            "support_needs": list(self.support_needs),
            "follow_up_recommendations": list(self.follow_up_recommendations),
            "risk_factors": list(self.risk_factors),
            "strengths": list(self.strengths),
        }


@dataclass
class AnalysisResult:
    summary: str
    participants: list[ParticipantRecord]
    key_points: list[str]
    action_items: list[str]
    sentiment: SentimentAnalysis
    suggested_title: str
    transcript: TranscriptInput
    user_notes: Optional[str] = None
    pre_identified_participants: Optional[list[PreIdentifiedParticipant]] = None

    def to_dict(self) -> dict:
        return {
            "summary": self.summary,
            "participants": [p.to_dict() for p in self.participants],
            "key_points": list(self.key_points),
            "action_items": list(self.action_items),
            "sentiment": self.sentiment.to_dict(),
            "suggested_title": self.suggested_title,
            "transcript": self.transcript.to_dict(),
            "user_notes": self.user_notes,
            "pre_identified_participants": (
                [p.to_dict() for p in self.pre_identified_participants]
                if self.pre_identified_participants is not None
                else None
            ),
        }


@dataclass
class CacheEntry:
    brief: str
    cached_at: float
    subject_id: str
    generation: int


@dataclass
class Person:
    name: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    role: Optional[str] = None
    email: Optional[str] = None

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "role": self.role, "email": self.email}

    @classmethod
    def from_dict(cls, data: dict) -> "Person":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            role=data.get("role"),
            email=data.get("email"),
        )


@dataclass
class ConversationRecord:
    person_id: str
    date: datetime
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    title: str = ""
    summary: str = ""
    notes: Optional[str] = None
    sentiment_label: Optional[str] = None
    sentiment_score: float = 0.0
    engagement_level: Optional[str] = None
    key_topics: list[str] = field(default_factory=list)
    action_items: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "person_id": self.person_id,
            "date": self.date.isoformat(),
            "title": self.title,
            "summary": self.summary,
            "notes": self.notes,
            "sentiment_label": self.sentiment_label,
            "sentiment_score": self.sentiment_score,
            "engagement_level": self.engagement_level,
            "key_topics": list(self.key_topics),
            "action_items": list(self.action_items),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ConversationRecord":
        return cls(
            id=str(data["id"]),
            person_id=str(data["person_id"]),
            date=datetime.fromisoformat(data["date"]),
            title=data.get("title", ""),
            summary=data.get("summary", ""),
            notes=data.get("notes"),
            sentiment_label=data.get("sentiment_label"),
            sentiment_score=float(data.get("sentiment_score", 0.0) or 0.0),
            engagement_level=data.get("engagement_level"),
            key_topics=list(data.get("key_topics") or []),
            action_items=list(data.get("action_items") or []),
        )
