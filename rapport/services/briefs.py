"""Pre-meeting briefs: render a person's history into a prompt and cache the answer."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from rapport.services.brief_cache import BriefCache
from rapport.services.models import ConversationRecord, Person

_logger = logging.getLogger("rapport.briefs")

RECENT_WINDOW_DAYS = 30
_SEPARATOR = "-" * 50

ANALYSIS_PRIORITIES = (
    "RECENT PATTERNS: What themes emerge from the last 2-3 conversations?",
    "RELATIONSHIP TRAJECTORY: How has the working relationship evolved?",
    "PENDING ITEMS: Any unresolved tasks, commitments, or follow-ups?",
    "COMMUNICATION STYLE: How does this person prefer to communicate?",
    "CURRENT PRIORITIES: What are their main focus areas right now?",
    "SUPPORT NEEDS: Where might they need help or guidance?",
    "RAPPORT BUILDERS: What personal or professional interests can you reference?",
    "POTENTIAL CONCERNS: Any red flags or issues that need addressing?",
)


def _days_ago(days: int) -> str:
    if days == 0:
        return "Today"
    if days == 1:
        return "Yesterday"
    return f"{days} days ago"


def build_brief_context(
    person: Person, conversations: list[ConversationRecord], now: Optional[datetime] = None
) -> str:
    """Render a person's history as the context block for brief generation."""
    now = now or datetime.now()
    lines = [
        "=== PRE-MEETING INTELLIGENCE BRIEF ===",
        f"Person: {person.name or 'Unknown'}",
        "",
        "## PERSON PROFILE",
        f"Role: {person.role or 'Unknown'}",
    ]
    if person.email:
        lines.append(f"Email: {person.email}")
    lines.append(f"Total Conversation History: {len(conversations)} conversations")
    lines.append("")

    if not conversations:
        lines.extend(
            [
                "## NO CONVERSATION HISTORY",
                "This appears to be a first meeting or no previous conversations are recorded.",
                "",
            ]
        )
        return "\n".join(lines)

    ordered = sorted(conversations, key=lambda c: c.date, reverse=True)
    recent = [c for c in ordered if (now - c.date).days < RECENT_WINDOW_DAYS]

    lines.append("## CONVERSATION TIMELINE & PATTERNS")
    lines.append(f"Recent Conversations (Last {RECENT_WINDOW_DAYS} days): {len(recent)}")
    lines.append(f"Historical Conversations (Older): {len(ordered) - len(recent)}")
    if len(ordered) >= 2:
        span_days = (ordered[0].date - ordered[-1].date).days
        lines.append(f"Average Meeting Frequency: Every {span_days // (len(ordered) - 1)} days")
    last = ordered[0]
    lines.append(
        f"Last Meeting: {(now - last.date).days} days ago ({last.date.strftime('%Y-%m-%d')})"
    )
    lines.append("")

    lines.append("## DETAILED CONVERSATION HISTORY")
    lines.append("(Ordered by most recent first)")
    lines.append("")
    for index, conversation in enumerate(ordered):
        marker = "RECENT" if index < 3 else "HISTORICAL"
        when = conversation.date.strftime("%b %d, %Y")
        lines.append(f"{marker} - {when} ({_days_ago((now - conversation.date).days)})")
        if conversation.title:
            lines.append(f"TITLE: {conversation.title}")
        if conversation.summary:
            lines.append(f"SUMMARY: {conversation.summary}")
        if conversation.notes:
            lines.append(f"NOTES: {conversation.notes}")
        if conversation.sentiment_label:
            sentiment = f"SENTIMENT: {conversation.sentiment_label}"
            if conversation.sentiment_score > 0:
                sentiment += f" (Score: {int(round(conversation.sentiment_score * 100))}%)"
            lines.append(sentiment)
        if conversation.engagement_level:
            lines.append(f"ENGAGEMENT LEVEL: {conversation.engagement_level}")
        if conversation.key_topics:
            lines.append(f"KEY TOPICS: {', '.join(conversation.key_topics)}")
        if conversation.action_items:
            lines.append(f"ACTION ITEMS: {'; '.join(conversation.action_items)}")
        lines.append("")
        lines.append(_SEPARATOR)
        lines.append("")

    lines.append("## INTELLIGENCE ANALYSIS PRIORITIES")
    lines.append("Focus your analysis on:")
    for number, priority in enumerate(ANALYSIS_PRIORITIES, start=1):
        lines.append(f"{number}. {priority}")
    lines.append("")
    return "\n".join(lines)


@dataclass
class BriefResult:
    person_id: str
    brief: str
    cached: bool
    generation: int

    def to_dict(self) -> dict:
        return {
            "person_id": self.person_id,
            "brief": self.brief,
            "cached": self.cached,
            "generation": self.generation,
        }


class BriefService:
    """Generates pre-meeting briefs, reusing cached ones while still fresh."""

    def __init__(
        self,
        orchestrator,
        cache: BriefCache,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._orchestrator = orchestrator
        self._cache = cache
        self._now = now

    @property
    def cache(self) -> BriefCache:
        return self._cache

    async def get_brief(
        self, person: Person, conversations: list[ConversationRecord], force: bool = False
    ) -> BriefResult:
        generation = len(conversations)
        if not conversations:
            return BriefResult(
                person_id=person.id,
                brief=(
                    f"First meeting with {person.name}. "
                    "No previous conversation history available."
                ),
                cached=False,
                generation=0,
            )

        async with self._cache.lock(person.id):
            if force:
                self._cache.clear(person.id)
            else:
                cached = self._cache.get(person.id, generation)
                if cached is not None:
                    _logger.info("Brief cache hit for %s", person.id)
                    return BriefResult(person.id, cached, True, generation)

            _logger.info("Generating brief for %s (%d conversations)", person.id, generation)
            context = build_brief_context(person, conversations, self._now())
            brief = await self._orchestrator.generate_brief(context)
            self._cache.put(person.id, brief, generation)
            return BriefResult(person.id, brief, False, generation)
