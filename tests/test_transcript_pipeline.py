import asyncio
from datetime import datetime

import pytest

from conftest import FakeProvider, RoutingProvider, make_orchestrator
from rapport.services.llm import LLMProviderError, NoProviderAvailableError, ProviderKind
from rapport.services.models import PreIdentifiedParticipant
from rapport.services.participants import ParticipantExtractor
from rapport.services.transcript_pipeline import (
    TRANSITIONS,
    PipelineController,
    PipelinePhase,
    PipelineStateError,
    derive_key_points,
    fallback_title,
)

TRANSCRIPT = "Alice: Let's review the roadmap.\nBob: I'll send the deck tomorrow."

SUMMARY = "## Key Points\n- Roadmap reviewed\n- Deck to be shared\n\n## Next Steps\n1. Send deck"
SENTIMENT = '{"overallSentiment": "positive", "sentimentScore": 0.9}'


def routes(**overrides):
    table = {
        "Extract the names of all SPEAKERS": '["Alice", "Bob"]',
        "extract specific action items": '["Bob sends the deck"]',
        "relationship and engagement insights": SENTIMENT,
        "professional meeting title": "Roadmap Review",
        "Create comprehensive meeting minutes": SUMMARY,
    }
    table.update(overrides)
    return table


def build(provider, on_progress=None, cloud=None):
    orchestrator = make_orchestrator(provider, cloud)
    extractor = ParticipantExtractor(orchestrator)
    return PipelineController(
        orchestrator, extractor, on_progress=on_progress, clock=lambda: datetime(2024, 6, 1)
    )


def test_transition_table():
    assert TRANSITIONS[PipelinePhase.IDLE] == frozenset({PipelinePhase.ANALYZING})
    assert TRANSITIONS[PipelinePhase.SUMMARY] == frozenset(
        {PipelinePhase.ACTIONS, PipelinePhase.IDLE}
    )
    assert PipelinePhase.ANALYZING in TRANSITIONS[PipelinePhase.COMPLETE]


def test_illegal_transition_raises():
    controller = build(FakeProvider())
    with pytest.raises(PipelineStateError):
        controller._transition(PipelinePhase.SUMMARY)


def test_full_run_reports_every_phase():
    seen = []
    controller = build(RoutingProvider(routes()), on_progress=lambda phase, status: seen.append(phase))

    result = asyncio.run(controller.run(TRANSCRIPT))

    assert result is not None
    assert seen == [
        PipelinePhase.ANALYZING,
        PipelinePhase.PARTICIPANTS,
        PipelinePhase.SUMMARY,
        PipelinePhase.ACTIONS,
        PipelinePhase.SENTIMENT,
        PipelinePhase.FINALIZING,
        PipelinePhase.COMPLETE,
    ]
    assert [p.name for p in result.participants] == ["Alice", "Bob"]
    assert result.summary == SUMMARY
    assert result.action_items == ["Bob sends the deck"]
    assert result.sentiment.overall_sentiment == "positive"
    assert result.suggested_title == "Roadmap Review"
    assert result.key_points == ["Roadmap reviewed", "Deck to be shared", "Send deck"]
    assert result.transcript.timestamp == datetime(2024, 6, 1)
    assert controller.phase is PipelinePhase.COMPLETE
    assert controller.status == "Complete"


def test_pre_identified_participants_skip_extraction():
    provider = RoutingProvider(routes())
    controller = build(provider)
    supplied = [
        PreIdentifiedParticipant(display_name="Dana", total_speaking_time=42.0, speaker_index=0),
        PreIdentifiedParticipant(display_name="Eve", voice_embedding=[0.1, 0.2]),
    ]

    result = asyncio.run(controller.run(TRANSCRIPT, pre_identified=supplied))

    assert [p.name for p in result.participants] == ["Dana", "Eve"]
    assert result.participants[0].speaking_time == 42.0
    assert result.participants[0].message_count == 0
    assert result.participants[1].voice_embedding == [0.1, 0.2]
    assert not any("SPEAKERS" in prompt for prompt in provider.prompts)


def test_user_notes_reach_summary_prompt():
    provider = RoutingProvider(routes())
    asyncio.run(build(provider).run(TRANSCRIPT, user_notes="DECISION: ship in Q3"))
    summary_prompts = [p for p in provider.prompts if "meeting minutes" in p]
    assert "DECISION: ship in Q3" in summary_prompts[0]


def test_empty_summary_placeholder():
    controller = build(RoutingProvider(routes(**{"Create comprehensive meeting minutes": "  "})))
    result = asyncio.run(controller.run(TRANSCRIPT))
    assert result.summary == "Unable to generate summary"


def test_title_failure_uses_default_title():
    failing = LLMProviderError("title backend down")
    controller = build(RoutingProvider(routes(**{"professional meeting title": failing})))
    result = asyncio.run(controller.run(TRANSCRIPT))
    assert result.suggested_title == "Meeting with Alice and Bob"


def test_fallback_titles():
    assert fallback_title([]) == "Team Meeting"


def test_summary_failure_aborts_to_idle():
    seen = []
    failing = LLMProviderError("model crashed")
    controller = build(
        RoutingProvider(routes(**{"Create comprehensive meeting minutes": failing})),
        on_progress=lambda phase, status: seen.append(phase),
    )

    result = asyncio.run(controller.run(TRANSCRIPT))

    assert result is None
    assert controller.phase is PipelinePhase.IDLE
    assert isinstance(controller.last_error, LLMProviderError)
    assert seen[-1] is PipelinePhase.IDLE
    assert PipelinePhase.ACTIONS not in seen


def _broken_clock():
    raise RuntimeError("clock unavailable")


@pytest.mark.parametrize(
    "failing_phase, marker, error",
    [
        (PipelinePhase.ANALYZING, None, None),
        (PipelinePhase.PARTICIPANTS, "Extract the names of all SPEAKERS", RuntimeError("bad reply")),
        (PipelinePhase.SUMMARY, "Create comprehensive meeting minutes", LLMProviderError("down")),
        (PipelinePhase.ACTIONS, "extract specific action items", LLMProviderError("down")),
        (PipelinePhase.SENTIMENT, "relationship and engagement insights", LLMProviderError("down")),
        (PipelinePhase.FINALIZING, "professional meeting title", RuntimeError("bad reply")),
    ],
)
def test_failure_in_any_phase_aborts_to_idle(failing_phase, marker, error):
    seen = []
    table = routes(**{marker: error}) if marker else routes()
    orchestrator = make_orchestrator(RoutingProvider(table))
    controller = PipelineController(
        orchestrator,
        ParticipantExtractor(orchestrator),
        on_progress=lambda phase, status: seen.append(phase),
        clock=_broken_clock if marker is None else (lambda: datetime(2024, 6, 1)),
    )

    result = asyncio.run(controller.run(TRANSCRIPT))

    assert result is None
    assert controller.phase is PipelinePhase.IDLE
    assert controller.last_error is not None
    assert seen[-2:] == [failing_phase, PipelinePhase.IDLE]
    assert PipelinePhase.COMPLETE not in seen


def test_no_provider_is_reported():
    controller = build(FakeProvider(available=False))
    assert asyncio.run(controller.run(TRANSCRIPT)) is None
    assert isinstance(controller.last_error, NoProviderAvailableError)


def test_primary_refusal_falls_back_mid_pipeline():
    refusal = LLMProviderError("I cannot help with sensitive content")
    on_device = RoutingProvider(routes(**{"Create comprehensive meeting minutes": refusal}))
    cloud = RoutingProvider(routes(), kind=ProviderKind.CLOUD)
    controller = build(on_device, cloud=cloud)

    result = asyncio.run(controller.run(TRANSCRIPT))

    assert result.summary == SUMMARY
    assert any("meeting minutes" in p for p in cloud.prompts)


def test_cancel_stops_before_next_phase():
    controller = None

    def on_progress(phase, status):
        if phase is PipelinePhase.SUMMARY:
            controller.cancel()

    controller = build(RoutingProvider(routes()), on_progress=on_progress)
    result = asyncio.run(controller.run(TRANSCRIPT))
    assert result is None
    assert controller.phase is PipelinePhase.IDLE
    assert controller.last_error is None


def test_controller_can_be_reused_after_completion():
    controller = build(RoutingProvider(routes()))
    assert asyncio.run(controller.run(TRANSCRIPT)) is not None
    assert asyncio.run(controller.run(TRANSCRIPT)) is not None


def test_derive_key_points_caps_and_dedupes():
    summary = "\n".join(f"- point {i % 6}" for i in range(12))
    assert derive_key_points(summary) == [f"point {i}" for i in range(5)]
