import pytest
from fastapi.testclient import TestClient

from conftest import FakeProvider, RoutingProvider
from rapport.config import Config
from rapport.main import create_app
from rapport.services.llm import ProviderKind

TRANSCRIPT = "Alice: Kickoff for the launch.\nBob: I'll draft the plan."

ROUTES = {
    "Extract the names of all SPEAKERS": '["Alice", "Bob"]',
    "extract specific action items": '["Draft the plan"]',
    "relationship and engagement insights": '{"overallSentiment": "positive"}',
    "professional meeting title": "Launch Kickoff",
    "Create comprehensive meeting minutes": "## Key Points\n- Launch planned",
    "PRE-MEETING INTELLIGENCE BRIEF": "Brief: ask about the launch",
    "How did it go": "It went well.",
}


def make_client(tmp_path, on_device=None, cloud=None) -> TestClient:
    on_device = on_device or RoutingProvider(ROUTES)
    cloud = cloud or FakeProvider(kind=ProviderKind.CLOUD, available=False)
    app = create_app(
        data_dir=str(tmp_path), config=Config(), providers=(on_device, cloud), configure_logs=False
    )
    return TestClient(app)


@pytest.fixture
def client(tmp_path) -> TestClient:
    return make_client(tmp_path)


def test_health(client):
    assert client.get("/api/health").json()["status"] == "ok"


def test_format_endpoint(client):
    response = client.post("/api/transcripts/format", json={"transcript_text": "[Bob] Hi there"})
    assert response.json() == {"format": "generic", "display_name": "Generic Format"}


def test_analyze_returns_structured_result(client):
    response = client.post("/api/transcripts/analyze", json={"transcript_text": TRANSCRIPT})
    assert response.status_code == 200
    data = response.json()
    assert [p["name"] for p in data["participants"]] == ["Alice", "Bob"]
    assert data["suggested_title"] == "Launch Kickoff"
    assert data["action_items"] == ["Draft the plan"]
    assert data["key_points"] == ["Launch planned"]
    assert data["sentiment"]["overall_sentiment"] == "positive"
    assert data["transcript"]["detected_format"] == "generic"
    assert "saved_conversation_ids" not in data


def test_analyze_rejects_empty_text(client):
    response = client.post("/api/transcripts/analyze", json={"transcript_text": "   "})
    assert response.status_code == 422


def test_analyze_without_provider_is_503(tmp_path):
    client = make_client(tmp_path, on_device=FakeProvider(available=False))
    response = client.post("/api/transcripts/analyze", json={"transcript_text": TRANSCRIPT})
    assert response.status_code == 503


def test_analyze_provider_failure_is_502(tmp_path):
    from rapport.services.llm import LLMProviderError

    routes = dict(ROUTES)
    routes["Create comprehensive meeting minutes"] = LLMProviderError("model crashed")
    client = make_client(tmp_path, on_device=RoutingProvider(routes))
    response = client.post("/api/transcripts/analyze", json={"transcript_text": TRANSCRIPT})
    assert response.status_code == 502


def test_save_then_brief_then_cache(client):
    response = client.post(
        "/api/transcripts/analyze", json={"transcript_text": TRANSCRIPT, "save": True}
    )
    assert response.status_code == 200
    data = response.json()
    assert len(data["saved_conversation_ids"]) == 2
    bob_id = next(p["person_id"] for p in data["participants"] if p["name"] == "Bob")

    people = client.get("/api/people").json()["people"]
    assert sorted(p["name"] for p in people) == ["Alice", "Bob"]

    first = client.get(f"/api/people/{bob_id}/brief").json()
    second = client.get(f"/api/people/{bob_id}/brief").json()
    forced = client.get(f"/api/people/{bob_id}/brief", params={"force": "true"}).json()
    assert first["brief"] == "Brief: ask about the launch"
    assert (first["cached"], second["cached"], forced["cached"]) == (False, True, False)

    assert client.delete(f"/api/briefs/{bob_id}").status_code == 200
    assert client.get(f"/api/people/{bob_id}/brief").json()["cached"] is False
    assert client.delete("/api/briefs").json() == {"cleared": "all"}


def test_pre_identified_participants_are_used(client):
    response = client.post(
        "/api/transcripts/analyze",
        json={
            "transcript_text": TRANSCRIPT,
            "participants": [{"display_name": "Dana", "total_speaking_time": 12.5}],
        },
    )
    participants = response.json()["participants"]
    assert [p["name"] for p in participants] == ["Dana"]
    assert participants[0]["speaking_time"] == 12.5


def test_brief_for_unknown_person_is_404(client):
    assert client.get("/api/people/missing/brief").status_code == 404


def test_first_meeting_brief(client):
    person = client.post("/api/people", json={"name": "Erin"}).json()
    brief = client.get(f"/api/people/{person['id']}/brief").json()
    assert brief["brief"].startswith("First meeting with Erin.")


def test_chat(client):
    response = client.post("/api/chat", json={"message": "How did it go?", "context": "launch"})
    assert response.json() == {"reply": "It went well."}


def test_chat_without_provider_is_503(tmp_path):
    client = make_client(tmp_path, on_device=FakeProvider(available=False))
    assert client.post("/api/chat", json={"message": "hi"}).status_code == 503


def test_ai_settings_roundtrip(client, tmp_path):
    settings = client.get("/api/settings/ai").json()
    assert settings["settings"]["primary"] == "on_device"
    assert settings["status"]["primary"]["kind"] == "on_device"
    assert settings["status"]["last_fallback"] is None

    response = client.put(
        "/api/settings/ai",
        json={"fallback": "claude", "custom_summary_prompt": "Be brief."},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["settings"]["fallback"] == "cloud"
    assert data["settings"]["custom_summary_prompt"] == "Be brief."
    assert (tmp_path / "config.json").exists()
