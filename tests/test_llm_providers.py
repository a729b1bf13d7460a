import asyncio

import pytest

from conftest import FakeProvider, make_orchestrator
from rapport.services.llm import CloudProvider, LLMProviderError, OnDeviceProvider, ProviderKind
from rapport.services.llm import cloud_provider, on_device_provider


class StubResponse:
    def __init__(self, payload, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code
        self.text = ""

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


def _post_returning(payload):
    def post(*args, **kwargs):
        return StubResponse(payload)

    return post


@pytest.mark.parametrize(
    "payload",
    [
        {"choices": [{"message": None}]},
        {"choices": [None]},
        {"choices": "oops"},
        {"choices": [{"message": {"content": ["not", "text"]}}]},
        ["not", "a", "dict"],
        ValueError("bad json"),
    ],
)
def test_cloud_malformed_body_raises_provider_error(monkeypatch, payload):
    monkeypatch.setattr(cloud_provider.requests, "post", _post_returning(payload))
    provider = CloudProvider(api_key="sk-test", model="test-model")
    with pytest.raises(LLMProviderError):
        provider.complete("hello")


def test_cloud_reply_text_is_stripped(monkeypatch):
    payload = {"choices": [{"message": {"content": "  Launch Kickoff \n"}}]}
    monkeypatch.setattr(cloud_provider.requests, "post", _post_returning(payload))
    provider = CloudProvider(api_key="sk-test", model="test-model")
    assert provider.complete("hello") == "Launch Kickoff"


@pytest.mark.parametrize(
    "payload",
    [["a", "list"], {"response": {"nested": True}}, {"error": "model not found"}],
)
def test_on_device_malformed_body_raises_provider_error(monkeypatch, payload):
    monkeypatch.setattr(on_device_provider.requests, "post", _post_returning(payload))
    provider = OnDeviceProvider(base_url="http://127.0.0.1:11434", model="llama3")
    with pytest.raises(LLMProviderError):
        provider.complete("hello")


def test_malformed_primary_body_falls_back_to_cloud(monkeypatch):
    monkeypatch.setattr(
        on_device_provider.requests, "get", lambda *args, **kwargs: StubResponse({})
    )
    monkeypatch.setattr(on_device_provider.requests, "post", _post_returning([]))
    on_device = OnDeviceProvider(base_url="http://127.0.0.1:11434", model="llama3")
    cloud = FakeProvider(kind=ProviderKind.CLOUD, replies=["It went well."])
    orchestrator = make_orchestrator(on_device, cloud)

    reply = asyncio.run(orchestrator.chat("How did it go?"))

    assert reply == "It went well."
    notice = orchestrator.notifier.latest
    assert notice is not None
    assert notice.to_provider == cloud.display_name
