from __future__ import annotations

import os
import sys
from typing import Callable, Optional, Union

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from rapport.config import AIConfig, FallbackProvider, PrimaryProvider  # noqa: E402
from rapport.services.ai_orchestrator import (  # noqa: E402
    AIOrchestrator,
    FallbackNotifier,
    ProviderFactory,
)
from rapport.services.chunking import ChunkedSummarizer  # noqa: E402
from rapport.services.llm import LLMProvider, ProviderKind  # noqa: E402
from rapport.services.models import Person  # noqa: E402

Reply = Union[str, Exception, Callable[[str], str]]


class FakeProvider(LLMProvider):
    """Scripted provider: replies are consumed in order, the last one repeats."""

    def __init__(
        self,
        kind: ProviderKind = ProviderKind.ON_DEVICE,
        replies: Optional[list[Reply]] = None,
        available: bool = True,
        display_name: Optional[str] = None,
    ) -> None:
        self.kind = kind
        self.display_name = display_name or (
            "On-Device Model" if kind is ProviderKind.ON_DEVICE else "Cloud (OpenRouter)"
        )
        self.replies: list[Reply] = list(replies or [])
        self.available = available
        self.prompts: list[str] = []

    def is_available(self) -> bool:
        return self.available

    def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.2,
        timeout: int = 120,
        json_mode: bool = False,
    ) -> str:
        self.prompts.append(prompt)
        if not self.replies:
            return ""
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(prompt)
        return reply


class RoutingProvider(FakeProvider):
    """Answers by prompt content so pipeline tests don't depend on call order."""

    def __init__(self, routes: dict[str, Reply], default: str = "", **kwargs) -> None:
        super().__init__(**kwargs)
        self.routes = routes
        self.default = default

    def complete(self, prompt: str, **kwargs) -> str:
        self.prompts.append(prompt)
        for marker, reply in self.routes.items():
            if marker in prompt:
                if isinstance(reply, Exception):
                    raise reply
                if callable(reply):
                    return reply(prompt)
                return reply
        return self.default


class InMemoryDirectory:
    def __init__(self, names: tuple[str, ...] = ()) -> None:
        self.people = [Person(name=name) for name in names]
        self.fail = False

    def list_people(self) -> list[Person]:
        if self.fail:
            raise RuntimeError("directory offline")
        return list(self.people)

    def find_person_by_name(self, name: str) -> Optional[Person]:
        for person in self.people:
            if person.name.lower() == name.strip().lower():
                return person
        return None

    def find_person_by_id(self, person_id: str) -> Optional[Person]:
        for person in self.people:
            if person.id == person_id:
                return person
        return None

    def create_person(self, name: str) -> Person:
        person = Person(name=name)
        self.people.append(person)
        return person


class FixedClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_orchestrator(
    primary: Optional[LLMProvider] = None,
    cloud: Optional[LLMProvider] = None,
    config: Optional[AIConfig] = None,
    chunker: Optional[ChunkedSummarizer] = None,
) -> AIOrchestrator:
    config = config or AIConfig(primary=PrimaryProvider.ON_DEVICE, fallback=FallbackProvider.CLOUD)
    factory = ProviderFactory(config, on_device=primary, cloud=cloud)
    return AIOrchestrator(config, factory, notifier=FallbackNotifier(), chunker=chunker)


@pytest.fixture
def directory() -> InMemoryDirectory:
    return InMemoryDirectory(("Alice Johnson", "Bob", "Carol Diaz"))


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()
