"""Provider selection, automatic fallback and the AI operations the pipeline uses."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Optional, TypeVar

from rapport.config import AIConfig, FallbackProvider, PrimaryProvider
from rapport.services.chunking import ChunkedSummarizer
from rapport.services.llm import (
    AllProvidersFailedError,
    CloudProvider,
    LLMProvider,
    LLMProviderError,
    NoProviderAvailableError,
    OnDeviceProvider,
    ProviderKind,
)
from rapport.services.llm.base import extract_json_object, strip_code_fences, unwrap_json_list
from rapport.services.models import SentimentAnalysis

T = TypeVar("T")

DEFAULT_PROMPTS_DIR = os.path.join(os.path.dirname(__file__), "..", "prompts")

CONTENT_POLICY_KEYWORDS = ("refuse", "sensitive", "policy", "inappropriate", "cannot", "unable")


class FallbackReason(str, Enum):
    CONTENT_POLICY = "content_policy"
    API_ERROR = "api_error"


def classify_failure(error: BaseException) -> FallbackReason:
    message = str(error).lower()
    if any(keyword in message for keyword in CONTENT_POLICY_KEYWORDS):
        return FallbackReason.CONTENT_POLICY
    return FallbackReason.API_ERROR


@dataclass
class FallbackNotice:
    reason: FallbackReason
    operation: str
    from_provider: str
    to_provider: str
    from_kind: ProviderKind
    to_kind: ProviderKind
    detail: str
    timestamp: float = field(default_factory=time.time)

    @property
    def display_text(self) -> str:
        if self.reason is FallbackReason.CONTENT_POLICY:
            return f"{self.from_provider} refused sensitive content: {self.operation}"
        return f"API Error: {self.detail}"

    @property
    def message(self) -> str:
        return (
            f"{self.display_text}\n\n"
            f"Automatically switched from {self.from_provider} to {self.to_provider}"
        )

    def to_dict(self) -> dict:
        return {
            "reason": self.reason.value,
            "operation": self.operation,
            "from_provider": self.from_provider,
            "to_provider": self.to_provider,
            "from_kind": self.from_kind.value,
            "to_kind": self.to_kind.value,
            "detail": self.detail,
            "timestamp": self.timestamp,
            "message": self.message,
        }


class FallbackNotifier:
    """Collects fallback notices for whoever shows them to the user."""

    def __init__(self, history_size: int = 20) -> None:
        self._lock = threading.Lock()
        self._history: deque[FallbackNotice] = deque(maxlen=history_size)
        self._subscribers: list[Callable[[FallbackNotice], None]] = []
        self._logger = logging.getLogger("rapport.ai.fallback")

    def subscribe(self, callback: Callable[[FallbackNotice], None]) -> None:
        with self._lock:
            self._subscribers.append(callback)

    def publish(self, notice: FallbackNotice) -> None:
        with self._lock:
            self._history.append(notice)
            subscribers = list(self._subscribers)
        self._logger.warning("%s", notice.display_text)
        self._logger.warning(
            "Switched from %s to %s for %s",
            notice.from_provider,
            notice.to_provider,
            notice.operation,
        )
        for callback in subscribers:
            try:
                callback(notice)
            except Exception:
                self._logger.exception("Fallback subscriber failed")

    @property
    def latest(self) -> Optional[FallbackNotice]:
        with self._lock:
            return self._history[-1] if self._history else None

    def history(self) -> list[FallbackNotice]:
        with self._lock:
            return list(self._history)


@dataclass
class ProviderSelection:
    primary: Optional[LLMProvider]
    fallback: Optional[LLMProvider]

    def to_dict(self) -> dict:
        def describe(provider: Optional[LLMProvider]) -> Optional[dict]:
            if provider is None:
                return None
            return {"kind": provider.kind.value, "name": provider.display_name}

        return {"primary": describe(self.primary), "fallback": describe(self.fallback)}


def build_providers(config: AIConfig) -> tuple[LLMProvider, LLMProvider]:
    on_device = OnDeviceProvider(base_url=config.on_device_base_url, model=config.on_device_model)
    cloud = CloudProvider(
        api_key=config.cloud_api_key,
        model=config.cloud_model,
        base_url=config.cloud_base_url,
    )
    return on_device, cloud


class ProviderFactory:
    """Resolves which backend runs first and which one catches its failures.

    Availability is probed once and reused until refresh() is called.
    """

    def __init__(
        self,
        config: AIConfig,
        on_device: Optional[LLMProvider],
        cloud: Optional[LLMProvider],
    ) -> None:
        self._config = config
        self._on_device = on_device
        self._cloud = cloud
        self._selection: Optional[ProviderSelection] = None
        self._lock = threading.Lock()
        self._logger = logging.getLogger("rapport.ai")

    @property
    def selection(self) -> ProviderSelection:
        with self._lock:
            if self._selection is not None:
                return self._selection
        return self.refresh()

    def refresh(self, config: Optional[AIConfig] = None) -> ProviderSelection:
        if config is not None:
            self._config = config
        on_device_ok = self._on_device is not None and self._on_device.is_available()
        cloud_ok = self._cloud is not None and self._cloud.is_available()

        primary: Optional[LLMProvider]
        if self._config.primary is PrimaryProvider.ON_DEVICE and on_device_ok:
            primary = self._on_device
        elif cloud_ok:
            primary = self._cloud
        elif on_device_ok:
            primary = self._on_device
        else:
            primary = None

        fallback: Optional[LLMProvider] = None
        if (
            primary is not None
            and primary.kind is not ProviderKind.CLOUD
            and self._config.fallback is FallbackProvider.CLOUD
            and cloud_ok
        ):
            fallback = self._cloud

        selection = ProviderSelection(primary=primary, fallback=fallback)
        self._logger.info(
            "Provider selection: configured=%s/%s on_device_available=%s cloud_credentials=%s -> %s",
            self._config.primary.value,
            self._config.fallback.value,
            on_device_ok,
            cloud_ok,
            selection.to_dict(),
        )
        with self._lock:
            self._selection = selection
        return selection


class PromptLibrary:
    """Prompt templates stored as text files with ``{{name}}`` placeholders."""

    def __init__(self, prompts_dir: str = DEFAULT_PROMPTS_DIR) -> None:
        self._prompts_dir = prompts_dir
        self._cache: dict[str, str] = {}

    def load(self, name: str) -> str:
        if name in self._cache:
            return self._cache[name]
        path = os.path.join(self._prompts_dir, f"{name}.txt")
        try:
            with open(path, "r", encoding="utf-8") as f:
                template = f.read().strip()
        except OSError as exc:
            raise LLMProviderError(f"Missing prompt file: {path}") from exc
        self._cache[name] = template
        return template

    def fill(self, name: str, **values: str) -> str:
        template = self.load(name)
        for key, value in values.items():
            template = template.replace("{{" + key + "}}", value)
        return template


_QUOTED_RE = re.compile(r'"([^"]+)"')
_BULLET_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+(.+?)\s*$", re.MULTILINE)


def parse_participant_names(response: str, logger: Optional[logging.Logger] = None) -> list[str]:
    """Read a JSON array of names; fall back to scanning quoted strings."""
    text = strip_code_fences(response)
    names: list[str] = []
    try:
        items = unwrap_json_list(json.loads(text), logger)
        for item in items:
            if isinstance(item, dict):
                item = item.get("name") or item.get("speaker") or ""
            if isinstance(item, str) and item.strip():
                names.append(item.strip())
    except (json.JSONDecodeError, LLMProviderError):
        if logger:
            logger.warning("Participant reply was not a JSON array; scanning quoted names")
        names = [m.strip() for m in _QUOTED_RE.findall(response) if len(m.strip()) > 1]

    seen: set[str] = set()
    unique = []
    for name in names:
        if name not in seen:
            seen.add(name)
            unique.append(name)
    return unique


def parse_action_items(response: str, logger: Optional[logging.Logger] = None) -> list[str]:
    """Read a JSON array of action items; fall back to bullet or numbered lines."""
    text = strip_code_fences(response)
    try:
        items = unwrap_json_list(json.loads(text), logger)
    except (json.JSONDecodeError, LLMProviderError):
        if logger:
            logger.warning("Action item reply was not a JSON array; scanning bullet lines")
        return [line for line in _BULLET_RE.findall(text) if line]

    result = []
    for item in items:
        if isinstance(item, dict):
            item = item.get("description") or item.get("task") or item.get("action") or ""
        value = str(item).strip()
        if value:
            result.append(value)
    return result


class AIOrchestrator:
    """Runs AI operations on the selected provider, falling back once on failure."""

    def __init__(
        self,
        config: AIConfig,
        factory: ProviderFactory,
        notifier: Optional[FallbackNotifier] = None,
        prompts: Optional[PromptLibrary] = None,
        chunker: Optional[ChunkedSummarizer] = None,
    ) -> None:
        self._config = config
        self._factory = factory
        self._notifier = notifier or FallbackNotifier()
        self._prompts = prompts or PromptLibrary()
        self._chunker = chunker or ChunkedSummarizer()
        self._logger = logging.getLogger("rapport.ai")

    @property
    def notifier(self) -> FallbackNotifier:
        return self._notifier

    def update_config(self, config: AIConfig) -> ProviderSelection:
        self._config = config
        return self._factory.refresh(config)

    def status(self) -> dict:
        selection = self._factory.selection
        latest = self._notifier.latest
        return {
            **selection.to_dict(),
            "available": selection.primary is not None,
            "last_fallback": latest.to_dict() if latest else None,
        }

    async def _execute(self, operation: str, call: Callable[[LLMProvider], T]) -> T:
        # the first lookup probes the backends over HTTP
        selection = await asyncio.to_thread(lambda: self._factory.selection)
        primary = selection.primary
        if primary is None:
            raise NoProviderAvailableError(
                "No AI provider available. Configure an on-device model or a cloud API key."
            )

        self._logger.info("%s using provider=%s", operation, primary.display_name)
        try:
            return await asyncio.to_thread(call, primary)
        except LLMProviderError as exc:
            primary_error = exc

        self._logger.warning("%s failed on %s: %s", operation, primary.display_name, primary_error)
        fallback = selection.fallback
        if fallback is None:
            raise AllProvidersFailedError(
                f"{operation} failed on {primary.display_name} and no fallback is configured: "
                f"{primary_error}"
            ) from primary_error

        self._notifier.publish(
            FallbackNotice(
                reason=classify_failure(primary_error),
                operation=operation,
                from_provider=primary.display_name,
                to_provider=fallback.display_name,
                from_kind=primary.kind,
                to_kind=fallback.kind,
                detail=str(primary_error),
            )
        )
        try:
            return await asyncio.to_thread(call, fallback)
        except LLMProviderError as exc:
            raise AllProvidersFailedError(
                f"{operation} failed on {primary.display_name} and {fallback.display_name}: {exc}"
            ) from exc

    async def _complete(self, operation: str, prompt: str, **kwargs) -> str:
        return await self._execute(operation, lambda provider: provider.complete(prompt, **kwargs))

    def _notes_section(self, user_notes: Optional[str]) -> str:
        if not user_notes or not user_notes.strip():
            return ""
        return self._prompts.fill("user_notes_section", user_notes=user_notes.strip())

    async def summarize(self, text: str, user_notes: Optional[str] = None) -> str:
        if not text.strip():
            raise LLMProviderError("Transcript is empty")
        instructions = self._config.custom_summary_prompt or self._prompts.load("summary_prompt")
        notes_section = self._notes_section(user_notes)

        if self._chunker.needs_chunking(text):
            self._logger.info("Large transcript (%d chars); using chunked summary", len(text))

            async def complete(prompt: str) -> str:
                return await self._complete("summarize", prompt, temperature=0.2, timeout=120)

            return await self._chunker.summarize(
                text,
                complete,
                instructions=instructions,
                chunk_template=self._prompts.load("chunk_summary_prompt"),
                combine_template=self._prompts.load("combine_summaries_prompt"),
                notes_section=notes_section,
            )

        if notes_section:
            prompt = f"{instructions}\n\n## Meeting Transcript:\n{text}\n\n{notes_section}"
        else:
            prompt = f"{instructions}\n\nTranscript:\n{text}"
        return (await self._complete("summarize", prompt, temperature=0.2, timeout=120)).strip()

    async def extract_participants(self, text: str) -> list[str]:
        prompt = self._prompts.fill("extract_participants_prompt", transcript=text)
        response = await self._complete(
            "extract_participants", prompt, temperature=0.0, timeout=60
        )
        names = parse_participant_names(response, self._logger)
        self._logger.info("AI participant extraction returned %d names", len(names))
        return names

    async def analyze_sentiment(self, text: str, participants: Iterable[str] = ()) -> SentimentAnalysis:
        prompt = self._prompts.fill(
            "sentiment_prompt",
            participants=", ".join(participants) or "Unknown",
            transcript=text,
        )
        response = await self._complete(
            "analyze_sentiment", prompt, temperature=0.1, timeout=120, json_mode=True
        )
        try:
            payload = extract_json_object(response)
        except json.JSONDecodeError:
            self._logger.warning("Non-JSON sentiment response; using neutral defaults: %s", response[:200])
            return SentimentAnalysis.neutral()
        return SentimentAnalysis.from_payload(payload)

    async def extract_action_items(self, text: str) -> list[str]:
        prompt = self._prompts.fill("action_items_prompt", transcript=text)
        response = await self._complete("extract_action_items", prompt, temperature=0.1, timeout=120)
        return parse_action_items(response, self._logger)

    async def generate_title(self, summary: str, participants: Iterable[str] = ()) -> str:
        prompt = self._prompts.fill(
            "title_prompt", summary=summary, participants=", ".join(participants)
        )
        response = await self._complete("generate_title", prompt, temperature=0.2, timeout=60)
        lines = [line for line in response.strip().splitlines() if line.strip()]
        title = lines[0].strip().strip('"').strip("'").strip() if lines else ""
        if title.lower().startswith("title:"):
            title = title[len("title:"):].strip()
        if not title:
            raise LLMProviderError("Empty title response")
        return title

    async def chat(self, message: str, context: str = "") -> str:
        if not message.strip():
            raise LLMProviderError("Message is empty")
        prompt = f"Context:\n{context.strip()}\n\n{message}" if context.strip() else message
        return (await self._complete("chat", prompt, temperature=0.3, timeout=60)).strip()

    async def generate_brief(self, context: str) -> str:
        instructions = self._config.custom_brief_prompt or self._prompts.load("brief_prompt")
        prompt = self._prompts.fill(
            "brief_analysis_prompt", instructions=instructions, context=context
        )
        return (await self._complete("generate_brief", prompt, temperature=0.3, timeout=120)).strip()
