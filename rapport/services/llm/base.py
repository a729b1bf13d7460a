from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from enum import Enum


class LLMProviderError(RuntimeError):
    pass


class NoProviderAvailableError(LLMProviderError):
    """No AI backend is configured or reachable."""


class AllProvidersFailedError(LLMProviderError):
    """The primary provider failed and the fallback (if any) failed too."""


class ProviderKind(str, Enum):
    ON_DEVICE = "on_device"
    CLOUD = "cloud"


class LLMProvider(ABC):
    kind: ProviderKind
    display_name: str

    @abstractmethod
    def is_available(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    def complete(
        self,
        prompt: str,
        system_prompt: str | None = None,
        temperature: float = 0.2,
        timeout: int = 120,
        json_mode: bool = False,
    ) -> str:
        """Send a prompt and return the response text."""
        raise NotImplementedError


class BaseLLMProvider(LLMProvider):
    """Shared response handling for HTTP-backed providers.

    Subclasses only need to implement _call_api() for their specific API client.
    """

    def __init__(self, logger_name: str = "rapport.llm") -> None:
        self._logger = logging.getLogger(logger_name)

    @abstractmethod
    def _call_api(
        self,
        prompt: str,
        temperature: float = 0.2,
        timeout: int = 120,
        system_prompt: str | None = None,
        json_mode: bool = False,
    ) -> str:
        """Make an API call and return the raw response text.

        Args:
            prompt: The user prompt to send
            temperature: Sampling temperature (0.0-1.0)
            timeout: Request timeout in seconds
            system_prompt: Optional system prompt
            json_mode: Request JSON-formatted response if supported

        Returns:
            The response text content
        """
        raise NotImplementedError

    def complete(
        self,
        prompt: str,
        system_prompt: str | None = None,
        temperature: float = 0.2,
        timeout: int = 120,
        json_mode: bool = False,
    ) -> str:
        return self._call_api(
            prompt,
            temperature=temperature,
            timeout=timeout,
            system_prompt=system_prompt,
            json_mode=json_mode,
        )

    @staticmethod
    def _error_detail(body: str, limit: int = 300) -> str:
        """Pull a human-readable message out of an error response body."""
        text = (body or "").strip()
        try:
            parsed = json.loads(text)
        except (json.JSONDecodeError, ValueError):
            return text[:limit]
        if isinstance(parsed, dict):
            error = parsed.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])[:limit]
            if isinstance(error, str):
                return error[:limit]
        return text[:limit]


def strip_code_fences(text: str) -> str:
    """Remove markdown code block wrappers from text."""
    text = text.strip()
    if "```" not in text:
        return text

    lines = text.split("\n")
    kept = []
    for line in lines:
        if line.strip().startswith("```"):
            continue
        kept.append(line)
    return "\n".join(kept).strip()


_LIST_WRAPPER_KEYS = ("participants", "speakers", "names", "action_items", "items", "data", "result", "results")


def unwrap_json_list(parsed: dict | list, logger: logging.Logger | None = None) -> list:
    """Extract a list from a JSON response that may be wrapped in a dict.

    LLM JSON modes often return {"key": [...]} instead of raw arrays.

    Raises:
        LLMProviderError: If unable to extract a list
    """
    if isinstance(parsed, list):
        return parsed

    if isinstance(parsed, dict):
        for key in _LIST_WRAPPER_KEYS:
            if key in parsed and isinstance(parsed[key], list):
                if logger:
                    logger.debug("Extracted list from key '%s'", key)
                return parsed[key]

        if len(parsed) == 1:
            value = list(parsed.values())[0]
            if isinstance(value, list):
                if logger:
                    logger.debug("Extracted list from single-key dict")
                return value

        if logger:
            logger.warning(
                "JSON response is dict with unexpected structure. Keys: %s",
                list(parsed.keys()),
            )
        raise LLMProviderError(
            f"Unable to extract list from JSON. Got dict with keys: {list(parsed.keys())}"
        )

    raise LLMProviderError(f"Expected list or dict, got {type(parsed).__name__}")


_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


def extract_json_object(text: str) -> dict:
    """Decode the first JSON object in ``text``.

    Raises:
        json.JSONDecodeError: If no object can be decoded
    """
    cleaned = strip_code_fences(text)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        match = _JSON_OBJECT_RE.search(cleaned)
        if not match:
            raise
        parsed = json.loads(match.group(0))
    if not isinstance(parsed, dict):
        raise json.JSONDecodeError("Expected a JSON object", cleaned, 0)
    return parsed
