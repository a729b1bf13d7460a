from __future__ import annotations

import logging
from urllib.parse import urlparse

import requests

from rapport.services.llm.base import BaseLLMProvider, LLMProviderError, ProviderKind

_logger = logging.getLogger("rapport.llm.on_device")

_PROBE_TIMEOUT = 3  # seconds


def _is_local_url(url: str) -> bool:
    """Return True if the URL points to the local machine."""
    host = urlparse(url).hostname or ""
    return host in ("127.0.0.1", "localhost", "::1", "0.0.0.0")


class OnDeviceProvider(BaseLLMProvider):
    """Local model served by an Ollama-compatible runtime on this machine."""

    kind = ProviderKind.ON_DEVICE
    display_name = "On-Device Model"

    def __init__(self, base_url: str, model: str) -> None:
        super().__init__(logger_name="rapport.llm.on_device")
        self._base_url = base_url.rstrip("/")
        self._model = model
        if not _is_local_url(self._base_url):
            _logger.warning(
                "On-device provider configured with non-local URL %s", self._base_url
            )

    @property
    def model(self) -> str:
        return self._model

    def is_available(self) -> bool:
        try:
            resp = requests.get(f"{self._base_url}/api/tags", timeout=_PROBE_TIMEOUT)
        except requests.RequestException as exc:
            _logger.info("On-device runtime not reachable at %s: %s", self._base_url, exc)
            return False
        if resp.status_code != 200:
            _logger.info("On-device runtime at %s answered %s", self._base_url, resp.status_code)
            return False
        return True

    def _call_api(
        self,
        prompt: str,
        temperature: float = 0.2,
        timeout: int = 120,
        system_prompt: str | None = None,
        json_mode: bool = False,
    ) -> str:
        """Make a call to the local runtime and return the response text."""
        full_prompt = prompt
        if system_prompt:
            full_prompt = f"{system_prompt}\n\n{prompt}"

        request_body = {
            "model": self._model,
            "prompt": full_prompt,
            "stream": False,
            "options": {"temperature": temperature},
        }

        if json_mode:
            request_body["format"] = "json"

        try:
            response = requests.post(
                f"{self._base_url}/api/generate",
                json=request_body,
                timeout=timeout,
            )
        except requests.RequestException as exc:
            raise LLMProviderError(f"Failed to reach on-device model: {exc}") from exc

        if response.status_code != 200:
            detail = self._error_detail(response.text)
            raise LLMProviderError(f"On-device model error {response.status_code}: {detail}")

        try:
            data = response.json()
        except ValueError as exc:
            raise LLMProviderError("On-device model returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise LLMProviderError("On-device model returned an unexpected response body")
        if data.get("error"):
            raise LLMProviderError(f"On-device model error: {data['error']}")
        text = data.get("response")
        if text is None:
            return ""
        if not isinstance(text, str):
            raise LLMProviderError("On-device model response is not text")
        return text.strip()
