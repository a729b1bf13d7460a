from __future__ import annotations

import requests

from rapport.services.llm.base import BaseLLMProvider, LLMProviderError, ProviderKind

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant focused on relationship management and conversation "
    "tracking. When answering questions, use the provided context to give specific, "
    "data-driven responses. If information is missing from the context, say so."
)


class CloudProvider(BaseLLMProvider):
    """Cloud aggregator speaking the OpenAI chat-completions API (OpenRouter by default)."""

    kind = ProviderKind.CLOUD
    display_name = "Cloud (OpenRouter)"

    def __init__(
        self, api_key: str, model: str, base_url: str = "https://openrouter.ai/api"
    ) -> None:
        super().__init__(logger_name="rapport.llm.cloud")
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")

    @property
    def model(self) -> str:
        return self._model

    def is_available(self) -> bool:
        return bool(self._api_key)

    def _call_api(
        self,
        prompt: str,
        temperature: float = 0.2,
        timeout: int = 120,
        system_prompt: str | None = None,
        json_mode: bool = False,
    ) -> str:
        """Make a call to the chat-completions endpoint and return the response text."""
        if not self._api_key:
            raise LLMProviderError("Missing cloud API key")

        messages = [
            {"role": "system", "content": system_prompt or DEFAULT_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

        request_body = {
            "model": self._model,
            "messages": messages,
            "temperature": temperature,
        }

        if json_mode:
            request_body["response_format"] = {"type": "json_object"}

        try:
            response = requests.post(
                f"{self._base_url}/v1/chat/completions",
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
                json=request_body,
                timeout=timeout,
            )
        except requests.RequestException as exc:
            raise LLMProviderError(f"Failed to reach cloud provider: {exc}") from exc

        if response.status_code != 200:
            detail = self._error_detail(response.text)
            raise LLMProviderError(f"Cloud provider error {response.status_code}: {detail}")

        try:
            data = response.json()
        except ValueError as exc:
            raise LLMProviderError("Cloud provider returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise LLMProviderError("Cloud provider returned an unexpected response body")
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            raise LLMProviderError("Cloud provider response missing choices")

        first = choices[0]
        message = first.get("message") if isinstance(first, dict) else None
        if not isinstance(message, dict):
            raise LLMProviderError("Cloud provider response missing message")
        content = message.get("content")
        if content is None:
            return ""
        if not isinstance(content, str):
            raise LLMProviderError("Cloud provider response content is not text")
        return content.strip()
