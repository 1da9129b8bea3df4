"""Classifier clients (OpenAI-compatible chat completions)."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import time
from typing import Optional, Protocol

import httpx

from caselens.config.experiment import substitute_template
from caselens.config.settings import Settings, settings as default_settings
from caselens.errors import ClassifierError, ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromptSpec:
    system_prompt: str
    user_template: str

    def render(self, text: str) -> str:
        return substitute_template(self.user_template, text)


@dataclass(frozen=True)
class ClassifierReply:
    text: str
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


class Classifier(Protocol):
    """Stateless classify call. Raises on transport or service failure."""

    def classify(self, text: str, model: str, temperature: float, prompt: PromptSpec) -> ClassifierReply:
        raise NotImplementedError


@dataclass(frozen=True)
class StubClassifier:
    """Deterministic stub for tests and dry runs."""

    response_text: str = '{"detected": false, "confidence": 0.5, "indicators": [], "rationale": "stub"}'

    def classify(self, text: str, model: str, temperature: float, prompt: PromptSpec) -> ClassifierReply:
        return ClassifierReply(text=self.response_text)


def _usage_value(usage: dict, key: str) -> Optional[int]:
    value = usage.get(key)
    return int(value) if isinstance(value, (int, float)) else None


class ChatCompletionsClassifier:
    """
    POSTs to an OpenAI-compatible /chat/completions endpoint.

    A bounded retry with exponential backoff wraps each call when
    max_retries > 0; after that the last error propagates to the caller.
    """

    def __init__(
        self,
        api_url: str,
        api_key: Optional[str] = None,
        timeout_s: float = 30.0,
        max_retries: int = 0,
        backoff_s: float = 0.5,
        client: Optional[httpx.Client] = None,
        sleep=time.sleep,
    ) -> None:
        self.api_url = api_url
        self.api_key = api_key
        self.timeout_s = timeout_s
        self.max_retries = max(0, max_retries)
        self.backoff_s = backoff_s
        self._client = client
        self._sleep = sleep

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _post(self, payload: dict) -> dict:
        if self._client is not None:
            resp = self._client.post(self.api_url, json=payload, headers=self._headers(), timeout=self.timeout_s)
        else:
            with httpx.Client(timeout=self.timeout_s) as client:
                resp = client.post(self.api_url, json=payload, headers=self._headers())
        resp.raise_for_status()
        try:
            return resp.json()
        except ValueError as e:
            raise ClassifierError(f"Service returned non-JSON body: {e}") from e

    def classify(self, text: str, model: str, temperature: float, prompt: PromptSpec) -> ClassifierReply:
        payload = {
            "model": model,
            "messages": [
                {"role": "system", "content": prompt.system_prompt},
                {"role": "user", "content": prompt.render(text)},
            ],
            "temperature": temperature,
        }

        attempts = 0
        backoff = self.backoff_s
        while True:
            try:
                data = self._post(payload)
                break
            except (httpx.HTTPError, ClassifierError) as e:
                attempts += 1
                if attempts > self.max_retries:
                    raise
                logger.info("Classifier call failed (%s), retry %d/%d in %.1fs", e, attempts, self.max_retries, backoff)
                self._sleep(backoff)
                backoff *= 2

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ClassifierError(f"Unexpected response structure: {e}") from e
        if not content:
            raise ClassifierError("Service returned an empty message")

        usage = data.get("usage") or {}
        return ClassifierReply(
            text=content,
            prompt_tokens=_usage_value(usage, "prompt_tokens"),
            completion_tokens=_usage_value(usage, "completion_tokens"),
            total_tokens=_usage_value(usage, "total_tokens"),
        )


CHAT_COMPLETIONS_PROVIDERS = ("openai_compatible", "openai", "lmstudio", "ollama")


def get_classifier(
    settings: Settings = default_settings,
    provider: Optional[str] = None,
    api_url: Optional[str] = None,
) -> Classifier:
    """
    Factory for classifiers.

    provider/api_url come from the experiment config (or a stored run) and
    take precedence over the process settings.
    """
    name = (provider or settings.llm_provider).lower()
    if name == "stub":
        return StubClassifier()
    if name in CHAT_COMPLETIONS_PROVIDERS:
        return ChatCompletionsClassifier(
            api_url=api_url or settings.llm_api_url,
            api_key=settings.llm_api_key,
            timeout_s=settings.llm_timeout_s,
            max_retries=settings.classifier_max_retries,
            backoff_s=settings.classifier_backoff_s,
        )
    raise ConfigurationError(f"Unknown classifier provider: {provider or settings.llm_provider}")
