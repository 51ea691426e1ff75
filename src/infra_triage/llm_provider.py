"""Remote single-label text classification providers.

A provider answers one question: which of a closed set of labels best fits
a short text. Transport problems surface as ``DegradedInputError`` so the
caller can fall back; an answer outside the label set comes back as
``None``.

Providers
---------
- **OpenAIResponsesProvider**: OpenAI ``/v1/responses`` with a JSON schema
  that constrains the output to an enum of labels.

Selection is driven by the ``LLM_PROVIDER`` environment variable
(default ``"openai_responses"``).

Usage
-----
::

    provider = get_provider()
    label = provider.classify_label(
        instructions="Classify the priority ...",
        text="Descrição: poste caído",
        labels=["urgente", "importante", "normal"],
        timeout=5.0,
    )

"""

from __future__ import annotations

import json
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Sequence

import httpx

from .errors import DegradedInputError
from .settings import get_openai_api_key, get_openai_model

_log = logging.getLogger(__name__)


class LLMProvider(ABC):
    """Abstract base for single-label classification calls."""

    @abstractmethod
    def classify_label(
        self,
        *,
        instructions: str,
        text: str,
        labels: Sequence[str],
        timeout: float,
    ) -> str | None:
        """Return one of *labels*, or ``None`` for an unusable answer.

        Raises
        ------
        DegradedInputError
            When the remote service is unreachable, times out, or replies
            with an error status.
        """

    @abstractmethod
    def name(self) -> str:
        """Human-readable provider name."""


class OpenAIResponsesProvider(LLMProvider):
    """Provider backed by OpenAI ``/v1/responses``."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str = "https://api.openai.com",
    ) -> None:
        self._api_key = api_key if api_key is not None else get_openai_api_key()
        self._model = model or get_openai_model()
        self._endpoint = f"{base_url.rstrip('/')}/v1/responses"

    def name(self) -> str:
        return f"openai_responses ({self._model})"

    def classify_label(
        self,
        *,
        instructions: str,
        text: str,
        labels: Sequence[str],
        timeout: float,
    ) -> str | None:
        if not self._api_key:
            raise DegradedInputError("No OpenAI API key configured")

        body: dict[str, Any] = {
            "model": self._model,
            "max_output_tokens": 16,
            "input": [
                {"role": "system", "content": [{"type": "input_text", "text": instructions}]},
                {"role": "user", "content": [{"type": "input_text", "text": text}]},
            ],
            "text": {
                "format": {
                    "type": "json_schema",
                    "name": "single_label",
                    "schema": {
                        "type": "object",
                        "additionalProperties": False,
                        "required": ["label"],
                        "properties": {"label": {"type": "string", "enum": list(labels)}},
                    },
                    "strict": True,
                }
            },
        }

        try:
            with httpx.Client(timeout=timeout) as client:
                r = client.post(
                    self._endpoint,
                    headers={
                        "Authorization": f"Bearer {self._api_key}",
                        "Content-Type": "application/json",
                    },
                    json=body,
                )
                r.raise_for_status()
                data = r.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise DegradedInputError(f"Label request failed: {exc}") from exc

        return self._parse_label(self._extract_text(data), labels)

    @staticmethod
    def _extract_text(data: dict[str, Any]) -> str:
        if data.get("output_text"):
            return str(data["output_text"]).strip()
        for block in data.get("output", []) or []:
            for content in block.get("content", []) or []:
                t = content.get("text")
                if isinstance(t, str) and t.strip():
                    return t.strip()
        return ""

    @staticmethod
    def _parse_label(text: str, labels: Sequence[str]) -> str | None:
        """Accept ``{"label": "x"}`` or a bare word; anything else is ``None``."""
        if not text:
            return None
        candidate: Any = text
        try:
            parsed = json.loads(text)
        except (json.JSONDecodeError, TypeError):
            parsed = None
        if isinstance(parsed, dict):
            candidate = parsed.get("label", "")
        elif isinstance(parsed, str):
            candidate = parsed
        cleaned = str(candidate).strip().strip(".").lower()
        return cleaned if cleaned in labels else None


_PROVIDERS: dict[str, type[LLMProvider]] = {
    "openai_responses": OpenAIResponsesProvider,
}


def get_provider(*, provider_name: str | None = None, **kwargs: Any) -> LLMProvider:
    """Build the configured provider.

    ``provider_name`` overrides the ``LLM_PROVIDER`` environment variable;
    ``kwargs`` go to the provider constructor.
    """
    name = provider_name or os.environ.get("LLM_PROVIDER", "openai_responses")
    cls = _PROVIDERS.get(name)
    if cls is None:
        raise ValueError(
            f"Unknown LLM provider {name!r}. "
            f"Available: {', '.join(sorted(_PROVIDERS))}"
        )
    provider = cls(**kwargs)
    _log.info("LLM provider initialised: %s", provider.name())
    return provider


def register_provider(name: str, cls: type[LLMProvider]) -> None:
    """Register an alternative provider class under *name*."""
    _PROVIDERS[name] = cls
    _log.info("Registered LLM provider: %s -> %s", name, cls.__name__)
