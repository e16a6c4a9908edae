# integrations/llm_interface.py
"""
LLM Interface Module: chat-completion collaborator for field classification.

Centralised access to the remote LLM used by the field classifier. Resolves
the provider for a caller type from ``config.settings.api_config`` and
performs a single JSON-mode chat call built on ``litellm``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

import litellm

from config.settings import APIConfig, api_config

__all__ = ["LLMInterface", "LLMUnavailableError", "ProviderConfig"]

logger = logging.getLogger(__name__)

# Caller type constants
VALID_CALLER_TYPES = frozenset({
    "FIELD_CLASSIFIER",
})

_BODY_LIMIT = 200


class LLMUnavailableError(RuntimeError):
    """Raised when the provider is not configured or returns a non-2xx.

    Attributes:
        status: HTTP-like status code (503 when credentials are missing).
        body: Upstream error body, truncated to 200 characters.
    """

    def __init__(self, status: int, body: str) -> None:
        self.status = status
        self.body = (body or "")[:_BODY_LIMIT]
        super().__init__(f"LLM unavailable ({status}): {self.body}")


@dataclass(frozen=True)
class ProviderConfig:
    model: str
    api_key: str
    api_base: Optional[str] = None


class LLMInterface:
    """
    Centralised LLM access for the autofill engine.

    Resolves provider configuration per caller type and performs JSON-mode
    chat completions. Never retries automatically: a failed call surfaces as
    ``LLMUnavailableError`` so the caller can degrade.
    """

    def __init__(self, config: Optional[APIConfig] = None) -> None:
        self.config: APIConfig = config or api_config
        self.logger = logging.getLogger(self.__class__.__name__)

    def get_provider(self, caller_type: str = "FIELD_CLASSIFIER") -> ProviderConfig:
        """
        Return the primary provider for the given caller type.

        Args:
            caller_type: Caller type; only FIELD_CLASSIFIER is defined.

        Returns:
            ProviderConfig for the primary provider.

        Raises:
            ValueError: If caller_type is not recognised.
            LLMUnavailableError: If the primary API key is missing or empty.
        """
        caller_type = caller_type.strip().upper()
        if caller_type not in VALID_CALLER_TYPES:
            raise ValueError(
                f"Unrecognised caller_type: '{caller_type}'. "
                f"Valid types: {sorted(VALID_CALLER_TYPES)}"
            )
        api_key = self.config.openai_api_key
        if not api_key or not api_key.strip():
            raise LLMUnavailableError(503, "AI service not configured")
        return ProviderConfig(
            model=self.config.classifier_model,
            api_key=api_key.strip(),
            api_base=self.config.api_base or None,
        )

    def chat_json(
        self,
        messages: list[dict[str, str]],
        caller_type: str = "FIELD_CLASSIFIER",
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> tuple[str, str]:
        """
        Run one JSON-mode chat completion against the primary provider.

        Args:
            messages: Chat messages (system + user).
            caller_type: Caller type used to resolve the provider.
            temperature: Overrides ``api_config.temperature``.
            max_tokens: Overrides ``api_config.max_tokens``.

        Returns:
            Tuple of (raw message content, model name reported upstream).

        Raises:
            LLMUnavailableError: Missing credentials or upstream failure.
        """
        provider = self.get_provider(caller_type)
        completion_kwargs: dict[str, Any] = {
            "model": provider.model,
            "messages": messages,
            "api_key": provider.api_key,
            "temperature": (
                self.config.temperature if temperature is None else temperature
            ),
            "max_tokens": max_tokens or self.config.max_tokens,
            "response_format": {"type": "json_object"},
            "timeout": self.config.request_timeout,
        }
        if provider.api_base:
            completion_kwargs["api_base"] = provider.api_base

        start = time.perf_counter()
        try:
            response = litellm.completion(**completion_kwargs)
        except Exception as exc:  # noqa: BLE001
            status = int(getattr(exc, "status_code", 0) or 502)
            body = str(getattr(exc, "message", "") or exc)
            self.logger.error(
                "chat_json: %s failed (%d): %s", provider.model, status, body[:_BODY_LIMIT]
            )
            raise LLMUnavailableError(status, body) from exc

        content: str = ""
        try:
            content = response.choices[0].message.content or ""
        except (AttributeError, IndexError, TypeError):
            content = ""
        model_name = str(getattr(response, "model", "") or provider.model)
        self.logger.info(
            "chat_json: model=%s latency_ms=%.0f chars=%d",
            model_name,
            (time.perf_counter() - start) * 1000,
            len(content),
        )
        return content, model_name

    def test_connection(self, caller_type: str = "FIELD_CLASSIFIER") -> dict[str, Any]:
        """
        Test the primary provider with a minimal single-token ping call.

        Does not raise; always returns a status dict with keys
        caller, model, reachable, latency_ms, error.
        """
        start = time.perf_counter()
        try:
            provider = self.get_provider(caller_type)
        except (ValueError, LLMUnavailableError) as exc:
            return {
                "caller": caller_type,
                "model": self.config.classifier_model,
                "reachable": False,
                "latency_ms": round((time.perf_counter() - start) * 1000, 2),
                "error": str(exc),
            }

        try:
            kwargs: dict[str, Any] = {
                "model": provider.model,
                "api_key": provider.api_key,
                "messages": [{"role": "user", "content": "Hi"}],
                "max_tokens": 1,
            }
            if provider.api_base:
                kwargs["api_base"] = provider.api_base
            litellm.completion(**kwargs)
            error: Optional[str] = None
            reachable = True
        except Exception as exc:  # noqa: BLE001
            error = str(exc)
            reachable = False
            logger.warning("test_connection %s failed: %s", caller_type, exc)

        return {
            "caller": caller_type,
            "model": provider.model,
            "reachable": reachable,
            "latency_ms": round((time.perf_counter() - start) * 1000, 2),
            "error": error,
        }
