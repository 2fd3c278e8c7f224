"""
LLM step and the text-generation collaborator.

When no collaborator is available (typically: no API key configured) the
step runs in fallback mode and returns the resolved prompt itself as
``text`` with ``metadata.method == "fallback"``. Fallback mode lets
workflows be exercised end to end without credentials.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import httpx

from stepflow.exceptions import StepExecutionError
from stepflow.flow.expressions import resolve_template
from stepflow.steps.base import StepHandler
from stepflow.status import StepType

if TYPE_CHECKING:
    from stepflow.config import EngineConfig
    from stepflow.dsl.models import StepSpec
    from stepflow.flow.context import ExecutionContext

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 1024
API_VERSION = "2023-06-01"


@runtime_checkable
class TextGenerator(Protocol):
    """Text-generation collaborator consumed by ``llm`` steps."""

    def is_available(self) -> bool:
        """True if ``generate`` can be called (credentials configured)."""
        ...

    def generate(
        self,
        prompt: str,
        system_prompt: str | None = None,
        model: str = "",
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout_ms: int | None = None,
    ) -> dict[str, Any]:
        """Return ``{"text": ..., "metadata": {...}}``.

        ``timeout_ms`` bounds the call; None means the generator default.
        """
        ...


class HostedTextGenerator:
    """TextGenerator backed by a messages-style HTTP API.

    Examples:
        >>> generator = HostedTextGenerator(api_key="sk-...")
        >>> generator.generate("Summarize: ...", model="claude-3-5-haiku-latest")["text"]
    """

    def __init__(
        self,
        api_key: str | None,
        api_url: str,
        timeout_ms: int = 30000,
        client: httpx.Client | None = None,
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.timeout_ms = timeout_ms
        self._client = client

    @classmethod
    def from_config(cls, config: EngineConfig) -> HostedTextGenerator:
        return cls(config.llm_api_key, config.llm_api_url, timeout_ms=config.http_timeout_ms)

    def is_available(self) -> bool:
        return bool(self.api_key)

    def generate(
        self,
        prompt: str,
        system_prompt: str | None = None,
        model: str = "",
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout_ms: int | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens or DEFAULT_MAX_TOKENS,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            body["system"] = system_prompt
        if temperature is not None:
            body["temperature"] = temperature

        headers = {
            "x-api-key": self.api_key or "",
            "anthropic-version": API_VERSION,
            "content-type": "application/json",
        }
        timeout = (timeout_ms or self.timeout_ms) / 1000.0
        client = self._client or httpx.Client(timeout=timeout)
        try:
            response = client.post(self.api_url, json=body, headers=headers, timeout=timeout)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise StepExecutionError(
                f"Text generation failed with status {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise StepExecutionError(f"Text generation request failed: {e}") from e
        except ValueError as e:
            raise StepExecutionError(f"Text generation returned invalid JSON: {e}") from e
        finally:
            if self._client is None:
                client.close()

        text = "".join(
            block.get("text", "")
            for block in payload.get("content", [])
            if isinstance(block, dict) and block.get("type") == "text"
        )
        return {
            "text": text,
            "metadata": {
                "model": payload.get("model", model),
                "generated_at": datetime.now().isoformat(),
                "method": "api",
                "usage": payload.get("usage", {}),
                "stop_reason": payload.get("stop_reason"),
            },
        }


def fallback_generation(prompt: str, model: str) -> dict[str, Any]:
    """Result of an ``llm`` step when no collaborator is available."""
    return {
        "text": prompt,
        "metadata": {
            "model": model,
            "generated_at": datetime.now().isoformat(),
            "method": "fallback",
        },
    }


class LlmStepHandler(StepHandler):
    """Executes ``llm`` steps through a TextGenerator."""

    step_type = StepType.LLM

    def __init__(self, generator: TextGenerator | None = None):
        self.generator = generator

    def execute(self, step: StepSpec, context: ExecutionContext) -> dict[str, Any]:
        config = step.config
        if not config.model or not config.prompt:
            raise StepExecutionError(
                f"LLM step {step.id} is missing model or prompt configuration", step_id=step.id
            )

        prompt = str(resolve_template(config.prompt, context))
        system_prompt = None
        if config.system_prompt:
            system_prompt = str(resolve_template(config.system_prompt, context))

        if self.generator is None or not self.generator.is_available():
            logger.info(f"No text generator available for step {step.id}, using fallback")
            return fallback_generation(prompt, config.model)

        context.cancel_token.raise_if_cancelled(step.id)
        return self.generator.generate(
            prompt,
            system_prompt=system_prompt,
            model=config.model,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            timeout_ms=config.timeout,
        )
