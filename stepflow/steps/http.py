"""
HTTP step: issues one outbound request with httpx.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from stepflow.exceptions import StepExecutionError
from stepflow.flow.expressions import resolve_template, resolve_value
from stepflow.steps.base import StepHandler
from stepflow.status import StepType

if TYPE_CHECKING:
    from stepflow.dsl.models import StepSpec
    from stepflow.flow.context import ExecutionContext

logger = logging.getLogger(__name__)

BODY_METHODS = ("POST", "PUT", "PATCH")


def decode_body(response: httpx.Response) -> Any:
    """JSON body when the response parses as JSON, text otherwise."""
    try:
        return response.json()
    except ValueError:
        return response.text


class HttpStepHandler(StepHandler):
    """Executes ``http`` steps.

    Any response status is a successful step; only transport failures and
    unusable URLs raise. The result is ``{status, headers, data}``.
    """

    step_type = StepType.HTTP

    def __init__(self, client: httpx.Client | None = None, timeout_ms: int = 30000):
        """Initialize HttpStepHandler.

        Args:
            client: Shared client (tests pass one built on httpx.MockTransport).
                When omitted a short-lived client is created per request.
            timeout_ms: Timeout for steps that do not declare one.
        """
        self.client = client
        self.timeout_ms = timeout_ms

    def execute(self, step: StepSpec, context: ExecutionContext) -> dict[str, Any]:
        config = step.config
        method = (config.method or "GET").upper()
        url = resolve_template(config.url, context)
        if not isinstance(url, str) or not url:
            raise StepExecutionError(f"HTTP step {step.id} has no URL", step_id=step.id)

        try:
            parsed = httpx.URL(url)
        except httpx.InvalidURL as e:
            raise StepExecutionError(f"Invalid URL '{url}': {e}", step_id=step.id) from e
        if parsed.scheme not in ("http", "https") or not parsed.host:
            raise StepExecutionError(f"Invalid URL '{url}': expected http(s) URL", step_id=step.id)

        headers = {
            str(key): str(value)
            for key, value in (resolve_value(dict(config.headers), context) or {}).items()
        }
        request_kwargs: dict[str, Any] = {"headers": headers}
        if method in BODY_METHODS and config.body is not None:
            body = resolve_value(config.body, context)
            if isinstance(body, (dict, list)):
                request_kwargs["json"] = body
            else:
                request_kwargs["content"] = str(body)

        timeout = (config.timeout or self.timeout_ms) / 1000.0
        context.cancel_token.raise_if_cancelled(step.id)
        logger.debug(f"HTTP step {step.id}: {method} {url}")

        client = self.client or httpx.Client()
        try:
            response = client.request(method, parsed, timeout=timeout, **request_kwargs)
        except httpx.TimeoutException as e:
            raise StepExecutionError(
                f"HTTP request timed out after {timeout * 1000:.0f}ms: {method} {url}", step_id=step.id
            ) from e
        except httpx.HTTPError as e:
            raise StepExecutionError(f"HTTP request failed: {method} {url}: {e}", step_id=step.id) from e
        finally:
            if self.client is None:
                client.close()

        return {
            "status": response.status_code,
            "headers": dict(response.headers),
            "data": decode_body(response),
        }
