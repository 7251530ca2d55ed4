"""LLM Gateway - one ``generate`` call over the Gemini SDK with REST fallback.

Order of attempts:
  1. SDK model from get_gemini_model() (Vertex AI or google-generativeai),
     with tenacity retries on transient google.api_core errors.
  2. Each configured REST endpoint in turn, via httpx. A non-2xx status,
     transport error or unrecognised body moves on to the next endpoint.

When every path fails the call raises GenerationError; callers do not retry.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Callable

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from mailfortress.config import (
    LLM_DEFAULT_MODEL,
    LLM_REST_ENDPOINTS,
    LLM_TIMEOUT_SECONDS,
    google_cloud_project,
    llm_api_key,
)
from mailfortress.formatting.envelopes import coerce_to_plain_text
from mailfortress.llm.gemini import get_gemini_model
from mailfortress.observability.logging import get_logger
from mailfortress.observability.telemetry import counter, log_event, time_block

logger = get_logger(__name__)

SDK_MAX_ATTEMPTS = 3


class GenerationError(RuntimeError):
    """Raised when no generation path produced text."""


@dataclass(frozen=True)
class GenerationOptions:
    model: str = LLM_DEFAULT_MODEL
    temperature: float = 0.2
    max_output_tokens: int = 512


def extract_response_text(data: Any) -> str | None:
    """Pull the generated text out of a REST response body.

    Priority: candidate output, candidate content (string or parts envelope),
    candidate text, top-level output, top-level text. Returns None for shapes
    that carry none of these.
    """
    if isinstance(data, str):
        return data.strip() or None
    if not isinstance(data, dict):
        return None

    candidates = data.get("candidates")
    if isinstance(candidates, list) and candidates and isinstance(candidates[0], dict):
        first = candidates[0]
        for key in ("output", "content", "text"):
            if first.get(key) is not None:
                text = coerce_to_plain_text(first[key]).strip()
                if text:
                    return text

    for key in ("output", "text"):
        if data.get(key) is not None:
            text = coerce_to_plain_text(data[key]).strip()
            if text:
                return text
    return None


def _sdk_response_text(response: Any) -> str | None:
    try:
        text = response.text
    except (ValueError, AttributeError):
        # .text raises when the candidate was blocked or has several parts
        text = None
    if isinstance(text, str) and text.strip():
        return text

    candidates = getattr(response, "candidates", None) or []
    if candidates:
        parts = getattr(getattr(candidates[0], "content", None), "parts", None) or []
        joined = "\n".join(getattr(part, "text", "") or "" for part in parts)
        if joined.strip():
            return joined
    return None


@retry(
    stop=stop_after_attempt(SDK_MAX_ATTEMPTS),
    wait=wait_exponential(multiplier=1, min=1, max=8),
    retry=retry_if_exception_type((TimeoutError, ConnectionError)),
    reraise=True,
)
def _call_sdk(model: Any, prompt: str, generation_config: dict[str, Any]) -> Any:
    """Single SDK call; transient google.api_core errors become retryable builtins."""
    from google.api_core.exceptions import (
        DeadlineExceeded,
        InternalServerError,
        ResourceExhausted,
        ServiceUnavailable,
    )

    try:
        return model.generate_content(prompt, generation_config=generation_config)
    except DeadlineExceeded as e:
        counter("llm.sdk.timeout")
        raise TimeoutError(f"LLM call timed out: {e}") from e
    except (ServiceUnavailable, InternalServerError, ResourceExhausted) as e:
        counter("llm.sdk.transient")
        logger.warning("LLM SDK transient failure, will retry: %s", e)
        raise ConnectionError(f"LLM service unavailable: {e}") from e


class LLMGateway:
    """Sends prompts to Gemini; see module docstring for the fallback order."""

    def __init__(
        self,
        endpoints: tuple[str, ...] | list[str] | None = None,
        http_client: httpx.Client | None = None,
        model_factory: Callable[[str], Any] = get_gemini_model,
        api_key: str | None = None,
        timeout: float = LLM_TIMEOUT_SECONDS,
    ) -> None:
        self.endpoints = tuple(endpoints) if endpoints is not None else LLM_REST_ENDPOINTS
        self._http_client = http_client
        self._model_factory = model_factory
        self._api_key = api_key
        self._timeout = timeout

    @property
    def api_key(self) -> str | None:
        return self._api_key or llm_api_key()

    @property
    def ready(self) -> bool:
        return bool(self.api_key or google_cloud_project())

    def generate(self, prompt: str, options: GenerationOptions | None = None) -> str:
        options = options or GenerationOptions()
        if not self.ready:
            counter("llm.not_configured")
            raise GenerationError("LLM API key is not configured")

        with time_block("llm.generate"):
            text = self._generate_with_sdk(prompt, options)
            if text is not None:
                counter("llm.sdk.success")
                return text

            text = self._generate_with_rest(prompt, options)
            if text is not None:
                counter("llm.rest.success")
                return text

        counter("llm.generate.failed")
        log_event("llm.generate.failed", model=options.model, endpoints=len(self.endpoints))
        raise GenerationError("generation failed: all Gemini endpoints failed")

    def _generate_with_sdk(self, prompt: str, options: GenerationOptions) -> str | None:
        generation_config = {
            "temperature": options.temperature,
            "max_output_tokens": options.max_output_tokens,
        }
        try:
            model = self._model_factory(options.model)
            response = _call_sdk(model, prompt, generation_config)
        except Exception as e:
            counter("llm.sdk.failure")
            logger.warning("Gemini SDK path failed (%s), falling back to REST: %s", type(e).__name__, e)
            return None

        text = _sdk_response_text(response)
        if text is None:
            counter("llm.sdk.empty")
            logger.warning("Gemini SDK returned no text, falling back to REST")
        return text

    def _generate_with_rest(self, prompt: str, options: GenerationOptions) -> str | None:
        api_key = self.api_key
        if not api_key:
            logger.warning("No API key for REST fallback, skipping %d endpoints", len(self.endpoints))
            return None

        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": options.temperature,
                "maxOutputTokens": options.max_output_tokens,
            },
        }
        headers = {"x-goog-api-key": api_key, "Content-Type": "application/json"}

        client = self._http_client or httpx.Client(timeout=self._timeout)
        try:
            for template in self.endpoints:
                url = template.format(model=options.model)
                text = self._post(client, url, payload, headers)
                if text is not None:
                    log_event("llm.rest.success", url=url)
                    return text
        finally:
            if self._http_client is None:
                client.close()
        return None

    def _post(
        self,
        client: httpx.Client,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str],
    ) -> str | None:
        try:
            response = client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            counter("llm.rest.endpoint_failed")
            logger.warning("Gemini endpoint %s unreachable: %s", url, e)
            return None

        if not response.is_success:
            counter("llm.rest.endpoint_failed")
            logger.warning("Gemini endpoint %s returned HTTP %s", url, response.status_code)
            return None

        try:
            data = response.json()
        except ValueError:
            counter("llm.rest.endpoint_failed")
            logger.warning("Gemini endpoint %s returned a non-JSON body", url)
            return None

        text = extract_response_text(data)
        if text is None:
            counter("llm.rest.unrecognized_shape")
            shape = sorted(data) if isinstance(data, dict) else type(data).__name__
            logger.warning("Gemini endpoint %s returned an unrecognised shape: %s", url, shape)
        return text

    def describe(self) -> dict[str, Any]:
        """Readiness summary for /health."""
        return {
            "ready": self.ready,
            "api_key": bool(self.api_key),
            "google_cloud_project": bool(google_cloud_project()),
            "rest_endpoints": len(self.endpoints),
            "default_options": asdict(GenerationOptions()),
        }
