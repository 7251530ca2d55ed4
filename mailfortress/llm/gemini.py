"""
Gemini Model Manager - cached SDK model instances, one per model name.

Supports two backends:
  1. Vertex AI SDK - used when GOOGLE_CLOUD_PROJECT is set (service account auth)
  2. google-generativeai - API key from GENAI_API_KEY / GEMINI_API_KEY / GOOGLE_API_KEY
"""

from __future__ import annotations

from functools import lru_cache

from mailfortress.config import GEMINI_LOCATION, google_cloud_project, llm_api_key
from mailfortress.observability.logging import get_logger

logger = get_logger(__name__)


class GeminiInitializationError(RuntimeError):
    """Raised when no Gemini SDK model can be initialized."""


@lru_cache(maxsize=8)
def get_gemini_model(model_name: str):
    """
    Get or create the SDK model for ``model_name``.

    Tries Vertex AI first when a project is configured, then falls back to
    google-generativeai with an API key.

    Raises:
        GeminiInitializationError: If neither backend is usable
    """
    project = google_cloud_project()
    if project:
        try:
            import vertexai
            from vertexai.generative_models import GenerativeModel

            vertexai.init(project=project, location=GEMINI_LOCATION)
            model = GenerativeModel(model_name)
            logger.info(
                "Initialized Gemini model (Vertex AI): project=%s, location=%s, model=%s",
                project,
                GEMINI_LOCATION,
                model_name,
            )
            return model
        except ImportError:
            logger.info("Vertex AI SDK not installed, trying google-generativeai")

    api_key = llm_api_key()
    if not api_key:
        raise GeminiInitializationError(
            "No LLM credentials: set GENAI_API_KEY (or GEMINI_API_KEY / GOOGLE_API_KEY) "
            "or GOOGLE_CLOUD_PROJECT."
        )

    try:
        import google.generativeai as genai
    except ImportError as e:
        raise GeminiInitializationError("google-generativeai is not installed") from e

    try:
        genai.configure(api_key=api_key)
        model = genai.GenerativeModel(model_name)
    except Exception as e:
        logger.error("Failed to initialize Gemini model: %s", e)
        raise GeminiInitializationError(f"Failed to initialize Gemini: {e}") from e

    logger.info("Initialized Gemini model (google-generativeai): model=%s", model_name)
    return model


def clear_model_cache() -> None:
    """Drop cached models, e.g. after credentials change."""
    get_gemini_model.cache_clear()
    logger.info("Cleared Gemini model cache")
