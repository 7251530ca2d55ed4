"""FastAPI server for MailFortress email triage"""

from __future__ import annotations

import os

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mailfortress.api.routes.health import router as health_router
from mailfortress.api.routes.inbox import router as inbox_router
from mailfortress.api.routes.llm import router as llm_router
from mailfortress.api.routes.views import router as views_router
from mailfortress.config import APP_NAME, APP_VERSION, ENV, HOST, PORT, llm_api_key, supabase_key, supabase_url
from mailfortress.observability.logging import get_logger
from mailfortress.observability.telemetry import counter, log_event

# Load environment variables from .env file
load_dotenv()

logger = get_logger(__name__)

app = FastAPI(title="MailFortress API", version=APP_VERSION)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Answer malformed bodies with 400 and the offending field names only."""
    invalid_fields = [str(err["loc"][-1]) for err in exc.errors() if err.get("loc")]
    logger.warning("Validation error on %s: fields=%s", request.url.path, invalid_fields)
    counter("api.validation_errors")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "Invalid request format. Please check your request and try again.",
            "invalid_fields": invalid_fields,
        },
    )


ALLOWED_ORIGINS = [origin.strip() for origin in os.getenv("MAILFORTRESS_ALLOWED_ORIGINS", "").split(",") if origin.strip()]

# Allow localhost in development only
if ENV == "development":
    ALLOWED_ORIGINS.extend(
        [
            "http://localhost:3000",
            "http://localhost:8000",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:8000",
        ]
    )

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
)

# Missing credentials are reported, never fatal; calls fail fast later
if not llm_api_key():
    logger.warning(
        "No LLM API key configured (GENAI_API_KEY / GEMINI_API_KEY / GOOGLE_API_KEY); "
        "LLM endpoints will answer 500"
    )
if not (supabase_url() and supabase_key()):
    logger.warning("SUPABASE_URL / SUPABASE_KEY not set; inbox operations will fail until configured")

app.include_router(health_router)
app.include_router(llm_router)
app.include_router(inbox_router)
app.include_router(views_router)

log_event("api.startup", service=APP_NAME, version=APP_VERSION, env=ENV)


def main() -> None:
    import uvicorn

    uvicorn.run("mailfortress.api.app:app", host=HOST, port=PORT)


if __name__ == "__main__":
    main()
