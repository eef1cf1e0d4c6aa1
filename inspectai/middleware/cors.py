"""CORS middleware configuration."""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from inspectai.config import settings


def setup_cors(app: FastAPI) -> None:
    """Register CORS middleware with allowed origins from settings.

    The inspection front-end calls the two diagnostics operations directly
    from the browser, so only GET/POST with JSON bodies are allowed.
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",") if o.strip()],
        allow_credentials=False,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "X-Request-ID"],
    )
