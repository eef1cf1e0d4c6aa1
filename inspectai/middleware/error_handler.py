"""Global error handler middleware."""
import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from inspectai.exceptions import AppException, UpstreamError
from inspectai.schemas.common import ProblemDetail

logger = structlog.get_logger()

_TITLES = {
    400: "Bad Request",
    404: "Not Found",
    500: "Internal Server Error",
    502: "Bad Gateway",
}


def _problem(status: int, detail: str, error_type: str, request: Request, retryable: bool | None = None) -> JSONResponse:
    body = ProblemDetail(
        type=error_type,
        title=_TITLES.get(status, "Error"),
        status=status,
        detail=detail,
        instance=request.url.path,
        retryable=retryable,
    )
    return JSONResponse(status_code=status, content=body.model_dump(exclude_none=True))


def setup_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        logger.warning(
            "app_exception",
            path=request.url.path,
            error_type=exc.error_type,
            status=exc.status_code,
            detail=exc.detail,
        )
        retryable = True if isinstance(exc, UpstreamError) else None
        return _problem(exc.status_code, exc.detail, exc.error_type, request, retryable)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("unhandled_exception", error=str(exc), exc_info=True)
        return _problem(500, "An unexpected error occurred.", "about:blank", request)
