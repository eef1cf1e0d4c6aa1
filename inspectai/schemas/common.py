"""Shared response envelopes."""
from typing import Any, Literal

from pydantic import BaseModel


class APIResponse(BaseModel):
    status: Literal["success", "error"]
    data: Any = None
    message: str | None = None


class ProblemDetail(BaseModel):
    """RFC 7807 problem body returned for every failed request."""
    type: str = "about:blank"
    title: str
    status: int
    detail: str
    instance: str | None = None
    # Set on upstream failures the client may retry
    retryable: bool | None = None
