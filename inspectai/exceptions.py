"""Application error taxonomy.

Every failure that crosses the service boundary is an ``AppException`` subclass
carrying the HTTP status it maps to. Parse failures of model output never
leave the diagnosis service and therefore have no class here.
"""


class AppException(Exception):
    def __init__(self, status_code: int, detail: str, error_type: str = "about:blank"):
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail
        self.error_type = error_type


class ConfigurationError(AppException):
    """No usable model credentials; raised before any outbound call."""

    def __init__(self, detail: str):
        super().__init__(500, detail, error_type="configuration_error")


class UpstreamError(AppException):
    """A remote model, embedding or similarity call failed or timed out."""

    retryable = True

    def __init__(self, detail: str):
        super().__init__(502, detail, error_type="upstream_error")


class ValidationError(AppException):
    def __init__(self, detail: str):
        super().__init__(400, detail, error_type="validation_error")


class PersistenceError(AppException):
    def __init__(self, detail: str):
        super().__init__(500, detail, error_type="persistence_error")


class NotFoundError(AppException):
    def __init__(self, detail: str):
        super().__init__(404, detail, error_type="not_found")
