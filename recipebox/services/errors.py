from __future__ import annotations

from datetime import datetime


class ServiceError(Exception):
    kind = "ServiceError"
    status_code = 500


class InvalidInputError(ServiceError):
    kind = "InvalidInput"
    status_code = 400


class BlockedBySourceError(ServiceError):
    kind = "BlockedBySource"
    status_code = 400

    def __init__(self, host: str, reason: str = "blocks automated access"):
        super().__init__(
            f"This site ({host}) {reason}. "
            "Try a different recipe site or enter the recipe manually."
        )
        self.host = host
        self.reason = reason


class FetchFailedError(ServiceError):
    kind = "FetchFailed"
    status_code = 400

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.upstream_status = status_code


class NetworkTimeoutError(ServiceError):
    kind = "Timeout"
    status_code = 408

    def __init__(self, url: str, timeout_seconds: float):
        super().__init__(f"Network timeout after {timeout_seconds}s: {url}")
        self.url = url
        self.timeout_seconds = timeout_seconds


class RateLimitedError(ServiceError):
    kind = "RateLimited"
    status_code = 429

    def __init__(
        self,
        message: str,
        retry_after_seconds: int | None = None,
        reset_at: datetime | None = None,
    ):
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds
        self.reset_at = reset_at


class ServiceUnavailableError(ServiceError):
    kind = "ServiceUnavailable"
    status_code = 500


class UsageLogUnavailableError(ServiceUnavailableError):
    def __init__(self, operation: str, cause: object):
        super().__init__(f"Usage log unavailable ({operation}): {cause}")
        self.operation = operation


class MalformedExtractionError(ServiceError):
    kind = "MalformedExtraction"
    status_code = 500


class ExtractionFailedError(ServiceError):
    kind = "ExtractionFailed"
    status_code = 500


class NotImplementedFeatureError(ServiceError):
    kind = "NotImplemented"
    status_code = 501
