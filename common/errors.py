"""
Error taxonomy shared by the synchronous chain.

Each category is an HTTPException subclass so FastAPI renders it with its
status code and a {"detail": ...} body. The category name also travels in the
X-Error-Category header, which lets a caller re-raise the same category
when it receives the response.
"""

from __future__ import annotations

from fastapi import HTTPException

ERROR_CATEGORY_HEADER = "X-Error-Category"


class ServiceError(HTTPException):
    """Base for every error that crosses a service boundary."""

    status_code = 500
    category = "internal"

    def __init__(self, detail: str) -> None:
        super().__init__(
            status_code=type(self).status_code,
            detail=detail,
            headers={ERROR_CATEGORY_HEADER: self.category},
        )


class InvalidArgument(ServiceError):
    status_code = 400
    category = "invalid_argument"


class NotFound(ServiceError):
    status_code = 404
    category = "not_found"


class Timeout(ServiceError):
    status_code = 408
    category = "timeout"


class UpstreamError(ServiceError):
    """Downstream dependency failure, including simulated database errors."""

    status_code = 500
    category = "upstream"


_BY_STATUS: dict[int, type[ServiceError]] = {
    400: InvalidArgument,
    404: NotFound,
    408: Timeout,
}


def error_for_status(status_code: int, detail: str) -> ServiceError:
    """
    Map a downstream HTTP status back to the matching error category.

    >>> type(error_for_status(404, "gone")).__name__
    'NotFound'
    >>> error_for_status(503, "unavailable").status_code
    500
    """
    return _BY_STATUS.get(status_code, UpstreamError)(detail)
