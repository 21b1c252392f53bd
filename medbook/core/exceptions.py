"""
Service error taxonomy.

Each failure path in a service raises exactly one of these. They are
HTTPException subclasses, so the boundary layer only has to render them
into the response envelope.
"""
from typing import Any, List, Optional

from fastapi import HTTPException, status


class MedbookError(HTTPException):
    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Internal server error"

    def __init__(self, detail: Optional[str] = None, errors: Optional[List[str]] = None):
        super().__init__(
            status_code=self.status_code_default,
            detail=detail or self.default_detail,
        )
        self.errors = errors


class ValidationError(MedbookError):
    status_code_default = status.HTTP_400_BAD_REQUEST
    default_detail = "Validation error"


class BadRequestError(MedbookError):
    status_code_default = status.HTTP_400_BAD_REQUEST
    default_detail = "Bad request"


class UnauthorizedError(MedbookError):
    status_code_default = status.HTTP_401_UNAUTHORIZED
    default_detail = "Unauthorized"


class ForbiddenError(MedbookError):
    status_code_default = status.HTTP_403_FORBIDDEN
    default_detail = "Forbidden"


class NotFoundError(MedbookError):
    """Missing entity, or one the caller does not own (deliberately the same)."""
    status_code_default = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class ConflictError(MedbookError):
    status_code_default = status.HTTP_409_CONFLICT
    default_detail = "Conflict"


def envelope(
    message: str,
    data: Any = None,
    success: bool = True,
    errors: Optional[List[str]] = None,
) -> dict:
    """Build the uniform {success, message, data?, errors?} response body."""
    body = {"success": success, "message": message}
    if data is not None:
        body["data"] = data
    if errors:
        body["errors"] = errors
    return body
