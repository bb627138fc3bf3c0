# errors.py
"""
Error taxonomy shared by every router.

Any `ServiceError` raised inside a request is rendered by `service_error_handler`
as `{"success": false, "error": ..., "message": ...}` with its status code.
"""

from typing import Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse


class ServiceError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, error: str, message: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(error)
        self.error = error
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_payload(self) -> dict:
        payload = {"success": False, "error": self.error}
        if self.message is not None:
            payload["message"] = self.message
        return payload


class ConfigurationError(ServiceError):
    """Missing credential or unconfigured collaborator; raised before any external call."""
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidRequest(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST


class Forbidden(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(ServiceError):
    status_code = status.HTTP_409_CONFLICT


class StorageError(ServiceError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())
