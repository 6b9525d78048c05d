"""
Error handling utilities for consistent error responses.
"""
from typing import Optional

from fastapi import status
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(
        self,
        code: str,
        message: str,
        http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[dict] = None,
    ):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(APIError):
    """Bad or missing query parameters. The message enumerates the valid domain."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code=ErrorCodes.INVALID_INPUT,
            message=message,
            http_status=status.HTTP_400_BAD_REQUEST,
            details=details,
        )


class NotFoundError(APIError):
    """The source asset does not exist."""

    def __init__(self, message: str):
        super().__init__(
            code=ErrorCodes.NOT_FOUND,
            message=message,
            http_status=status.HTTP_404_NOT_FOUND,
        )


class ProcessingError(APIError):
    """Codec unavailable or the transformation raised."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code=ErrorCodes.PROCESSING_ERROR,
            message=message,
            http_status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details=details,
        )


# Client-facing message for 500s; detail stays in the server log.
GENERIC_PROCESSING_MESSAGE = "Internal server error during image optimization"


def create_error_response(error: APIError) -> JSONResponse:
    """
    Create a standardized error response.

    Processing errors never leak their detail to the client.

    Args:
        error: APIError instance

    Returns:
        JSONResponse with an `{"error": message}` body
    """
    message = error.message
    if error.http_status >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        message = GENERIC_PROCESSING_MESSAGE
    return JSONResponse(status_code=error.http_status, content={"error": message})


def handle_exception(e: Exception) -> JSONResponse:
    """
    Map exceptions to API error responses.

    Args:
        e: Exception to handle

    Returns:
        JSONResponse with appropriate error
    """
    if isinstance(e, APIError):
        return create_error_response(e)

    if isinstance(e, HTTPException):
        code_map = {
            status.HTTP_400_BAD_REQUEST: ErrorCodes.INVALID_INPUT,
            status.HTTP_404_NOT_FOUND: ErrorCodes.NOT_FOUND,
        }
        code = code_map.get(e.status_code, ErrorCodes.INTERNAL_ERROR)
        return create_error_response(
            APIError(code=code, message=str(e.detail), http_status=e.status_code)
        )

    return create_error_response(
        APIError(
            code=ErrorCodes.INTERNAL_ERROR,
            message="An unexpected error occurred.",
            http_status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    )


# Standard error codes
class ErrorCodes:
    """Standard error codes."""

    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    PROCESSING_ERROR = "PROCESSING_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"
