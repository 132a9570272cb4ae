"""
Custom exception classes and error handling.

Provides consistent error responses across the API. Every APIException is
rendered as {"error": detail} by the handler registered in main.py.
"""
from fastapi import HTTPException, status
from typing import Optional, Dict, Any


class APIException(HTTPException):
    """Base API exception with consistent structure."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code


class ValidationError(APIException):
    """Missing or invalid request fields."""

    def __init__(self, detail: str, field: Optional[str] = None):
        error_code = f"VALIDATION_ERROR_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code=error_code
        )


class PayloadTooLarge(APIException):
    """Media exceeds the configured cap."""

    def __init__(self, size_bytes: int, limit_bytes: int):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=(
                f"Media too large: {size_bytes / 1024 / 1024:.1f}MB. "
                f"Maximum {limit_bytes // (1024 * 1024)}MB allowed."
            ),
            error_code="PAYLOAD_TOO_LARGE"
        )
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes


class ConfigurationError(APIException):
    """Operator-fixable configuration problem (e.g. missing AI credential)."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            error_code="CONFIGURATION_ERROR"
        )


class AnalysisFailed(APIException):
    """The AI analysis call did not produce a usable result."""

    def __init__(self, detail: str = "Analysis failed", error_code: str = "ANALYSIS_FAILED"):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            error_code=error_code
        )


class MalformedAIResponse(AnalysisFailed):
    """AI output could not be parsed as the expected JSON object."""

    def __init__(self, detail: str = "Failed to parse AI response"):
        super().__init__(detail=detail, error_code="MALFORMED_AI_RESPONSE")


class StoreUnavailable(Exception):
    """
    The networked attempt store failed.

    Never surfaced to API callers: FallbackAttemptStore catches it and
    serves the call from the in-memory store.
    """
