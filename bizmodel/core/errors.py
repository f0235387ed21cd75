# bizmodel/core/errors.py
"""
Domain errors.

Services raise these exactly where they would raise a plain HTTPException;
the subclasses only pin the status code and give callers (and tests) a type
to catch. Anything that is not an HTTPException ends up in the generic 500
handler registered in main.py.
"""

from typing import Any

from fastapi import HTTPException, status

# Machine-readable reasons for 402 responses
REASON_QUIZ_RETAKE_EXHAUSTED = "quiz-retake-exhausted"
REASON_REPORT_LOCKED = "report-locked"


class NotAuthenticated(HTTPException):
    def __init__(self, detail: str = "Not authenticated"):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


class InvalidCredentials(HTTPException):
    def __init__(self):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )


class Forbidden(HTTPException):
    def __init__(self, detail: str = "Access denied"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class NotFound(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class StagedRecordNotFound(NotFound):
    def __init__(self):
        super().__init__("Temporary account data not found or expired")


class UserAlreadyExists(HTTPException):
    def __init__(self):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail="User already exists. Please log in instead.",
        )


class InvalidRequest(HTTPException):
    def __init__(self, detail: Any):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class PaymentRequired(HTTPException):
    """
    402 with a structured reason so the client can route to the right
    payment UI instead of showing a generic failure.
    """

    def __init__(
        self,
        reason: str,
        message: str,
        price: dict[str, Any] | None = None,
    ):
        detail: dict[str, Any] = {"reason": reason, "message": message}
        if price is not None:
            detail["price"] = price
        super().__init__(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=detail)
        self.reason = reason


class ServiceUnavailable(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)


class UpstreamError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_502_BAD_GATEWAY, detail=detail)
