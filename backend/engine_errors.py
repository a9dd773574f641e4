"""Typed outcomes of the access, feedback and ranking engine.

Every rejection a caller can act on is an ``EngineError`` subclass carrying a
stable ``code`` and the HTTP status the API layer answers with. Rejections are
raised before or inside a transaction that is rolled back, so none of them
leaves partial state behind.
"""
from typing import Optional


class EngineError(Exception):
    code = "engine_error"
    status_code = 400
    retryable = False
    default_message = "Request could not be processed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> dict:
        return {"detail": self.message, "code": self.code, "retryable": self.retryable}


class NotEligible(EngineError):
    code = "not_eligible"
    status_code = 403
    default_message = "You must be checked in at the event to interact with stalls"


class LimitExceeded(EngineError):
    code = "limit_exceeded"
    status_code = 403
    default_message = "You have reached the maximum feedback limit (200)"


class UnknownStall(EngineError):
    code = "unknown_stall"
    status_code = 404
    default_message = "Stall not found"


class DuplicateFeedback(EngineError):
    code = "duplicate_feedback"
    status_code = 409
    default_message = "You have already submitted feedback for this stall"


class InvalidRating(EngineError):
    code = "invalid_rating"
    status_code = 400
    default_message = "Rating must be a whole number between 1 and 5"


class InvalidToken(EngineError):
    # One message for malformed and unknown tokens alike.
    code = "invalid_token"
    status_code = 400
    default_message = "Invalid QR code"


class StorageUnavailable(EngineError):
    code = "storage_unavailable"
    status_code = 503
    retryable = True
    default_message = "Storage is temporarily unavailable, please retry"


class AdmissionConflict(EngineError):
    code = "admission_conflict"
    status_code = 409
    default_message = "Admission state does not allow this transition"


class StudentNotFound(EngineError):
    code = "student_not_found"
    status_code = 404
    default_message = "Student not found. Please login again."


class RankingNotFound(EngineError):
    code = "ranking_not_found"
    status_code = 404
    default_message = "Ranking not found for this stall"
