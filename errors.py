"""Error taxonomy shared by the extraction, usage and AI pipelines.

Every error the HTTP layer can surface derives from ``AppError`` and carries its
status code, a stable machine-readable ``code`` and optional ``extra`` fields
that are merged into the JSON body. Errors raised while talking to the LLM or
validating its output derive from ``AIPipelineError``; they never reach the
client directly and are wrapped by the orchestrators.
"""
from __future__ import annotations

from typing import Any, Optional


class AppError(Exception):
    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, *, extra: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message, **self.extra}


class UnauthorizedError(AppError):
    status_code = 401
    code = "unauthorized"

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class BadRequestError(AppError):
    status_code = 400
    code = "bad_request"


class NotFoundError(AppError):
    status_code = 404
    code = "not_found"


class QuotaExceededError(AppError):
    status_code = 403
    code = "quota_exceeded"

    def __init__(self, feature: str, limit: Optional[int], remaining: Optional[int]):
        super().__init__(
            f"Plan limit reached for {feature}. Upgrade to continue.",
            extra={"feature": feature, "limit": limit, "remaining": remaining},
        )
        self.feature = feature
        self.limit = limit
        self.remaining = remaining


class AlreadyAnalyzedError(AppError):
    status_code = 400
    code = "already_analyzed"

    def __init__(self, analysis: Optional[dict[str, Any]] = None):
        super().__init__(
            "Resume already has an analysis. Delete it before analyzing again.",
            extra={"analysis": analysis},
        )
        self.analysis = analysis


class DuplicateMatchError(AppError):
    status_code = 400
    code = "duplicate_match"

    def __init__(self, match: Optional[dict[str, Any]] = None):
        super().__init__(
            "A match for this resume and job already exists.",
            extra={"match": match},
        )
        self.match = match


class NoTextAvailableError(AppError):
    status_code = 422
    code = "no_text_available"

    def __init__(self, message: str = "Resume has no extracted text."):
        super().__init__(message, extra={"hint": "re-upload"})


# --- Upload-time extraction errors ---
class ExtractionError(AppError):
    status_code = 422
    code = "extraction_failed"


class UnsupportedTypeError(ExtractionError):
    status_code = 415
    code = "unsupported_type"


class FileTooLargeError(ExtractionError):
    status_code = 413
    code = "file_too_large"


class EmptyDocumentError(ExtractionError):
    code = "empty_document"


class DocumentParseError(ExtractionError):
    code = "document_parse_failed"


# --- Orchestrator failures wrapping AI pipeline errors ---
class AIFailedError(AppError):
    status_code = 502
    public_message = "AI request failed, please try again."

    def __init__(self, cause: BaseException):
        super().__init__(self.public_message)
        self.cause = cause
        if isinstance(cause, LLMTimeoutError):
            self.status_code = 504


class AnalysisFailedError(AIFailedError):
    code = "analysis_failed"
    public_message = "Analysis failed, please try again."


class MatchFailedError(AIFailedError):
    code = "match_failed"
    public_message = "Match failed, please try again."


class UserNotFoundError(AppError):
    status_code = 500
    code = "user_not_found"


class BillingError(AppError):
    status_code = 500
    code = "billing_error"


# --- AI pipeline (internal) ---
class AIPipelineError(Exception):
    """Failure talking to the LLM or validating what it returned."""


class EmptyAIResponseError(AIPipelineError):
    pass


class MalformedResponseError(AIPipelineError):
    pass


class InvalidStructureError(AIPipelineError):
    pass


class LLMTransportError(AIPipelineError):
    pass


class LLMTimeoutError(LLMTransportError):
    pass
