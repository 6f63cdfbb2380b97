"""Error taxonomy for the verification pipeline.

Terminal errors (everything except SummarizationError) end a pipeline run in
the FAILED state; the orchestrator turns them into a reason string and never
lets them reach the caller. SummarizationError is absorbed by the review
summarizer itself.
"""

from typing import Any, Dict, Optional


class GraviError(Exception):
    """Base class for pipeline errors carrying a user-presentable reason."""

    default_code = "PIPELINE_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    @property
    def reason(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            result["details"] = self.details
        return result


class ResolutionError(GraviError):
    """The listing reference could not be resolved to exactly one place."""

    default_code = "provider_error"

    INPUT_MISSING = "input_missing"
    CREDENTIALS_MISSING = "credentials_missing"
    NOT_FOUND = "not_found"
    AMBIGUOUS = "ambiguous"
    PROVIDER_ERROR = "provider_error"
    TIMEOUT = "timeout"


class EvidenceError(GraviError):
    """No usable photographic evidence could be collected."""

    default_code = "no_images"


class ClassificationError(GraviError):
    """The vision model call failed or returned unusable output."""

    default_code = "malformed_output"

    MALFORMED_OUTPUT = "malformed_output"
    PROVIDER_ERROR = "provider_error"
    TIMEOUT = "timeout"
    NO_IMAGES = "no_images"


class SummarizationError(GraviError):
    """Review summarization failed; callers degrade to an unknown sentiment."""

    default_code = "summarization_failed"


class IdentityLockViolation(GraviError):
    """Evidence or output refers to a different place than the resolved one."""

    default_code = "identity_lock_mismatch"


class ScoringError(GraviError):
    """The scorer received inputs that validation should have rejected."""

    default_code = "invalid_scoring_input"
