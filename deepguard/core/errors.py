# deepguard/core/errors.py
from typing import Any, Dict, Optional


class DeepGuardError(Exception):
    """Base exception for the analysis pipeline."""

    error_code = "internal"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        if error_code is not None:
            self.error_code = error_code
        self.details = details or {}


# -----------------------------
# SAMPLING STAGE
# -----------------------------
class SamplingError(DeepGuardError):
    """Raised when frames cannot be taken from a video."""


class MediaLoadError(SamplingError):
    error_code = "media_load"


class SeekTimeoutError(SamplingError):
    error_code = "seek_timeout"


class EmptyFrameSetError(SamplingError):
    error_code = "empty_frames"


# -----------------------------
# INFERENCE STAGE
# -----------------------------
class InferenceError(DeepGuardError):
    """Raised when the hosted model cannot be reached or refuses the request."""


class AuthConfigurationError(InferenceError):
    error_code = "auth_configuration"


class RateLimitError(InferenceError):
    error_code = "rate_limited"

    def __init__(self, message: str = "Rate limit exceeded. Please try again later.", **kwargs):
        super().__init__(message, **kwargs)


class QuotaExceededError(InferenceError):
    error_code = "quota_exceeded"

    def __init__(
        self,
        message: str = "Payment required. Please add credits to your workspace.",
        **kwargs,
    ):
        super().__init__(message, **kwargs)


class GatewayError(InferenceError):
    error_code = "gateway"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: str = "",
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.body = body


class InferenceTimeoutError(InferenceError):
    error_code = "inference_timeout"


# -----------------------------
# CONTROL
# -----------------------------
class AnalysisCancelledError(DeepGuardError):
    error_code = "cancelled"

    def __init__(self, message: str = "Analysis was cancelled", **kwargs):
        super().__init__(message, **kwargs)
