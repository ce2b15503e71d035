from __future__ import annotations


class CompletionError(RuntimeError):
    def __init__(self, message: str, *, code: str = "llm_unavailable", status_code: int | None = None):
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class CompletionConfigError(CompletionError):
    """Raised when the completion service cannot be used at all (missing credential, unknown provider)."""

    def __init__(self, message: str):
        super().__init__(message, code="llm_disabled")


class CompletionRateLimited(CompletionError):
    def __init__(self, message: str, *, status_code: int | None = 429):
        super().__init__(message, code="rate_limited", status_code=status_code)


class CompletionRequestRejected(CompletionError):
    """The service refused the request as too large or malformed."""

    def __init__(self, message: str, *, status_code: int | None = 400):
        super().__init__(message, code="request_rejected", status_code=status_code)


class CompletionAuthError(CompletionError):
    def __init__(self, message: str, *, status_code: int | None = 401):
        super().__init__(message, code="auth_failed", status_code=status_code)


class CompletionInvalidResponse(CompletionError):
    def __init__(self, message: str):
        super().__init__(message, code="llm_invalid")
