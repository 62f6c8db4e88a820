from typing import Optional


class ExplainError(Exception):
    """Base class for failures reported to the caller as an ErrorResponse.

    `message` is the public text; the underlying cause (if any) is kept for
    server-side logging and is only sent to callers in debug mode.
    """

    status_code = 500
    kind = "internal_error"
    message = "Internal server error"

    def __init__(self, details: Optional[str] = None):
        super().__init__(details or self.message)
        self.details = details


class CodeRequiredError(ExplainError):
    status_code = 400
    kind = "code_required"
    message = "Code is required"


class InvalidRequestError(ExplainError):
    status_code = 400
    kind = "invalid_request"
    message = "Invalid request body"


class PayloadTooLargeError(ExplainError):
    status_code = 413
    kind = "payload_too_large"
    message = "Payload too large"


class EmptyCompletionError(ExplainError):
    """The completion service answered but returned no usable content"""

    status_code = 500
    kind = "empty_completion"
    message = "Failed to explain code"


class UpstreamError(ExplainError):
    """Transport failure, rejected credential or malformed upstream response"""

    status_code = 500
    kind = "upstream_error"
    message = "Server error"


class UpstreamTimeoutError(ExplainError):
    status_code = 504
    kind = "upstream_timeout"
    message = "Upstream request timed out"
