"""Exception hierarchy for infrastructure failures.

Business rejections (invalid code, program paused, cap reached) are returned
as values and never raised. Everything here means a collaborator (database,
Stripe) could not do its job and the request should fail.
"""


class CreditwiseError(Exception):
    """Base class for all service errors."""

    status_code = 500


class ReferralConfigUnavailableError(CreditwiseError):
    """Raised when the referral config can be neither read nor initialized."""


class ReferralCodeGenerationError(CreditwiseError):
    """Raised when a unique referral code cannot be created."""


class PaymentGatewayError(CreditwiseError):
    """Raised when a Stripe API call fails."""

    status_code = 502

    def __init__(self, message: str, original_error: Exception | None = None):
        self.original_error = original_error
        super().__init__(message)


class WebhookSignatureError(CreditwiseError):
    """Raised when a webhook signature cannot be verified."""

    status_code = 400


class WebhookPayloadError(CreditwiseError):
    """Raised when a webhook payload does not match the expected shape."""

    status_code = 400
