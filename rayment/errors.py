"""
Error taxonomy for the render client.

ValidationError is raised before any network call and is never retried.
RemoteRejection is an explicit refusal from the hub. TransientNetworkError is
only retried at the status-poll step; submit and payment errors surface as-is.
"""


class RaymentError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(RaymentError, ValueError):
    """Bad input detected locally (empty batch, non-positive concurrency, ...)."""


class RemoteRejection(RaymentError):
    """The hub answered, and the answer was no."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class PaymentRequiredNotReturned(RemoteRejection):
    """Submit did not come back with a 402 quote."""


class TransientNetworkError(RaymentError):
    """Timeout or dropped connection while talking to the hub."""


class DeadlineExceeded(RaymentError):
    """A job's lifecycle ran past its configured timeout."""


class QuoteExpired(RaymentError):
    """The quote's expiry passed before payment was sent."""


class CancellationError(RaymentError):
    """The job can no longer be cancelled."""


class PaymentError(RaymentError):
    """The payment capability could not produce a payment proof."""


class JobStopped(RaymentError):
    """The batch was stopped while this job was still running."""
