class PaymentServiceError(Exception):
    """Base exception for payment service errors."""


class PaymentConfigurationError(PaymentServiceError):
    """Raised when required gateway or platform settings are missing."""


class PaymentValidationError(PaymentServiceError):
    """Raised for bad input. Nothing is persisted for the attempt."""


class PaymentNotFound(PaymentServiceError):
    """Raised when a transaction reference or payout id matches nothing."""


class PaymentGatewayError(PaymentServiceError):
    """Raised when a gateway call fails."""


class GatewayUnavailable(PaymentGatewayError):
    """Network error, timeout or 5xx. The outcome of the call is unknown."""


class GatewayRejected(PaymentGatewayError):
    """The gateway answered and refused the operation."""

    def __init__(self, message: str, code: str = "") -> None:
        super().__init__(message)
        self.code = code


class IntegrityMismatch(PaymentServiceError):
    """Raised when a callback or webhook signature does not verify."""


class ConflictingState(PaymentServiceError):
    """Raised when an operation would overwrite a terminal state."""
