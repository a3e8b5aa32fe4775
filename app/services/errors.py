class PaymentError(Exception):
    """Base for payment orchestration failures. status_code is the HTTP hint for routes."""

    status_code = 400

    def __init__(self, message: str, *, provider: str | None = None):
        super().__init__(message)
        self.message = message
        self.provider = provider


class ValidationError(PaymentError):
    """Missing or malformed request field. Raised before any provider call."""


class AuthenticationError(PaymentError):
    status_code = 401


class ProviderError(PaymentError):
    """The provider answered, but reported a failure."""

    status_code = 502


class TransportError(PaymentError):
    """The provider could not be reached or sent back something unreadable."""

    status_code = 502


class ConfigurationError(PaymentError):
    """A known provider has no credentials configured."""

    status_code = 500


class NotFoundError(PaymentError):
    status_code = 404
