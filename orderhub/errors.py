class OrderHubError(Exception):
    """Base error. `message` is always safe to show to the caller."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthorizationError(OrderHubError):
    """Missing or invalid shared secret. Never retried."""

    status_code = 401


class ValidationError(OrderHubError):
    """Malformed order or customer. Never retried."""

    status_code = 400


class IntegrationError(OrderHubError):
    """Broker or downstream endpoint unreachable / erroring."""

    status_code = 502


class UnexpectedError(OrderHubError):
    status_code = 500
