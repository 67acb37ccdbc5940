"""
Exceptions raised by the Storefront service.

Each error carries the HTTP status the routes answer with; routes decide the
JSON envelope ({"error": ...} or {"success": false, "error": ...}).
"""


class StorefrontError(Exception):
    """Base class for all Storefront errors."""

    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class ValidationError(StorefrontError):
    """Raised when required input is missing or malformed."""

    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class NotFoundError(StorefrontError):
    """Raised when a referenced entity does not exist."""

    def __init__(self, message: str):
        super().__init__(message, status_code=404)


class PersistenceError(StorefrontError):
    """Raised when a database operation fails. Details are only logged."""

    def __init__(self, message: str = "Database error"):
        super().__init__(message, status_code=500)


class PaymentProviderError(StorefrontError):
    """Raised when Stripe or Asaas rejects a request or is unreachable."""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message, status_code=status_code)


class CarrierApiError(StorefrontError):
    """Raised when the shipping carrier API fails."""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message, status_code=status_code)


class SignatureError(StorefrontError):
    """Raised when a webhook signature or access token does not verify."""

    def __init__(self, message: str = "Invalid signature"):
        super().__init__(message, status_code=400)
