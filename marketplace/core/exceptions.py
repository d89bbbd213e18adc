"""
Domain errors raised by the services.

Each error carries the HTTP status the API answers with; the handlers in
``main.py`` turn them into the ``{"success": false, "message": ...}`` envelope.
"""


class MarketplaceError(Exception):
    """Base class for every error the API reports to clients"""
    status_code = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(MarketplaceError):
    """Missing or malformed input"""
    status_code = 400


class NotFoundError(MarketplaceError):
    """Resource absent, or owned by another user"""
    status_code = 404


class ForbiddenError(MarketplaceError):
    """Resource exists but belongs to another user"""
    status_code = 403

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class ConflictError(MarketplaceError):
    """Request clashes with the current state of a resource"""
    status_code = 400


class InternalError(MarketplaceError):
    status_code = 500


class EmptyCartError(ValidationError):
    def __init__(self, message: str = "Cart is empty"):
        super().__init__(message)


class NoOpUpdateError(ValidationError):
    def __init__(self, message: str = "No updates provided"):
        super().__init__(message)


class InsufficientStockError(ConflictError):
    """Raised when a product cannot cover the requested quantity"""

    def __init__(self, message: str, product_id: int = None, available: int = None):
        super().__init__(message)
        self.product_id = product_id
        self.available = available


class InvalidTransitionError(ConflictError):
    pass


class AlreadyPaidError(ConflictError):
    def __init__(self, message: str = "Order is already paid"):
        super().__init__(message)


class AlreadyFailedError(ConflictError):
    def __init__(self, message: str = "Payment has failed and cannot be processed"):
        super().__init__(message)


class InvalidPaymentStateError(ConflictError):
    pass


class OrderCreationFailedError(InternalError):
    def __init__(self, message: str = "Failed to create order"):
        super().__init__(message)


class OrderCancellationFailedError(InternalError):
    def __init__(self, message: str = "Failed to cancel order"):
        super().__init__(message)
