"""Custom exceptions for the LiveStage application."""


class LivestageError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv


class BusinessLogicError(LivestageError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class NotFoundError(LivestageError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class UnauthorizedError(LivestageError):
    """Raised when a caller lacks permission for an action."""
    def __init__(self, message="Unauthorized access"):
        super().__init__(message, 403)


class NavigationError(BusinessLogicError):
    """
    A live-state transition was rejected. The state row is left untouched.

    `code` is the machine-readable reason surfaced to the operator:
    invalid_position, end_of_product_set, start_of_product_set,
    no_current_product, no_images, invalid_direction.
    """

    MESSAGES = {
        'invalid_position': 'No product at that position',
        'end_of_product_set': 'Already at the last product',
        'start_of_product_set': 'Already at the first product',
        'no_current_product': 'No product is live yet',
        'no_images': 'The current product has no images',
        'invalid_direction': 'Unknown image direction',
    }

    def __init__(self, code, **context):
        template = self.MESSAGES.get(code, code)
        super().__init__(template, payload=dict(context, error=code))
        self.code = code


class PersistenceError(LivestageError):
    """A database write failed; the transaction was rolled back and not retried."""
    def __init__(self, message="Could not save changes, please try again"):
        super().__init__(message, 503)
