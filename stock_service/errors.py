"""
Error kinds raised by the stock service components.

Every error carries the HTTP status the API layer answers with, so routes
never have to map exceptions by hand. ``StorageFailure`` keeps its cause for
the logs only; its public message is always generic.
"""


class StockServiceError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(StockServiceError):
    status_code = 400
    default_message = "Invalid input"


class Conflict(StockServiceError):
    status_code = 409
    default_message = "Resource already exists"


class Unauthorized(StockServiceError):
    status_code = 401
    default_message = "Invalid credentials"


class Forbidden(StockServiceError):
    status_code = 403
    default_message = "Invalid token"


class NotFound(StockServiceError):
    status_code = 404
    default_message = "Not found"


class StorageFailure(StockServiceError):
    status_code = 500
    default_message = "Storage failure"
