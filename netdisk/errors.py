class NetdiskError(Exception):
    """Base class for errors that map onto an HTTP status at the request boundary."""

    status_code = 500
    default_message = "request failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class BadRequest(NetdiskError):
    status_code = 400
    default_message = "bad request"


class Unauthenticated(NetdiskError):
    status_code = 401
    default_message = "unauthorized"


class NotFound(NetdiskError):
    status_code = 404
    default_message = "not found"


class PayloadTooLarge(NetdiskError):
    status_code = 413
    default_message = "file exceeds max upload size"


class StoreFailure(NetdiskError):
    """A key-value or blob store operation failed or timed out."""

    status_code = 500
    default_message = "storage operation failed"
