class IngestionError(Exception):
    """Base error for the ingestion path; carries the HTTP status to answer with."""

    status_code = 400

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationFailed(IngestionError):
    status_code = 422


class Unauthorized(IngestionError):
    status_code = 401


class Forbidden(IngestionError):
    status_code = 403


class NotFound(IngestionError):
    status_code = 404


class AdapterRejected(IngestionError):
    """Raised by channel adapters for unsupported channels, bad tokens or unusable payloads."""

    status_code = 422
