from app.services.errors import (
    AdapterRejected,
    Forbidden,
    IngestionError,
    NotFound,
    Unauthorized,
    ValidationFailed,
)
from app.services.result import Result

__all__ = [
    "AdapterRejected",
    "Forbidden",
    "IngestionError",
    "NotFound",
    "Result",
    "Unauthorized",
    "ValidationFailed",
]
