"""
Application error taxonomy.

Service modules raise these; the handlers registered in main.py render them as
``{"message": ..., **extra}`` with the matching HTTP status.
"""
from typing import Any, Dict, Optional


class CarMedicError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None, **extra: Any):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra

    def to_dict(self) -> Dict[str, Any]:
        body = {"message": self.message}
        body.update(self.extra)
        return body


class ValidationError(CarMedicError):
    """Missing or malformed input. ``errors`` lists the offending fields."""

    status_code = 400


class NotFoundError(CarMedicError):
    status_code = 404


class UnauthenticatedError(CarMedicError):
    status_code = 401


class ForbiddenError(CarMedicError):
    status_code = 403


class ConflictError(CarMedicError):
    # Duplicates are reported as 400, same as validation failures
    status_code = 400


class InvalidStateError(CarMedicError):
    status_code = 400
