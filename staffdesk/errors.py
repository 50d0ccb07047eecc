"""Service-level errors, translated to HTTP responses in main.py."""


class StaffdeskError(Exception):
    """Base error carrying the HTTP status it should be answered with."""

    status_code: int = 400

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class RotaFileError(StaffdeskError):
    """Uploaded file is the wrong type, too large, empty or unreadable."""

    status_code = 400


class RotaValidationError(StaffdeskError):
    """Rota or schedule data breaks a structural rule (date range, duplicates, off-day with times)."""

    status_code = 400


class NotFoundError(StaffdeskError):
    status_code = 404


class ConflictError(StaffdeskError):
    status_code = 409


class PermissionDeniedError(StaffdeskError):
    status_code = 403
