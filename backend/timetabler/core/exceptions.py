class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class SchedulerError(AppError):
    """Raised when the scheduler encounters a logical error or invalid state."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)

class InputError(SchedulerError):
    """Raised when a level has no courses, students, groups or rooms to schedule."""
    def __init__(self, message: str, *, level: int | None = None, details: dict = None):
        payload = dict(details or {})
        if level is not None:
            payload.setdefault("level", level)
        super().__init__(message, details=payload)

class PersistenceError(AppError):
    """Raised when a schedule version cannot be written. Carries the storage error verbatim."""
    def __init__(self, message: str, *, storage_error: str | None = None, details: dict = None):
        payload = dict(details or {})
        if storage_error is not None:
            payload["storage_error"] = storage_error
        super().__init__(message, status_code=500, details=payload)

class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(f"{resource_type} with id {resource_id} not found", status_code=404)

class ConfigurationError(AppError):
    """Raised when system configuration is invalid."""
    def __init__(self, message: str):
        super().__init__(message, status_code=500)
