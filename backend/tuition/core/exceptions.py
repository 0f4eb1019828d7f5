# tuition/core/exceptions.py
#
# Domain errors for the fee setup flow. Each carries the HTTP status
# the API layer should answer with, so endpoints never need to map
# them one by one (see the handler in tuition/main.py).

from fastapi import status


class FeeSetupError(Exception):
    """Base error for the fee engine and the commit protocol."""

    kind = "fee_setup_error"

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ValidationError(FeeSetupError):
    """Bad input or a violated precondition (zero total, locked discount, ...)."""

    kind = "validation_error"

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_422_UNPROCESSABLE_ENTITY)


class NoActiveYearError(FeeSetupError):
    kind = "no_active_year"

    def __init__(self, message: str = "No academic year is marked active") -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class MandatoryWriteError(FeeSetupError):
    """The fee record or its installments could not be written."""

    kind = "mandatory_write_error"

    def __init__(self, step: str, cause: Exception) -> None:
        super().__init__(f"Failed to save {step}: {cause}", status.HTTP_502_BAD_GATEWAY)
        self.step = step
        self.cause = cause


class OptionalWriteError(FeeSetupError):
    """A best-effort write failed. Logged and reported as a warning only."""

    kind = "optional_write_error"

    def __init__(self, step: str, cause: Exception) -> None:
        super().__init__(f"Failed to save {step}: {cause}", status.HTTP_502_BAD_GATEWAY)
        self.step = step
        self.cause = cause
