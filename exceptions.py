"""Rejections raised by the core before any state is touched."""


class RentalError(Exception):
    """Base class for every refusal of a core operation."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationRejected(RentalError):
    status_code = 400


class InvalidTransition(RentalError):
    status_code = 409


class DocumentNotFound(RentalError):
    status_code = 404
