from typing import Optional


def error_message_detail(error, error_detail) -> str:
    _, _, exc_tb = error_detail.exc_info()
    if exc_tb is None:
        return str(error)
    file_name = exc_tb.tb_frame.f_code.co_filename
    return f"Error in [{file_name}] line [{exc_tb.tb_lineno}]: {error}"


class CustomException(Exception):
    """
    Wraps an error message or exception.
    Pass the `sys` module as error_detail to record where the active exception was raised.
    """

    def __init__(self, error_message, error_detail: Optional[object] = None):
        if error_detail is not None:
            message = error_message_detail(error_message, error_detail)
        else:
            message = str(error_message)
        super().__init__(message)
        self.error_message = message

    def __str__(self):
        return self.error_message


class InvalidRequestError(CustomException):
    """Bad client input, e.g. a missing products array."""

    status_code = 400

    def __init__(self, error_message, error_detail=None, details: Optional[dict] = None):
        super().__init__(error_message, error_detail)
        self.details = details or {}


class StoreUnavailableError(CustomException):
    """Taxonomy or cache backend could not be reached or failed a query."""

    status_code = 500


class EmptyTaxonomyError(CustomException):
    status_code = 500


class TaxonomyResolutionError(CustomException):
    """A part type's subcategory or category could not be resolved."""


class EmbedderLoadError(CustomException):
    pass


class EmbeddingSpaceMismatchError(CustomException):
    pass


__all__ = [
    "CustomException",
    "InvalidRequestError",
    "StoreUnavailableError",
    "EmptyTaxonomyError",
    "TaxonomyResolutionError",
    "EmbedderLoadError",
    "EmbeddingSpaceMismatchError",
]
