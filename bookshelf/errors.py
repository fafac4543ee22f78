"""Error types shared by every layer of the service."""

from __future__ import annotations


class BookshelfError(Exception):
    """Base class for all service errors.

    The class-level ``message`` is the fixed description of the error kind;
    an optional detail is appended after a colon.
    """

    message = "bookshelf error"

    def __init__(self, detail: object = None) -> None:
        self.detail = detail
        text = self.message if detail is None else f"{self.message}: {detail}"
        super().__init__(text)


class InvalidParamError(BookshelfError):
    message = "invalid parameter value"


class InvalidIDError(BookshelfError):
    message = "invalid ID format"


class NotFoundError(BookshelfError):
    message = "record not found"


class DBOperationError(BookshelfError):
    message = "database operation failed"


class InternalError(BookshelfError):
    message = "internal server error"


class NotRegisteredError(BookshelfError):
    message = "you have not registered yet"


class NotAuthorizedError(BookshelfError):
    message = "you are not authorized"


class RequestTimeoutError(BookshelfError):
    message = "request time expired"


class KafkaProducerError(BookshelfError):
    message = "failed to produce message"


class KafkaConsumerError(BookshelfError):
    message = "failed to consume message"


def error_attr(err: BaseException) -> dict[str, str]:
    """Return a structured-logging attribute describing ``err``."""
    return {"error": str(err)}