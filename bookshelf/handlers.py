"""HTTP handlers for the book routes."""

from __future__ import annotations

import logging
from typing import Any

from flask import Flask, Response, g, jsonify, request

from bookshelf.auth import admin_required, jwt_required
from bookshelf.errors import (
    BookshelfError,
    DBOperationError,
    InvalidIDError,
    InvalidParamError,
    NotFoundError,
    error_attr,
)
from bookshelf.models import (
    BookRequest,
    ErrorResponse,
    GetBooks,
    MetaBook,
    SuccessResponse,
    UsersBooksResponse,
)

logger = logging.getLogger(__name__)

_DB_FAILED = "Database operation failed"
_INTERNAL = "Internal server error"
_NOT_FOUND_ONE = "Could not found record"
_NOT_FOUND_MANY = "Could not found records"

_Case = tuple[type[BookshelfError], int, str]

_ALL_BOOKS_CASES: tuple[_Case, ...] = (
    (NotFoundError, 404, _NOT_FOUND_MANY),
    (DBOperationError, 500, _DB_FAILED),
)
_USER_BOOKS_CASES: tuple[_Case, ...] = (
    (InvalidParamError, 400, "Invalid limit value"),
    (NotFoundError, 404, _NOT_FOUND_MANY),
    (DBOperationError, 500, _DB_FAILED),
)
_UPDATE_CASES: tuple[_Case, ...] = (
    (NotFoundError, 404, _NOT_FOUND_ONE),
    (DBOperationError, 500, _DB_FAILED),
)
_DELETE_CASES: tuple[_Case, ...] = (
    (InvalidIDError, 400, "Invalid ID"),
    (NotFoundError, 404, _NOT_FOUND_ONE),
    (DBOperationError, 500, _DB_FAILED),
)


def _reply(status: int, body: Any) -> Response:
    response = jsonify(body.to_dict())
    response.status_code = status
    return response


def _failure(where: str, exc: BookshelfError, cases: tuple[_Case, ...]) -> Response:
    logger.error("%s %s", where, error_attr(exc))
    for kind, status, message in cases:
        if isinstance(exc, kind):
            return _reply(status, ErrorResponse(message))
    return _reply(500, ErrorResponse(_INTERNAL))


def _unauthenticated() -> Response:
    return _reply(401, ErrorResponse("Authentication required"))


def _bind_book_request() -> BookRequest:
    """Parse the JSON body; raises ``ValueError`` when it is missing or invalid."""
    return BookRequest.from_dict(request.get_json(force=True, silent=True))


class BookHandler:
    """Turns HTTP requests into book service calls and JSON replies."""

    def __init__(self, service: Any) -> None:
        self.service = service

    def get_all_books(self) -> Response:
        try:
            books = self.service.get_all_books()
        except BookshelfError as exc:
            return _failure("handlers.get_all_books", exc, _ALL_BOOKS_CASES)
        logger.debug("books quantity: %d", len(books))
        return _reply(200, UsersBooksResponse(data=books))

    def get_user_books(self) -> Response:
        if "user_id" not in g:
            return _unauthenticated()
        author = request.args.get("author", "")
        title = request.args.get("title", "")
        limit = request.args.get("limit", "")
        logger.info("get_user_books request author=%r title=%r limit=%r", author, title, limit)
        try:
            books, user_id = self.service.get_user_books(g.user_id, author, title, limit)
        except BookshelfError as exc:
            return _failure("handlers.get_user_books", exc, _USER_BOOKS_CASES)
        logger.debug("get_user_books response books=%d user_id=%s", len(books), user_id)
        return _reply(200, GetBooks(data=books, meta=MetaBook(total=len(books), user_id=user_id)))

    def post_book(self) -> Response:
        if "user_id" not in g:
            return _unauthenticated()
        try:
            book_request = _bind_book_request()
        except ValueError as exc:
            logger.error("handlers.post_book %s", error_attr(exc))
            return _reply(400, ErrorResponse("Invalid body request"))
        logger.info("book to add: %s", book_request)
        try:
            self.service.post_book(g.user_id, book_request)
        except BookshelfError as exc:
            logger.error("handlers.post_book %s", error_attr(exc))
            return _reply(500, ErrorResponse(_DB_FAILED))
        return _reply(201, SuccessResponse("Book was successfully created"))

    def update_book(self, book_id: str) -> Response:
        if "user_id" not in g:
            return _unauthenticated()
        logger.info("book id for update: %s", book_id)
        try:
            book_request = _bind_book_request()
        except ValueError as exc:
            logger.error("handlers.update_book %s", error_attr(exc))
            return _reply(400, ErrorResponse("Invalid body request"))
        logger.info("new book: %s", book_request)
        try:
            self.service.update_book(g.user_id, book_id, book_request)
        except BookshelfError as exc:
            return _failure("handlers.update_book", exc, _UPDATE_CASES)
        return _reply(200, SuccessResponse("Alterations have been done"))

    def delete_book(self, book_id: str) -> Response:
        if "user_id" not in g:
            return _unauthenticated()
        logger.info("book id to delete: %s", book_id)
        try:
            self.service.delete_book(g.user_id, book_id)
        except BookshelfError as exc:
            return _failure("handlers.delete_book", exc, _DELETE_CASES)
        return _reply(200, SuccessResponse("Book was successfully deleted"))


def register_routes(app: Flask, handler: BookHandler) -> None:
    """Attach the private book routes and the admin listing to ``app``."""
    app.add_url_rule(
        "/api/books", "get_user_books", jwt_required(handler.get_user_books), methods=["GET"]
    )
    app.add_url_rule("/api/books", "post_book", jwt_required(handler.post_book), methods=["POST"])
    app.add_url_rule(
        "/api/books/<book_id>",
        "update_book",
        jwt_required(handler.update_book),
        methods=["PATCH"],
    )
    app.add_url_rule(
        "/api/books/<book_id>",
        "delete_book",
        jwt_required(handler.delete_book),
        methods=["DELETE"],
    )
    app.add_url_rule(
        "/admin/books", "get_all_books", admin_required(handler.get_all_books), methods=["GET"]
    )