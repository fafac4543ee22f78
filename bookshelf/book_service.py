"""Book operations, carried out through request/response messages on a topic."""

from __future__ import annotations

import json
import logging
import math
import queue
import re
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Any, Callable

from bookshelf.book_repository import BookRepository
from bookshelf.broker import Consumer, Producer
from bookshelf.errors import (
    BookshelfError,
    DBOperationError,
    InternalError,
    InvalidIDError,
    InvalidParamError,
    KafkaConsumerError,
    KafkaProducerError,
    NotFoundError,
    RequestTimeoutError,
)
from bookshelf.models import (
    Book,
    BookRequest,
    BookResponse,
    DeleteBook,
    GetUserBooksRequest,
    GetUserBooksResponse,
    KafkaBookRequest,
    KafkaBookResponse,
    KafkaError,
    UserBooksResponse,
)

logger = logging.getLogger(__name__)

_REQUEST = "request"
_RESPONSE = "response"
_WORKERS = 10
_INTEGER = re.compile(r"[+-]?[0-9]+")


class _Method(str, Enum):
    GET_ALL_BOOKS = "GetAllBooksMethod"
    GET_USER_BOOKS = "GetUserBooks"
    POST_BOOK = "PostBookMethod"
    UPDATE_BOOK = "UpdateBookMethod"
    DELETE_BOOK = "DeleteBookMethod"


def to_user_id(value: Any) -> int:
    """Convert a user id claim to an unsigned integer; unknown types give 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, float):
        if not math.isfinite(value):
            return 0
        return int(value) % 2**64
    if isinstance(value, int):
        return value % 2**64
    return 0


def _parse_int(text: str) -> int | None:
    return int(text) if _INTEGER.fullmatch(text) else None


def _kafka_error(exc: BookshelfError) -> KafkaError:
    return KafkaError(
        error=type(exc).message,
        message="" if exc.detail is None else str(exc.detail),
    )


def _raise_for(error: KafkaError, *kinds: type[BookshelfError]) -> None:
    if not error.error:
        return
    for kind in kinds:
        if error.error == kind.message:
            raise kind(error.message or None)


class BookService:
    """Serves book operations and answers the requests it publishes itself."""

    def __init__(
        self,
        repo: BookRepository,
        producer: Producer,
        consumer: Consumer,
        topic: str,
        timeout: float = 30.0,
    ) -> None:
        self._repo = repo
        self._producer = producer
        self._consumer = consumer
        self._topic = topic
        self._timeout = timeout
        self._pending: dict[str, queue.Queue[KafkaBookResponse]] = {}
        self._lock = threading.Lock()
        self._stopping = threading.Event()
        self._thread: threading.Thread | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._actions: dict[_Method, Callable[[Any], Any]] = {
            _Method.GET_USER_BOOKS: self._serve_get_user_books,
            _Method.POST_BOOK: self._serve_post_book,
            _Method.UPDATE_BOOK: self._serve_update_book,
            _Method.DELETE_BOOK: self._serve_delete_book,
        }

    # -- lifecycle ---------------------------------------------------------

    def start(self) -> None:
        """Start consuming the topic in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stopping.clear()
        self._executor = ThreadPoolExecutor(max_workers=_WORKERS)
        self._thread = threading.Thread(target=self._consume, name="book-service", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop consuming and wait for in-flight messages to finish."""
        self._stopping.set()
        self._consumer.close()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def _consume(self) -> None:
        try:
            self._consumer.subscribe(self._topic)
        except BookshelfError as exc:
            logger.error("could not subscribe to %s: %s", self._topic, exc)
        try:
            while not self._stopping.is_set():
                try:
                    message = self._consumer.read_message(None)
                except KafkaConsumerError as exc:
                    if self._stopping.is_set():
                        break
                    logger.error("reading message failed: %s", exc)
                    self._stopping.wait(0.1)
                    continue
                if self._executor is not None:
                    self._executor.submit(self._handle_logged, message.value)
        finally:
            self._consumer.close()

    def _handle_logged(self, value: bytes) -> None:
        try:
            self.handle_message(value)
        except Exception:
            logger.exception("handling message failed")

    # -- message handling --------------------------------------------------

    def handle_message(self, value: bytes | str) -> None:
        """Process one message from the topic: serve a request or deliver a response."""
        try:
            envelope = json.loads(value)
        except (ValueError, TypeError) as exc:
            raise InternalError(exc) from exc
        if not isinstance(envelope, dict):
            raise InternalError("message is not a JSON object")
        kind = envelope.get("type")
        if kind == _REQUEST:
            self._serve(value)
        elif kind == _RESPONSE:
            self._deliver(value)

    def _serve(self, value: bytes | str) -> None:
        try:
            request = KafkaBookRequest.from_json(value)
        except ValueError as exc:
            raise InternalError(exc) from exc
        try:
            action = self._actions[_Method(request.method)]
        except (ValueError, KeyError):
            return

        result: Any = None
        error = KafkaError()
        try:
            result = action(request.payload)
        except BookshelfError as exc:
            error = _kafka_error(exc)
        except ValueError as exc:
            raise InternalError(exc) from exc

        response = KafkaBookResponse(
            method=request.method,
            type=_RESPONSE,
            relation_id=request.relation_id,
            result=result,
            error=error,
        )
        self._send(response.to_json())

    def _serve_get_user_books(self, payload: Any) -> Any:
        query = GetUserBooksRequest.from_dict(payload)
        books = self._repo.get_user_books(query.user_id, query.author, query.title, query.limit)
        return GetUserBooksResponse(books).to_dict()

    def _serve_post_book(self, payload: Any) -> None:
        self._repo.post_book(Book.from_dict(payload))

    def _serve_update_book(self, payload: Any) -> None:
        book = Book.from_dict(payload)
        self._repo.update_book(book.user_id, book.id, book)

    def _serve_delete_book(self, payload: Any) -> None:
        target = DeleteBook.from_dict(payload)
        self._repo.delete_book(target.user_id, target.id)

    def _deliver(self, value: bytes | str) -> None:
        try:
            response = KafkaBookResponse.from_json(value)
        except ValueError as exc:
            raise InternalError(exc) from exc
        with self._lock:
            inbox = self._pending.get(response.relation_id)
        if inbox is None:
            logger.info("no waiter for relation id %s", response.relation_id)
            return
        try:
            inbox.put_nowait(response)
        except queue.Full:
            logger.warning("could not deliver response %s", response.relation_id)

    def _send(self, value: bytes) -> None:
        try:
            self._producer.produce(self._topic, value)
        except KafkaProducerError:
            raise
        except Exception as exc:
            raise KafkaProducerError(exc) from exc

    def _call(self, method: _Method, payload: Any) -> KafkaBookResponse:
        relation_id = str(uuid.uuid4())
        inbox: queue.Queue[KafkaBookResponse] = queue.Queue(maxsize=1)
        with self._lock:
            self._pending[relation_id] = inbox
        try:
            request = KafkaBookRequest(
                method=method.value, type=_REQUEST, relation_id=relation_id, payload=payload
            )
            self._send(request.to_json())
            try:
                return inbox.get(timeout=self._timeout)
            except queue.Empty:
                raise RequestTimeoutError() from None
        finally:
            with self._lock:
                self._pending.pop(relation_id, None)

    # -- operations --------------------------------------------------------

    def get_all_books(self) -> list[UserBooksResponse]:
        """Return every user's books, grouped by username in first-seen order."""
        grouped: dict[str, UserBooksResponse] = {}
        for book in self._repo.get_all_books():
            entry = grouped.setdefault(book.username, UserBooksResponse(username=book.username))
            entry.books.append(
                BookResponse(id=book.id, title=book.title, author=book.author, price=book.price)
            )
            entry.total_books += 1
        return list(grouped.values())

    def get_user_books(
        self, user_id: Any, author: str, title: str, limit_str: str
    ) -> tuple[list[Book], int]:
        """Return the user's matching books and the resolved user id."""
        uid = to_user_id(user_id)
        if limit_str == "":
            limit = 0
        else:
            parsed = _parse_int(limit_str)
            if parsed is None or parsed <= 0:
                raise InvalidParamError(f"invalid limit {limit_str!r}")
            limit = parsed

        payload = GetUserBooksRequest(user_id=uid, author=author, title=title, limit=limit)
        response = self._call(_Method.GET_USER_BOOKS, payload.to_dict())
        _raise_for(response.error, DBOperationError, NotFoundError)
        try:
            result = GetUserBooksResponse.from_dict(response.result)
        except ValueError as exc:
            raise InternalError(exc) from exc
        return result.books, uid

    def post_book(self, user_id: Any, book_request: BookRequest) -> None:
        """Create a book owned by the user."""
        book = Book(
            title=book_request.title,
            author=book_request.author,
            price=book_request.price,
            user_id=to_user_id(user_id),
        )
        response = self._call(_Method.POST_BOOK, book.to_dict())
        _raise_for(response.error, DBOperationError)

    def update_book(self, user_id: Any, book_id_str: str, book_request: BookRequest) -> None:
        """Replace the fields of one of the user's books."""
        uid = to_user_id(user_id)
        book_id = _parse_int(book_id_str)
        if book_id is None or book_id <= 0:
            raise InvalidIDError(f"invalid ID in request {book_id_str!r}")
        book = Book(
            id=book_id,
            title=book_request.title,
            author=book_request.author,
            price=book_request.price,
            user_id=uid,
        )
        response = self._call(_Method.UPDATE_BOOK, book.to_dict())
        _raise_for(response.error, DBOperationError, NotFoundError)

    def delete_book(self, user_id: Any, book_id_str: str) -> None:
        """Permanently delete one of the user's books."""
        uid = to_user_id(user_id)
        book_id = _parse_int(book_id_str)
        if book_id is None or book_id <= 0:
            raise InvalidIDError(f"invalid ID in request {book_id_str!r}")
        response = self._call(_Method.DELETE_BOOK, DeleteBook(id=book_id, user_id=uid).to_dict())
        _raise_for(response.error, DBOperationError, NotFoundError)