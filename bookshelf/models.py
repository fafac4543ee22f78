"""Data models exchanged over HTTP and the message broker."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any


def _require_mapping(data: Any) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError("expected a JSON object")
    return data


def _uint(data: Mapping[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"{key} must be an integer")
    number = int(value)
    if number < 0:
        raise ValueError(f"{key} must not be negative")
    return number


def _int(data: Mapping[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"{key} must be an integer")
    return int(value)


def _str(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string")
    return value


def _load_object(raw: bytes | str) -> Mapping[str, Any]:
    return _require_mapping(json.loads(raw))


def _dump(obj: Any) -> bytes:
    return json.dumps(obj, ensure_ascii=False).encode("utf-8")


@dataclass
class Book:
    """A stored book; ``username`` names its owner and is never serialised."""

    title: str = ""
    author: str = ""
    price: int = 0
    user_id: int = 0
    id: int = 0
    username: str = ""

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "price": self.price,
        }
        if self.user_id:
            result["user_id"] = self.user_id
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Book:
        data = _require_mapping(data)
        return cls(
            id=_uint(data, "id"),
            title=_str(data, "title"),
            author=_str(data, "author"),
            price=_uint(data, "price"),
            user_id=_uint(data, "user_id"),
        )


@dataclass
class BookResponse:
    """Basic book information."""

    id: int
    title: str
    author: str
    price: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "price": self.price,
        }


@dataclass
class UserBooksResponse:
    """A user with the list of their books."""

    username: str
    total_books: int = 0
    books: list[BookResponse] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "username": self.username,
            "total_books": self.total_books,
            "books": [book.to_dict() for book in self.books],
        }


@dataclass
class UsersBooksResponse:
    """All users with their books."""

    data: list[UserBooksResponse] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"data": [entry.to_dict() for entry in self.data]}


@dataclass
class BookRequest:
    """Body of a create or update request; every field is required."""

    title: str
    author: str
    price: int

    @classmethod
    def from_dict(cls, data: Any) -> BookRequest:
        data = _require_mapping(data)
        title = data.get("title")
        if not isinstance(title, str) or not title:
            raise ValueError("title is required")
        author = data.get("author")
        if not isinstance(author, str) or not author:
            raise ValueError("author is required")
        price = data.get("price")
        if isinstance(price, bool) or not isinstance(price, int) or price <= 0:
            raise ValueError("price is required and must be a positive integer")
        return cls(title=title, author=author, price=price)

    def to_dict(self) -> dict[str, Any]:
        return {"title": self.title, "author": self.author, "price": self.price}


@dataclass
class GetBook:
    """A single book wrapped in a ``data`` envelope."""

    data: Book

    def to_dict(self) -> dict[str, Any]:
        return {"data": self.data.to_dict()}


@dataclass
class MetaBook:
    """Metadata of a book listing."""

    total: int
    user_id: int

    def to_dict(self) -> dict[str, Any]:
        return {"total": self.total, "user_id": self.user_id}


@dataclass
class GetBooks:
    """A user's books with listing metadata."""

    data: list[Book]
    meta: MetaBook

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": [book.to_dict() for book in self.data],
            "meta": self.meta.to_dict(),
        }


@dataclass
class ErrorResponse:
    error: str

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.error}


@dataclass
class SuccessResponse:
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message}


@dataclass
class KafkaBookRequest:
    """A request envelope sent through the broker; ``payload`` is any JSON value."""

    method: str
    type: str
    relation_id: str
    payload: Any = None

    def to_json(self) -> bytes:
        return _dump(
            {
                "method": self.method,
                "type": self.type,
                "relation_id": self.relation_id,
                "payload": self.payload,
            }
        )

    @classmethod
    def from_json(cls, raw: bytes | str) -> KafkaBookRequest:
        obj = _load_object(raw)
        return cls(
            method=_str(obj, "method"),
            type=_str(obj, "type"),
            relation_id=_str(obj, "relation_id"),
            payload=obj.get("payload"),
        )


@dataclass
class KafkaError:
    """Error carried inside a broker response; empty strings mean success."""

    error: str = ""
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.error, "message": self.message}

    @classmethod
    def from_dict(cls, data: Any) -> KafkaError:
        if data is None:
            return cls()
        data = _require_mapping(data)
        return cls(error=_str(data, "error"), message=_str(data, "message"))


@dataclass
class KafkaBookResponse:
    """A response envelope sent through the broker; ``result`` is any JSON value."""

    method: str
    type: str
    relation_id: str
    result: Any = None
    error: KafkaError = field(default_factory=KafkaError)

    def to_json(self) -> bytes:
        return _dump(
            {
                "method": self.method,
                "type": self.type,
                "relation_id": self.relation_id,
                "result": self.result,
                "error": self.error.to_dict(),
            }
        )

    @classmethod
    def from_json(cls, raw: bytes | str) -> KafkaBookResponse:
        obj = _load_object(raw)
        return cls(
            method=_str(obj, "method"),
            type=_str(obj, "type"),
            relation_id=_str(obj, "relation_id"),
            result=obj.get("result"),
            error=KafkaError.from_dict(obj.get("error")),
        )


@dataclass
class GetUserBooksRequest:
    user_id: int
    author: str = ""
    title: str = ""
    limit: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "author": self.author,
            "title": self.title,
            "limit": self.limit,
        }

    @classmethod
    def from_dict(cls, data: Any) -> GetUserBooksRequest:
        data = _require_mapping(data)
        return cls(
            user_id=_uint(data, "user_id"),
            author=_str(data, "author"),
            title=_str(data, "title"),
            limit=_int(data, "limit"),
        )


@dataclass
class GetUserBooksResponse:
    books: list[Book] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"books": [book.to_dict() for book in self.books]}

    @classmethod
    def from_dict(cls, data: Any) -> GetUserBooksResponse:
        data = _require_mapping(data)
        books = data.get("books") or []
        if not isinstance(books, list):
            raise ValueError("books must be a list")
        return cls(books=[Book.from_dict(item) for item in books])


@dataclass
class DeleteBook:
    id: int
    user_id: int

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "user_id": self.user_id}

    @classmethod
    def from_dict(cls, data: Any) -> DeleteBook:
        data = _require_mapping(data)
        return cls(id=_uint(data, "id"), user_id=_uint(data, "user_id"))