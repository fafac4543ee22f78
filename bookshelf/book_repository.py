"""Persistence of books."""

from __future__ import annotations

from sqlalchemy import and_, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql.elements import ColumnElement

from bookshelf.database import books_table, users_table
from bookshelf.errors import DBOperationError, NotFoundError
from bookshelf.models import Book


def _owned_book(book_id: int, user_id: int) -> ColumnElement[bool]:
    # Zero values are ignored, as with struct conditions; no condition at all
    # would touch every row, which is refused.
    conditions = []
    if book_id:
        conditions.append(books_table.c.id == book_id)
    if user_id:
        conditions.append(books_table.c.user_id == user_id)
    if not conditions:
        raise DBOperationError("WHERE conditions required")
    return and_(*conditions)


class BookRepository:
    """Reads and writes books in the database behind ``engine``."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def get_all_books(self) -> list[Book]:
        """Return every book with its owner's username."""
        query = (
            select(books_table, users_table.c.username)
            .select_from(
                books_table.outerjoin(users_table, books_table.c.user_id == users_table.c.id)
            )
            .order_by(books_table.c.id)
        )
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(query).all()
        except SQLAlchemyError as exc:
            raise DBOperationError(exc) from exc
        if not rows:
            raise NotFoundError()
        return [
            Book(
                id=row.id,
                title=row.title or "",
                author=row.author or "",
                price=row.price or 0,
                user_id=row.user_id or 0,
                username=row.username or "",
            )
            for row in rows
        ]

    def get_user_books(self, user_id: int, author: str, title: str, limit: int) -> list[Book]:
        """Return the books of ``user_id`` filtered by author and title substrings."""
        query = (
            select(
                books_table.c.id,
                books_table.c.title,
                books_table.c.author,
                books_table.c.price,
            )
            .where(books_table.c.user_id == user_id)
            .order_by(books_table.c.id)
        )
        if author:
            query = query.where(books_table.c.author.ilike(f"%{author}%"))
        if title:
            query = query.where(books_table.c.title.ilike(f"%{title}%"))
        if limit > 0:
            query = query.limit(limit)
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(query).all()
        except SQLAlchemyError as exc:
            raise DBOperationError(exc) from exc
        if not rows:
            raise NotFoundError()
        return [
            Book(id=row.id, title=row.title or "", author=row.author or "", price=row.price or 0)
            for row in rows
        ]

    def post_book(self, book: Book) -> int:
        """Store ``book`` and return its id."""
        values = {
            "title": book.title,
            "author": book.author,
            "price": book.price,
            "user_id": book.user_id,
        }
        if book.id:
            values["id"] = book.id
        try:
            with self._engine.begin() as conn:
                result = conn.execute(books_table.insert().values(**values))
                return int(result.inserted_primary_key[0])
        except SQLAlchemyError as exc:
            raise DBOperationError(f"could not create book {exc}") from exc

    def update_book(self, user_id: int, book_id: int, book: Book) -> None:
        """Replace title, author and price of the user's book."""
        condition = _owned_book(book_id, user_id)
        statement = (
            books_table.update()
            .where(condition)
            .values(title=book.title, author=book.author, price=book.price)
        )
        try:
            with self._engine.begin() as conn:
                result = conn.execute(statement)
                if result.rowcount == 0:
                    raise NotFoundError()
        except SQLAlchemyError as exc:
            raise DBOperationError(f"could not update book {exc}") from exc

    def delete_book(self, user_id: int, book_id: int) -> None:
        """Permanently delete the user's book."""
        condition = _owned_book(book_id, user_id)
        try:
            with self._engine.begin() as conn:
                result = conn.execute(books_table.delete().where(condition))
                if result.rowcount == 0:
                    raise NotFoundError()
        except SQLAlchemyError as exc:
            raise DBOperationError(f"could not delete book {exc}") from exc