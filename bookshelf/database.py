"""Database schema and engine setup."""

from __future__ import annotations

import os
from collections.abc import Mapping

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, create_engine
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from bookshelf.errors import DBOperationError

metadata = MetaData()

users_table = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("username", String),
    Column("password", String),
)

books_table = Table(
    "books",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("title", String),
    Column("author", String),
    Column("price", Integer),
    Column("user_id", Integer, ForeignKey("users.id")),
)


def database_url(env: Mapping[str, str] | None = None) -> str:
    """Build the database URL from ``DATABASE_URL`` or the ``DB_*`` variables."""
    env = os.environ if env is None else env
    explicit = env.get("DATABASE_URL")
    if explicit:
        return explicit
    port = env.get("DB_PORT")
    url = URL.create(
        "postgresql",
        username=env.get("DB_USER") or None,
        password=env.get("DB_PASSWORD") or None,
        host=env.get("DB_HOST") or None,
        port=int(port) if port else None,
        database=env.get("DB_NAME") or None,
        query={"sslmode": "disable"},
    )
    return url.render_as_string(hide_password=False)


def init_db(url: str | None = None) -> Engine:
    """Create an engine and make sure the tables exist.

    SQL statements are echoed when ``DEBUG_MODE`` is ``true``. Raises
    ``DBOperationError`` when the database cannot be reached or prepared.
    """
    echo = os.environ.get("DEBUG_MODE") == "true"
    try:
        target = make_url(url or database_url())
        options: dict[str, object] = {"echo": echo}
        if target.get_backend_name() == "sqlite" and target.database in (None, "", ":memory:"):
            options["connect_args"] = {"check_same_thread": False}
            options["poolclass"] = StaticPool
        engine = create_engine(target, **options)
        metadata.create_all(engine)
    except (SQLAlchemyError, ImportError) as exc:
        raise DBOperationError(f"could not connect to DB: {exc}") from exc
    return engine