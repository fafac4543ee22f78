# bookshelf

A small HTTP service for keeping books. Every user has a personal list of
books that they can read, add to, change and delete; an administrator can see
the books of all users at once.

Reads and writes of a user's books travel as request and response messages
over a message broker: the service publishes a request on its topic, picks it
up again, runs it against the database and publishes the answer, which is
matched to the waiting caller by a relation id. A caller waits at most 30
seconds (the `timeout` of `BookService`) for its answer.

## Installing

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Running

```
bookshelf --host 0.0.0.0 --port 8080
```

`--host` defaults to `0.0.0.0` and `--port` to `8080`. Logs are written to
standard output as one JSON object per line; each request also produces an
access-log line on the `bookshelf.access` logger.

The server is configured through environment variables:

| Variable         | Meaning                                                        |
|------------------|----------------------------------------------------------------|
| `DATABASE_URL`   | SQLAlchemy database URL; when set, the `DB_*` variables are ignored |
| `DB_HOST`        | PostgreSQL host                                                |
| `DB_PORT`        | PostgreSQL port                                                |
| `DB_USER`        | PostgreSQL user                                                |
| `DB_PASSWORD`    | PostgreSQL user's password                                     |
| `DB_NAME`        | PostgreSQL database name                                       |
| `BOOTTRAP`       | broker address                                                 |
| `GROUP_ID`       | consumer group of the service                                  |
| `TOPIC`          | topic that carries book requests and responses                 |
| `JWT_SECRET_KEY` | key that signs and checks tokens (default `secret`)            |
| `ADMIN_USERNAME` | admin user for the `/admin` routes (default `SuperUser`)       |
| `ADMIN_PASSWORD` | admin password for the `/admin` routes (default `password`)    |
| `DEBUG_MODE`     | `true` turns on debug logging and echoes SQL statements        |

The `users` and `books` tables are created on start if they do not exist.
A PostgreSQL URL needs a PostgreSQL driver for SQLAlchemy, which is not
installed with this package; without one the command stops with an error.
Any other database SQLAlchemy supports works too, for example:

```
DATABASE_URL=sqlite:///books.db TOPIC=books GROUP_ID=books bookshelf
```

## Endpoints

Routes under `/api` need a JWT in the `Authorization` header, written as
`Bearer <token>`. A missing or malformed header gives 401; a token that
cannot be verified, including an expired one, gives 400. Routes under
`/admin` need HTTP Basic credentials of the admin account; wrong or missing
credentials give 401.

| Method   | Path              | What it does                                                  |
|----------|-------------------|---------------------------------------------------------------|
| `GET`    | `/api/books`      | the caller's books; `author`, `title` and `limit` filter them |
| `POST`   | `/api/books`      | add a book: `{"title": ..., "author": ..., "price": ...}`     |
| `PATCH`  | `/api/books/<id>` | replace title, author and price of one book                   |
| `DELETE` | `/api/books/<id>` | delete one book for good                                      |
| `GET`    | `/admin/books`    | books of every user, grouped by username                      |

`author` and `title` match case-insensitively anywhere in the field; `limit`
must be a positive whole number, otherwise the reply is 400. In a book body,
`title` and `author` must be non-empty strings and `price` a positive
integer, otherwise the reply is 400. A list with no matching books gives 404,
as does changing or deleting a book the caller does not own. Errors come back
as `{"error": "..."}`, successes without data as `{"message": "..."}`.

Example:

```
curl -H "Authorization: Bearer token" "http://localhost:8080/api/books?author=Tolstoy&limit=10"
```

```json
{
  "data": [{"id": 1, "title": "War and Peace", "author": "L. N. Tolstoy", "price": 1300}],
  "meta": {"total": 1, "user_id": 1}
}
```

`GET /admin/books` answers with
`{"data": [{"username": ..., "total_books": ..., "books": [...]}]}`.

## Using it from Python

The application can be built around a service of your own, for example in
tests:

```python
from bookshelf.app import create_app
from bookshelf.book_repository import BookRepository
from bookshelf.book_service import BookService
from bookshelf.broker import get_consumer, get_producer
from bookshelf.database import init_db

engine = init_db("sqlite://")
producer = get_producer("localhost:9092")
consumer = get_consumer("localhost:9092", "books")
service = BookService(BookRepository(engine), producer, consumer, "books", 30)
service.start()

app = create_app(service)
# ...
service.stop()
```

`BookService.handle_message` processes a single message by hand, which is
useful without a running consumer thread.

Tokens are made and checked with `bookshelf.tokens.generate_token` and
`bookshelf.tokens.parse_token`; a token carries the user id in its
`user_id` claim and expires after 24 hours. Access-log lines are built by
`bookshelf.logformat.format_access_log`.

## What it does not do

- There are no routes for registering users, logging in or managing user
  accounts, and no stored passwords are checked. Tokens for the `/api`
  routes have to be made with `bookshelf.tokens.generate_token`, and the
  `users` table is created but not filled by the service.
- The broker in `bookshelf.broker` lives inside the process. `BOOTTRAP`
  only names a broker within the running process; nothing is sent over the
  network, and messages are lost when the process ends. `get_producer` and
  `get_consumer` each create their object once per process and return it
  on every later call.
- No API description document is served.