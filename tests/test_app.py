import logging

import pytest

from bookshelf.app import create_app
from bookshelf.book_repository import BookRepository
from bookshelf.book_service import BookService
from bookshelf.broker import Broker, Consumer, Producer
from bookshelf.database import init_db
from bookshelf.errors import NotFoundError
from bookshelf.tokens import generate_token


class FailingService:
    def get_user_books(self, user_id, author, title, limit_str):
        raise NotFoundError()


def _bearer(user_id):
    return {"Authorization": "Bearer " + generate_token(user_id)}


@pytest.fixture
def live_client():
    engine = init_db("sqlite://")
    broker = Broker()
    service = BookService(
        BookRepository(engine),
        Producer(broker),
        Consumer(broker, "bookshelf-test"),
        "books",
        timeout=5.0,
    )
    service.start()
    try:
        yield create_app(service).test_client()
    finally:
        service.stop()


def test_routes_are_registered():
    app = create_app(FailingService())
    rules = {(rule.rule, method) for rule in app.url_map.iter_rules() for method in rule.methods}
    for expected in [
        ("/api/books", "GET"),
        ("/api/books", "POST"),
        ("/api/books/<book_id>", "PATCH"),
        ("/api/books/<book_id>", "DELETE"),
        ("/admin/books", "GET"),
    ]:
        assert expected in rules


def test_service_errors_reach_client():
    client = create_app(FailingService()).test_client()
    resp = client.get("/api/books", headers=_bearer(3))
    assert resp.status_code == 404
    assert resp.get_json() == {"error": "Could not found records"}


def test_access_log_line(caplog):
    client = create_app(FailingService()).test_client()
    with caplog.at_level(logging.INFO, logger="bookshelf.access"):
        client.get("/api/books", headers={"User-Agent": "probe"})
    lines = [r.getMessage() for r in caplog.records if r.name == "bookshelf.access"]
    assert len(lines) == 1
    line = lines[0]
    assert line.startswith("{") and line.endswith("}")
    assert " /api/books GET 401 " in line
    assert "|probe|" in line


def test_end_to_end_create_list_update_delete(live_client):
    headers = _bearer(4)
    created = live_client.post(
        "/api/books", json={"title": "Dune", "author": "Herbert", "price": 10}, headers=headers
    )
    assert created.status_code == 201

    listed = live_client.get("/api/books?title=dun", headers=headers)
    assert listed.status_code == 200
    body = listed.get_json()
    assert [book["title"] for book in body["data"]] == ["Dune"]
    assert body["meta"] == {"total": 1, "user_id": 4}
    book_id = body["data"][0]["id"]

    updated = live_client.open(
        f"/api/books/{book_id}",
        method="PATCH",
        json={"title": "Emma", "author": "Austen", "price": 5},
        headers=headers,
    )
    assert updated.status_code == 200
    titles = [b["title"] for b in live_client.get("/api/books", headers=headers).get_json()["data"]]
    assert titles == ["Emma"]

    deleted = live_client.delete(f"/api/books/{book_id}", headers=headers)
    assert deleted.status_code == 200
    assert live_client.get("/api/books", headers=headers).status_code == 404


def test_end_to_end_books_are_per_user(live_client):
    live_client.post(
        "/api/books", json={"title": "Dune", "author": "Herbert", "price": 10}, headers=_bearer(1)
    )
    other = live_client.get("/api/books", headers=_bearer(2))
    assert other.status_code == 404
    missing = live_client.delete("/api/books/999", headers=_bearer(2))
    assert missing.status_code == 404


def test_end_to_end_invalid_limit(live_client):
    resp = live_client.get("/api/books?limit=0", headers=_bearer(1))
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Invalid limit value"}