import pytest

from bookshelf.book_repository import BookRepository
from bookshelf.book_service import BookService, to_user_id
from bookshelf.broker import Broker, Consumer, Producer
from bookshelf.database import init_db, users_table
from bookshelf.errors import (
    InternalError,
    InvalidIDError,
    InvalidParamError,
    KafkaConsumerError,
    NotFoundError,
    RequestTimeoutError,
)
from bookshelf.models import Book, BookRequest, KafkaBookRequest, KafkaBookResponse


def _repo():
    engine = init_db("sqlite://")
    with engine.begin() as conn:
        conn.execute(
            users_table.insert(),
            [
                {"id": 1, "username": "alice", "password": "password"},
                {"id": 2, "username": "bob", "password": "password"},
            ],
        )
    return BookRepository(engine)


@pytest.fixture
def setup():
    repo = _repo()
    broker = Broker()
    service = BookService(repo, Producer(broker), Consumer(broker, "svc"), "books", 5.0)
    service.start()
    yield service, repo, broker
    service.stop()


def test_to_user_id():
    assert to_user_id(3.0) == 3
    assert to_user_id(5) == 5
    assert to_user_id("5") == 0
    assert to_user_id(None) == 0
    assert to_user_id(True) == 0


def test_post_then_get_user_books(setup):
    service, _, _ = setup
    service.post_book(1.0, BookRequest(title="Dune", author="Herbert", price=100))
    books, uid = service.get_user_books(1.0, "", "", "")
    assert uid == 1
    assert [(b.title, b.author, b.price) for b in books] == [("Dune", "Herbert", 100)]


def test_get_user_books_filters_and_limit(setup):
    service, repo, _ = setup
    for title in ("Dune", "Dune Messiah", "Emma"):
        repo.post_book(Book(title=title, author="X", price=1, user_id=1))
    books, _ = service.get_user_books(1, "", "dune", "1")
    assert [b.title for b in books] == ["Dune"]


def test_get_user_books_not_found(setup):
    service, _, _ = setup
    with pytest.raises(NotFoundError):
        service.get_user_books(2, "", "", "")


@pytest.mark.parametrize("limit", ["0", "-1", "abc", "1.5"])
def test_invalid_limit(setup, limit):
    service, _, _ = setup
    with pytest.raises(InvalidParamError):
        service.get_user_books(1, "", "", limit)


def test_update_book(setup):
    service, repo, _ = setup
    book_id = repo.post_book(Book(title="Old", author="X", price=1, user_id=1))
    service.update_book(1, str(book_id), BookRequest(title="New", author="Y", price=2))
    [book] = repo.get_user_books(1, "", "", 0)
    assert (book.title, book.author, book.price) == ("New", "Y", 2)


def test_update_missing_book(setup):
    service, _, _ = setup
    with pytest.raises(NotFoundError):
        service.update_book(1, "999", BookRequest(title="New", author="Y", price=2))


@pytest.mark.parametrize("book_id", ["0", "x", ""])
def test_invalid_book_id(setup, book_id):
    service, _, _ = setup
    with pytest.raises(InvalidIDError):
        service.delete_book(1, book_id)
    with pytest.raises(InvalidIDError):
        service.update_book(1, book_id, BookRequest(title="A", author="B", price=1))


def test_delete_book(setup):
    service, repo, _ = setup
    book_id = repo.post_book(Book(title="Gone", author="X", price=1, user_id=1))
    service.delete_book(1, str(book_id))
    with pytest.raises(NotFoundError):
        repo.get_user_books(1, "", "", 0)
    with pytest.raises(NotFoundError):
        service.delete_book(1, str(book_id))


def test_get_all_books_groups_by_user():
    repo = _repo()
    repo.post_book(Book(title="A", author="X", price=1, user_id=1))
    repo.post_book(Book(title="B", author="X", price=1, user_id=2))
    repo.post_book(Book(title="C", author="X", price=1, user_id=1))
    broker = Broker()
    service = BookService(repo, Producer(broker), Consumer(broker, "svc"), "books", 1.0)
    grouped = {entry.username: entry for entry in service.get_all_books()}
    assert {name: entry.total_books for name, entry in grouped.items()} == {"alice": 2, "bob": 1}
    assert [b.title for b in grouped["alice"].books] == ["A", "C"]


def test_request_times_out_without_consumer():
    broker = Broker()
    service = BookService(_repo(), Producer(broker), Consumer(broker, "svc"), "books", 0.05)
    with pytest.raises(RequestTimeoutError):
        service.post_book(1, BookRequest(title="A", author="B", price=1))


def test_handle_message_serves_request_and_publishes_response():
    repo = _repo()
    broker = Broker()
    observer = broker.subscribe("books", "observer")
    service = BookService(repo, Producer(broker), Consumer(broker, "svc"), "books", 1.0)
    request = KafkaBookRequest(
        method="PostBookMethod",
        type="request",
        relation_id="r1",
        payload=Book(title="Dune", author="Herbert", price=100, user_id=1).to_dict(),
    )
    service.handle_message(request.to_json())
    response = KafkaBookResponse.from_json(observer.read_message(1.0).value)
    assert (response.type, response.relation_id, response.method) == (
        "response",
        "r1",
        "PostBookMethod",
    )
    assert response.error.error == ""
    assert [b.title for b in repo.get_user_books(1, "", "", 0)] == ["Dune"]


def test_handle_message_reports_not_found_in_response():
    broker = Broker()
    observer = broker.subscribe("books", "observer")
    service = BookService(_repo(), Producer(broker), Consumer(broker, "svc"), "books", 1.0)
    request = KafkaBookRequest(
        method="DeleteBookMethod",
        type="request",
        relation_id="r2",
        payload={"id": 5, "user_id": 1},
    )
    service.handle_message(request.to_json())
    response = KafkaBookResponse.from_json(observer.read_message(1.0).value)
    assert response.error.error == "record not found"


def test_handle_message_rejects_malformed_json():
    broker = Broker()
    service = BookService(_repo(), Producer(broker), Consumer(broker, "svc"), "books", 1.0)
    with pytest.raises(InternalError):
        service.handle_message(b"{not json")


def test_stop_without_start_closes_consumer():
    broker = Broker()
    consumer = Consumer(broker, "svc")
    service = BookService(_repo(), Producer(broker), consumer, "books", 1.0)
    service.stop()
    with pytest.raises(KafkaConsumerError) as info:
        consumer.read_message(0.01)
    assert str(info.value).startswith("failed to consume message")