from __future__ import annotations

import pytest
import requests

from api import BackendClient, BackendError, CatalogQuery, NotFoundError

from conftest import BASE_URI, FakeResponse, book_summary


def test_catalog_query_params() -> None:
    query = CatalogQuery(page=2, search="hobbit", categories=["Fantasy", "Classic"])

    assert query.to_params() == {
        "page": "2",
        "search": "hobbit",
        "categories": "Fantasy,Classic",
        "company": "all",
    }


def test_list_books_accepts_bare_list(session, client) -> None:
    session.add("GET", "/api/books", [book_summary("b1", "g1", "The Hobbit")])

    result = client.list_books({"page": "1"})

    assert [book.title for book in result.books] == ["The Hobbit"]
    assert result.total_pages == 1


def test_comma_separated_categories_are_split(session, client) -> None:
    session.add("GET", "/api/books/b1", book_summary("b1", None, "Emma", categories="Classic, Romance,"))

    assert client.get_book("b1").categories == ["Classic", "Romance"]


def test_missing_resource_raises_not_found(session, client) -> None:
    session.add("GET", "/api/books/group/g1", FakeResponse(404, {"message": "Book not found"}))

    with pytest.raises(NotFoundError) as raised:
        client.get_group("g1")

    assert raised.value.status_code == 404
    assert raised.value.server_message == "Book not found"


def test_transport_failure_becomes_backend_error(session, client) -> None:
    session.add("GET", "/api/books", requests.ConnectionError("refused"))

    with pytest.raises(BackendError) as raised:
        client.list_books({})

    assert raised.value.status_code is None


def test_malformed_payload_becomes_backend_error(session, client) -> None:
    session.add("GET", "/api/books/b1", {"title": "no id here"})

    with pytest.raises(BackendError):
        client.get_book("b1")


def test_company_list_accepts_objects_and_strings(session, client) -> None:
    session.add("GET", "/api/books/companies", {"companies": [{"name": "acme"}, "globex", {}]})

    assert client.list_companies() == ["acme", "globex"]


def test_requests_carry_timeout_and_base_uri(session) -> None:
    seen = {}

    def capture(method, url, **kwargs):
        seen.update(kwargs, method=method, url=url)
        return FakeResponse(200, [])

    session.request = capture
    client = BackendClient(BASE_URI + "/", session=session, timeout=4)

    client.list_categories()

    assert seen["url"] == f"{BASE_URI}/api/books/categories"
    assert seen["timeout"] == 4
    assert "Authorization" not in seen["headers"]
