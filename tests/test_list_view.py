from __future__ import annotations

import pytest

from catalog import BookCard, CatalogListView, describe_card
from models import Book
from translations import translate

from conftest import FakeResponse, book_detail, book_summary, make_token, page


def test_render_is_loading_before_first_fetch(make_catalog) -> None:
    catalog = make_catalog(auto_fetch=False)

    state = catalog.view.render()

    assert state.kind == "loading"
    assert state.message == translate("loading", "en")


def test_fetch_error_and_empty_result_are_distinct(session, catalog) -> None:
    session.add("GET", "/api/books", FakeResponse(503, {"message": "down"}), page())

    catalog.query.refresh()
    errored = catalog.view.render()
    catalog.query.refresh()
    empty = catalog.view.render()

    assert errored.kind == "error"
    assert errored.message == translate("booksFetchError", "en")
    assert empty.kind == "empty"
    assert empty.message == translate("noBooksFound", "en")


def test_search_without_matches_shows_empty_state(session, catalog) -> None:
    session.add("GET", "/api/books", page())

    catalog.query.set_search_term("Hobbit")

    assert session.calls_to("GET", "/api/books")[-1].params["search"] == "Hobbit"
    state = catalog.view.render()
    assert state.kind == "empty"
    assert state.cards == []


def test_results_become_cards_with_company_when_browsing_all(session, catalog) -> None:
    session.add(
        "GET",
        "/api/books",
        page(book_summary("b1", "g1", "The Hobbit", copies=3), book_summary("b2", None, "Dune"), total_pages=2),
    )
    catalog.query.refresh()

    state = catalog.view.render()

    assert state.kind == "results"
    assert [card.title for card in state.cards] == ["The Hobbit", "Dune"]
    assert state.cards[0].key == "g1"
    assert state.cards[1].key == "b2"
    assert state.cards[0].copies_count == 3
    assert state.cards[0].edition_line == "Allen & Unwin · 1st"
    assert state.cards[0].company == "acme"
    assert state.total_pages == 2
    assert catalog.view.page_links() == [1, 2]


def test_company_hidden_when_scoped_to_tenant(session, identity, make_catalog) -> None:
    identity.sign_in(make_token(company="acme"))
    session.add("GET", "/api/books", page(book_summary("b1", "g1", "The Hobbit")))
    catalog = make_catalog()
    catalog.query.refresh()

    card = catalog.view.render().cards[0]

    assert card.company is None
    assert "acme" not in describe_card(card, 1, "en")


def test_describe_card_lists_badges() -> None:
    book = Book.model_validate(book_summary("b1", "g1", "The Hobbit", copies=2, status="borrowed"))
    card = BookCard.from_book(book, show_company=True)

    text = describe_card(card, 4, "en")

    assert text.startswith("4. The Hobbit")
    assert "2 copies" in text
    assert translate("unavailable", "en") in text
    assert "acme" in text


def test_open_card_failure_reports_and_stays_closed(session, notifier, catalog) -> None:
    session.add("GET", "/api/books", page(book_summary("b1", "g1", "The Hobbit")))
    session.add("GET", "/api/books/group/g1", FakeResponse(500))
    catalog.query.refresh()

    assert catalog.view.open_card(0) is False

    assert catalog.details.is_open is False
    assert notifier.last().key == "bookFetchError"


def test_open_card_by_index_loads_full_group(session, catalog) -> None:
    session.add("GET", "/api/books", page(book_summary("b1", "g1", "The Hobbit", copies=2)))
    session.add("GET", "/api/books/group/g1", book_detail("b1", "g1", "The Hobbit", ["c1", "c2"]))
    catalog.query.refresh()

    assert catalog.view.open_card(0) is True
    assert catalog.view.open_card(5) is False

    details = catalog.details
    assert details.is_open is True
    assert [copy.id for copy in details.selected_book.copies] == ["c1", "c2"]


def test_ungrouped_book_opens_by_id(session, catalog) -> None:
    session.add("GET", "/api/books/b9", {"book": book_detail("b9", None, "Dune", ["c9"])})
    book = Book.model_validate(book_summary("b9", None, "Dune"))

    assert catalog.view.open_card(book) is True
    assert catalog.details.selected_book.copies[0].id == "c9"


def test_open_card_requires_detail_session(catalog, notifier) -> None:
    view = CatalogListView(catalog.query, notifier)

    with pytest.raises(RuntimeError):
        view.open_card(0)
