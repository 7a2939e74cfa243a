from __future__ import annotations

import pytest

from details import COPIES_PER_PAGE, create_book
from forms import BookForm, CopyForm, GeneralForm
from models import Book

from conftest import FakeResponse, book_detail, book_summary, copy_payload, page

HOBBIT_COPIES = ["c1", "c2", "c3"]


@pytest.fixture
def opened(session, catalog):
    """Catalog page with two groups; the Hobbit group is open in the detail view."""
    session.add(
        "GET",
        "/api/books",
        page(book_summary("b1", "g1", "The Hobbit", copies=3), book_summary("b2", "g2", "Dune", copies=1)),
    )
    session.add("GET", "/api/books/group/g1", book_detail("b1", "g1", "The Hobbit", HOBBIT_COPIES))
    catalog.query.refresh()
    assert catalog.view.open_card(0) is True
    return catalog


def _rows(catalog):
    return {row.key: row.copies_count for row in catalog.query.list.rows}


def test_delete_requires_confirmation(session, opened) -> None:
    details = opened.details

    assert details.delete_copy("c1") is False
    details.request_delete_copy("c1")
    details.cancel_delete()
    assert details.confirm_delete() is False

    assert session.calls_to("POST", "/api/books/c1/decrease-copy") == []


def test_delete_copy_with_copies_left_refetches_and_patches_count(session, notifier, opened) -> None:
    session.add("POST", "/api/books/c1/decrease-copy", {"copiesCount": 2})
    session.add("GET", "/api/books/group/g1", book_detail("b1", "g1", "The Hobbit", ["c2", "c3"]))
    details = opened.details

    details.request_delete_copy("c1")
    assert details.confirm_delete() is True

    assert details.is_open is True
    assert [copy.id for copy in details.selected_book.copies] == ["c2", "c3"]
    assert details.selected_book.copies_count == 2
    assert _rows(opened) == {"g1": 2, "g2": 1}
    assert notifier.last().key == "copyDeletedSuccess"


def test_delete_last_copy_closes_detail_and_removes_entry(session, notifier, opened) -> None:
    session.add("POST", "/api/books/c1/decrease-copy", {"copiesCount": 0})
    details = opened.details

    details.request_delete_copy("c1")
    assert details.confirm_delete() is True

    assert details.is_open is False
    assert details.selected_book is None
    assert _rows(opened) == {"g2": 1}
    assert len(session.calls_to("GET", "/api/books/group/g1")) == 1
    assert notifier.last().key == "copyDeletedSuccess"


def test_delete_missing_copy_closes_with_warning(session, notifier, opened) -> None:
    session.add("POST", "/api/books/c1/decrease-copy", FakeResponse(404, {"message": "gone"}))
    details = opened.details

    details.request_delete_copy("c1")
    assert details.confirm_delete() is False

    assert details.is_open is False
    assert notifier.last().level == "warning"
    assert notifier.last().key == "copyNotFound"
    assert _rows(opened) == {"g1": 3, "g2": 1}


def test_failed_delete_leaves_state_unchanged(session, notifier, opened) -> None:
    session.add("POST", "/api/books/c1/decrease-copy", FakeResponse(500))
    details = opened.details

    details.request_delete_copy("c1")
    assert details.confirm_delete() is False

    assert details.is_open is True
    assert [copy.id for copy in details.selected_book.copies] == HOBBIT_COPIES
    assert _rows(opened) == {"g1": 3, "g2": 1}
    assert notifier.last().key == "copyDeleteError"
    assert details.busy is False


def test_delete_keeps_local_copy_list_when_refetch_fails(session, opened) -> None:
    session.add("POST", "/api/books/c2/decrease-copy", {"copiesCount": 2})
    session.add("GET", "/api/books/group/g1", FakeResponse(500))
    details = opened.details

    details.request_delete_copy("c2")
    assert details.confirm_delete() is True

    assert details.is_open is True
    assert [copy.id for copy in details.selected_book.copies] == ["c1", "c3"]
    assert _rows(opened)["g1"] == 2


def test_delete_outside_current_page_leaves_page_alone(session, catalog) -> None:
    session.add("GET", "/api/books", page(book_summary("b2", "g2", "Dune", copies=1)))
    session.add("GET", "/api/books/group/g7", book_detail("b7", "g7", "Emma", ["c70"]))
    session.add("POST", "/api/books/c70/decrease-copy", {"copiesCount": 0})
    catalog.query.refresh()
    catalog.view.open_card(Book.model_validate(book_summary("b7", "g7", "Emma")))

    catalog.details.request_delete_copy("c70")
    assert catalog.details.confirm_delete() is True

    assert catalog.details.is_open is False
    assert _rows(catalog) == {"g2": 1}


def test_delete_book_removes_entry(session, notifier, opened) -> None:
    session.add("DELETE", "/api/books/b1", FakeResponse(204))
    details = opened.details

    details.request_delete_book("b1")
    assert details.confirm_delete() is True

    assert details.is_open is False
    assert "g1" not in _rows(opened)
    assert notifier.last().key == "bookDeletedSuccess"


def test_update_general_keeps_copy_fields(session, notifier, opened) -> None:
    updated = book_summary("b1", "g1", "The Hobbit, or There and Back Again")
    updated.pop("copiesCount")
    session.add("PUT", "/api/books/g1/general", updated)
    details = opened.details
    before = details.selected_book.copies

    assert details.update_general({"title": "The Hobbit, or There and Back Again"}) is True

    sent = session.calls_to("PUT", "/api/books/g1/general")[0].json
    assert sent["title"] == "The Hobbit, or There and Back Again"
    assert "invoiceCode" not in sent
    book = details.selected_book
    assert book.title == "The Hobbit, or There and Back Again"
    assert book.copies == before
    assert book.copies_count == 3
    assert notifier.last().key == "bookUpdatedSuccess"


def test_update_general_rejects_blank_title_before_request(session, notifier, opened) -> None:
    details = opened.details

    assert details.update_general({"title": "  "}) is False

    assert details.form_errors["title"] == "fieldRequired"
    assert session.calls_to("PUT", "/api/books/g1/general") == []
    assert notifier.last().key == "fixFormErrors"


def test_update_general_with_bad_image_url_still_saves_other_fields(session, opened) -> None:
    session.add("PUT", "/api/books/g1/general", book_summary("b1", "g1", "The Hobbit"))
    details = opened.details

    assert details.update_general({"image_url": "not a url"}) is True

    sent = session.calls_to("PUT", "/api/books/g1/general")[0].json
    assert "imageUrl" not in sent
    assert details.form_errors == {"imageUrl": "invalidImageUrl"}


def test_update_copy_replaces_only_that_copy(session, notifier, opened) -> None:
    session.add("PUT", "/api/books/c2/copy", {"copy": copy_payload("c2", location="B-2", cost=20)})
    details = opened.details

    assert details.update_copy("c2", {"location": "B-2", "cost": "20"}) is True

    sent = session.calls_to("PUT", "/api/books/c2/copy")[0].json
    assert sent["cost"] == 20.0
    copies = details.selected_book.copies
    assert [copy.id for copy in copies] == HOBBIT_COPIES
    assert copies[1].location == "B-2"
    assert copies[0].location == "A-1"
    assert copies[2].location == "A-1"
    assert notifier.last().key == "copyUpdatedSuccess"


def test_update_copy_without_echo_merges_payload(session, opened) -> None:
    session.add("PUT", "/api/books/c3/copy", {"success": True})
    details = opened.details

    assert details.update_copy("c3", CopyForm(invoice_code="INV-9", location="C-3", cost="7.5", date_acquired="2024-01-02")) is True

    copy = details.selected_book.find_copy("c3")
    assert copy.invoice_code == "INV-9"
    assert copy.cost == 7.5


def test_update_unknown_copy_is_refused(session, notifier, opened) -> None:
    assert opened.details.update_copy("zz", {"location": "X"}) is False
    assert notifier.last().key == "copyNotFound"


def test_update_copy_rejects_unknown_fields(opened) -> None:
    with pytest.raises(TypeError):
        opened.details.update_copy("c1", {"colour": "red"})


def test_add_copy_clones_group_fields_and_patches_count(session, notifier, opened) -> None:
    session.add("POST", "/api/books/b1/copy", {"copiesCount": 4})
    session.add("GET", "/api/books/group/g1", book_detail("b1", "g1", "The Hobbit", HOBBIT_COPIES + ["c4"]))
    details = opened.details

    form = CopyForm(invoice_code="INV-4", location="A-4", cost="9", date_acquired="2024-02-02")
    assert details.add_copy(form) is True

    sent = session.calls_to("POST", "/api/books/b1/copy")[0].json
    assert sent["groupId"] == "g1"
    assert sent["title"] == "The Hobbit"
    assert sent["company"] == "acme"
    assert sent["cost"] == 9.0
    assert len(details.selected_book.copies) == 4
    assert _rows(opened)["g1"] == 4
    assert notifier.last().key == "copyAddedSuccess"


def test_add_copy_with_non_finite_cost_sends_nothing(session, opened) -> None:
    details = opened.details

    form = CopyForm(invoice_code="INV-4", location="A-4", cost="NaN", date_acquired="2024-02-02")
    assert details.add_copy(form) is False

    assert details.form_errors == {"cost": "invalidCost"}
    assert session.calls_to("POST", "/api/books/b1/copy") == []


def test_copies_are_paged(session, catalog) -> None:
    ids = [f"c{index}" for index in range(23)]
    session.add("GET", "/api/books/group/g5", book_detail("b5", "g5", "Big Set", ids))
    catalog.view.open_card(Book.model_validate(book_summary("b5", "g5", "Big Set")))
    details = catalog.details

    assert details.copy_pages == 3
    assert len(details.visible_copies()) == COPIES_PER_PAGE
    details.set_copy_page(9)
    assert details.copy_page == 3
    assert [copy.id for copy in details.visible_copies()] == ["c20", "c21", "c22"]


def test_listeners_are_told_about_changes(opened) -> None:
    seen = []
    opened.details.subscribe(lambda session: seen.append(session.is_open))

    opened.details.close()

    assert seen == [False]


def _create_form() -> BookForm:
    return BookForm(
        general=GeneralForm(
            title="Emma",
            author="Jane Austen",
            editorial="John Murray",
            edition="1st",
            categories=["Classic"],
            cover_type="soft",
        ),
        copy=CopyForm(invoice_code="INV-1", location="B-1", cost="8", date_acquired="2024-01-10"),
    )


def test_create_book_posts_merged_payload(session, client, notifier) -> None:
    session.add("POST", "/api/books", {"book": book_summary("b3", "g3", "Emma")})

    book = create_book(client, notifier, _create_form())

    assert book.key == "g3"
    sent = session.calls_to("POST", "/api/books")[0].json
    assert sent["title"] == "Emma"
    assert sent["invoiceCode"] == "INV-1"
    assert sent["cost"] == 8.0
    assert notifier.last().key == "bookCreatedSuccess"


def test_create_book_reports_server_rejection(session, client, notifier) -> None:
    session.add("POST", "/api/books", FakeResponse(400, {"message": "Invoice code already used"}))

    assert create_book(client, notifier, _create_form()) is None
    assert notifier.last().message == "Invoice code already used"
