"""Tests for BookService validation and delegation."""
import asyncio

import pytest

from lending.errors import ErrorKind, LibraryError, error_response, not_found, internal_error


def test_search_books_returns_matches(service, library_data):
    books = asyncio.run(service.search_books("murakami"))

    assert [book.title for book in books] == ["Norwegian Wood"]


def test_search_books_without_results_is_not_found(service, library_data):
    with pytest.raises(LibraryError) as excinfo:
        asyncio.run(service.search_books("zzzzzz"))

    assert excinfo.value.kind is ErrorKind.NOT_FOUND


def test_short_query_is_rejected(service, library_data):
    """Queries shorter than three characters never reach the catalog."""
    with pytest.raises(LibraryError) as excinfo:
        asyncio.run(service.list_books("ab"))

    assert excinfo.value.kind is ErrorKind.DOMAIN_VALIDATION


def test_list_books_normalizes_paging(service, library_data):
    """Invalid page and per_page values fall back to the defaults."""
    listing = asyncio.run(service.list_books(None, page=0, per_page=-5))

    assert listing.page == 1
    assert listing.per_page == 15
    assert listing.total == 4
    assert len(listing.items) == 4


def test_list_books_caps_per_page(service, library_data):
    listing = asyncio.run(service.list_books("", page=1, per_page=1000))

    assert listing.per_page == 100


def test_list_books_with_query(service, library_data):
    listing = asyncio.run(service.list_books("soseki", page=1, per_page=5))

    assert listing.total == 1
    assert listing.to_dict()["perPage"] == 5


def test_list_all_books_pages(service, library_data):
    listing = asyncio.run(service.list_all_books(page=2, per_page=2))

    assert [book.id for book in listing.items] == ["3", "4"]
    assert listing.total == 4


def test_get_book_by_id(service, library_data):
    book = asyncio.run(service.get_book_by_id("2"))

    assert book.title == "Kokoro"


def test_get_book_by_id_errors(service, library_data):
    """Blank and unknown ids are NotFound."""
    for book_id in (None, "", "  ", "999", "abc"):
        with pytest.raises(LibraryError) as excinfo:
            asyncio.run(service.get_book_by_id(book_id))
        assert excinfo.value.kind is ErrorKind.NOT_FOUND


def test_checkout_without_borrower_fails_before_any_transaction(service, primary, library_data):
    with pytest.raises(LibraryError) as excinfo:
        asyncio.run(service.checkout_book("1"))

    assert excinfo.value.kind is ErrorKind.DOMAIN_VALIDATION
    # Only the fixture's own transaction ran
    assert primary.transactions == 1


def test_checkout_with_past_due_date_fails(service, primary, library_data):
    with pytest.raises(LibraryError) as excinfo:
        asyncio.run(service.checkout_book("1", borrower_name="Alice", due_at="2000-01-01"))

    assert excinfo.value.kind is ErrorKind.DOMAIN_VALIDATION
    assert primary.tables["loan"] == {}


def test_checkout_and_return_through_service(service, primary, library_data):
    book = asyncio.run(
        service.checkout_book("1", borrower_name="Alice", staff_id=1, due_at="2030-06-01")
    )

    assert book.current_loan.due_at == "2030-06-01"
    assert book.to_dict()["currentLoan"]["dueAt"] == "2030-06-01"

    returned = asyncio.run(service.return_book("1"))
    assert returned.available is True


def test_error_response_mapping():
    """Error kinds map onto HTTP-style status codes."""
    assert error_response(not_found("missing")) == (404, {"message": "missing"})
    assert error_response(LibraryError(ErrorKind.DOMAIN_VALIDATION, "bad"))[0] == 422
    assert error_response(LibraryError(ErrorKind.ALREADY_LOANED, "taken"))[0] == 422
    assert error_response(internal_error("boom"))[0] == 500
    assert error_response(ValueError("odd input")) == (400, {"message": "odd input"})
