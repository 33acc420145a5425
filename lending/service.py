"""Book service: the entry point used by the CLI and any transport layer."""
from datetime import date, datetime
from typing import List, Optional, Union
import logging

from lending.catalog import CatalogReader
from lending.errors import not_found
from lending.lifecycle import LoanLifecycle
from lending.models import Book, BookListing
from lending.validators import (
    DEFAULT_PER_PAGE,
    MAX_PER_PAGE,
    normalize_pagination,
    validate_checkout,
    validate_search_query,
)

logger = logging.getLogger(__name__)


class BookService:
    """Validates requests and delegates to the catalog and loan lifecycle."""

    def __init__(
        self,
        catalog: CatalogReader,
        lifecycle: LoanLifecycle,
        default_per_page: int = DEFAULT_PER_PAGE,
        max_per_page: int = MAX_PER_PAGE
    ):
        self.catalog = catalog
        self.lifecycle = lifecycle
        self.default_per_page = default_per_page
        self.max_per_page = max_per_page

    async def search_books(self, query: Optional[str] = None) -> List[Book]:
        logger.info(f"Executing BookService.search_books with query: {query}")

        validate_search_query(query)
        results = await self.catalog.find_by_query(query)

        if not results:
            logger.warning("No books found for the given query")
            raise not_found("No books found for the given query.")

        logger.info(f"Found {len(results)} books for the given query")
        return results

    async def list_books(
        self,
        query: Optional[str],
        page: Optional[int] = 1,
        per_page: Optional[int] = None
    ) -> BookListing:
        """Search with pagination; an empty query lists every book."""
        logger.info(f"Executing BookService.list_books with query: {query} page={page} per_page={per_page}")

        if query and query.strip():
            validate_search_query(query)

        safe_page, safe_per_page = self._paging(page, per_page)
        result = await self.catalog.find_by_query_paginated(query, safe_page, safe_per_page)

        return BookListing(result.items, result.total, safe_page, safe_per_page)

    async def list_all_books(
        self,
        page: Optional[int] = 1,
        per_page: Optional[int] = None
    ) -> BookListing:
        logger.info(f"Executing BookService.list_all_books page={page} per_page={per_page}")

        safe_page, safe_per_page = self._paging(page, per_page)
        result = await self.catalog.find_paginated(safe_page, safe_per_page)

        return BookListing(result.items, result.total, safe_page, safe_per_page)

    async def get_book_by_id(self, book_id: Union[str, int, None]) -> Book:
        logger.info(f"Executing BookService.get_book_by_id with id: {book_id}")

        if book_id is None or not str(book_id).strip():
            raise not_found("Book id is required.")

        book = await self.catalog.find_by_id(book_id)
        if not book:
            raise not_found(f"Book with id {book_id} not found.")
        return book

    async def checkout_book(
        self,
        book_id: Union[str, int],
        borrower_id: Optional[int] = None,
        borrower_name: Optional[str] = None,
        borrower_email: Optional[str] = None,
        staff_id: Optional[int] = None,
        due_at: Union[str, date, datetime, None] = None
    ) -> Book:
        logger.info(f"Executing BookService.checkout_book for book_id: {book_id}")

        due = validate_checkout(borrower_id, borrower_name, staff_id, due_at)
        return await self.lifecycle.checkout(
            book_id,
            borrower_id=borrower_id,
            borrower_name=borrower_name,
            borrower_email=borrower_email,
            staff_id=staff_id,
            due_at=due
        )

    async def return_book(self, book_id: Union[str, int]) -> Book:
        logger.info(f"Executing BookService.return_book for book_id: {book_id}")
        return await self.lifecycle.return_book(book_id)

    def _paging(self, page, per_page):
        return normalize_pagination(
            page, per_page,
            default_per_page=self.default_per_page,
            max_per_page=self.max_per_page
        )
