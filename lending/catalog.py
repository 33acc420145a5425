"""Read paths that turn stored rows into Book views."""
from datetime import date, datetime, timezone
from typing import Dict, Any, List, Optional, Union

from lending.errors import not_found
from lending.models import Book, LoanInfo, Page, UNKNOWN_AUTHOR
from lending.router import ConsistencyRouter


def parse_book_id(book_id: Union[str, int, None]) -> Optional[int]:
    """
    Convert an external book id to the stored integer id.

    Returns:
        Integer id, or None when the value is not a positive integer
    """
    if isinstance(book_id, bool):
        return None
    if isinstance(book_id, int):
        return book_id if book_id > 0 else None
    if book_id is None:
        return None
    text = str(book_id).strip()
    if not text.isdecimal():
        return None
    value = int(text)
    return value if value > 0 else None


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Format as an ISO datetime in UTC with millisecond precision."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def format_date(value: Union[date, datetime, None]) -> Optional[str]:
    """Format as an ISO date (YYYY-MM-DD)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        value = value.date()
    return value.isoformat()


def loan_info_from_row(row: Dict[str, Any]) -> Optional[LoanInfo]:
    """Build the LoanInfo snapshot from the active-loan columns of a book row."""
    if row.get("loan_id") is None:
        return None

    return LoanInfo(
        borrower=row.get("borrower_name"),
        borrower_id=row.get("borrower_id"),
        staff=row.get("staff_name"),
        loaned_at=format_timestamp(row.get("loaned_at")),
        due_at=format_date(row.get("due_at")),
        status=row.get("loan_status")
    )


def book_from_row(row: Dict[str, Any]) -> Book:
    """
    Map a stored book row to a Book.

    Args:
        row: Book row joined with its first author and active loan

    Returns:
        Book with ``available`` derived from the active loan
    """
    loan = loan_info_from_row(row)

    return Book(
        id=str(row["id"]),
        title=row["title"],
        author=row.get("author") or UNKNOWN_AUTHOR,
        isbn=row.get("isbn") or "",
        published=format_date(row.get("published")) or "",
        description=row.get("description") or None,
        available=loan is None,
        current_loan=loan
    )


class CatalogReader:
    """Catalog queries, always issued through the replica read path."""

    def __init__(self, router: ConsistencyRouter):
        self.router = router

    async def find_all(self) -> List[Book]:
        """All books ordered by id."""
        rows = await self.router.query_on_replica(lambda s: s.fetch_books())
        return [book_from_row(row) for row in rows]

    async def find_paginated(self, page: int, per_page: int) -> Page:
        """One page of all books; ``total`` is the unfiltered count."""
        return await self._page(None, page, per_page)

    async def find_by_query(self, query: Optional[str]) -> List[Book]:
        """
        Books whose title, isbn, description or any author name contains
        ``query`` (case-insensitive). An empty query returns every book.
        """
        if not query or not query.strip():
            return await self.find_all()

        rows = await self.router.query_on_replica(lambda s: s.fetch_books(query))
        return [book_from_row(row) for row in rows]

    async def find_by_query_paginated(
        self,
        query: Optional[str],
        page: int,
        per_page: int
    ) -> Page:
        """Same filter as ``find_by_query``; ``total`` is the filtered count."""
        return await self._page(query, page, per_page)

    async def find_by_id(self, book_id: Union[str, int]) -> Optional[Book]:
        """Get a book by id, or None if it does not exist."""
        stored_id = parse_book_id(book_id)
        if stored_id is None:
            return None

        row = await self.router.query_on_replica(lambda s: s.fetch_book(stored_id))
        return book_from_row(row) if row else None

    async def fetch_fresh(self, book_id: int) -> Book:
        """Re-read a book after a write, observing that write."""
        def read(session):
            row = session.fetch_book(book_id)
            if not row:
                raise not_found(f"Book with id {book_id} not found after write.")
            return book_from_row(row)

        return await self.router.query_on_replica(read, require_fresh=True)

    async def _page(self, query: Optional[str], page: int, per_page: int) -> Page:
        offset = (page - 1) * per_page

        def read(session):
            total = session.count_books(query)
            rows = session.fetch_books(query, offset=offset, limit=per_page)
            return Page(items=[book_from_row(row) for row in rows], total=total)

        return await self.router.query_on_replica(read)
