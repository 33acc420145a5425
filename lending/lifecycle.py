"""Checkout and return transactions."""
from datetime import date, datetime, time, timezone
from typing import Dict, Optional, Union
import logging

from lending.catalog import CatalogReader, parse_book_id
from lending.errors import already_loaned, not_found, validation_error
from lending.models import Book, LOAN_STATUS_LOANED, LOAN_STATUS_RETURNED
from lending.router import ConsistencyRouter

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def due_timestamp(due_at: Union[date, datetime, None]) -> Optional[datetime]:
    """Normalize a due date to a UTC timestamp (midnight for plain dates)."""
    if due_at is None:
        return None
    if isinstance(due_at, datetime):
        if due_at.tzinfo is None:
            return due_at.replace(tzinfo=timezone.utc)
        return due_at
    return datetime.combine(due_at, time.min, tzinfo=timezone.utc)


class LoanLifecycle:
    """
    The only component that mutates loan rows.

    Each book moves between two states: available -> loaned (checkout) and
    loaned -> available (return). Both transitions run as a single primary
    transaction followed by a fresh re-read of the book.
    """

    def __init__(self, router: ConsistencyRouter, catalog: CatalogReader):
        self.router = router
        self.catalog = catalog

    async def checkout(
        self,
        book_id: Union[str, int],
        borrower_id: Optional[int] = None,
        borrower_name: Optional[str] = None,
        borrower_email: Optional[str] = None,
        staff_id: Optional[int] = None,
        due_at: Union[date, datetime, None] = None
    ) -> Book:
        """
        Loan a book out.

        Args:
            book_id: Book to loan
            borrower_id: Existing borrower; takes precedence over the name
            borrower_name: Borrower to find or create when no id is given
            borrower_email: Email stored when the borrower is created
            staff_id: Staff member handling the loan
            due_at: Optional due date

        Returns:
            The book as seen after the loan was committed

        Raises:
            LibraryError: NOT_FOUND for an unknown book, ALREADY_LOANED if the
                book has an active loan, DOMAIN_VALIDATION for an unknown
                borrower or staff id or a missing borrower
        """
        stored_id = parse_book_id(book_id)
        if stored_id is None:
            raise not_found(f"Book with id {book_id} not found.")
        due = due_timestamp(due_at)

        def work(session):
            if not session.book_exists(stored_id):
                raise not_found(f"Book with id {book_id} not found.")

            # Checked inside the same transaction as the insert
            if session.find_active_loan(stored_id):
                raise already_loaned()

            if borrower_id is not None:
                if not session.find_borrower(borrower_id):
                    raise validation_error(f"Borrower with id {borrower_id} does not exist")
                resolved_borrower = borrower_id
            elif borrower_name:
                resolved_borrower = session.upsert_borrower(borrower_name, borrower_email)
            else:
                raise validation_error("borrowerId or borrowerName is required")

            if staff_id is not None and not session.find_staff(staff_id):
                raise validation_error(f"Staff with id {staff_id} does not exist")

            return session.insert_loan(
                book_id=stored_id,
                borrower_id=resolved_borrower,
                staff_id=staff_id,
                loaned_at=utc_now(),
                due_at=due,
                returned_at=None,
                status=LOAN_STATUS_LOANED
            )

        loan_id = await self.router.transact_on_primary(work)
        logger.info(f"Created loan {loan_id} for book {stored_id}")

        return await self.catalog.fetch_fresh(stored_id)

    async def create_loan_for_book(
        self,
        book_id: Union[str, int],
        borrower_id: int,
        staff_id: Optional[int] = None,
        due_at: Union[date, datetime, None] = None
    ) -> Book:
        """Checkout for an already resolved borrower."""
        return await self.checkout(
            book_id, borrower_id=borrower_id, staff_id=staff_id, due_at=due_at
        )

    async def return_book(self, book_id: Union[str, int]) -> Book:
        """
        Close the active loan of a book.

        Raises:
            LibraryError: NOT_FOUND if the book has no active loan
        """
        stored_id = parse_book_id(book_id)
        if stored_id is None:
            raise not_found("Active loan not found for this book")

        def work(session):
            loan = session.find_active_loan(stored_id)
            if not loan:
                raise not_found("Active loan not found for this book")
            session.close_loan(loan["id"], returned_at=utc_now(), status=LOAN_STATUS_RETURNED)
            return loan["id"]

        loan_id = await self.router.transact_on_primary(work)
        logger.info(f"Returned loan {loan_id} for book {stored_id}")

        return await self.catalog.fetch_fresh(stored_id)

    async def find_or_create_borrower(
        self,
        name: str,
        email: Optional[str] = None
    ) -> Dict[str, int]:
        """Atomically find or create a borrower by exact name."""
        borrower_id = await self.router.transact_on_primary(
            lambda s: s.upsert_borrower(name, email)
        )
        return {"id": borrower_id}

    async def find_staff_by_id(self, staff_id: int) -> Optional[Dict[str, int]]:
        staff = await self.router.query_on_replica(lambda s: s.find_staff(staff_id))
        return {"id": staff["id"]} if staff else None
