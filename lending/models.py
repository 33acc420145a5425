"""Data models for the lending catalog."""
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any

LOAN_STATUS_LOANED = "loaned"
LOAN_STATUS_RETURNED = "returned"
LOAN_STATUS_OVERDUE = "overdue"
LOAN_STATUSES = (LOAN_STATUS_LOANED, LOAN_STATUS_RETURNED, LOAN_STATUS_OVERDUE)

UNKNOWN_AUTHOR = "Unknown"


@dataclass
class LoanInfo:
    """Snapshot of a book's active loan."""
    borrower: Optional[str] = None
    borrower_id: Optional[int] = None
    staff: Optional[str] = None
    loaned_at: Optional[str] = None
    due_at: Optional[str] = None
    status: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "borrower": self.borrower,
            "borrowerId": self.borrower_id,
            "staff": self.staff,
            "loanedAt": self.loaned_at,
            "dueAt": self.due_at,
            "status": self.status
        }


@dataclass
class Book:
    """Book view assembled from the book row, its first author and its active loan."""
    id: str
    title: str
    author: str = UNKNOWN_AUTHOR
    isbn: str = ""
    published: str = ""
    description: Optional[str] = None
    available: bool = True
    current_loan: Optional[LoanInfo] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "isbn": self.isbn,
            "published": self.published,
            "description": self.description,
            "available": self.available,
            "currentLoan": self.current_loan.to_dict() if self.current_loan else None
        }


@dataclass
class Page:
    """One page of catalog results."""
    items: List[Book] = field(default_factory=list)
    total: int = 0


@dataclass
class BookListing:
    """Page of books together with the normalized paging parameters."""
    items: List[Book]
    total: int
    page: int
    per_page: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [book.to_dict() for book in self.items],
            "total": self.total,
            "page": self.page,
            "perPage": self.per_page
        }
