"""Shared fixtures: in-memory primary/replica stores and wired services."""
import copy
import threading
from contextlib import contextmanager
from datetime import date

import pytest

from lending.catalog import CatalogReader
from lending.errors import already_loaned
from lending.lifecycle import LoanLifecycle
from lending.router import ConsistencyRouter
from lending.service import BookService


def empty_tables():
    return {
        "book": {},
        "author": {},
        "book_author": [],
        "borrower": {},
        "staff": {},
        "loan": {},
        "seq": {"book": 0, "author": 0, "book_author": 0, "borrower": 0, "staff": 0, "loan": 0},
    }


class MemorySession:
    """Same operations as lending.database.Session, backed by dictionaries."""

    def __init__(self, tables):
        self.t = tables

    def _next_id(self, table):
        self.t["seq"][table] += 1
        return self.t["seq"][table]

    def create_schema(self):
        pass

    def _author_names(self, book_id):
        links = sorted(
            (link for link in self.t["book_author"] if link["book_id"] == book_id),
            key=lambda link: link["id"]
        )
        return [self.t["author"][link["author_id"]]["name"] for link in links]

    def _active_loan(self, book_id):
        for loan in self.t["loan"].values():
            if loan["book_id"] == book_id and loan["returned_at"] is None:
                return loan
        return None

    def _book_row(self, book):
        names = self._author_names(book["id"])
        loan = self._active_loan(book["id"])
        row = dict(book)
        row.update({
            "author": names[0] if names else None,
            "loan_id": None,
            "borrower_id": None,
            "borrower_name": None,
            "staff_name": None,
            "loaned_at": None,
            "due_at": None,
            "loan_status": None,
        })
        if loan:
            staff = self.t["staff"].get(loan["staff_id"])
            row.update({
                "loan_id": loan["id"],
                "borrower_id": loan["borrower_id"],
                "borrower_name": self.t["borrower"][loan["borrower_id"]]["name"],
                "staff_name": staff["name"] if staff else None,
                "loaned_at": loan["loaned_at"],
                "due_at": loan["due_at"],
                "loan_status": loan["status"],
            })
        return row

    def _matching(self, query):
        books = sorted(self.t["book"].values(), key=lambda b: b["id"])
        if not query or not query.strip():
            return books
        needle = query.lower()
        matches = []
        for book in books:
            fields = [book["title"], book["isbn"], book["description"]] + self._author_names(book["id"])
            if any(field and needle in field.lower() for field in fields):
                matches.append(book)
        return matches

    def fetch_books(self, query=None, offset=0, limit=None):
        books = self._matching(query)[offset:]
        if limit is not None:
            books = books[:limit]
        return [self._book_row(book) for book in books]

    def count_books(self, query=None):
        return len(self._matching(query))

    def fetch_book(self, book_id):
        book = self.t["book"].get(book_id)
        return self._book_row(book) if book else None

    def book_exists(self, book_id):
        return book_id in self.t["book"]

    def insert_book(self, title, isbn=None, published=None, description=None):
        book_id = self._next_id("book")
        self.t["book"][book_id] = {
            "id": book_id, "title": title, "isbn": isbn,
            "published": published, "description": description,
        }
        return book_id

    def insert_author(self, name):
        author_id = self._next_id("author")
        self.t["author"][author_id] = {"id": author_id, "name": name}
        return author_id

    def link_author(self, book_id, author_id):
        self.t["book_author"].append(
            {"id": self._next_id("book_author"), "book_id": book_id, "author_id": author_id}
        )

    def find_active_loan(self, book_id):
        loan = self._active_loan(book_id)
        return dict(loan) if loan else None

    def insert_loan(self, book_id, borrower_id, loaned_at, staff_id=None,
                    due_at=None, returned_at=None, status="loaned"):
        # Mirrors the partial unique index on active loans
        if returned_at is None and self._active_loan(book_id):
            raise already_loaned()
        loan_id = self._next_id("loan")
        self.t["loan"][loan_id] = {
            "id": loan_id, "book_id": book_id, "borrower_id": borrower_id,
            "staff_id": staff_id, "loaned_at": loaned_at, "due_at": due_at,
            "returned_at": returned_at, "status": status,
        }
        return loan_id

    def close_loan(self, loan_id, returned_at, status="returned"):
        self.t["loan"][loan_id].update({"returned_at": returned_at, "status": status})

    def upsert_borrower(self, name, email=None):
        for borrower in self.t["borrower"].values():
            if borrower["name"] == name:
                return borrower["id"]
        borrower_id = self._next_id("borrower")
        self.t["borrower"][borrower_id] = {"id": borrower_id, "name": name, "email": email}
        return borrower_id

    def find_borrower(self, borrower_id):
        borrower = self.t["borrower"].get(borrower_id)
        return dict(borrower) if borrower else None

    def find_staff(self, staff_id):
        staff = self.t["staff"].get(staff_id)
        return dict(staff) if staff else None

    def insert_staff(self, name, role="clerk"):
        staff_id = self._next_id("staff")
        self.t["staff"][staff_id] = {"id": staff_id, "name": name, "role": role}
        return staff_id

    def get_stats(self):
        loans = self.t["loan"].values()
        return {
            "total_books": len(self.t["book"]),
            "active_loans": sum(1 for loan in loans if loan["returned_at"] is None),
            "total_loans": len(self.t["loan"]),
            "borrowers": len(self.t["borrower"]),
            "staff": len(self.t["staff"]),
        }


class MemoryStore:
    """
    Store handle with the same contract as lending.database.Database.

    Transactions hold a lock for their whole duration and restore a snapshot
    when the block raises.
    """

    def __init__(self, name="primary"):
        self.name = name
        self.tables = empty_tables()
        self.lock = threading.RLock()
        self.connected = False
        self.fail_connect = False
        self.fail_close = False
        self.fail_reads = False
        self.sessions = 0
        self.transactions = 0

    def connect(self):
        if self.fail_connect:
            raise ConnectionError(f"{self.name} unreachable")
        self.connected = True

    def close(self):
        self.connected = False
        if self.fail_close:
            raise ConnectionError(f"{self.name} close failed")

    @contextmanager
    def transaction(self):
        with self.lock:
            self.transactions += 1
            snapshot = copy.deepcopy(self.tables)
            try:
                yield MemorySession(self.tables)
            except Exception:
                self.tables.clear()
                self.tables.update(snapshot)
                raise

    @contextmanager
    def session(self):
        if self.fail_reads:
            raise ConnectionError(f"{self.name} read failed")
        with self.lock:
            self.sessions += 1
            yield MemorySession(self.tables)

    def replicate_from(self, other):
        """Catch up with another store, like a replica applying the primary's log."""
        with other.lock:
            self.tables = copy.deepcopy(other.tables)

    def active_loans(self, book_id):
        return [
            loan for loan in self.tables["loan"].values()
            if loan["book_id"] == book_id and loan["returned_at"] is None
        ]


class FakeClock:
    """Monotonic clock the tests can advance by hand."""

    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def primary():
    return MemoryStore("primary")


@pytest.fixture
def replica():
    return MemoryStore("replica")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def router(primary, replica, clock):
    return ConsistencyRouter(primary, replica, max_stale_ms=2000, clock=clock)


@pytest.fixture
def catalog(router):
    return CatalogReader(router)


@pytest.fixture
def lifecycle(router, catalog):
    return LoanLifecycle(router, catalog)


@pytest.fixture
def service(catalog, lifecycle):
    return BookService(catalog, lifecycle)


@pytest.fixture
def library_data(primary, replica):
    """
    Small catalog written to the primary and replicated.

    Book 1 and 3 have authors (book 3 has two), book 2 has no isbn or date,
    book 4 has no author. Staff 1 and borrower "Bob" exist.
    """
    with primary.transaction() as s:
        norwegian = s.insert_book(
            "Norwegian Wood", "978-0-375-70402-4", date(1987, 9, 4), "A nostalgic story of loss"
        )
        s.link_author(norwegian, s.insert_author("Haruki Murakami"))

        kokoro = s.insert_book("Kokoro")
        s.link_author(kokoro, s.insert_author("Natsume Soseki"))

        pragmatic = s.insert_book(
            "The Pragmatic Programmer", "978-0-201-61622-4", date(1999, 10, 20), "Journey to mastery"
        )
        s.link_author(pragmatic, s.insert_author("Andrew Hunt"))
        s.link_author(pragmatic, s.insert_author("David Thomas"))

        manuscript = s.insert_book("Untitled Manuscript", "", None, "Draft pages")

        staff_id = s.insert_staff("Front Desk Hanako")
        bob = s.upsert_borrower("Bob", "bob@example.com")

    replica.replicate_from(primary)
    return {
        "norwegian": norwegian,
        "kokoro": kokoro,
        "pragmatic": pragmatic,
        "manuscript": manuscript,
        "staff": staff_id,
        "bob": bob,
    }
