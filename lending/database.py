"""Database layer for the lending catalog."""
import psycopg2
from psycopg2 import errors, pool
from psycopg2.extras import RealDictCursor
from contextlib import contextmanager
from datetime import date, datetime
from typing import Optional, List, Dict, Any, Iterator
import logging
import threading

from lending.errors import already_loaned, internal_error
from lending.models import LOAN_STATUS_LOANED, LOAN_STATUS_RETURNED, LOAN_STATUSES

logger = logging.getLogger(__name__)

ACTIVE_LOAN_INDEX = "uq_loan_active_book"
LOAN_STATUS_VALUES = ", ".join(f"'{status}'" for status in LOAN_STATUSES)

SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS book (
        id SERIAL PRIMARY KEY,
        title TEXT NOT NULL,
        isbn VARCHAR(32),
        published DATE,
        description TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS author (
        id SERIAL PRIMARY KEY,
        name TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS book_author (
        id SERIAL PRIMARY KEY,
        book_id INTEGER NOT NULL REFERENCES book(id) ON DELETE CASCADE,
        author_id INTEGER NOT NULL REFERENCES author(id) ON DELETE CASCADE,
        UNIQUE (book_id, author_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS borrower (
        id SERIAL PRIMARY KEY,
        name TEXT NOT NULL UNIQUE,
        email TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS staff (
        id SERIAL PRIMARY KEY,
        name TEXT NOT NULL,
        role VARCHAR(32) NOT NULL DEFAULT 'clerk'
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS loan (
        id SERIAL PRIMARY KEY,
        book_id INTEGER NOT NULL REFERENCES book(id),
        borrower_id INTEGER NOT NULL REFERENCES borrower(id),
        staff_id INTEGER REFERENCES staff(id),
        loaned_at TIMESTAMPTZ NOT NULL,
        due_at TIMESTAMPTZ,
        returned_at TIMESTAMPTZ,
        status VARCHAR(16) NOT NULL DEFAULT '{LOAN_STATUS_LOANED}'
            CHECK (status IN ({LOAN_STATUS_VALUES}))
    )
    """,
    # Storage-level backstop: one active loan per book
    f"""
    CREATE UNIQUE INDEX IF NOT EXISTS {ACTIVE_LOAN_INDEX}
    ON loan (book_id) WHERE returned_at IS NULL
    """,
    "CREATE INDEX IF NOT EXISTS idx_loan_book ON loan (book_id)",
    "CREATE INDEX IF NOT EXISTS idx_book_author_book ON book_author (book_id, id)",
]

BOOK_SELECT = """
    SELECT b.id, b.title, b.isbn, b.published, b.description,
           (SELECT a.name
              FROM book_author ba
              JOIN author a ON a.id = ba.author_id
             WHERE ba.book_id = b.id
             ORDER BY ba.id
             LIMIT 1) AS author,
           l.id AS loan_id, l.borrower_id, br.name AS borrower_name,
           s.name AS staff_name, l.loaned_at, l.due_at, l.status AS loan_status
    FROM book b
    LEFT JOIN loan l ON l.book_id = b.id AND l.returned_at IS NULL
    LEFT JOIN borrower br ON br.id = l.borrower_id
    LEFT JOIN staff s ON s.id = l.staff_id
"""

SEARCH_FILTER = """
    WHERE b.title ILIKE %(pattern)s
       OR b.isbn ILIKE %(pattern)s
       OR b.description ILIKE %(pattern)s
       OR EXISTS (
            SELECT 1
              FROM book_author ba
              JOIN author a ON a.id = ba.author_id
             WHERE ba.book_id = b.id AND a.name ILIKE %(pattern)s
       )
"""


def like_pattern(query: str) -> str:
    """Build a substring LIKE pattern with wildcards in the query escaped."""
    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def has_query(query: Optional[str]) -> bool:
    return bool(query and query.strip())


class Session:
    """
    Operations the lending core needs against one connection.

    A session is either transaction-scoped (``Database.transaction``) or
    autocommit (``Database.session``); the operations are the same.
    Book rows are dictionaries with the keys ``id, title, isbn, published,
    description, author, loan_id, borrower_id, borrower_name, staff_name,
    loaned_at, due_at, loan_status``.
    """

    def __init__(self, cursor):
        self.cursor = cursor

    def create_schema(self):
        """Create database tables if they don't exist."""
        for statement in SCHEMA_STATEMENTS:
            self.cursor.execute(statement)

    # Books

    def fetch_books(
        self,
        query: Optional[str] = None,
        offset: int = 0,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Fetch book rows ordered by id.

        Args:
            query: Optional case-insensitive substring filter
            offset: Rows to skip
            limit: Maximum rows (None for all)

        Returns:
            List of book rows
        """
        params: Dict[str, Any] = {"offset": offset, "limit": limit}
        sql = BOOK_SELECT
        if has_query(query):
            sql += SEARCH_FILTER
            params["pattern"] = like_pattern(query)
        sql += " ORDER BY b.id LIMIT %(limit)s OFFSET %(offset)s"

        self.cursor.execute(sql, params)
        return [dict(row) for row in self.cursor.fetchall()]

    def count_books(self, query: Optional[str] = None) -> int:
        """Count books, optionally filtered like ``fetch_books``."""
        if has_query(query):
            self.cursor.execute(
                "SELECT COUNT(*) AS total FROM book b" + SEARCH_FILTER,
                {"pattern": like_pattern(query)}
            )
        else:
            self.cursor.execute("SELECT COUNT(*) AS total FROM book")
        return self.cursor.fetchone()["total"]

    def fetch_book(self, book_id: int) -> Optional[Dict[str, Any]]:
        """Get a single book row by ID."""
        self.cursor.execute(BOOK_SELECT + " WHERE b.id = %(id)s", {"id": book_id})
        row = self.cursor.fetchone()
        return dict(row) if row else None

    def book_exists(self, book_id: int) -> bool:
        self.cursor.execute("SELECT 1 FROM book WHERE id = %s", (book_id,))
        return self.cursor.fetchone() is not None

    def insert_book(
        self,
        title: str,
        isbn: Optional[str] = None,
        published: Optional[date] = None,
        description: Optional[str] = None
    ) -> int:
        self.cursor.execute("""
            INSERT INTO book (title, isbn, published, description)
            VALUES (%s, %s, %s, %s)
            RETURNING id
        """, (title, isbn, published, description))
        return self.cursor.fetchone()["id"]

    def insert_author(self, name: str) -> int:
        self.cursor.execute("INSERT INTO author (name) VALUES (%s) RETURNING id", (name,))
        return self.cursor.fetchone()["id"]

    def link_author(self, book_id: int, author_id: int):
        self.cursor.execute("""
            INSERT INTO book_author (book_id, author_id) VALUES (%s, %s)
            ON CONFLICT (book_id, author_id) DO NOTHING
        """, (book_id, author_id))

    # Loans

    def find_active_loan(self, book_id: int) -> Optional[Dict[str, Any]]:
        """Find the loan row for a book whose returned_at is NULL."""
        self.cursor.execute("""
            SELECT id, book_id, borrower_id, staff_id, loaned_at, due_at,
                   returned_at, status
            FROM loan
            WHERE book_id = %s AND returned_at IS NULL
            LIMIT 1
        """, (book_id,))
        row = self.cursor.fetchone()
        return dict(row) if row else None

    def insert_loan(
        self,
        book_id: int,
        borrower_id: int,
        loaned_at: datetime,
        staff_id: Optional[int] = None,
        due_at: Optional[datetime] = None,
        returned_at: Optional[datetime] = None,
        status: str = LOAN_STATUS_LOANED
    ) -> int:
        """
        Insert a loan row.

        Raises:
            LibraryError(ALREADY_LOANED): the active-loan index rejected the row
        """
        try:
            self.cursor.execute("""
                INSERT INTO loan (
                    book_id, borrower_id, staff_id, loaned_at, due_at,
                    returned_at, status
                ) VALUES (%s, %s, %s, %s, %s, %s, %s)
                RETURNING id
            """, (book_id, borrower_id, staff_id, loaned_at, due_at, returned_at, status))
        except errors.UniqueViolation as e:
            if e.diag.constraint_name == ACTIVE_LOAN_INDEX:
                raise already_loaned() from e
            raise
        return self.cursor.fetchone()["id"]

    def close_loan(
        self,
        loan_id: int,
        returned_at: datetime,
        status: str = LOAN_STATUS_RETURNED
    ):
        self.cursor.execute("""
            UPDATE loan SET returned_at = %s, status = %s WHERE id = %s
        """, (returned_at, status, loan_id))

    # Borrowers and staff

    def upsert_borrower(self, name: str, email: Optional[str] = None) -> int:
        """Atomically find or create a borrower by name, returning its id."""
        # The no-op update makes RETURNING yield the existing row on conflict
        self.cursor.execute("""
            INSERT INTO borrower (name, email) VALUES (%s, %s)
            ON CONFLICT (name) DO UPDATE SET name = EXCLUDED.name
            RETURNING id
        """, (name, email))
        return self.cursor.fetchone()["id"]

    def find_borrower(self, borrower_id: int) -> Optional[Dict[str, Any]]:
        self.cursor.execute(
            "SELECT id, name, email FROM borrower WHERE id = %s", (borrower_id,)
        )
        row = self.cursor.fetchone()
        return dict(row) if row else None

    def find_staff(self, staff_id: int) -> Optional[Dict[str, Any]]:
        self.cursor.execute("SELECT id, name, role FROM staff WHERE id = %s", (staff_id,))
        row = self.cursor.fetchone()
        return dict(row) if row else None

    def insert_staff(self, name: str, role: str = "clerk") -> int:
        self.cursor.execute(
            "INSERT INTO staff (name, role) VALUES (%s, %s) RETURNING id", (name, role)
        )
        return self.cursor.fetchone()["id"]

    def get_stats(self) -> Dict[str, int]:
        """Get database statistics."""
        self.cursor.execute("""
            SELECT
                (SELECT COUNT(*) FROM book) AS total_books,
                (SELECT COUNT(*) FROM loan WHERE returned_at IS NULL) AS active_loans,
                (SELECT COUNT(*) FROM loan) AS total_loans,
                (SELECT COUNT(*) FROM borrower) AS borrowers,
                (SELECT COUNT(*) FROM staff) AS staff
        """)
        return dict(self.cursor.fetchone())


class Database:
    """PostgreSQL store handle with connection pooling."""

    def __init__(
        self,
        connection_string: str,
        min_conn: int = 1,
        max_conn: int = 10,
        name: str = "database"
    ):
        """
        Configure a store handle. No connection is opened until ``connect``.

        Args:
            connection_string: PostgreSQL connection string
            min_conn: Minimum connections in pool
            max_conn: Maximum connections in pool
            name: Label used in log messages
        """
        self.connection_string = connection_string
        self.min_conn = min_conn
        self.max_conn = max_conn
        self.name = name
        self.connection_pool = None
        # ThreadedConnectionPool raises PoolError instead of waiting when exhausted
        self._slots = threading.BoundedSemaphore(max_conn)

    def connect(self):
        """Create the connection pool and verify the server answers."""
        if self.connection_pool:
            return
        connection_pool = pool.ThreadedConnectionPool(
            self.min_conn,
            self.max_conn,
            self.connection_string
        )
        conn = connection_pool.getconn()
        try:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
            conn.rollback()
        except psycopg2.Error:
            connection_pool.putconn(conn)
            connection_pool.closeall()
            raise
        connection_pool.putconn(conn)
        self.connection_pool = connection_pool
        logger.info(f"Database connection pool created successfully ({self.name})")

    def _getconn(self):
        """Check out a connection, waiting while all max_conn are in use."""
        if not self.connection_pool:
            raise internal_error(f"Database {self.name} is not connected")
        self._slots.acquire()
        try:
            return self.connection_pool.getconn()
        except Exception:
            self._slots.release()
            raise

    def _putconn(self, conn):
        try:
            if self.connection_pool:
                self.connection_pool.putconn(conn)
        finally:
            self._slots.release()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Run a block inside one transaction.

        Commits when the block finishes, rolls back and re-raises on error.
        """
        conn = self._getconn()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                yield Session(cur)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._putconn(conn)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Run a block in autocommit mode; each statement commits on its own."""
        conn = self._getconn()
        conn.autocommit = True
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                yield Session(cur)
        finally:
            conn.autocommit = False
            self._putconn(conn)

    def close(self):
        """Close all connections in the pool."""
        if self.connection_pool:
            self.connection_pool.closeall()
            self.connection_pool = None
            logger.info(f"Database connection pool closed ({self.name})")

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
