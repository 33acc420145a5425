"""Demo dataset for development databases."""
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List
import logging

from lending.database import Session
from lending.models import LOAN_STATUS_LOANED, LOAN_STATUS_OVERDUE, LOAN_STATUS_RETURNED
from lending.router import ConsistencyRouter

logger = logging.getLogger(__name__)

DEFAULT_TOTAL_BOOKS = 40
LOANED_BOOKS = 24

STAFF = [
    ("Front Desk Taro", "clerk"),
    ("Shelving Hanako", "clerk"),
    ("Head Librarian Ichiro", "manager"),
]

BORROWERS = [
    ("Taro Sato", "sato@example.local"),
    ("Hanako Suzuki", "suzuki@example.local"),
    ("Jiro Takahashi", "takahashi@example.local"),
    ("Saburo Tanaka", "tanaka@example.local"),
    ("Shiro Ito", "ito@example.local"),
    ("Satsuki Nakamura", "nakamura@example.local"),
    ("Mutsuko Kobayashi", "kobayashi@example.local"),
    ("Nanami Kato", "kato@example.local"),
    ("Yae Yoshida", "yoshida@example.local"),
    ("Kuro Yamamoto", "yamamoto@example.local"),
]

TITLES = [
    ("I Am a Cat", "Natsume Soseki"),
    ("Kokoro", "Natsume Soseki"),
    ("Botchan", "Natsume Soseki"),
    ("Rashomon", "Ryunosuke Akutagawa"),
    ("Snow Country", "Yasunari Kawabata"),
    ("Hear the Wind Sing", "Haruki Murakami"),
    ("Norwegian Wood", "Haruki Murakami"),
    ("1Q84", "Haruki Murakami"),
    ("No Longer Human", "Osamu Dazai"),
    ("Crime and Punishment", "Fyodor Dostoevsky"),
    ("One Hundred Years of Solitude", "Gabriel Garcia Marquez"),
    ("The Old Man and the Sea", "Ernest Hemingway"),
    ("The Alchemist", "Paulo Coelho"),
    ("Silence", "Shusaku Endo"),
    ("Convenience Store Woman", "Sayaka Murata"),
    ("The Housekeeper and the Professor", "Yoko Ogawa"),
    ("Confessions", "Kanae Minato"),
    ("Kafka on the Shore", "Haruki Murakami"),
    ("Do Androids Dream of Electric Sheep?", "Philip K. Dick"),
    ("Gone with the Wind", "Margaret Mitchell"),
    ("The Catcher in the Rye", "J. D. Salinger"),
    ("Oliver Twist", "Charles Dickens"),
    ("The Adventures of Sherlock Holmes", "Arthur Conan Doyle"),
    ("Moby-Dick", "Herman Melville"),
    ("Don Quixote", "Miguel de Cervantes"),
    ("The Great Gatsby", "F. Scott Fitzgerald"),
    ("The Brothers Karamazov", "Fyodor Dostoevsky"),
]


def _days_ago(now: datetime, days: int) -> datetime:
    return now - timedelta(days=days)


def _catalog_entries(start: int, count: int) -> List[Dict]:
    """Titles from the list first, synthesized ones once it runs out."""
    entries = []
    for i in range(start, start + count):
        if i < len(TITLES):
            title, author = TITLES[i]
        else:
            title, author = f"Generated Volume {i + 1}", f"Generated Author {i + 1}"
        entries.append({
            "title": title,
            "author": author,
            "isbn": f"978-4-0000-{1000 + i:04d}-{i % 10}",
            "published": date(2000 + (i % 20), (i % 12) + 1, (i % 26) + 1),
            "description": f"Description of {title} (generated)",
        })
    return entries


def seed_session(session: Session, total_books: int = DEFAULT_TOTAL_BOOKS) -> int:
    """
    Populate staff, borrowers, books and loans.

    Args:
        session: Primary session
        total_books: Desired number of books in the catalog

    Returns:
        Number of books created (0 when the catalog is already large enough)
    """
    existing = session.count_books()
    if existing >= total_books:
        logger.info(f"Catalog already has {existing} books, skipping seed")
        return 0

    staff_ids = [session.insert_staff(name, role) for name, role in STAFF]
    borrower_ids = [session.upsert_borrower(name, email) for name, email in BORROWERS]

    book_ids = []
    for entry in _catalog_entries(existing, total_books - existing):
        book_id = session.insert_book(
            entry["title"], entry["isbn"], entry["published"], entry["description"]
        )
        session.link_author(book_id, session.insert_author(entry["author"]))
        book_ids.append(book_id)

    now = datetime.now(timezone.utc)
    for i, book_id in enumerate(book_ids[:LOANED_BOOKS]):
        loan = {
            "book_id": book_id,
            "borrower_id": borrower_ids[i % len(borrower_ids)],
            "staff_id": staff_ids[i % len(staff_ids)],
        }
        if i % 3 == 0:
            session.insert_loan(
                loaned_at=_days_ago(now, 30 + i),
                due_at=_days_ago(now, 15 + i),
                returned_at=_days_ago(now, 10 + i),
                status=LOAN_STATUS_RETURNED,
                **loan
            )
        elif i % 3 == 1:
            session.insert_loan(
                loaned_at=_days_ago(now, 3 + i),
                due_at=now + timedelta(days=7 - (i % 7)),
                status=LOAN_STATUS_LOANED,
                **loan
            )
        else:
            session.insert_loan(
                loaned_at=_days_ago(now, 40 + i),
                due_at=_days_ago(now, 20 + i),
                status=LOAN_STATUS_OVERDUE,
                **loan
            )

    logger.info(f"Seeded {len(book_ids)} books")
    return len(book_ids)


async def seed_library(router: ConsistencyRouter, total_books: int = DEFAULT_TOTAL_BOOKS) -> int:
    """Seed inside one primary transaction; a failure leaves nothing behind."""
    return await router.transact_on_primary(lambda s: seed_session(s, total_books))
