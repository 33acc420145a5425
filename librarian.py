#!/usr/bin/env python3
"""Librarian CLI - catalog lookup, checkout and return."""
import argparse
import asyncio
import json
import sys
from typing import List

from tabulate import tabulate
from lending.app import Library, open_library
from lending.config import Config
from lending.errors import error_response
from lending.models import Book
from lending.seed import seed_library
from lending.validators import build_checkout_options
import logging

logger = logging.getLogger(__name__)


def _truncate(text: str, width: int) -> str:
    return text[:width] + "..." if len(text) > width else text


def display_books(books: List[Book], format_type: str):
    """Display books in specified format."""
    if format_type == "table":
        headers = ["ID", "Title", "Author", "Published", "Status", "Borrower", "Due"]
        rows = [
            [
                book.id,
                _truncate(book.title, 40),
                _truncate(book.author, 25),
                book.published or "Unknown",
                "available" if book.available else book.current_loan.status,
                book.current_loan.borrower if book.current_loan else "",
                book.current_loan.due_at if book.current_loan else ""
            ]
            for book in books
        ]
        print("\n" + tabulate(rows, headers=headers, tablefmt="grid"))

    elif format_type == "json":
        print(json.dumps([book.to_dict() for book in books], indent=2, ensure_ascii=False))

    elif format_type == "compact":
        for book in books:
            marker = " " if book.available else "*"
            print(f"{marker} {book.id}. {book.title} - {book.author}")


def display_page(listing, format_type: str):
    display_books(listing.items, format_type)
    if format_type != "json":
        print(f"\nPage {listing.page} ({listing.per_page} per page), {listing.total} books total\n")


async def list_books(args, library: Library):
    listing = await library.service.list_all_books(args.page, args.per_page)
    display_page(listing, args.format)


async def search_books(args, library: Library):
    listing = await library.service.list_books(args.query, args.page, args.per_page)
    display_page(listing, args.format)


async def show_book(args, library: Library):
    book = await library.service.get_book_by_id(args.id)
    display_books([book], args.format)
    if book.description and args.format == "table":
        print(f"\n{book.description}\n")


async def checkout_book(args, library: Library):
    body = {
        "borrowerId": args.borrower_id,
        "borrowerName": args.borrower_name,
        "borrowerEmail": args.email,
        "staffId": args.staff_id,
        "dueAt": args.due,
    }
    options = build_checkout_options(args.id, body)
    book = await library.service.checkout_book(**options)
    logger.info(f"✅ Checked out '{book.title}' to {book.current_loan.borrower}")
    display_books([book], args.format)


async def return_book(args, library: Library):
    book = await library.service.return_book(args.id)
    logger.info(f"✅ Returned '{book.title}'")
    display_books([book], args.format)


async def show_stats(args, library: Library):
    """Show database statistics."""
    stats = await library.router.query_on_replica(lambda s: s.get_stats())

    print("\n" + "=" * 50)
    print("LIBRARY STATISTICS")
    print("=" * 50)
    print(f"Books in catalog: {stats['total_books']}")
    print(f"Active loans: {stats['active_loans']}")
    print(f"Loans recorded: {stats['total_loans']}")
    print(f"Borrowers: {stats['borrowers']}")
    print(f"Staff: {stats['staff']}")
    print("=" * 50 + "\n")


async def init_db(args, library: Library):
    logger.info("✅ Schema is ready")


async def seed_db(args, library: Library):
    created = await seed_library(library.router, total_books=args.books)
    logger.info(f"✅ Seeded {created} books")


COMMANDS = {
    "init-db": init_db,
    "seed": seed_db,
    "list": list_books,
    "search": search_books,
    "show": show_book,
    "checkout": checkout_book,
    "return": return_book,
    "stats": show_stats,
}


async def run(args, config: Config):
    init_schema = args.command in ("init-db", "seed")
    async with open_library(config, init_schema=init_schema) as library:
        await COMMANDS[args.command](args, library)


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Librarian - book lending CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Prepare and seed a development database
  %(prog)s seed --books 40

  # Search the catalog
  %(prog)s search "murakami" --per-page 5

  # Lend a book and take it back
  %(prog)s checkout 3 --borrower-name Alice --staff-id 1 --due 2030-01-31
  %(prog)s return 3
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    subparsers.add_parser("init-db", help="Create database tables")

    seed_parser = subparsers.add_parser("seed", help="Seed a demo dataset")
    seed_parser.add_argument("--books", type=int, default=40, help="Catalog size (default: 40)")

    for name, help_text in (("list", "List books"), ("search", "Search books")):
        page_parser = subparsers.add_parser(name, help=help_text)
        if name == "search":
            page_parser.add_argument("query", help="Title, ISBN, description or author text")
        page_parser.add_argument("--page", type=int, default=1, help="Page number (default: 1)")
        page_parser.add_argument("--per-page", type=int, default=None, help="Books per page (default: 15)")
        page_parser.add_argument("--format", choices=["table", "json", "compact"], default="table", help="Output format")

    show_parser = subparsers.add_parser("show", help="Show one book")
    show_parser.add_argument("id", help="Book id")
    show_parser.add_argument("--format", choices=["table", "json", "compact"], default="table", help="Output format")

    checkout_parser = subparsers.add_parser("checkout", help="Lend a book")
    checkout_parser.add_argument("id", help="Book id")
    checkout_parser.add_argument("--borrower-id", help="Existing borrower id")
    checkout_parser.add_argument("--borrower-name", help="Borrower name (created if unknown)")
    checkout_parser.add_argument("--email", help="Borrower email for new borrowers")
    checkout_parser.add_argument("--staff-id", help="Staff member handling the loan")
    checkout_parser.add_argument("--due", help="Due date (YYYY-MM-DD)")
    checkout_parser.add_argument("--format", choices=["table", "json", "compact"], default="table", help="Output format")

    return_parser = subparsers.add_parser("return", help="Return a book")
    return_parser.add_argument("id", help="Book id")
    return_parser.add_argument("--format", choices=["table", "json", "compact"], default="table", help="Output format")

    subparsers.add_parser("stats", help="Show database statistics")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    config = Config()

    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    try:
        asyncio.run(run(args, config))

    except KeyboardInterrupt:
        logger.info("\n⚠️  Interrupted by user")
        sys.exit(0)
    except Exception as e:
        status, body = error_response(e)
        print(f"❌ [{status}] {body['message']}", file=sys.stderr)
        if status >= 500:
            logger.error("Unexpected failure", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
