"""Input validation and normalization for service callers."""
from datetime import date, datetime, timezone
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from lending.errors import validation_error

DEFAULT_PAGE = 1
DEFAULT_PER_PAGE = 15
MAX_PER_PAGE = 100

MIN_QUERY_LENGTH = 3
MAX_QUERY_LENGTH = 100


def validate_search_query(query: Optional[str]):
    """
    Business rules for search terms.

    An empty query is allowed (lists everything); otherwise it must be
    between MIN_QUERY_LENGTH and MAX_QUERY_LENGTH characters.
    """
    if not query:
        return
    trimmed = query.strip()
    if 0 < len(trimmed) < MIN_QUERY_LENGTH:
        raise validation_error(
            f"Query parameter must be at least {MIN_QUERY_LENGTH} characters."
        )
    if len(trimmed) > MAX_QUERY_LENGTH:
        raise validation_error(
            f"Query parameter is too long. Maximum length is {MAX_QUERY_LENGTH} characters."
        )


def normalize_pagination(
    page: Optional[int],
    per_page: Optional[int],
    default_per_page: int = DEFAULT_PER_PAGE,
    max_per_page: int = MAX_PER_PAGE
) -> Tuple[int, int]:
    """
    Clamp paging parameters.

    Returns:
        (page, per_page) with page >= 1 and 1 <= per_page <= max_per_page
    """
    safe_page = page if page and page > 0 else DEFAULT_PAGE
    safe_per_page = min(per_page, max_per_page) if per_page and per_page > 0 else default_per_page
    return safe_page, safe_per_page


def parse_due_date(
    value: Union[str, date, datetime, None],
    today: Optional[date] = None
) -> Optional[date]:
    """
    Parse a due date and reject dates in the past.

    Args:
        value: ISO date or datetime string, date or datetime
        today: Reference date (defaults to the current UTC date)

    Returns:
        Date-only due date, or None when no value was given
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        due = value.astimezone(timezone.utc).date() if value.tzinfo else value.date()
    elif isinstance(value, date):
        due = value
    else:
        text = str(value).strip()
        try:
            if len(text) == 10:
                due = date.fromisoformat(text)
            else:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
                due = parsed.astimezone(timezone.utc).date() if parsed.tzinfo else parsed.date()
        except ValueError:
            raise validation_error("dueAt must be a valid date")

    reference = today or datetime.now(timezone.utc).date()
    if due < reference:
        raise validation_error("dueAt cannot be in the past")
    return due


def validate_checkout(
    borrower_id: Optional[int] = None,
    borrower_name: Optional[str] = None,
    staff_id: Optional[int] = None,
    due_at: Union[str, date, datetime, None] = None,
    today: Optional[date] = None
) -> Optional[date]:
    """
    Check checkout preconditions before opening a transaction.

    Returns:
        The parsed due date
    """
    if borrower_id is None and not borrower_name:
        raise validation_error("borrowerId or borrowerName is required")

    if staff_id is not None and (isinstance(staff_id, bool) or not isinstance(staff_id, int)):
        raise validation_error("staffId must be an integer")

    return parse_due_date(due_at, today=today)


def _coerce_int(value: Any, field_name: str) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise validation_error(f"{field_name} must be an integer")
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        raise validation_error(f"{field_name} must be an integer")


def build_checkout_options(book_id: str, body: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """
    Turn a loosely typed request body into checkout keyword arguments.

    Args:
        book_id: Target book id
        body: Mapping with borrowerId, borrowerName, borrowerEmail, staffId, dueAt

    Returns:
        Keyword arguments for ``BookService.checkout_book``
    """
    body = body or {}

    options: Dict[str, Any] = {"book_id": book_id}

    borrower_id = _coerce_int(body.get("borrowerId"), "borrowerId")
    if borrower_id is not None:
        options["borrower_id"] = borrower_id

    if body.get("borrowerName"):
        options["borrower_name"] = str(body["borrowerName"])
    if body.get("borrowerEmail"):
        options["borrower_email"] = str(body["borrowerEmail"])

    staff_id = _coerce_int(body.get("staffId"), "staffId")
    if staff_id is not None:
        options["staff_id"] = staff_id

    if body.get("dueAt"):
        options["due_at"] = body["dueAt"]

    if "borrower_id" not in options and "borrower_name" not in options:
        raise validation_error("borrowerId or borrowerName is required")

    return options
