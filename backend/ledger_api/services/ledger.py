import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from ledger_api.core.config import settings
from ledger_api.core.errors import NotFound, ValidationFailed
from ledger_api.models.filters import ListFilters
from ledger_api.services.listing import build_search_pattern, fetch_page, order_clause, visibility_clause
from ledger_api.services.state import summary_cache
from ledger_api.services.windows import DateRange

logger = logging.getLogger(__name__)

TX_COLUMNS = "t.id, t.user_id, t.kind, t.name, t.amount, t.created_at, t.updated_at, t.deleted_at"
TX_RETURNING = "RETURNING id, user_id, kind, name, amount, created_at, updated_at, deleted_at"
SORT_COLUMNS = {"id": "id", "amount": "amount"}


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def cache_get(key: str) -> Any | None:
    return summary_cache.get(key)


def cache_set(key: str, value: Any) -> None:
    summary_cache.set(key, value, settings.summary_cache_ttl)


def invalidate_user_cache(caller_id: int) -> None:
    summary_cache.invalidate_prefix(f"{caller_id}:")


def summary_cache_key(caller_id: int, report: str, date_range: DateRange | None) -> str:
    span = date_range.cache_key() if date_range is not None else "all"
    return f"{caller_id}:{report}:{span}"


def clean_name(name: str) -> str:
    """Trimmed label; blank names are rejected on create and update alike."""
    cleaned = name.strip()
    if not cleaned:
        raise ValidationFailed.single("name", "The name field must not be blank.")
    return cleaned


def to_decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def owner_scope(
    caller_id: int,
    *,
    trashed: bool = False,
    kind: str | None = None,
    date_range: DateRange | None = None,
    search: str | None = None,
) -> tuple[list[str], list[Any]]:
    """WHERE fragments for the caller's transactions in one visibility state.

    The owner predicate always comes first and is never optional.
    """
    where = ["t.user_id=%s", visibility_clause("t", trashed)]
    params: list[Any] = [caller_id]
    if kind:
        where.append("t.kind=%s")
        params.append(kind)
    if date_range is not None:
        where.append("(t.created_at AT TIME ZONE %s)::date BETWEEN %s AND %s")
        params.extend([settings.tz, date_range.start, date_range.end])
    pattern = build_search_pattern(search)
    if pattern:
        where.append("t.name ILIKE %s")
        params.append(pattern)
    return where, params


def list_transactions(cur, caller_id: int, filters: ListFilters, trashed: bool = False) -> dict[str, Any]:
    where, params = owner_scope(caller_id, trashed=trashed, kind=filters.kind, search=filters.search)
    return fetch_page(
        cur,
        columns_sql=TX_COLUMNS,
        from_sql="transactions t",
        where=where,
        params=params,
        order_sql=order_clause("t", filters.sort_by, filters.sort_order, SORT_COLUMNS),
        per_page=filters.per_page,
        page=filters.page,
    )


def list_trash(cur, caller_id: int, filters: ListFilters) -> dict[str, Any]:
    return list_transactions(cur, caller_id, filters, trashed=True)


def kind_total(cur, caller_id: int, kind: str, date_range: DateRange | None) -> Decimal:
    where, params = owner_scope(caller_id, kind=kind, date_range=date_range)
    cur.execute(
        f"SELECT COALESCE(SUM(t.amount), 0) AS total FROM transactions t WHERE {' AND '.join(where)}",
        params,
    )
    row = cur.fetchone() or {}
    return to_decimal(row.get("total"))


def kind_summary(cur, caller_id: int, kind: str, date_range: DateRange | None) -> dict[str, Any]:
    """Total and matching rows for one kind inside the window."""
    total = kind_total(cur, caller_id, kind, date_range)
    where, params = owner_scope(caller_id, kind=kind, date_range=date_range)
    cur.execute(
        f"""
        SELECT {TX_COLUMNS}
        FROM transactions t
        WHERE {' AND '.join(where)}
        ORDER BY t.created_at ASC, t.id ASC
        """,
        params,
    )
    return {"total": total, "results": cur.fetchall()}


def highest_amount(cur, caller_id: int, kind: str, date_range: DateRange | None) -> Decimal | None:
    where, params = owner_scope(caller_id, kind=kind, date_range=date_range)
    cur.execute(
        f"SELECT MAX(t.amount) AS highest FROM transactions t WHERE {' AND '.join(where)}",
        params,
    )
    row = cur.fetchone() or {}
    highest = row.get("highest")
    return None if highest is None else to_decimal(highest)


def net_total(cur, caller_id: int, date_range: DateRange | None) -> dict[str, Decimal]:
    income = kind_total(cur, caller_id, "income", date_range)
    expense = kind_total(cur, caller_id, "expense", date_range)
    return {"income": income, "expense": expense, "net": income - expense}


def create_transaction(cur, caller_id: int, kind: str, name: str, amount: Decimal) -> dict[str, Any]:
    name = clean_name(name)
    cur.execute(
        f"""
        INSERT INTO transactions (user_id, kind, name, amount)
        VALUES (%s, %s, %s, %s)
        {TX_RETURNING}
        """,
        (caller_id, kind, name, amount),
    )
    row = cur.fetchone()
    logger.info("Transaction %s (%s) created for user %s", row["id"], kind, caller_id)
    return row


def get_transaction(cur, caller_id: int, tx_id: int) -> dict[str, Any]:
    where, params = owner_scope(caller_id)
    cur.execute(
        f"SELECT {TX_COLUMNS} FROM transactions t WHERE t.id=%s AND {' AND '.join(where)}",
        [tx_id, *params],
    )
    row = cur.fetchone()
    if not row:
        raise NotFound("Transaction not found")
    return row


def update_transaction(
    cur,
    caller_id: int,
    tx_id: int,
    name: str | None = None,
    amount: Decimal | None = None,
) -> dict[str, Any]:
    if name is None and amount is None:
        message = "Either name or amount is required."
        raise ValidationFailed({"name": [message], "amount": [message]})
    if name is not None:
        name = clean_name(name)

    cur.execute(
        f"""
        UPDATE transactions
        SET name=COALESCE(%s, name),
            amount=COALESCE(%s, amount),
            updated_at=%s
        WHERE id=%s AND user_id=%s AND deleted_at IS NULL
        {TX_RETURNING}
        """,
        (name, amount, now_utc(), tx_id, caller_id),
    )
    row = cur.fetchone()
    if not row:
        raise NotFound("Transaction not found")
    return row


def soft_delete_transaction(cur, caller_id: int, tx_id: int) -> dict[str, Any]:
    cur.execute(
        f"""
        UPDATE transactions
        SET deleted_at=%s
        WHERE id=%s AND user_id=%s AND deleted_at IS NULL
        {TX_RETURNING}
        """,
        (now_utc(), tx_id, caller_id),
    )
    row = cur.fetchone()
    if not row:
        raise NotFound("Transaction not found")
    logger.info("Transaction %s moved to trash by user %s", tx_id, caller_id)
    return row


def restore_transaction(cur, caller_id: int, tx_id: int) -> dict[str, Any]:
    cur.execute(
        f"""
        UPDATE transactions
        SET deleted_at=NULL
        WHERE id=%s AND user_id=%s AND deleted_at IS NOT NULL
        {TX_RETURNING}
        """,
        (tx_id, caller_id),
    )
    row = cur.fetchone()
    if not row:
        raise NotFound("Transaction not found in trash")
    logger.info("Transaction %s restored by user %s", tx_id, caller_id)
    return row


def restore_by_kind(cur, caller_id: int, kind: str) -> int:
    cur.execute(
        """
        UPDATE transactions
        SET deleted_at=NULL
        WHERE user_id=%s AND kind=%s AND deleted_at IS NOT NULL
        """,
        (caller_id, kind),
    )
    count = max(0, cur.rowcount or 0)
    logger.info("Restored %s %s transactions for user %s", count, kind, caller_id)
    return count


def purge_transaction(cur, caller_id: int, tx_id: int) -> dict[str, Any]:
    cur.execute(
        f"""
        DELETE FROM transactions
        WHERE id=%s AND user_id=%s AND deleted_at IS NOT NULL
        {TX_RETURNING}
        """,
        (tx_id, caller_id),
    )
    row = cur.fetchone()
    if not row:
        raise NotFound("Transaction not found in trash")
    logger.info("Transaction %s purged by user %s", tx_id, caller_id)
    return row


def purge_by_kind(cur, caller_id: int, kind: str) -> int:
    cur.execute(
        """
        DELETE FROM transactions
        WHERE user_id=%s AND kind=%s AND deleted_at IS NOT NULL
        """,
        (caller_id, kind),
    )
    count = max(0, cur.rowcount or 0)
    logger.info("Purged %s trashed %s transactions for user %s", count, kind, caller_id)
    return count
