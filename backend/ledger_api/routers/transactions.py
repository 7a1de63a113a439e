from typing import Any

from fastapi import APIRouter, Request

from ledger_api.db.pool import db_conn
from ledger_api.models.filters import Kind, WindowOptions, parse_highest, parse_list_filters, parse_window
from ledger_api.models.requests import TransactionCreateRequest, TransactionUpdateRequest
from ledger_api.routers.responses import ok
from ledger_api.services.auth import require_user
from ledger_api.services.ledger import (
    cache_get,
    cache_set,
    create_transaction,
    get_transaction,
    highest_amount,
    invalidate_user_cache,
    kind_summary,
    list_transactions,
    list_trash,
    net_total,
    purge_by_kind,
    purge_transaction,
    restore_by_kind,
    restore_transaction,
    soft_delete_transaction,
    summary_cache_key,
    update_transaction,
)
from ledger_api.services.windows import resolve_window

router = APIRouter(prefix="/transaction", tags=["transactions"])


def cached_kind_summary(caller_id: int, kind: str, options: WindowOptions) -> dict[str, Any]:
    date_range = resolve_window(options.window, options.start_date, options.end_date)
    key = summary_cache_key(caller_id, f"{kind}_summary", date_range)
    cached = cache_get(key)
    if cached is not None:
        return cached
    with db_conn() as conn, conn.cursor() as cur:
        report = kind_summary(cur, caller_id, kind, date_range)
    cache_set(key, report)
    return report


@router.get("")
def index(
    req: Request,
    search: str | None = None,
    kind: str | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    per_page: str | None = None,
    page: str | None = None,
):
    caller_id = require_user(req)
    filters = parse_list_filters(
        search=search,
        kind=kind,
        sort_by=sort_by,
        sort_order=sort_order,
        per_page=per_page,
        page=page,
    )
    with db_conn() as conn, conn.cursor() as cur:
        return ok("Transactions list", list_transactions(cur, caller_id, filters))


@router.post("")
def store(req: Request, payload: TransactionCreateRequest):
    caller_id = require_user(req)
    with db_conn() as conn, conn.cursor() as cur:
        row = create_transaction(cur, caller_id, payload.kind, payload.name, payload.amount)
        conn.commit()
    invalidate_user_cache(caller_id)
    return ok("Transaction has been successfully created", row)


@router.get("/income_summary")
def income_summary(
    req: Request,
    window: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
):
    caller_id = require_user(req)
    options = parse_window(window=window, start_date=start_date, end_date=end_date)
    report = cached_kind_summary(caller_id, "income", options)
    return ok("Income summary", report["results"], total=report["total"])


@router.get("/expense_summary")
def expense_summary(
    req: Request,
    window: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
):
    caller_id = require_user(req)
    options = parse_window(window=window, start_date=start_date, end_date=end_date)
    report = cached_kind_summary(caller_id, "expense", options)
    return ok("Expense summary", report["results"], total=report["total"])


@router.get("/highest")
def highest(
    req: Request,
    kind: str | None = None,
    window: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
):
    caller_id = require_user(req)
    options = parse_highest(kind=kind, window=window, start_date=start_date, end_date=end_date)
    date_range = resolve_window(options.window, options.start_date, options.end_date)
    with db_conn() as conn, conn.cursor() as cur:
        value = highest_amount(cur, caller_id, options.kind, date_range)
    return ok("Highest income" if options.kind == "income" else "Highest expense", value)


@router.get("/left")
def left(
    req: Request,
    window: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
):
    """Income minus expense for one window."""
    caller_id = require_user(req)
    options = parse_window(window=window, start_date=start_date, end_date=end_date)
    date_range = resolve_window(options.window, options.start_date, options.end_date)
    key = summary_cache_key(caller_id, "net", date_range)
    totals = cache_get(key)
    if totals is None:
        with db_conn() as conn, conn.cursor() as cur:
            totals = net_total(cur, caller_id, date_range)
        cache_set(key, totals)
    return ok("Left in the selected window", totals["net"], income=totals["income"], expense=totals["expense"])


@router.get("/trash")
def trash(
    req: Request,
    search: str | None = None,
    kind: str | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    per_page: str | None = None,
    page: str | None = None,
):
    caller_id = require_user(req)
    filters = parse_list_filters(
        search=search,
        kind=kind,
        sort_by=sort_by,
        sort_order=sort_order,
        per_page=per_page,
        page=page,
    )
    with db_conn() as conn, conn.cursor() as cur:
        return ok("Transactions trash list", list_trash(cur, caller_id, filters))


@router.post("/restore/{transaction_id:int}")
def restore(transaction_id: int, req: Request):
    caller_id = require_user(req)
    with db_conn() as conn, conn.cursor() as cur:
        row = restore_transaction(cur, caller_id, transaction_id)
        conn.commit()
    invalidate_user_cache(caller_id)
    return ok("Transaction has been successfully restored", row)


@router.post("/restores/{kind}")
def restores(kind: Kind, req: Request):
    caller_id = require_user(req)
    with db_conn() as conn, conn.cursor() as cur:
        count = restore_by_kind(cur, caller_id, kind)
        conn.commit()
    invalidate_user_cache(caller_id)
    return ok("Transactions have been successfully restored", {"kind": kind, "count": count})


@router.delete("/force_delete/{transaction_id:int}")
def force_delete(transaction_id: int, req: Request):
    caller_id = require_user(req)
    with db_conn() as conn, conn.cursor() as cur:
        row = purge_transaction(cur, caller_id, transaction_id)
        conn.commit()
    return ok("Transaction has been permanently deleted", row)


@router.delete("/force_deletes/{kind}")
def force_deletes(kind: Kind, req: Request):
    caller_id = require_user(req)
    with db_conn() as conn, conn.cursor() as cur:
        count = purge_by_kind(cur, caller_id, kind)
        conn.commit()
    return ok("Transactions have been permanently deleted", {"kind": kind, "count": count})


@router.get("/{transaction_id:int}")
def show(transaction_id: int, req: Request):
    caller_id = require_user(req)
    with db_conn() as conn, conn.cursor() as cur:
        return ok("Transaction detail", get_transaction(cur, caller_id, transaction_id))


@router.put("/{transaction_id:int}")
def update(transaction_id: int, req: Request, payload: TransactionUpdateRequest):
    caller_id = require_user(req)
    with db_conn() as conn, conn.cursor() as cur:
        row = update_transaction(cur, caller_id, transaction_id, payload.name, payload.amount)
        conn.commit()
    invalidate_user_cache(caller_id)
    return ok("Transaction has been successfully updated", row)


@router.delete("/{transaction_id:int}")
def destroy(transaction_id: int, req: Request):
    caller_id = require_user(req)
    with db_conn() as conn, conn.cursor() as cur:
        row = soft_delete_transaction(cur, caller_id, transaction_id)
        conn.commit()
    invalidate_user_cache(caller_id)
    return ok("Transaction has been successfully deleted", row)
