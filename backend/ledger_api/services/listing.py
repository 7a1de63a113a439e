import math
from typing import Any

SEARCH_MAX_LEN = 64


def build_search_pattern(query: str | None) -> str | None:
    if not query:
        return None
    cleaned = query.strip()
    if not cleaned:
        return None
    cleaned = cleaned[:SEARCH_MAX_LEN]
    escaped = cleaned.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def visibility_clause(alias: str, trashed: bool) -> str:
    if trashed:
        return f"{alias}.deleted_at IS NOT NULL"
    return f"{alias}.deleted_at IS NULL"


def order_clause(alias: str, sort_by: str | None, sort_order: str | None, columns: dict[str, str]) -> str:
    """ORDER BY for a whitelisted sort key; id always breaks ties."""
    if sort_by and sort_order:
        column = columns.get(sort_by)
        if column is None:
            raise ValueError(f"Unsupported sort key {sort_by!r}")
        direction = "ASC" if sort_order == "asc" else "DESC"
        if column == "id":
            return f"ORDER BY {alias}.id {direction}"
        return f"ORDER BY {alias}.{column} {direction}, {alias}.id ASC"
    return f"ORDER BY {alias}.id ASC"


def page_meta(total: int, per_page: int, page: int) -> dict[str, int]:
    return {
        "total": total,
        "per_page": per_page,
        "current_page": page,
        "last_page": max(1, math.ceil(total / per_page)),
    }


def fetch_page(
    cur,
    *,
    columns_sql: str,
    from_sql: str,
    where: list[str],
    params: list[Any],
    order_sql: str,
    per_page: int,
    page: int,
) -> dict[str, Any]:
    where_sql = " AND ".join(where)
    cur.execute(f"SELECT COUNT(*) AS total FROM {from_sql} WHERE {where_sql}", params)
    row = cur.fetchone() or {}
    total = int(row.get("total") or 0)

    offset = (page - 1) * per_page
    rows: list[dict[str, Any]] = []
    if offset < total:
        cur.execute(
            f"SELECT {columns_sql} FROM {from_sql} WHERE {where_sql} {order_sql} LIMIT %s OFFSET %s",
            [*params, per_page, offset],
        )
        rows = cur.fetchall()
    return {"data": rows, **page_meta(total, per_page, page)}
