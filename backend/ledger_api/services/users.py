import logging
from typing import Any

from ledger_api.core.errors import NotFound, ValidationFailed
from ledger_api.models.filters import UserListFilters
from ledger_api.services.auth import hash_password, password_problems
from ledger_api.services.ledger import clean_name, now_utc
from ledger_api.services.listing import build_search_pattern, fetch_page, order_clause, visibility_clause

logger = logging.getLogger(__name__)

USER_COLUMNS = "u.id, u.name, u.email, u.created_at, u.updated_at, u.deleted_at"
USER_RETURNING = "RETURNING id, name, email, created_at, updated_at, deleted_at"
SORT_COLUMNS = {"id": "id", "name": "name"}
EMAIL_TAKEN = "The email has already been taken."


def email_taken(cur, email: str, exclude_id: int | None = None) -> bool:
    sql = "SELECT 1 FROM users WHERE lower(email)=lower(%s)"
    params: list[Any] = [email]
    if exclude_id is not None:
        sql += " AND id<>%s"
        params.append(exclude_id)
    cur.execute(sql, params)
    return cur.fetchone() is not None


def checked_password_hash(cur, email: str, password: str, exclude_id: int | None = None) -> str:
    """Hash the password once both the password rules and email uniqueness pass."""
    errors: dict[str, list[str]] = {}
    problems = password_problems(password)
    if problems:
        errors["password"] = problems
    if email_taken(cur, email, exclude_id):
        errors["email"] = [EMAIL_TAKEN]
    if errors:
        raise ValidationFailed(errors)
    return hash_password(password)


def list_users(cur, filters: UserListFilters, trashed: bool = False) -> dict[str, Any]:
    where = [visibility_clause("u", trashed)]
    params: list[Any] = []
    pattern = build_search_pattern(filters.search)
    if pattern:
        where.append("u.name ILIKE %s")
        params.append(pattern)
    return fetch_page(
        cur,
        columns_sql=USER_COLUMNS,
        from_sql="users u",
        where=where,
        params=params,
        order_sql=order_clause("u", filters.sort_by, filters.sort_order, SORT_COLUMNS),
        per_page=filters.per_page,
        page=filters.page,
    )


def create_user(cur, name: str, email: str, password: str) -> dict[str, Any]:
    name = clean_name(name)
    password_hash = checked_password_hash(cur, email, password)
    cur.execute(
        f"""
        INSERT INTO users (name, email, password_hash)
        VALUES (%s, %s, %s)
        {USER_RETURNING}
        """,
        (name, email, password_hash),
    )
    user = cur.fetchone()
    logger.info("User %s created", user["id"])
    return user


def update_user(cur, user_id: int, name: str, email: str, password: str) -> dict[str, Any]:
    name = clean_name(name)
    password_hash = checked_password_hash(cur, email, password, exclude_id=user_id)
    cur.execute(
        f"""
        UPDATE users
        SET name=%s, email=%s, password_hash=%s, updated_at=%s
        WHERE id=%s AND deleted_at IS NULL
        {USER_RETURNING}
        """,
        (name, email, password_hash, now_utc(), user_id),
    )
    user = cur.fetchone()
    if not user:
        raise NotFound("User not found")
    return user


def soft_delete_user(cur, caller_id: int, user_id: int) -> dict[str, Any]:
    if user_id == caller_id:
        raise ValidationFailed.single("id", "You cannot delete your own account.")
    cur.execute(
        f"""
        UPDATE users
        SET deleted_at=%s
        WHERE id=%s AND deleted_at IS NULL
        {USER_RETURNING}
        """,
        (now_utc(), user_id),
    )
    user = cur.fetchone()
    if not user:
        raise NotFound("User not found")
    logger.info("User %s moved to trash by user %s", user_id, caller_id)
    return user


def restore_user(cur, user_id: int) -> dict[str, Any]:
    cur.execute(
        f"""
        UPDATE users
        SET deleted_at=NULL
        WHERE id=%s AND deleted_at IS NOT NULL
        {USER_RETURNING}
        """,
        (user_id,),
    )
    user = cur.fetchone()
    if not user:
        raise NotFound("User not found in trash")
    logger.info("User %s restored", user_id)
    return user


def restore_all_users(cur) -> int:
    cur.execute("UPDATE users SET deleted_at=NULL WHERE deleted_at IS NOT NULL")
    count = max(0, cur.rowcount or 0)
    logger.info("Restored %s trashed users", count)
    return count


def purge_user(cur, user_id: int) -> dict[str, Any]:
    cur.execute(
        f"""
        DELETE FROM users
        WHERE id=%s AND deleted_at IS NOT NULL
        {USER_RETURNING}
        """,
        (user_id,),
    )
    user = cur.fetchone()
    if not user:
        raise NotFound("User not found in trash")
    logger.info("User %s purged", user_id)
    return user


def purge_all_users(cur) -> int:
    cur.execute("DELETE FROM users WHERE deleted_at IS NOT NULL")
    count = max(0, cur.rowcount or 0)
    logger.info("Purged %s trashed users", count)
    return count
