import logging

from fastapi import APIRouter, HTTPException, Request
from psycopg.errors import UniqueViolation

from ledger_api.core.errors import ValidationFailed
from ledger_api.db.pool import db_conn
from ledger_api.models.filters import parse_user_filters
from ledger_api.models.requests import LoginRequest, RegisterRequest, UserWriteRequest
from ledger_api.routers.responses import ok
from ledger_api.services.auth import (
    authenticate,
    clear_login_attempts,
    enforce_login_rate_limit,
    enforce_register_rate_limit,
    get_user_by_token,
    issue_token,
    parse_bearer_token,
    require_user,
    revoke_token,
)
from ledger_api.services.users import (
    EMAIL_TAKEN,
    create_user,
    list_users,
    purge_all_users,
    purge_user,
    restore_all_users,
    restore_user,
    soft_delete_user,
    update_user,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/user", tags=["users"])


def insert_user(payload: RegisterRequest | UserWriteRequest) -> dict:
    with db_conn() as conn, conn.cursor() as cur:
        try:
            user = create_user(cur, payload.name, payload.email, payload.password)
            conn.commit()
        except UniqueViolation:
            conn.rollback()
            raise ValidationFailed.single("email", EMAIL_TAKEN)
    return user


@router.post("/register")
def register(req: Request, payload: RegisterRequest):
    enforce_register_rate_limit(req)
    user = insert_user(payload)
    return ok("User has been successfully registered", user)


@router.post("/login")
def login(req: Request, payload: LoginRequest):
    enforce_login_rate_limit(req, payload.email)
    with db_conn() as conn, conn.cursor() as cur:
        user = authenticate(cur, payload.email, payload.password)
        if not user:
            raise HTTPException(status_code=401, detail="Invalid credentials")
        token = issue_token(cur, user["id"])
        conn.commit()
    clear_login_attempts(payload.email)
    logger.info("User %s logged in", user["id"])
    return ok("User has been successfully logged in", user, token=token, token_type="bearer")


@router.post("/logout")
def logout(req: Request):
    token = parse_bearer_token(req)
    user = get_user_by_token(token)
    with db_conn() as conn, conn.cursor() as cur:
        revoke_token(cur, token)
        conn.commit()
    logger.info("User %s logged out", user["id"])
    return ok("User has been successfully logged out")


@router.get("/me")
def me(req: Request):
    user = get_user_by_token(parse_bearer_token(req))
    return ok("User logged in", user)


@router.get("")
def index(
    req: Request,
    search: str | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    per_page: str | None = None,
    page: str | None = None,
):
    require_user(req)
    filters = parse_user_filters(search=search, sort_by=sort_by, sort_order=sort_order, per_page=per_page, page=page)
    with db_conn() as conn, conn.cursor() as cur:
        return ok("Users list", list_users(cur, filters))


@router.post("")
def store(req: Request, payload: UserWriteRequest):
    require_user(req)
    user = insert_user(payload)
    return ok("User has been successfully created", user)


@router.get("/trash")
def trash(
    req: Request,
    search: str | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    per_page: str | None = None,
    page: str | None = None,
):
    require_user(req)
    filters = parse_user_filters(search=search, sort_by=sort_by, sort_order=sort_order, per_page=per_page, page=page)
    with db_conn() as conn, conn.cursor() as cur:
        return ok("Users trash list", list_users(cur, filters, trashed=True))


@router.post("/restores")
def restores(req: Request):
    require_user(req)
    with db_conn() as conn, conn.cursor() as cur:
        count = restore_all_users(cur)
        conn.commit()
    return ok("Users have been successfully restored", {"count": count})


@router.post("/restore/{user_id:int}")
def restore(user_id: int, req: Request):
    require_user(req)
    with db_conn() as conn, conn.cursor() as cur:
        user = restore_user(cur, user_id)
        conn.commit()
    return ok("User has been successfully restored", user)


@router.delete("/force_deletes")
def force_deletes(req: Request):
    require_user(req)
    with db_conn() as conn, conn.cursor() as cur:
        count = purge_all_users(cur)
        conn.commit()
    return ok("Users have been permanently deleted", {"count": count})


@router.delete("/force_delete/{user_id:int}")
def force_delete(user_id: int, req: Request):
    require_user(req)
    with db_conn() as conn, conn.cursor() as cur:
        user = purge_user(cur, user_id)
        conn.commit()
    return ok("User has been permanently deleted", user)


@router.put("/{user_id:int}")
def update(user_id: int, req: Request, payload: UserWriteRequest):
    require_user(req)
    with db_conn() as conn, conn.cursor() as cur:
        try:
            user = update_user(cur, user_id, payload.name, payload.email, payload.password)
            conn.commit()
        except UniqueViolation:
            conn.rollback()
            raise ValidationFailed.single("email", EMAIL_TAKEN)
    return ok("User has been successfully updated", user)


@router.delete("/{user_id:int}")
def destroy(user_id: int, req: Request):
    caller_id = require_user(req)
    with db_conn() as conn, conn.cursor() as cur:
        user = soft_delete_user(cur, caller_id, user_id)
        conn.commit()
    return ok("User has been successfully deleted", user)
