import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import HTTPException, Request
from passlib.hash import bcrypt

from ledger_api.core.config import settings
from ledger_api.core.errors import ValidationFailed
from ledger_api.core.rate_limit import RateRule
from ledger_api.db.pool import db_conn
from ledger_api.services.state import rate_limiter

logger = logging.getLogger(__name__)

TOKEN_PREFIX = "plk_"
BCRYPT_MAX_BYTES = 72

REGISTER_BY_IP = RateRule("register:ip", settings.register_rate_limit, settings.register_rate_window)
LOGIN_BY_IP = RateRule("login:ip", settings.login_rate_limit, settings.login_rate_window)
LOGIN_BY_EMAIL = RateRule("login:email", settings.login_user_rate_limit, settings.login_rate_window)


def get_client_ip(req: Request) -> str:
    forwarded = req.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = req.headers.get("x-real-ip", "")
    if real_ip:
        return real_ip.strip()
    if req.client:
        return req.client.host
    return "unknown"


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def password_problems(password: str) -> list[str]:
    problems = []
    if len(password) < settings.password_min_len:
        problems.append(f"The password must be at least {settings.password_min_len} characters.")
    if len(password.encode("utf-8")) > BCRYPT_MAX_BYTES:
        problems.append(f"The password must not be longer than {BCRYPT_MAX_BYTES} bytes.")
    return problems


def hash_password(password: str) -> str:
    problems = password_problems(password)
    if problems:
        raise ValidationFailed({"password": problems})
    return bcrypt.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if len(password.encode("utf-8")) > BCRYPT_MAX_BYTES:
        return False
    return bcrypt.verify(password, password_hash)


def issue_token(cur, user_id: int) -> str:
    """Create a bearer token for ``user_id``; only its sha256 is stored."""
    plain = f"{TOKEN_PREFIX}{secrets.token_urlsafe(32)}"
    now = datetime.now(timezone.utc)
    cur.execute(
        """
        INSERT INTO api_tokens (user_id, token_hash, created_at, expires_at)
        VALUES (%s, %s, %s, %s)
        """,
        (user_id, hash_token(plain), now, now + timedelta(hours=settings.token_ttl_hours)),
    )
    return plain


def revoke_token(cur, token: str) -> None:
    cur.execute(
        "UPDATE api_tokens SET revoked_at=%s WHERE token_hash=%s AND revoked_at IS NULL",
        (datetime.now(timezone.utc), hash_token(token)),
    )


def parse_bearer_token(req: Request) -> str:
    header = req.headers.get("authorization", "")
    parts = header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        raise HTTPException(status_code=401, detail="Missing bearer token", headers={"WWW-Authenticate": "Bearer"})
    return parts[1].strip()


def get_user_by_token(token: str) -> dict[str, Any]:
    token_hash = hash_token(token)
    now = datetime.now(timezone.utc)
    with db_conn() as conn, conn.cursor() as cur:
        cur.execute(
            """
            SELECT u.id, u.name, u.email, u.created_at, u.updated_at
            FROM api_tokens k
            JOIN users u ON u.id=k.user_id
            WHERE k.token_hash=%s
              AND k.revoked_at IS NULL
              AND k.expires_at > %s
              AND u.deleted_at IS NULL
            """,
            (token_hash, now),
        )
        user = cur.fetchone()
        if not user:
            raise HTTPException(
                status_code=401,
                detail="Invalid or expired token",
                headers={"WWW-Authenticate": "Bearer"},
            )
        cur.execute("UPDATE api_tokens SET last_used_at=%s WHERE token_hash=%s", (now, token_hash))
        conn.commit()
    return user


def require_user(req: Request) -> int:
    """Resolve the caller id from the bearer token, or fail with 401."""
    return int(get_user_by_token(parse_bearer_token(req))["id"])


def too_many_attempts(detail: str, wait_seconds: int) -> HTTPException:
    return HTTPException(status_code=429, detail=detail, headers={"Retry-After": str(wait_seconds)})


def enforce_register_rate_limit(req: Request) -> None:
    client_ip = get_client_ip(req)
    wait = rate_limiter.attempt(REGISTER_BY_IP, client_ip)
    if wait:
        logger.warning("Registration rate limit hit for %s", client_ip)
        raise too_many_attempts("Too many registration attempts. Try again later.", wait)


def enforce_login_rate_limit(req: Request, email: str) -> None:
    client_ip = get_client_ip(req)
    for rule, subject in ((LOGIN_BY_IP, client_ip), (LOGIN_BY_EMAIL, email)):
        wait = rate_limiter.attempt(rule, subject)
        if wait:
            logger.warning("Login rate limit hit for %s %s", rule.scope, subject)
            raise too_many_attempts("Too many login attempts. Try again later.", wait)


def clear_login_attempts(email: str) -> None:
    rate_limiter.reset(LOGIN_BY_EMAIL, email)


def authenticate(cur, email: str, password: str) -> dict[str, Any] | None:
    cur.execute(
        """
        SELECT id, name, email, password_hash, created_at, updated_at
        FROM users
        WHERE lower(email)=lower(%s) AND deleted_at IS NULL
        """,
        (email,),
    )
    user = cur.fetchone()
    if not user or not verify_password(password, user["password_hash"]):
        logger.info("Failed login for %s", email)
        return None
    user.pop("password_hash", None)
    return user
