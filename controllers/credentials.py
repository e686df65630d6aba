"""User registration, password verification and token issuance."""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timezone
from functools import lru_cache
from uuid import UUID

from litestar.exceptions import NotAuthorizedException
from litestar.security.jwt import Token
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config import AuthSettings
from controllers.errors import AuthError, DuplicateUser, InvalidCredentials, InvalidRequest
from models.user import User

logger = logging.getLogger(__name__)

_SCHEME = "pbkdf2_sha256"


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(password: str, iterations: int) -> str:
    """Hash a password with a random salt.

    Format: "pbkdf2_sha256$<iterations>$<salt>$<hex digest>"
    """
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), salt.encode("utf-8"), iterations
    ).hex()
    return f"{_SCHEME}${iterations}${salt}${digest}"


def verify_password(password: str, stored_hash: str) -> bool:
    try:
        scheme, iterations, salt, digest = stored_hash.split("$", 3)
        rounds = int(iterations)
    except ValueError:
        return False
    if scheme != _SCHEME:
        return False

    check = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), salt.encode("utf-8"), rounds
    ).hex()
    return hmac.compare_digest(check, digest)


@lru_cache(maxsize=4)
def _dummy_hash(iterations: int) -> str:
    return hash_password(secrets.token_hex(8), iterations)


# ---------------------------------------------------------------------------
# Credential store
# ---------------------------------------------------------------------------


async def register(
    db_session: AsyncSession,
    username: str,
    email: str,
    password: str,
    *,
    iterations: int,
) -> UUID:
    """Create a user record and return its id."""
    username = (username or "").strip()
    email = (email or "").strip().lower()
    if not username or not email or not password:
        raise InvalidRequest("username, email and password are required")
    if "@" not in email:
        raise InvalidRequest("email is not valid")

    existing = await db_session.scalar(
        select(User.id).where(or_(User.email == email, User.username == username))
    )
    if existing is not None:
        raise DuplicateUser()

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password, iterations),
    )
    db_session.add(user)
    try:
        await db_session.commit()
    except IntegrityError as exc:
        await db_session.rollback()
        raise DuplicateUser() from exc

    logger.info("Registered user %s", user.id)
    return user.id


async def verify(
    db_session: AsyncSession, username: str, password: str, *, iterations: int
) -> UUID:
    """Return the id of the user matching the identifier and password.

    The identifier may be the username or the email address. Unknown users
    and wrong passwords raise the same error.
    """
    identifier = (username or "").strip()
    user = None
    if identifier:
        user = await db_session.scalar(
            select(User).where(
                or_(User.username == identifier, User.email == identifier.lower())
            )
        )

    if user is None:
        verify_password(password or "", _dummy_hash(iterations))
        raise InvalidCredentials()
    if not verify_password(password or "", user.password_hash):
        raise InvalidCredentials()
    return user.id


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


def issue_token(user_id: UUID, auth: AuthSettings) -> str:
    token = Token(
        exp=datetime.now(timezone.utc) + auth.token_ttl,
        sub=str(user_id),
    )
    return token.encode(secret=auth.jwt_secret, algorithm=auth.jwt_algorithm)


def decode_token(encoded: str, auth: AuthSettings) -> UUID:
    """Return the user id carried by a token, or raise `AuthError`."""
    try:
        token = Token.decode(encoded, auth.jwt_secret, auth.jwt_algorithm)
        return UUID(token.sub)
    except (NotAuthorizedException, ValueError) as exc:
        raise AuthError("Invalid token") from exc
