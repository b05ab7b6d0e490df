"""Operator accounts, authentication, and the signed-in session.

Passwords are stored as argon2 hashes; session tokens are opaque random
strings. The session lives in the store under ``auth_user``/``auth_token``
and never carries the password hash. Every read checks it against the
stored account, so deactivation or demotion takes effect at once.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from . import log
from .constants import Role, StorageKey
from .core_logic import (
    BusinessRuleViolation,
    ConflictError,
    MissingReferenceError,
    PermissionDenied,
    RuntimeContext,
    ValidationError,
    append_record,
    find_record,
    generate_id,
    load_collection,
    now_iso,
    replace_record,
    require_text,
)
from .data_manager import UserRecord


MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 4
DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_PASSWORD = "admin"

_hasher = PasswordHasher()


class AuthenticationError(BusinessRuleViolation):
    """Raised when credentials are rejected."""


@dataclass(frozen=True)
class UserCommand:
    """User intent for creating or editing an account.

    On update a blank ``password`` keeps the stored hash.
    """

    username: str
    role: str
    password: Optional[str] = None
    display_name: str = ""
    email: str = ""
    is_active: bool = True
    created_by: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class AuthUser:
    """A user as exposed to the session, without password material."""

    user_id: str
    username: str
    email: str
    role: str
    display_name: str


@dataclass(frozen=True)
class AuthSession:
    user: AuthUser
    token: str


def hash_password(password: str) -> str:
    return _hasher.hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    try:
        return _hasher.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False


def _validate(command: UserCommand, *, new_user: bool) -> str:
    username = require_text(command.username, "Username is required")
    if len(username) < MIN_USERNAME_LENGTH:
        raise ValidationError(f"Username must be at least {MIN_USERNAME_LENGTH} characters")
    if new_user and len(command.password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if not new_user and command.password and len(command.password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if command.role not in {member.value for member in Role}:
        log.error("Unsupported role: %r", command.role)
        raise ValidationError("Role must be admin or staff")
    return username


def _require_unique_username(context: RuntimeContext, username: str, *, exclude_id: Optional[str] = None) -> None:
    folded = username.casefold()
    for user in list_users(context):
        if user.user_id != exclude_id and user.username.casefold() == folded:
            log.warning("Username '%s' already taken", username)
            raise ConflictError("Username already exists")


def list_users(context: RuntimeContext) -> List[UserRecord]:
    return load_collection(context, StorageKey.USERS)


def active_users(context: RuntimeContext) -> List[UserRecord]:
    return [user for user in list_users(context) if user.is_active]


def users_by_role(context: RuntimeContext, role: str) -> List[UserRecord]:
    return [user for user in list_users(context) if user.role == role]


def get_user(context: RuntimeContext, user_id: str) -> UserRecord:
    user = find_record(list_users(context), user_id, id_attr="user_id")
    if user is None:
        log.warning("User lookup failed for id '%s'", user_id)
        raise MissingReferenceError("User not found")
    return user


def find_user_by_username(context: RuntimeContext, username: str) -> Optional[UserRecord]:
    folded = (username or "").strip().casefold()
    return next((user for user in list_users(context) if user.username.casefold() == folded), None)


def create_user(context: RuntimeContext, command: UserCommand) -> UserRecord:
    """Validate and append a new account with a hashed password.

    Raises:
        ValidationError: For a short username or password, or an unknown role.
        ConflictError: If the case-folded username is already taken.
    """

    username = _validate(command, new_user=True)
    _require_unique_username(context, username)
    created_at = now_iso(command.timestamp)
    user = UserRecord(
        user_id=generate_id("USR"),
        username=username,
        password_hash=hash_password(command.password or ""),
        role=command.role,
        display_name=(command.display_name or username).strip(),
        email=(command.email or "").strip(),
        is_active=command.is_active,
        created_at=created_at,
        updated_at=created_at,
        created_by=command.created_by,
    )
    append_record(context, StorageKey.USERS, user)
    log.info("Created %s user '%s' (%s)", user.role, username, user.user_id)
    return user


def update_user(context: RuntimeContext, user_id: str, command: UserCommand) -> UserRecord:
    """Overwrite account details; the password changes only when one is supplied."""

    existing = get_user(context, user_id)
    username = _validate(command, new_user=False)
    _require_unique_username(context, username, exclude_id=user_id)
    updated = replace(
        existing,
        username=username,
        role=command.role,
        display_name=(command.display_name or username).strip(),
        email=(command.email or "").strip(),
        is_active=command.is_active,
        updated_at=now_iso(command.timestamp),
    )
    if command.password:
        updated = replace(updated, password_hash=hash_password(command.password))
    replace_record(context, StorageKey.USERS, updated, id_attr="user_id")
    log.info("Updated user '%s'", user_id)
    return updated


def deactivate_user(context: RuntimeContext, user_id: str, *, timestamp: Optional[datetime] = None) -> UserRecord:
    """Soft-delete an account; it can no longer sign in."""

    existing = get_user(context, user_id)
    updated = replace(existing, is_active=False, updated_at=now_iso(timestamp))
    replace_record(context, StorageKey.USERS, updated, id_attr="user_id")
    log.info("Deactivated user '%s'", user_id)
    return updated


def initialize_default_admin(context: RuntimeContext) -> Optional[UserRecord]:
    """Create ``admin``/``admin`` when no account exists yet."""

    if list_users(context):
        return None
    admin = create_user(
        context,
        UserCommand(
            username=DEFAULT_ADMIN_USERNAME,
            password=DEFAULT_ADMIN_PASSWORD,
            role=Role.ADMIN.value,
            display_name="Administrator",
            email="admin@serafina.com",
        ),
    )
    log.warning("Default admin account created; change its password after first login")
    return admin


# ---------------------------------------------------------------------------
# Authentication & session
# ---------------------------------------------------------------------------


def to_auth_user(user: UserRecord) -> AuthUser:
    return AuthUser(
        user_id=user.user_id,
        username=user.username,
        email=user.email,
        role=user.role,
        display_name=user.display_name,
    )


def authenticate(context: RuntimeContext, username: str, password: str) -> AuthSession:
    """Check credentials case-insensitively and mint a session token.

    Raises:
        AuthenticationError: For unknown users, wrong passwords, and inactive
            accounts.
    """

    user = find_user_by_username(context, username)
    if user is None:
        log.warning("Authentication failed for unknown user '%s'", username)
        raise AuthenticationError("Invalid credentials")
    if not user.is_active:
        log.warning("Authentication refused for inactive user '%s'", user.username)
        raise AuthenticationError("User account is inactive")
    if not user.password_hash or not verify_password(user.password_hash, password or ""):
        log.warning("Authentication failed for user '%s'", user.username)
        raise AuthenticationError("Invalid credentials")
    return AuthSession(user=to_auth_user(user), token=secrets.token_urlsafe(32))


def has_role(user: Optional[AuthUser], required: str) -> bool:
    """``admin`` satisfies every role; a missing user satisfies none."""

    if user is None:
        return False
    if required == Role.ADMIN.value:
        return user.role == Role.ADMIN.value
    if required == Role.STAFF.value:
        return user.role in (Role.STAFF.value, Role.ADMIN.value)
    return False


def _auth_user_document(user: AuthUser) -> Dict[str, Any]:
    return {
        "id": user.user_id,
        "username": user.username,
        "email": user.email,
        "role": user.role,
        "displayName": user.display_name,
    }


def _auth_user_from_document(document: Mapping[str, Any]) -> AuthUser:
    return AuthUser(
        user_id=str(document["id"]),
        username=str(document.get("username", "")),
        email=str(document.get("email") or ""),
        role=str(document.get("role") or ""),
        display_name=str(document.get("displayName") or ""),
    )


def sign_in(context: RuntimeContext, username: str, password: str) -> AuthSession:
    """Authenticate and persist the session."""

    session = authenticate(context, username, password)
    context.store.put(StorageKey.AUTH_USER, _auth_user_document(session.user))
    context.store.put(StorageKey.AUTH_TOKEN, session.token)
    log.info("User '%s' signed in", session.user.username)
    return session


def sign_out(context: RuntimeContext) -> None:
    user = current_user(context)
    context.store.remove(StorageKey.AUTH_USER)
    context.store.remove(StorageKey.AUTH_TOKEN)
    if user is not None:
        log.info("User '%s' signed out", user.username)


def current_user(context: RuntimeContext) -> Optional[AuthUser]:
    """The signed-in user as the users collection describes them now.

    Returns ``None`` when no complete session is stored, or when the
    session's account has since been removed or deactivated. Role and
    profile fields come from the stored account, not from the snapshot taken
    at sign-in.
    """

    document = context.store.get(StorageKey.AUTH_USER)
    token = context.store.get(StorageKey.AUTH_TOKEN)
    if not document or not token:
        return None
    snapshot = _auth_user_from_document(document)
    user = find_record(list_users(context), snapshot.user_id, id_attr="user_id")
    if user is None:
        log.warning("Session user '%s' no longer exists", snapshot.username)
        return None
    if not user.is_active:
        log.warning("Session user '%s' has been deactivated", user.username)
        return None
    return to_auth_user(user)


def require_role(context: RuntimeContext, required: str) -> AuthUser:
    """Return the signed-in user when they hold ``required``.

    Raises:
        PermissionDenied: If nobody is signed in or the role is insufficient.
    """

    user = current_user(context)
    if user is None:
        raise PermissionDenied("Sign in required")
    if not has_role(user, required):
        log.warning("User '%s' (%s) lacks required role '%s'", user.username, user.role, required)
        raise PermissionDenied(f"This operation requires the {required} role")
    return user
